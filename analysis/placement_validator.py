"""Validierung einer fertigen Klassenverteilung.

Prüft die Zuweisung unabhängig vom Solver als Sicherheitsnetz:
harte Wahlen, Klassengrößen, Quoten und ASSO/DISSO-Codes.
"""

from collections import Counter, defaultdict
from typing import Literal

from pydantic import BaseModel

from models.placement_data import PlacementData
from solver.normalization import build_synonym_table, constraint_key, constraint_tags
from solver.quotas import ClassQuotaState


class ValidationViolation(BaseModel):
    """Eine einzelne Verletzung."""

    severity: Literal["error", "warning"]
    constraint: str      # z.B. "constraint_incompatible"
    description: str
    entity: str          # student_id / class_id / Code


class ValidationReport(BaseModel):
    """Ergebnis der Validierung."""

    violations: list[ValidationViolation]
    is_valid: bool       # True wenn keine Errors (Warnings ok)

    @property
    def errors(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.severity == "error"]

    @property
    def warnings(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.severity == "warning"]

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        status = (
            "[bold green]✓ VALIDE[/bold green]"
            if self.is_valid
            else "[bold red]✗ VERLETZUNGEN GEFUNDEN[/bold red]"
        )
        lines = [status, f"Fehler: {len(self.errors)} | Warnungen: {len(self.warnings)}"]
        console.print(Panel("\n".join(lines), title="Verteilungs-Validierung", border_style="cyan"))

        if not self.violations:
            console.print("[dim]Keine Verletzungen gefunden.[/dim]")
            return

        table = Table(box=box.ROUNDED, show_lines=True)
        table.add_column("Typ", width=8)
        table.add_column("Regel", width=24)
        table.add_column("Entität", width=12)
        table.add_column("Beschreibung")
        for v in self.violations:
            color = "red" if v.severity == "error" else "yellow"
            table.add_row(
                f"[{color}]{v.severity.upper()}[/{color}]",
                v.constraint,
                v.entity,
                v.description,
            )
        console.print(table)


class PlacementValidator:
    """Prüft eine Verteilung (PlacementData mit Zuweisungen)."""

    def validate(self, data: PlacementData) -> ValidationReport:
        violations: list[ValidationViolation] = []

        violations.extend(self._check_placement_flags(data))
        violations.extend(self._check_unknown_classes(data))
        violations.extend(self._check_constraints(data))
        violations.extend(self._check_class_sizes(data))
        violations.extend(self._check_together_codes(data))
        violations.extend(self._check_apart_codes(data))

        has_errors = any(v.severity == "error" for v in violations)
        return ValidationReport(violations=violations, is_valid=not has_errors)

    # ── Einzelne Prüfungen ────────────────────────────────────────────────────

    def _check_placement_flags(self, data: PlacementData) -> list[ValidationViolation]:
        """placed muss genau dann True sein, wenn eine Zielklasse gesetzt ist."""
        violations = []
        for s in data.students:
            if s.placed != (s.destination is not None):
                violations.append(ValidationViolation(
                    severity="error",
                    constraint="placement_flag_mismatch",
                    entity=s.id,
                    description=(
                        f"Platziert={s.placed}, Zielklasse={s.destination or '–'}."
                    ),
                ))
        return violations

    def _check_unknown_classes(self, data: PlacementData) -> list[ValidationViolation]:
        known = {c.id for c in data.classes}
        return [
            ValidationViolation(
                severity="error",
                constraint="unknown_class",
                entity=s.id,
                description=f"{s.name}: Zielklasse '{s.destination}' existiert nicht.",
            )
            for s in data.students
            if s.destination is not None and s.destination not in known
        ]

    def _check_constraints(self, data: PlacementData) -> list[ValidationViolation]:
        """Jede Klasse bietet die Wahl ihrer Schüler an; Quoten reichen aus."""
        from analysis.constraint_stats import apply_combined_allocations

        violations = []
        plan = apply_combined_allocations(data)
        synonyms = build_synonym_table(data.config.extra_synonyms)
        states = {
            c.id: ClassQuotaState.from_class(c, respect_target_size=False)
            for c in plan.classes
        }
        overflow: Counter = Counter()

        for s in data.students:
            state = states.get(s.destination) if s.destination else None
            if state is None:
                continue
            tags = constraint_tags(s, synonyms, plan.separations)
            if not tags:
                continue
            key = constraint_key(tags)
            if not state.declares(tags):
                violations.append(ValidationViolation(
                    severity="error",
                    constraint="constraint_incompatible",
                    entity=s.id,
                    description=f"{s.name}: Wahl {key} wird in {s.destination} nicht angeboten.",
                ))
            elif state.available(tags) >= 1:
                state.consume(tags, 1)
            else:
                overflow[(s.destination, key)] += 1

        for (class_id, key), n in sorted(overflow.items()):
            violations.append(ValidationViolation(
                severity="warning",
                constraint="quota_exceeded",
                entity=class_id,
                description=f"Quote für {key} um {n} überschritten.",
            ))
        return violations

    def _check_class_sizes(self, data: PlacementData) -> list[ValidationViolation]:
        sizes = Counter(s.destination for s in data.students if s.destination)
        violations = []
        for c in data.classes:
            n = sizes.get(c.id, 0)
            if n > c.target_size:
                violations.append(ValidationViolation(
                    severity="error",
                    constraint="class_oversized",
                    entity=c.id,
                    description=f"Ist {n} Schüler > Zielgröße {c.target_size}.",
                ))
        return violations

    def _check_together_codes(self, data: PlacementData) -> list[ValidationViolation]:
        """Schüler mit gleichem ASSO-Code sollten in derselben Klasse sein."""
        groups: dict[str, set[str]] = defaultdict(set)
        for s in data.students:
            if s.together_code and s.destination:
                groups[s.together_code].add(s.destination)
        return [
            ValidationViolation(
                severity="warning",
                constraint="together_split",
                entity=code,
                description=f"ASSO-Gruppe {code} verteilt auf {', '.join(sorted(classes))}.",
            )
            for code, classes in sorted(groups.items())
            if len(classes) > 1
        ]

    def _check_apart_codes(self, data: PlacementData) -> list[ValidationViolation]:
        """Schüler mit gleichem DISSO-Code sollten in verschiedenen Klassen sein."""
        shared: Counter = Counter(
            (s.apart_code, s.destination)
            for s in data.students
            if s.apart_code and s.destination
        )
        return [
            ValidationViolation(
                severity="warning",
                constraint="apart_shared",
                entity=code,
                description=f"{n} Schüler mit DISSO-Code {code} in Klasse {class_id}.",
            )
            for (code, class_id), n in sorted(shared.items())
            if n > 1
        ]
