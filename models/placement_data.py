"""PlacementData: Vollständiger Verteilungsdatensatz + Struktur-Check (Pydantic v2)."""

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from config.schema import Gender, PlacementConfig
from models.destination_class import CombinedAllocation, DestinationClass
from models.student import Student


class PlacementStructureError(Exception):
    """Strukturfehler: Pflichtdaten fehlen, Verteilung kann nicht starten."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))


class StructureReport(BaseModel):
    """Ergebnis des Struktur-Checks."""

    is_valid: bool
    errors: list[str]      # Kritische Probleme (Lauf unmöglich)
    warnings: list[str]    # Hinweise (Lauf möglich, Ergebnis evtl. unvollständig)

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        if self.is_valid:
            status = "[bold green]✓ STRUKTUR OK[/bold green]"
        else:
            status = "[bold red]✗ STRUKTURFEHLER[/bold red]"

        lines = [status]
        if self.errors:
            lines.append("\n[red bold]Fehler (kritisch):[/red bold]")
            for e in self.errors:
                lines.append(f"  [red]• {e}[/red]")
        if self.warnings:
            lines.append("\n[yellow bold]Warnungen:[/yellow bold]")
            for w in self.warnings:
                lines.append(f"  [yellow]• {w}[/yellow]")
        if not self.errors and not self.warnings:
            lines.append("[dim]Keine Probleme gefunden.[/dim]")

        console.print(Panel("\n".join(lines), title="Struktur-Check", border_style="cyan"))


class PlacementData(BaseModel):
    """Vollständiger Datensatz: Schüler, Zielklassen, Konfiguration."""

    students: list[Student]
    classes: list[DestinationClass]
    config: PlacementConfig
    combined_allocations: list[CombinedAllocation] = []
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    data_version: str = "1.0"

    # ─── Zugriff ───

    def class_map(self) -> dict[str, DestinationClass]:
        """Klassen-ID → Klasse (in Eingabereihenfolge)."""
        return {c.id: c for c in self.classes}

    def students_in(self, class_id: str) -> list[Student]:
        """Alle Schüler, die aktuell class_id zugewiesen sind."""
        return [s for s in self.students if s.destination == class_id]

    @property
    def placed_count(self) -> int:
        return sum(1 for s in self.students if s.placed)

    # ─── Übersicht ───

    def summary(self) -> str:
        """Kurze Übersicht über den Datensatz."""
        genders = Counter(s.gender for s in self.students)
        constrained = sum(1 for s in self.students if s.has_constraint)
        paired = sum(1 for s in self.students if s.has_pairing)
        total_target = sum(c.target_size for c in self.classes)
        lines = [
            f"Schule: {self.config.school_name} ({self.config.level})",
            f"Schüler: {len(self.students)} "
            f"(F: {genders.get(Gender.F, 0)}, M: {genders.get(Gender.M, 0)})",
            f"Mit LV2/Option: {constrained} | Mit ASSO/DISSO: {paired}",
            f"Klassen: {len(self.classes)} (Zielgröße gesamt: {total_target})",
            f"Platziert: {self.placed_count}/{len(self.students)}",
            f"Kombi-Entscheidungen: {len(self.combined_allocations)}"
            if self.combined_allocations else "",
        ]
        return "\n".join(l for l in lines if l)

    # ─── Struktur-Check ───

    def validate_structure(self) -> StructureReport:
        """Prüft ob die Pflichtdaten für einen Verteilungslauf vorhanden sind.

        Prüfungen:
        1. Mindestens eine Zielklasse
        2. Eindeutige Klassen- und Schüler-IDs
        3. Zielklassen der Schüler existieren
        4. Gesamtkapazität ≥ Schülerzahl
        5. Jeder LV2/Option-Tag wird von mindestens einer Klasse angeboten
        """
        from solver.normalization import build_synonym_table, normalize_tag

        errors: list[str] = []
        warnings: list[str] = []

        # ── 1. Klassen vorhanden ─────────────────────────────────────────
        if not self.classes:
            errors.append(
                "Keine Zielklassen deklariert – ohne Klassen/Quoten ist keine Verteilung möglich."
            )

        # ── 2. Eindeutige IDs ────────────────────────────────────────────
        dup_classes = [cid for cid, n in Counter(c.id for c in self.classes).items() if n > 1]
        if dup_classes:
            errors.append(f"Doppelte Klassen-IDs: {', '.join(dup_classes)}")
        dup_students = [sid for sid, n in Counter(s.id for s in self.students).items() if n > 1]
        if dup_students:
            errors.append(
                f"Doppelte Schüler-IDs: {', '.join(dup_students[:10])}"
                f"{'...' if len(dup_students) > 10 else ''}"
            )

        if not self.students:
            warnings.append("Keine Schüler im Datensatz.")

        # ── 3. Zielklassen existieren ────────────────────────────────────
        known = {c.id for c in self.classes}
        unknown = [s for s in self.students if s.destination and s.destination not in known]
        if unknown:
            warnings.append(
                f"{len(unknown)} Schüler verweisen auf unbekannte Klassen "
                f"({', '.join(sorted({s.destination for s in unknown}))}) – "
                f"werden als nicht platziert behandelt."
            )

        # ── 4. Gesamtkapazität ───────────────────────────────────────────
        total_target = sum(c.target_size for c in self.classes)
        if self.classes and total_target < len(self.students):
            warnings.append(
                f"Gesamt-Zielgröße ({total_target}) < Schülerzahl ({len(self.students)}) – "
                f"{len(self.students) - total_target} Schüler bleiben unplatziert."
            )

        # ── 5. Angebotene Tags ───────────────────────────────────────────
        synonyms = build_synonym_table(self.config.extra_synonyms)
        offered: set[str] = set()
        for c in self.classes:
            for token in c.quotas:
                offered.update(token.strip("[]").split("+"))
        demand: Counter = Counter()
        for s in self.students:
            for raw in (s.language, s.option):
                tag = normalize_tag(raw, synonyms)
                if tag:
                    demand[tag] += 1
        for tag, n in sorted(demand.items()):
            if tag not in offered:
                warnings.append(
                    f"Tag '{tag}' ({n} Schüler) wird von keiner Klasse angeboten."
                )

        return StructureReport(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def ensure_valid(self) -> StructureReport:
        """Wie validate_structure(), wirft aber PlacementStructureError bei Fehlern."""
        report = self.validate_structure()
        if not report.is_valid:
            raise PlacementStructureError(report.errors)
        return report

    # ─── Persistenz ────────────────────────────────────────────────────────

    def save_json(self, path: Path) -> None:
        """Speichert den kompletten Datensatz als JSON-Datei."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        updated = self.model_copy(update={
            "modified_at": now,
            "created_at": self.created_at or now,
        })
        with open(path, "w", encoding="utf-8") as f:
            f.write(updated.model_dump_json(indent=2))

    @classmethod
    def load_json(cls, path: Path) -> "PlacementData":
        """Lädt einen Datensatz aus einer JSON-Datei."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"JSON-Datei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate_json(f.read())
