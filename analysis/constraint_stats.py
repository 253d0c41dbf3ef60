"""Statistik der LV2/Options-Wahlen und Kombi-Entscheidungen.

Zeigt, welche LV2+Option-Kombinationen wie häufig vorkommen und wie stark sie
sich überschneiden. Daraus entscheidet die Schulleitung pro Kombination:

  together  → eigene Kombi-Quote [LV2+OPT] in einer Zielklasse
  separate  → nur der Prioritäts-Tag (lv2 oder opt) zählt bei der Verteilung
"""

import logging
from collections import Counter
from typing import Iterable, Optional

from pydantic import BaseModel

from models.destination_class import DestinationClass
from models.placement_data import PlacementData
from models.student import Student
from solver.normalization import build_synonym_table, combination_key, normalize_tag
from solver.quotas import combined_token

logger = logging.getLogger(__name__)


# ─── Modelle ──────────────────────────────────────────────────────────────────

class CombinationStat(BaseModel):
    """Eine LV2+Option-Kombination."""

    key: str               # "ITA+CHAV" (Wahl-Reihenfolge)
    lv2: str
    opt: str
    count: int
    intersection: int      # Prozent von min(LV2-Gesamt, OPT-Gesamt)


class ConstraintStatistics(BaseModel):
    """Verteilung der Wahlen im Jahrgang."""

    total: int
    lv2_counts: dict[str, int]
    opt_counts: dict[str, int]
    combinations: list[CombinationStat]
    unconstrained: int

    def combination(self, key: str) -> Optional[CombinationStat]:
        key = key.upper()
        return next((c for c in self.combinations if c.key == key), None)

    def print_rich(self) -> None:
        """Gibt die Statistik formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        console.print(Panel(
            f"Schüler: [bold]{self.total}[/bold] | "
            f"ohne LV2/Option: [bold]{self.unconstrained}[/bold] | "
            f"Kombinationen: [bold]{len(self.combinations)}[/bold]",
            title="Wahlstatistik",
            border_style="cyan",
        ))

        counts = Table(title="Einzelwahlen", box=box.ROUNDED)
        counts.add_column("Art", width=8)
        counts.add_column("Tag", width=12)
        counts.add_column("Anzahl", justify="right", width=8)
        for tag, n in sorted(self.lv2_counts.items()):
            counts.add_row("LV2", tag, str(n))
        for tag, n in sorted(self.opt_counts.items()):
            counts.add_row("Option", tag, str(n))
        console.print(counts)

        if not self.combinations:
            return
        combos = Table(title="Kombinationen LV2+Option", box=box.ROUNDED)
        combos.add_column("Kombination", width=16)
        combos.add_column("Anzahl", justify="right", width=8)
        combos.add_column("Überschneidung", justify="right", width=15)
        for c in self.combinations:
            color = (
                "red" if c.intersection >= 50
                else "yellow" if c.intersection >= 25
                else "green"
            )
            combos.add_row(c.key, str(c.count), f"[{color}]{c.intersection}%[/{color}]")
        console.print(combos)


class CombinedAllocationPlan(BaseModel):
    """Auswirkung der Kombi-Entscheidungen auf einen Verteilungslauf."""

    classes: list[DestinationClass]    # Kopien mit ergänzten Kombi-Quoten
    separations: dict[str, str]        # "ITA+CHAV" → "lv2" | "opt"
    warnings: list[str]


# ─── Berechnung ───────────────────────────────────────────────────────────────

def analyze_constraints(
    students: Iterable[Student], synonyms: Optional[dict[str, str]] = None
) -> ConstraintStatistics:
    """Zählt LV2, Optionen und Kombinationen."""
    students = list(students)
    lv2_counts: Counter = Counter()
    opt_counts: Counter = Counter()
    combos: Counter = Counter()
    unconstrained = 0

    for s in students:
        lv2 = normalize_tag(s.language, synonyms)
        opt = normalize_tag(s.option, synonyms)
        if lv2:
            lv2_counts[lv2] += 1
        if opt:
            opt_counts[opt] += 1
        if lv2 and opt:
            combos[(lv2, opt)] += 1
        if not lv2 and not opt:
            unconstrained += 1

    stats = []
    for (lv2, opt), n in combos.most_common():
        base = min(lv2_counts[lv2], opt_counts[opt])
        stats.append(CombinationStat(
            key=combination_key(lv2, opt),
            lv2=lv2,
            opt=opt,
            count=n,
            intersection=round(n / base * 100) if base else 0,
        ))

    return ConstraintStatistics(
        total=len(students),
        lv2_counts=dict(lv2_counts),
        opt_counts=dict(opt_counts),
        combinations=stats,
        unconstrained=unconstrained,
    )


def apply_combined_allocations(data: PlacementData) -> CombinedAllocationPlan:
    """Übersetzt die Kombi-Entscheidungen in Quoten und Prioritäten.

    Die Klassen in `data` bleiben unverändert; der Plan enthält Kopien.
    """
    synonyms = build_synonym_table(data.config.extra_synonyms)
    stats = analyze_constraints(data.students, synonyms)
    classes = [c.model_copy(deep=True) for c in data.classes]
    by_id = {c.id: c for c in classes}
    separations: dict[str, str] = {}
    warnings: list[str] = []

    for decision in data.combined_allocations:
        lv2 = normalize_tag(decision.lv2, synonyms)
        opt = normalize_tag(decision.opt, synonyms)
        key = combination_key(lv2, opt)

        if decision.type == "separate":
            separations[key] = decision.priority
            logger.info(f"Kombination {key}: getrennt, Priorität {decision.priority}")
            continue

        target = by_id.get(decision.target_class)
        if target is None:
            msg = (f"Kombination {key}: Zielklasse '{decision.target_class}' "
                   f"existiert nicht – Entscheidung ignoriert.")
            logger.warning(msg)
            warnings.append(msg)
            continue
        stat = stats.combination(key)
        count = stat.count if stat else 0
        if count == 0:
            msg = f"Kombination {key}: kein Schüler mit dieser Wahl – keine Quote ergänzt."
            logger.warning(msg)
            warnings.append(msg)
            continue
        token = combined_token((lv2, opt))
        target.quotas[token] = target.quotas.get(token, 0) + count
        logger.info(f"Kombination {key}: {count} Plätze {token} in {target.id}")

    return CombinedAllocationPlan(classes=classes, separations=separations, warnings=warnings)
