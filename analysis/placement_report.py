"""Qualitätsbericht für eine fertige Klassenverteilung.

Analysiert Größe, Geschlechterquote und Merkmals-Verteilung pro Klasse und
berechnet den globalen Heterogenitäts-Score.
"""

from collections import Counter

from pydantic import BaseModel

from config.defaults import SCORE_ATTRIBUTES, SCORE_LABELS
from config.schema import Gender
from models.placement_data import PlacementData
from solver.heterogeneity import (
    AttributeBreakdown,
    build_class_stats,
    heterogeneity_breakdown,
)
from solver.normalization import build_synonym_table, constraint_key, constraint_tags
from solver.parity import global_gender_ratio


# ─── Metriken-Modelle ─────────────────────────────────────────────────────────

class ClassPlacementMetrics(BaseModel):
    """Kennzahlen einer Zielklasse."""

    class_id: str
    size: int
    target_size: int
    gender_counts: dict[str, int]
    reference_share: float           # Anteil Bezugsgeschlecht (0.0–1.0)
    means: dict[str, float]
    stds: dict[str, float]
    constraint_counts: dict[str, int]  # ConstraintKey → Anzahl


class PlacementQualityReport(BaseModel):
    """Vollständiger Qualitätsbericht."""

    class_metrics: list[ClassPlacementMetrics]
    total_students: int
    placed_count: int
    reference_gender: Gender
    global_ratio: float
    heterogeneity_score: float
    breakdown: list[AttributeBreakdown]

    @property
    def unplaced_count(self) -> int:
        return self.total_students - self.placed_count


# ─── Analyzer ─────────────────────────────────────────────────────────────────

class PlacementAnalyzer:
    """Berechnet Qualitätsmetriken für eine Verteilung."""

    def analyze(self, data: PlacementData) -> PlacementQualityReport:
        ref = data.config.parity.reference_gender
        synonyms = build_synonym_table(data.config.extra_synonyms)
        class_ids = [c.id for c in data.classes]
        stats = build_class_stats(data.students, class_ids)

        constraint_counts: dict[str, Counter] = {cid: Counter() for cid in class_ids}
        for s in data.students:
            if s.destination in constraint_counts:
                tags = constraint_tags(s, synonyms)
                if tags:
                    constraint_counts[s.destination][constraint_key(tags)] += 1

        metrics = []
        for c in data.classes:
            st = stats[c.id]
            metrics.append(ClassPlacementMetrics(
                class_id=c.id,
                size=st.count,
                target_size=c.target_size,
                gender_counts={g.value: st.gender_counts.get(g, 0) for g in Gender},
                reference_share=round(st.gender_ratio(ref), 4),
                means={a: round(st.mean(a), 2) for a in SCORE_ATTRIBUTES},
                stds={a: round(st.std(a), 2) for a in SCORE_ATTRIBUTES},
                constraint_counts=dict(constraint_counts[c.id]),
            ))

        score = heterogeneity_breakdown(
            stats.values(), data.config.optimizer.weights.as_dict()
        )
        return PlacementQualityReport(
            class_metrics=metrics,
            total_students=len(data.students),
            placed_count=data.placed_count,
            reference_gender=ref,
            global_ratio=global_gender_ratio(data.students, ref),
            heterogeneity_score=round(score.score, 4),
            breakdown=score.breakdown,
        )

    def print_rich(self, report: PlacementQualityReport, tolerance_percent: float = 10.0) -> None:
        """Gibt den Qualitätsbericht formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        ref = report.reference_gender.value
        unplaced_color = "green" if report.unplaced_count == 0 else "yellow"
        console.print(Panel(
            f"Platziert: [bold]{report.placed_count}/{report.total_students}[/bold] | "
            f"offen: [{unplaced_color}]{report.unplaced_count}[/{unplaced_color}]\n"
            f"Sollquote {ref}: [bold]{report.global_ratio:.0%}[/bold] | "
            f"Heterogenitäts-Score: [bold]{report.heterogeneity_score:.4f}[/bold] "
            f"(höher = besser)",
            title="Verteilung – Übersicht",
            border_style="cyan",
        ))

        c_table = Table(title="Klassen", box=box.ROUNDED, show_lines=False)
        c_table.add_column("Klasse", width=8)
        c_table.add_column("Ist/Soll", justify="right", width=9)
        c_table.add_column("F", justify="right", width=4)
        c_table.add_column("M", justify="right", width=4)
        c_table.add_column(f"% {ref}", justify="right", width=6)
        for a in SCORE_ATTRIBUTES:
            c_table.add_column(f"Ø {SCORE_LABELS[a][:4]}.", justify="right", width=8)
        c_table.add_column("Wahlen")

        for m in report.class_metrics:
            deviation = abs(m.reference_share - report.global_ratio) * 100
            share_color = "green" if deviation <= tolerance_percent else "red"
            size_color = "red" if m.size > m.target_size else "white"
            c_table.add_row(
                m.class_id,
                f"[{size_color}]{m.size}/{m.target_size}[/{size_color}]",
                str(m.gender_counts.get("F", 0)),
                str(m.gender_counts.get("M", 0)),
                f"[{share_color}]{m.reference_share:.0%}[/{share_color}]",
                *(f"{m.means[a]:.2f}" for a in SCORE_ATTRIBUTES),
                ", ".join(f"{k}={n}" for k, n in sorted(m.constraint_counts.items())),
            )
        console.print(c_table)

        b_table = Table(title="Heterogenität pro Merkmal", box=box.ROUNDED)
        b_table.add_column("Merkmal", width=14)
        b_table.add_column("Ø Streuung", justify="right", width=11)
        b_table.add_column("Varianz Ø", justify="right", width=10)
        b_table.add_column("Beitrag +", justify="right", width=10)
        b_table.add_column("Beitrag −", justify="right", width=10)
        for b in report.breakdown:
            b_table.add_row(
                SCORE_LABELS.get(b.attribute, b.attribute),
                f"{b.intra_std:.3f}",
                f"{b.inter_variance:.3f}",
                f"{b.intra_contribution:.3f}",
                f"{b.inter_contribution:.3f}",
            )
        console.print(b_table)
