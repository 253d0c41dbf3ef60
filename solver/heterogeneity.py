"""Heterogenitäts-Score: Streuung innerhalb, Gleichheit zwischen den Klassen.

Pro Merkmal m:
    intra_m = Mittelwert der Klassen-Standardabweichungen
    inter_m = Varianz der Klassen-Mittelwerte

    Score = Σ intra_m · w_intra_m / (1 + Σ inter_m · w_inter_m)

Höher ist besser: breite Mischung in jeder Klasse, keine "starke" und
"schwache" Klasse.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from pydantic import BaseModel

from config.defaults import SCORE_ATTRIBUTES
from config.schema import AttributeWeight, Gender
from models.student import Student


# ─── Laufzeit-Statistik pro Klasse ────────────────────────────────────────────

@dataclass
class ClassRuntimeStats:
    """Kopfzahl, Geschlechter und Summen/Quadratsummen pro Merkmal.

    Wird inkrementell gepflegt (add/remove) und ist damit immer konsistent
    mit der aktuellen Zuweisung.
    """

    class_id: str
    count: int = 0
    gender_counts: Counter = field(default_factory=Counter)
    sums: dict[str, float] = field(
        default_factory=lambda: {a: 0.0 for a in SCORE_ATTRIBUTES})
    sq_sums: dict[str, float] = field(
        default_factory=lambda: {a: 0.0 for a in SCORE_ATTRIBUTES})

    @classmethod
    def build(cls, class_id: str, students: Iterable[Student]) -> "ClassRuntimeStats":
        stats = cls(class_id=class_id)
        for s in students:
            stats.add(s)
        return stats

    def add(self, student: Student) -> None:
        self.count += 1
        self.gender_counts[student.gender] += 1
        for a in SCORE_ATTRIBUTES:
            v = student.score(a)
            self.sums[a] += v
            self.sq_sums[a] += v * v

    def remove(self, student: Student) -> None:
        self.count -= 1
        self.gender_counts[student.gender] -= 1
        for a in SCORE_ATTRIBUTES:
            v = student.score(a)
            self.sums[a] -= v
            self.sq_sums[a] -= v * v

    def copy(self) -> "ClassRuntimeStats":
        return ClassRuntimeStats(
            class_id=self.class_id,
            count=self.count,
            gender_counts=Counter(self.gender_counts),
            sums=dict(self.sums),
            sq_sums=dict(self.sq_sums),
        )

    def swapped(self, outgoing: Student, incoming: Student) -> "ClassRuntimeStats":
        """Statistik nach einem Tausch – ohne den Zustand zu verändern."""
        result = self.copy()
        result.remove(outgoing)
        result.add(incoming)
        return result

    def mean(self, attribute: str) -> float:
        if self.count <= 0:
            return 0.0
        return self.sums[attribute] / self.count

    def std(self, attribute: str) -> float:
        """Populations-Standardabweichung."""
        if self.count <= 0:
            return 0.0
        m = self.mean(attribute)
        var = self.sq_sums[attribute] / self.count - m * m
        return math.sqrt(var) if var > 1e-12 else 0.0

    def gender_ratio(self, gender: Gender) -> float:
        if self.count <= 0:
            return 0.0
        return self.gender_counts.get(gender, 0) / self.count


def build_class_stats(
    students: Iterable[Student], class_ids: Iterable[str]
) -> dict[str, ClassRuntimeStats]:
    """Statistiken für alle Klassen (auch leere) aus der aktuellen Zuweisung."""
    stats = {cid: ClassRuntimeStats(class_id=cid) for cid in class_ids}
    for s in students:
        if s.placed and s.destination in stats:
            stats[s.destination].add(s)
    return stats


# ─── Score ────────────────────────────────────────────────────────────────────

class AttributeBreakdown(BaseModel):
    """Beitrag eines Merkmals zum Heterogenitäts-Score."""

    attribute: str
    intra_std: float
    inter_variance: float
    intra_weight: float
    inter_weight: float
    intra_contribution: float   # intra_std × intra_weight
    inter_contribution: float   # inter_variance × inter_weight


class HeterogeneityScore(BaseModel):
    """Score plus Aufschlüsselung pro Merkmal."""

    score: float
    breakdown: list[AttributeBreakdown]


def attribute_dispersion(
    stats: Iterable[ClassRuntimeStats], attribute: str
) -> tuple[float, float]:
    """(intra_std, inter_variance) eines Merkmals über alle nicht-leeren Klassen."""
    filled = [s for s in stats if s.count > 0]
    if not filled:
        return 0.0, 0.0
    intra = sum(s.std(attribute) for s in filled) / len(filled)
    means = [s.mean(attribute) for s in filled]
    mu = sum(means) / len(means)
    inter = sum((m - mu) ** 2 for m in means) / len(means)
    return intra, inter


def heterogeneity_breakdown(
    stats: Iterable[ClassRuntimeStats],
    weights: Mapping[str, AttributeWeight],
) -> HeterogeneityScore:
    stats = list(stats)
    numerator = 0.0
    denominator = 1.0
    rows: list[AttributeBreakdown] = []
    for attribute, w in weights.items():
        intra, inter = attribute_dispersion(stats, attribute)
        numerator += intra * w.intra
        denominator += inter * w.inter
        rows.append(AttributeBreakdown(
            attribute=attribute,
            intra_std=round(intra, 4),
            inter_variance=round(inter, 4),
            intra_weight=w.intra,
            inter_weight=w.inter,
            intra_contribution=round(intra * w.intra, 4),
            inter_contribution=round(inter * w.inter, 4),
        ))
    return HeterogeneityScore(score=numerator / denominator, breakdown=rows)


def heterogeneity_score(
    stats: Iterable[ClassRuntimeStats],
    weights: Mapping[str, AttributeWeight],
) -> float:
    stats = list(stats)
    numerator = 0.0
    denominator = 1.0
    for attribute, w in weights.items():
        intra, inter = attribute_dispersion(stats, attribute)
        numerator += intra * w.intra
        denominator += inter * w.inter
    return numerator / denominator
