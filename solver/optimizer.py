"""Phase 3: Heterogenitäts-Optimierung per Simulated Annealing.

Getauscht werden nur freie Schüler (platziert, ohne LV2/Option, ohne
ASSO/DISSO-Code). Ein Tausch ändert weder Klassengrößen noch Quoten.

Akzeptanz:
    Δ > 0                        → immer
    sonst mit Wahrscheinlichkeit  exp(Δ / T),  T = 1 − it / max_iterations
"""

import logging
import math
import random
import time
from typing import Callable, Literal, Optional

from pydantic import BaseModel, Field

from config.defaults import SCORE_ATTRIBUTES
from config.schema import ParityPolicy, PlacementConfig
from models.destination_class import DestinationClass
from models.student import Student
from solver.heterogeneity import (
    AttributeBreakdown,
    ClassRuntimeStats,
    build_class_stats,
    heterogeneity_breakdown,
    heterogeneity_score,
)
from solver.normalization import build_synonym_table, constraint_tags
from solver.parity import ParityWarning, global_gender_ratio, parity_deviations

logger = logging.getLogger(__name__)

StopReason = Literal["iterations", "time_limit", "no_candidates", "disabled"]


class OptimizationResult(BaseModel):
    """Ergebnis der Phase 3."""

    iterations: int = 0
    swaps_applied: int = 0
    improving_swaps: int = 0
    invalid_proposals: int = 0
    initial_score: float = 0.0
    best_score: float = 0.0
    final_score: float = 0.0
    elapsed_seconds: float = 0.0
    stop_reason: StopReason = "iterations"
    swappable_count: int = 0
    breakdown_before: list[AttributeBreakdown] = Field(default_factory=list)
    breakdown_after: list[AttributeBreakdown] = Field(default_factory=list)
    parity_warnings: list[ParityWarning] = Field(default_factory=list)

    @property
    def improvement(self) -> float:
        return self.final_score - self.initial_score


class HeterogeneityOptimizer:
    """Tauscht freie Schüler zwischen Klassen, solange der Score steigt.

    Zufall und Uhr sind injizierbar, damit Läufe reproduzierbar testbar sind:
        optimizer = HeterogeneityOptimizer(classes, config,
                                           rng=random.Random(1), clock=fake_clock)
    """

    def __init__(
        self,
        classes: list[DestinationClass],
        config: PlacementConfig,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.classes = list(classes)
        self.config = config
        self.rng = rng or random.Random(config.optimizer.seed)
        self.clock = clock
        self.synonyms = build_synonym_table(config.extra_synonyms)
        self.weights = config.optimizer.weights.as_dict()

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def is_swappable(self, student: Student) -> bool:
        """Platziert, ohne harte Wahl und ohne Paar-/Trennungscode."""
        return (
            student.placed
            and not student.has_pairing
            and not constraint_tags(student, self.synonyms)
        )

    def evaluate_swap(
        self,
        stats: dict[str, ClassRuntimeStats],
        a: Student,
        b: Student,
    ) -> float:
        """Score nach dem Tausch a ↔ b, ohne den Zustand zu verändern."""
        ca, cb = a.destination, b.destination
        trial = dict(stats)
        trial[ca] = stats[ca].swapped(a, b)
        trial[cb] = stats[cb].swapped(b, a)
        return heterogeneity_score(trial.values(), self.weights)

    def optimize(self, students: list[Student]) -> OptimizationResult:
        oc = self.config.optimizer
        class_ids = [c.id for c in self.classes]
        stats = build_class_stats(students, class_ids)

        members: dict[str, list[Student]] = {cid: [] for cid in class_ids}
        for s in students:
            if s.destination in members and self.is_swappable(s):
                members[s.destination].append(s)
        swappable = [s for group in members.values() for s in group]

        current = heterogeneity_score(stats.values(), self.weights)
        result = OptimizationResult(
            initial_score=current,
            best_score=current,
            final_score=current,
            swappable_count=len(swappable),
            breakdown_before=heterogeneity_breakdown(stats.values(), self.weights).breakdown,
        )

        if oc.max_iterations == 0:
            result.stop_reason = "disabled"
            result.breakdown_after = result.breakdown_before
            logger.info("Optimierung deaktiviert (max_iterations = 0)")
            return result
        if sum(1 for group in members.values() if group) < 2:
            result.stop_reason = "no_candidates"
            result.breakdown_after = result.breakdown_before
            logger.info("Optimierung übersprungen: weniger als zwei Klassen mit freien Schülern")
            return result

        best = current
        best_assignment = {s.id: s.destination for s in swappable}
        start = self.clock()

        logger.info(
            f"Optimierung: {len(swappable)} freie Schüler, Start-Score {current:.4f}, "
            f"max. {oc.max_iterations} Iterationen / {oc.time_limit_seconds:.0f}s"
        )

        for it in range(oc.max_iterations):
            if self.clock() - start >= oc.time_limit_seconds:
                result.stop_reason = "time_limit"
                break
            result.iterations += 1

            proposal = self._propose(stats, members)
            if proposal is None or not self._is_valid_swap(*proposal):
                result.invalid_proposals += 1
                continue
            a, b = proposal

            candidate = self.evaluate_swap(stats, a, b)
            delta = candidate - current
            temperature = 1.0 - it / oc.max_iterations
            if not self._accept(delta, temperature):
                continue

            self._apply_swap(stats, members, a, b)
            current = candidate
            result.swaps_applied += 1
            if delta > 0:
                result.improving_swaps += 1
            if current > best:
                best = current
                best_assignment = {s.id: s.destination for s in swappable}
        else:
            result.stop_reason = "iterations"

        if oc.keep_best and best > current:
            for s in swappable:
                s.assign(best_assignment[s.id])
            stats = build_class_stats(students, class_ids)
            current = heterogeneity_score(stats.values(), self.weights)

        result.best_score = best
        result.final_score = current
        result.elapsed_seconds = round(self.clock() - start, 3)
        result.breakdown_after = heterogeneity_breakdown(stats.values(), self.weights).breakdown

        if oc.parity_policy == ParityPolicy.ALLOW:
            pc = self.config.parity
            ratio = global_gender_ratio(students, pc.reference_gender)
            result.parity_warnings = parity_deviations(
                students, self.classes, ratio, pc.reference_gender, pc.tolerance_percent
            )
            for w in result.parity_warnings:
                logger.warning(f"Nach Optimierung: {w.message}")

        logger.info(
            f"Optimierung beendet ({result.stop_reason}): {result.iterations} Iterationen, "
            f"{result.swaps_applied} Tausche, Score {result.initial_score:.4f} → "
            f"{result.final_score:.4f}"
        )
        return result

    # ─── Interne Schritte ─────────────────────────────────────────────────────

    def _accept(self, delta: float, temperature: float) -> bool:
        if delta > 0:
            return True
        if temperature <= 0:
            return False
        return self.rng.random() < math.exp(delta / temperature)

    def _is_valid_swap(self, a: Student, b: Student) -> bool:
        if a is b or a.destination == b.destination:
            return False
        if not (self.is_swappable(a) and self.is_swappable(b)):
            return False
        if self.config.optimizer.parity_policy == ParityPolicy.PRESERVE:
            return a.gender == b.gender
        return True

    def _apply_swap(
        self,
        stats: dict[str, ClassRuntimeStats],
        members: dict[str, list[Student]],
        a: Student,
        b: Student,
    ) -> None:
        ca, cb = a.destination, b.destination
        stats[ca] = stats[ca].swapped(a, b)
        stats[cb] = stats[cb].swapped(b, a)
        members[ca].remove(a)
        members[cb].remove(b)
        a.assign(cb)
        b.assign(ca)
        members[cb].append(a)
        members[ca].append(b)
        logger.debug(f"  Tausch {a.id} ({ca} → {cb}) ↔ {b.id} ({cb} → {ca})")

    def _propose(
        self,
        stats: dict[str, ClassRuntimeStats],
        members: dict[str, list[Student]],
    ) -> Optional[tuple[Student, Student]]:
        if self.rng.random() < self.config.optimizer.targeted_probability:
            pair = self._targeted_pair(stats, members)
            if pair is not None:
                return pair
        return self._random_pair(members)

    def _targeted_pair(
        self,
        stats: dict[str, ClassRuntimeStats],
        members: dict[str, list[Student]],
    ) -> Optional[tuple[Student, Student]]:
        """Stärkster Kommunikator der "oberen" gegen schwächsten der "unteren" Klasse."""
        attribute = SCORE_ATTRIBUTES[0]
        filled = [cid for cid, st in stats.items() if st.count > 0 and members[cid]]
        if len(filled) < 2:
            return None
        high = max(filled, key=lambda cid: stats[cid].mean(attribute))
        low = min(filled, key=lambda cid: stats[cid].mean(attribute))
        if high == low or stats[high].mean(attribute) <= stats[low].mean(attribute):
            return None

        preserve = self.config.optimizer.parity_policy == ParityPolicy.PRESERVE
        for a in sorted(members[high], key=lambda s: s.score(attribute), reverse=True):
            pool = [
                b for b in members[low]
                if b.score(attribute) < a.score(attribute)
                and (not preserve or b.gender == a.gender)
            ]
            if pool:
                return a, min(pool, key=lambda s: s.score(attribute))
        return None

    def _random_pair(
        self, members: dict[str, list[Student]]
    ) -> Optional[tuple[Student, Student]]:
        candidates = [cid for cid, group in members.items() if group]
        if len(candidates) < 2:
            return None
        ca, cb = self.rng.sample(candidates, 2)
        a = self.rng.choice(members[ca])
        pool = members[cb]
        if self.config.optimizer.parity_policy == ParityPolicy.PRESERVE:
            pool = [b for b in pool if b.gender == a.gender] or pool
        return a, self.rng.choice(pool)
