"""Phase 2: Adaptives Auffüllen der Klassen mit Geschlechter-Parität.

Die Zielquote pro Klasse folgt der globalen Quote des Jahrgangs (nicht 50/50).
Der Restpool wird nach Gesamtscore sortiert und abwechselnd von vorne (schwach)
und hinten (stark) gezogen, damit jede Klasse schon vor der Optimierung
gemischt ist.
"""

import logging
import math
from collections import Counter, defaultdict, deque
from typing import Iterable, Optional

from pydantic import BaseModel

from config.schema import CompositeScoreWeights, Gender, PlacementConfig
from models.destination_class import DestinationClass
from models.student import Student
from solver.diagnostics import UnplacedStudent
from solver.normalization import (
    UNCONSTRAINED_KEY,
    build_synonym_table,
    constraint_key,
    constraint_tags,
)

logger = logging.getLogger(__name__)


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class ClassParityTarget(BaseModel):
    """Soll/Ist der Auffüllung einer Klasse."""

    class_id: str
    needed: int          # Freie Plätze vor dem Auffüllen
    ideal_a: int         # Ideal Bezugsgeschlecht (gerundet)
    ideal_b: int
    target_a: int        # Nach Begrenzung auf Pool + Ausgleich
    target_b: int
    placed_a: int
    placed_b: int
    pool_limited: bool   # True wenn der Pool die Idealwerte nicht hergab
    backfilled: int = 0  # Ohne Rücksicht auf das Geschlecht nachgefüllt


class ParityWarning(BaseModel):
    """Klasse außerhalb der Paritäts-Toleranz."""

    class_id: str
    size: int
    ratio: float          # Anteil Bezugsgeschlecht (0.0–1.0)
    global_ratio: float
    deviation: float      # Prozentpunkte
    pool_limited: bool
    message: str


class ParityResult(BaseModel):
    """Ergebnis der Phase 2."""

    reference_gender: Gender
    global_ratio: float
    placed_count: int
    targets: list[ClassParityTarget]
    unplaced: list[UnplacedStudent]
    warnings: list[ParityWarning]
    skipped_constrained: int


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def round_half_up(x: float) -> int:
    """Kaufmännisches Runden (5.5 → 6, 4.5 → 5)."""
    return int(math.floor(x + 0.5))


def composite_score(student: Student, weights: CompositeScoreWeights) -> float:
    """Gewichtete Summe der vier Merkmale (Kommunikation doppelt)."""
    return (
        student.communication * weights.communication
        + student.work * weights.work
        + student.participation * weights.participation
        + student.attendance * weights.attendance
    )


def global_gender_ratio(students: Iterable[Student], reference: Gender) -> float:
    """Anteil des Bezugsgeschlechts, auf ganze Prozent gerundet."""
    students = list(students)
    if not students:
        return 0.0
    count = sum(1 for s in students if s.gender == reference)
    return round_half_up(100 * count / len(students)) / 100


def parity_deviations(
    students: Iterable[Student],
    classes: Iterable[DestinationClass],
    global_ratio: float,
    reference: Gender,
    tolerance_percent: float,
    pool_limited: Optional[set[str]] = None,
) -> list[ParityWarning]:
    """Alle Klassen, deren Quote um mehr als die Toleranz abweicht."""
    pool_limited = pool_limited or set()
    size: Counter = Counter()
    ref_count: Counter = Counter()
    for s in students:
        if s.placed:
            size[s.destination] += 1
            if s.gender == reference:
                ref_count[s.destination] += 1

    warnings: list[ParityWarning] = []
    for cls in classes:
        n = size.get(cls.id, 0)
        if n == 0:
            continue
        ratio = ref_count.get(cls.id, 0) / n
        deviation = abs(ratio - global_ratio) * 100
        if deviation > tolerance_percent + 1e-9:
            limited = cls.id in pool_limited
            warnings.append(ParityWarning(
                class_id=cls.id,
                size=n,
                ratio=round(ratio, 4),
                global_ratio=global_ratio,
                deviation=round(deviation, 1),
                pool_limited=limited,
                message=(
                    f"Klasse {cls.id}: {ratio:.0%} {reference.value} bei Sollquote "
                    f"{global_ratio:.0%} (Abweichung {deviation:.1f} Pp."
                    + (", Pool erschöpft" if limited else "")
                    + ")"
                ),
            ))
    return warnings


# ─── ParityCompleter ──────────────────────────────────────────────────────────

class ParityCompleter:
    """Füllt die Klassen mit den Schülern ohne LV2/Option auf.

    Verwendung:
        completer = ParityCompleter(data.classes, data.config)
        result = completer.complete(data.students)
    """

    def __init__(self, classes: list[DestinationClass], config: PlacementConfig) -> None:
        self.classes = list(classes)
        self.config = config
        self.synonyms = build_synonym_table(config.extra_synonyms)
        self._from_front: dict[Gender, bool] = {}
        self._units: dict[str, list[Student]] = defaultdict(list)

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def complete(self, students: list[Student]) -> ParityResult:
        pc = self.config.parity
        ref = pc.reference_gender
        other = Gender.M if ref == Gender.F else Gender.F
        global_ratio = global_gender_ratio(students, ref)

        known = {c.id for c in self.classes}
        sizes: Counter = Counter()
        apart_codes: dict[str, set[str]] = {c.id: set() for c in self.classes}
        for s in students:
            if s.placed and s.destination in known:
                sizes[s.destination] += 1
                if s.apart_code:
                    apart_codes[s.destination].add(s.apart_code)

        unplaced: list[UnplacedStudent] = []
        eligible: list[Student] = []
        for s in students:
            if s.placed:
                continue
            tags = constraint_tags(s, self.synonyms)
            if tags:
                # Harte Wahl ohne Quote: nie automatisch platzieren
                key = constraint_key(tags)
                logger.warning(
                    f"Schüler {s.id} ({s.name}) hat ungedeckte Wahl {key} – übersprungen"
                )
                unplaced.append(UnplacedStudent(
                    student_id=s.id,
                    name=s.name,
                    constraint_key=key,
                    phase="parity",
                    reason=f"Ungedeckte Wahl {key} – keine automatische Platzierung",
                ))
                continue
            eligible.append(s)
        skipped = len(unplaced)

        eligible.sort(key=lambda s: composite_score(s, pc.composite_weights))
        queues = {
            ref: deque(s for s in eligible if s.gender == ref),
            other: deque(s for s in eligible if s.gender == other),
        }
        self._from_front = {ref: True, other: True}
        self._units = defaultdict(list)
        for s in eligible:
            if s.together_code:
                self._units[s.together_code].append(s)

        placed_count = self._join_anchored_units(
            students, queues, sizes, apart_codes
        )

        targets: list[ClassParityTarget] = []
        limited: set[str] = set()

        for cls in self.classes:
            needed = max(0, cls.target_size - sizes.get(cls.id, 0))
            ideal_a = round_half_up(needed * global_ratio)
            ideal_b = needed - ideal_a
            target_a, target_b = self._clamp_targets(
                ideal_a, ideal_b, len(queues[ref]), len(queues[other])
            )
            placed = self._fill(
                queues, {ref: target_a, other: target_b}, needed, cls.id, apart_codes[cls.id]
            )
            backfilled = 0
            left = needed - sum(placed.values())
            if left > 0 and any(queues.values()):
                # Gesperrte Schüler (DISSO/ASSO): Rest mit beliebigem Geschlecht auffüllen
                extra = self._fill(
                    queues, {ref: left, other: left}, left, cls.id, apart_codes[cls.id]
                )
                backfilled = sum(extra.values())
                placed.update(extra)
            placed_a, placed_b = placed[ref], placed[other]
            sizes[cls.id] += placed_a + placed_b
            placed_count += placed_a + placed_b

            pool_limited = (target_a, target_b) != (ideal_a, ideal_b)
            if pool_limited:
                limited.add(cls.id)
            if placed_a + placed_b < needed:
                logger.info(
                    f"Klasse {cls.id}: nur {placed_a + placed_b}/{needed} Plätze aufgefüllt"
                )
            targets.append(ClassParityTarget(
                class_id=cls.id,
                needed=needed,
                ideal_a=ideal_a,
                ideal_b=ideal_b,
                target_a=target_a,
                target_b=target_b,
                placed_a=placed_a,
                placed_b=placed_b,
                pool_limited=pool_limited,
                backfilled=backfilled,
            ))

        free = [c for c in self.classes if sizes.get(c.id, 0) < c.target_size]
        for queue in queues.values():
            for s in queue:
                unplaced.append(UnplacedStudent(
                    student_id=s.id,
                    name=s.name,
                    constraint_key=UNCONSTRAINED_KEY,
                    phase="parity",
                    reason=self._leftover_reason(s, free, apart_codes),
                ))

        warnings = parity_deviations(
            students, self.classes, global_ratio, ref, pc.tolerance_percent, limited
        )
        for w in warnings:
            logger.warning(w.message)

        logger.info(
            f"Parität: {placed_count} Schüler aufgefüllt (Sollquote {global_ratio:.0%} "
            f"{ref.value}), {len(unplaced)} offen, {len(warnings)} Abweichungen"
        )

        return ParityResult(
            reference_gender=ref,
            global_ratio=global_ratio,
            placed_count=placed_count,
            targets=targets,
            unplaced=unplaced,
            warnings=warnings,
            skipped_constrained=skipped,
        )

    # ─── Interne Schritte ─────────────────────────────────────────────────────

    @staticmethod
    def _clamp_targets(
        ideal_a: int, ideal_b: int, pool_a: int, pool_b: int
    ) -> tuple[int, int]:
        """Begrenzt auf den Pool und gleicht Fehlmengen mit dem anderen Geschlecht aus."""
        needed = ideal_a + ideal_b
        a = min(ideal_a, pool_a)
        b = min(ideal_b, pool_b)
        shortfall = needed - a - b
        if shortfall > 0:
            extra = min(shortfall, pool_b - b)
            b += extra
            shortfall -= extra
        if shortfall > 0:
            extra = min(shortfall, pool_a - a)
            a += extra
        return a, b

    def _join_anchored_units(
        self,
        students: list[Student],
        queues: dict[Gender, deque],
        sizes: Counter,
        apart_codes: dict[str, set[str]],
    ) -> int:
        """Setzt offene ASSO-Partner zu bereits platzierten Schülern ihrer Gruppe."""
        anchors: dict[str, str] = {}
        for s in students:
            if s.placed and s.together_code and s.destination in apart_codes:
                anchors.setdefault(s.together_code, s.destination)

        capacity = {c.id: c.target_size for c in self.classes}
        joined = 0
        for code, class_id in anchors.items():
            mates = [m for m in self._units.get(code, []) if not m.placed]
            if not mates:
                continue
            free = capacity[class_id] - sizes.get(class_id, 0)
            if len(mates) > free or not self._apart_free(mates, apart_codes[class_id]):
                logger.warning(
                    f"Zusammen-Code {code}: Klasse {class_id} kann {len(mates)} "
                    f"weitere Schüler nicht aufnehmen"
                )
                continue
            for m in mates:
                _remove(queues[m.gender], m)
                m.assign(class_id)
                if m.apart_code:
                    apart_codes[class_id].add(m.apart_code)
            sizes[class_id] += len(mates)
            joined += len(mates)
            logger.debug(f"  ASSO {code}: {len(mates)} → {class_id}")
        return joined

    def _fill(
        self,
        queues: dict[Gender, deque],
        budget: dict[Gender, int],
        seats: int,
        class_id: str,
        apart_codes: set[str],
    ) -> Counter:
        """Zieht Einheiten abwechselnd von vorne und hinten, je Geschlecht bis zum Budget."""
        placed: Counter = Counter()
        for gender in queues:
            while budget[gender] > 0 and seats > 0 and queues[gender]:
                unit = self._pop_unit(queues, gender, budget, seats, apart_codes)
                if unit is None:
                    break
                for s in unit:
                    s.assign(class_id)
                    if s.apart_code:
                        apart_codes.add(s.apart_code)
                    placed[s.gender] += 1
                    budget[s.gender] -= 1
                seats -= len(unit)
                if self.config.parity.alternate_draw:
                    self._from_front[gender] = not self._from_front[gender]
        return placed

    def _pop_unit(
        self,
        queues: dict[Gender, deque],
        gender: Gender,
        budget: dict[Gender, int],
        seats: int,
        apart_codes: set[str],
    ) -> Optional[list[Student]]:
        """Nächste passende Einheit vom gewählten Ende (Einzelschüler oder ASSO-Gruppe)."""
        queue = queues[gender]
        if self._from_front[gender]:
            indices = range(len(queue))
        else:
            indices = range(len(queue) - 1, -1, -1)
        for i in indices:
            unit = self._unit_of(queue[i])
            if len(unit) > seats:
                continue
            per_gender = Counter(s.gender for s in unit)
            if any(n > budget.get(g, 0) for g, n in per_gender.items()):
                continue
            if not self._apart_free(unit, apart_codes):
                continue
            for s in unit:
                _remove(queues[s.gender], s)
            return unit
        return None

    def _unit_of(self, student: Student) -> list[Student]:
        if not student.together_code:
            return [student]
        return [m for m in self._units[student.together_code] if not m.placed]

    @staticmethod
    def _apart_free(unit: list[Student], apart_codes: set[str]) -> bool:
        codes = [s.apart_code for s in unit if s.apart_code]
        return len(codes) == len(set(codes)) and not any(c in apart_codes for c in codes)

    def _leftover_reason(
        self,
        student: Student,
        free: list[DestinationClass],
        apart_codes: dict[str, set[str]],
    ) -> str:
        if not free:
            return "Keine freien Plätze mehr"
        code = student.together_code
        if code and len(self._units.get(code, [])) > 1:
            return f"Zusammen-Gruppe {code} passt geschlossen in keine Klasse"
        if student.apart_code and all(student.apart_code in apart_codes[c.id] for c in free):
            return f"Getrennt-Code {student.apart_code} kollidiert in allen Klassen mit freien Plätzen"
        return "Kein passender Platz in den Klassen mit freien Plätzen"


def _remove(queue: deque, student: Student) -> None:
    for i, s in enumerate(queue):
        if s is student:
            del queue[i]
            return
