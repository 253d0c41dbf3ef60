"""Phase 1: Zuweisung der Constraint-Gruppen nach Quoten.

Gruppen werden in Prioritätsreihenfolge verarbeitet (Mehrfach-Tags zuerst,
dann größere Gruppen). Jede Gruppe geht vollständig an die erste Klasse, deren
gemeinsame Restquote reicht; sonst wird sie in Klassenreihenfolge aufgeteilt.
Ein nicht platzierbarer Rest ist kein Fehler, sondern eine Diagnose.
"""

import logging
from typing import Mapping, Optional

from pydantic import BaseModel

from config.schema import PlacementConfig
from models.destination_class import DestinationClass
from models.student import Student
from solver.diagnostics import QuotaConflict, UnplacedStudent
from solver.normalization import (
    ConstraintGroup,
    build_synonym_table,
    group_students,
    prioritize_groups,
)
from solver.quotas import ClassQuotaState

logger = logging.getLogger(__name__)


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class GroupAllocation(BaseModel):
    """Zuweisung einer einzelnen Constraint-Gruppe."""

    key: str
    size: int
    target_class: Optional[str] = None
    placements: dict[str, int]   # Klasse → Anzahl


class AllocationResult(BaseModel):
    """Ergebnis der Phase 1."""

    placed_count: int
    groups: list[GroupAllocation]
    unplaced: list[UnplacedStudent]
    conflicts: list[QuotaConflict]
    remaining_quotas: dict[str, dict[str, int]]   # Klasse → Restquoten
    class_sizes: dict[str, int]                   # Klasse → Kopfzahl nach Phase 1

    @property
    def unplaced_count(self) -> int:
        return len(self.unplaced)


# ─── Allocator ────────────────────────────────────────────────────────────────

class ConstraintAllocator:
    """Verteilt Schüler mit LV2/Option auf Klassen mit passender Quote.

    Verwendung:
        allocator = ConstraintAllocator(data.classes, data.config)
        result = allocator.allocate(data.students)
    """

    def __init__(
        self,
        classes: list[DestinationClass],
        config: PlacementConfig,
        separations: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.classes = list(classes)
        self.config = config
        self.separations = dict(separations or {})
        self.synonyms = build_synonym_table(config.extra_synonyms)

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def allocate(self, students: list[Student]) -> AllocationResult:
        """Weist alle noch nicht platzierten Schüler mit Tags zu."""
        respect = self.config.allocation.respect_target_size
        sizes = {c.id: 0 for c in self.classes}
        for s in students:
            if s.placed and s.destination in sizes:
                sizes[s.destination] += 1

        states = [
            ClassQuotaState.from_class(c, current_size=sizes[c.id],
                                       respect_target_size=respect)
            for c in self.classes
        ]

        pending = [s for s in students if not s.placed]
        groups = prioritize_groups(
            group_students(pending, self.synonyms, self.separations)
        )

        unplaced: list[UnplacedStudent] = []
        conflicts: list[QuotaConflict] = []
        allocations: list[GroupAllocation] = []
        placed_count = 0

        for group in groups:
            if group.is_unconstrained:
                continue
            leftover = self._allocate_group(group, states)
            placed_count += group.placed_count
            allocations.append(GroupAllocation(
                key=group.key,
                size=group.size,
                target_class=group.target_class,
                placements=dict(group.placements),
            ))
            if leftover:
                reason = self._conflict_reason(group, states)
                logger.warning(
                    f"Gruppe {group.key}: {len(leftover)}/{group.size} Schüler "
                    f"nicht platziert – {reason}"
                )
                conflicts.append(QuotaConflict(
                    group_key=group.key,
                    group_size=group.size,
                    placed=group.placed_count,
                    unplaced=len(leftover),
                    placements=dict(group.placements),
                    reason=reason,
                ))
                for s in leftover:
                    unplaced.append(UnplacedStudent(
                        student_id=s.id,
                        name=s.name,
                        constraint_key=group.key,
                        phase="allocation",
                        reason=reason,
                    ))

        logger.info(
            f"Verteilung: {placed_count} Schüler in {len(allocations)} Gruppen platziert, "
            f"{len(unplaced)} offen, {len(conflicts)} Konflikte"
        )

        return AllocationResult(
            placed_count=placed_count,
            groups=allocations,
            unplaced=unplaced,
            conflicts=conflicts,
            remaining_quotas={st.class_id: dict(st.remaining) for st in states},
            class_sizes={st.class_id: st.current_size for st in states},
        )

    # ─── Interne Schritte ─────────────────────────────────────────────────────

    def _allocate_group(
        self, group: ConstraintGroup, states: list[ClassQuotaState]
    ) -> list[Student]:
        """Platziert eine Gruppe; gibt die nicht platzierten Mitglieder zurück."""
        members = list(group.members)

        # 1. Ganze Gruppe in die erste Klasse mit ausreichender Restquote
        for st in states:
            if st.available(group.tags) >= len(members):
                self._commit(group, st, members)
                return []

        # 2. Aufteilen in Klassenreihenfolge
        for st in states:
            if not members:
                break
            n = min(st.available(group.tags), len(members))
            if n <= 0:
                continue
            batch, members = members[:n], members[n:]
            self._commit(group, st, batch)

        return members

    def _commit(
        self, group: ConstraintGroup, state: ClassQuotaState, batch: list[Student]
    ) -> None:
        state.consume(group.tags, len(batch))
        for s in batch:
            s.assign(state.class_id)
        group.placements[state.class_id] = group.placements.get(state.class_id, 0) + len(batch)
        if group.target_class is None:
            group.target_class = state.class_id
        logger.debug(f"  {group.key}: {len(batch)} → {state.class_id}")

    def _conflict_reason(
        self, group: ConstraintGroup, states: list[ClassQuotaState]
    ) -> str:
        if not any(st.declares(group.tags) for st in states):
            return f"Keine Klasse bietet {group.key} an"
        return (
            f"Restquote für {group.key} erschöpft "
            f"({group.placed_count}/{group.size} platziert)"
        )
