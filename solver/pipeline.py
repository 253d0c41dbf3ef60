"""Gesamtlauf: Struktur-Check → Verteilung → Parität → Optimierung.

Die Phasen laufen strikt nacheinander auf demselben Datensatz. Jede Phase
sieht nur die Zuweisungen der vorherigen; keine Phase macht eine frühere
Zuweisung rückgängig (Tausche der Optimierung ausgenommen).
"""

import logging
import random
import time
from typing import Callable, Optional

from pydantic import BaseModel

from models.placement_data import PlacementData, StructureReport
from solver.allocator import AllocationResult, ConstraintAllocator
from solver.diagnostics import UnplacedStudent
from solver.optimizer import HeterogeneityOptimizer, OptimizationResult
from solver.parity import ParityCompleter, ParityResult

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """Ergebnis eines vollständigen Laufs."""

    structure: StructureReport
    allocation: Optional[AllocationResult] = None
    parity: Optional[ParityResult] = None
    optimization: Optional[OptimizationResult] = None
    combined_warnings: list[str] = []
    total_students: int
    placed_count: int
    unplaced: list[UnplacedStudent]
    class_sizes: dict[str, int] = {}

    @property
    def is_conserved(self) -> bool:
        """Jeder Schüler sitzt in genau einer bekannten Klasse oder ist als offen gemeldet."""
        return (
            sum(self.class_sizes.values()) == self.placed_count
            and self.placed_count + len(self.unplaced) == self.total_students
        )


class PlacementPipeline:
    """Führt die drei Phasen auf einem PlacementData-Datensatz aus.

    Verwendung:
        pipeline = PlacementPipeline(data)
        result = pipeline.run()
    """

    def __init__(
        self,
        data: PlacementData,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.data = data
        self.rng = rng
        self.clock = clock
        self._structure: Optional[StructureReport] = None
        self._plan = None

    # ─── Einzelphasen ─────────────────────────────────────────────────────────

    def validate(self) -> StructureReport:
        """Struktur-Check; wirft PlacementStructureError vor jeder Änderung."""
        self._structure = self.data.ensure_valid()
        for w in self._structure.warnings:
            logger.warning(w)
        return self._structure

    def _combined_plan(self):
        if self._plan is None:
            from analysis.constraint_stats import apply_combined_allocations
            self._plan = apply_combined_allocations(self.data)
        return self._plan

    def allocate(self) -> AllocationResult:
        if self._structure is None:
            self.validate()
        if self.data.config.allocation.reset_assignments:
            for s in self.data.students:
                s.unassign()
            logger.info("Alle bisherigen Zuweisungen zurückgesetzt")
        known = {c.id for c in self.data.classes}
        for s in self.data.students:
            if s.placed and s.destination not in known:
                logger.warning(
                    f"Schüler {s.id}: unbekannte Zielklasse {s.destination} – Zuweisung entfernt"
                )
                s.unassign()
        plan = self._combined_plan()
        allocator = ConstraintAllocator(plan.classes, self.data.config, plan.separations)
        return allocator.allocate(self.data.students)

    def complete(self) -> ParityResult:
        if self._structure is None:
            self.validate()
        completer = ParityCompleter(self.data.classes, self.data.config)
        return completer.complete(self.data.students)

    def optimize(self) -> OptimizationResult:
        if self._structure is None:
            self.validate()
        optimizer = HeterogeneityOptimizer(
            self.data.classes, self.data.config, rng=self.rng, clock=self.clock
        )
        return optimizer.optimize(self.data.students)

    # ─── Gesamtlauf ───────────────────────────────────────────────────────────

    def run(self) -> PipelineResult:
        structure = self.validate()
        allocation = self.allocate()
        parity = self.complete()
        optimization = self.optimize()

        # Phase 2 meldet alle dann noch offenen Schüler, auch die aus Phase 1.
        # Pro Schüler zählt die erste Phase, die ihn nicht platzieren konnte.
        unplaced: dict[str, UnplacedStudent] = {}
        for u in allocation.unplaced + parity.unplaced:
            if u.student_id not in unplaced:
                unplaced[u.student_id] = u
        class_sizes = {c.id: 0 for c in self.data.classes}
        for s in self.data.students:
            if s.placed and s.destination in class_sizes:
                class_sizes[s.destination] += 1
        placed_ids = {s.id for s in self.data.students if s.placed}
        for sid in placed_ids & unplaced.keys():
            del unplaced[sid]

        result = PipelineResult(
            structure=structure,
            allocation=allocation,
            parity=parity,
            optimization=optimization,
            combined_warnings=self._combined_plan().warnings,
            total_students=len(self.data.students),
            placed_count=len(placed_ids),
            unplaced=list(unplaced.values()),
            class_sizes=class_sizes,
        )
        if not result.is_conserved:
            logger.error(
                f"Bilanz stimmt nicht: {result.placed_count} platziert + "
                f"{len(result.unplaced)} offen ≠ {result.total_students} Schüler"
            )
        logger.info(
            f"Lauf beendet: {result.placed_count}/{result.total_students} platziert, "
            f"{len(result.unplaced)} offen"
        )
        return result
