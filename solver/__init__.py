"""Solver-Modul: Quoten-Verteilung, Paritäts-Auffüllung, Heterogenitäts-Optimierung."""

from .allocator import ConstraintAllocator, AllocationResult
from .parity import ParityCompleter, ParityResult
from .optimizer import HeterogeneityOptimizer, OptimizationResult
from .pipeline import PlacementPipeline, PipelineResult

__all__ = [
    "ConstraintAllocator",
    "AllocationResult",
    "ParityCompleter",
    "ParityResult",
    "HeterogeneityOptimizer",
    "OptimizationResult",
    "PlacementPipeline",
    "PipelineResult",
]
