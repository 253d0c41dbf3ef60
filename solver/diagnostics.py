"""Gemeinsame Diagnose-Modelle aller Verteilungsphasen."""

from typing import Literal

from pydantic import BaseModel

Phase = Literal["allocation", "parity", "optimization"]


class UnplacedStudent(BaseModel):
    """Ein Schüler, der in einer Phase nicht platziert werden konnte."""

    student_id: str
    name: str
    constraint_key: str     # "ITA", "CHAV+ITA", "NONE"
    phase: Phase
    reason: str


class QuotaConflict(BaseModel):
    """Eine Constraint-Gruppe, die nicht vollständig platziert werden konnte."""

    group_key: str
    group_size: int
    placed: int
    unplaced: int
    placements: dict[str, int]   # Klasse → Anzahl
    reason: str
