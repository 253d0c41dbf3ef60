from pydantic import BaseModel, Field, field_validator
from typing import Optional
from enum import Enum


class Gender(str, Enum):
    F = "F"
    M = "M"


class ParityPolicy(str, Enum):
    # Tausch nur zwischen Schülern gleichen Geschlechts → Parität bleibt exakt
    PRESERVE = "preserve"
    # Beliebige Tausche; Abweichungen werden nach der Optimierung erneut gemeldet
    ALLOW = "allow"


# ─── VERTEILUNG (Phase 1: Constraint-Gruppen) ───

class AllocationConfig(BaseModel):
    """Einstellungen für die Zuweisung der Constraint-Gruppen."""
    # Vor der Verteilung alle bisherigen Zielklassen löschen
    reset_assignments: bool = Field(True,
        description="Bestehende Zuweisungen vor dem Lauf verwerfen")
    # Zielgröße der Klasse begrenzt zusätzlich die Quote
    respect_target_size: bool = Field(True,
        description="Keine Klasse über ihre Zielgröße füllen")


# ─── PARITÄT (Phase 2: Auffüllen) ───

class CompositeScoreWeights(BaseModel):
    """Gewichte des Gesamtscores für die Sortierung des Restpools.

    Kommunikation zählt doppelt.
    """
    communication: float = Field(2.0, ge=0.0)
    work: float = Field(1.0, ge=0.0)
    participation: float = Field(1.0, ge=0.0)
    attendance: float = Field(1.0, ge=0.0)


class ParityConfig(BaseModel):
    """Adaptive Geschlechter-Parität pro Klasse."""
    # Bezugsgeschlecht für die globale Quote ("Geschlecht A")
    reference_gender: Gender = Field(Gender.F,
        description="Bezugsgeschlecht der globalen Quote")
    # Erlaubte Abweichung der Klassenquote von der globalen Quote (Prozentpunkte)
    tolerance_percent: float = Field(10.0, ge=0.0, le=100.0,
        description="Toleranz Paritätsabweichung in Prozentpunkten")
    # Abwechselnd vom schwachen und starken Ende des Pools ziehen
    alternate_draw: bool = Field(True,
        description="Abwechselnd vorne/hinten aus dem sortierten Pool ziehen")
    # Gewichte für die Pool-Sortierung
    composite_weights: CompositeScoreWeights = Field(
        default_factory=CompositeScoreWeights)


# ─── HETEROGENITÄT (Phase 3: Tausch-Optimierung) ───

class AttributeWeight(BaseModel):
    """Gewichtspaar eines Merkmals: Streuung innerhalb / Varianz zwischen Klassen."""
    intra: float = Field(1.0, ge=0.0)
    inter: float = Field(1.0, ge=0.0)


class HeterogeneityWeights(BaseModel):
    """Gewichte des Heterogenitäts-Scores. Kommunikation wiegt am stärksten."""
    communication: AttributeWeight = Field(
        default_factory=lambda: AttributeWeight(intra=2.0, inter=2.0))
    work: AttributeWeight = Field(
        default_factory=lambda: AttributeWeight(intra=1.5, inter=1.5))
    participation: AttributeWeight = Field(
        default_factory=lambda: AttributeWeight(intra=1.0, inter=1.0))
    attendance: AttributeWeight = Field(
        default_factory=lambda: AttributeWeight(intra=1.0, inter=1.0))

    def as_dict(self) -> dict[str, AttributeWeight]:
        """Merkmal → Gewichtspaar in fester Reihenfolge."""
        return {
            "communication": self.communication,
            "work": self.work,
            "participation": self.participation,
            "attendance": self.attendance,
        }


class OptimizerConfig(BaseModel):
    """Lokale Suche (Simulated Annealing) und Abbruchkriterien."""
    # Maximale Anzahl Iterationen
    max_iterations: int = Field(5000, ge=0,
        description="Iterationsbudget der Tauschsuche")
    # Zeitlimit in Sekunden
    time_limit_seconds: float = Field(10.0, gt=0.0, le=600.0,
        description="Zeitlimit der Tauschsuche (Sekunden)")
    # Anteil gezielter Tauschvorschläge (Rest: zufällige Paare)
    targeted_probability: float = Field(0.7, ge=0.0, le=1.0,
        description="Wahrscheinlichkeit eines gezielten Tauschvorschlags")
    # Umgang mit der Geschlechter-Parität beim Tauschen
    parity_policy: ParityPolicy = Field(ParityPolicy.PRESERVE,
        description="preserve = nur gleichgeschlechtliche Tausche")
    # Beste gefundene Verteilung am Ende wiederherstellen
    keep_best: bool = Field(True,
        description="Beste Verteilung statt letzter Verteilung behalten")
    # Seed für reproduzierbare Läufe (None = zufällig)
    seed: Optional[int] = Field(42,
        description="Zufalls-Seed (leer = nicht reproduzierbar)")
    # Score-Gewichte
    weights: HeterogeneityWeights = Field(default_factory=HeterogeneityWeights)


# ─── GESAMT-CONFIG ───

class PlacementConfig(BaseModel):
    """Gesamtkonfiguration der Klassenverteilung."""
    # Name der Schule
    school_name: str = Field("Collège Muster",
        description="Name der Schule")
    # Jahrgang / Niveau, das verteilt wird
    level: str = Field("5e", description="Verteilter Jahrgang")
    # Zusätzliche Synonyme für Sprach-/Options-Kürzel (roh → kanonisch)
    extra_synonyms: dict[str, str] = Field(default_factory=dict,
        description="Zusätzliche Tag-Synonyme")
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    parity: ParityConfig = Field(default_factory=ParityConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)

    @field_validator("extra_synonyms")
    @classmethod
    def _upper_synonyms(cls, v: dict[str, str]) -> dict[str, str]:
        return {k.strip().upper(): val.strip().upper() for k, val in v.items()}

    def with_overrides(
        self,
        tolerance_percent: Optional[float] = None,
        parity_policy: Optional[ParityPolicy] = None,
        max_iterations: Optional[int] = None,
        time_limit_seconds: Optional[float] = None,
        seed: Optional[int] = None,
    ) -> "PlacementConfig":
        """Kopie mit geänderten Lauf-Parametern (None = unverändert).

        Die neuen Werte laufen durch die normale Validierung.
        """
        data = self.model_dump()
        if tolerance_percent is not None:
            data["parity"]["tolerance_percent"] = tolerance_percent
        if parity_policy is not None:
            data["optimizer"]["parity_policy"] = parity_policy
        if max_iterations is not None:
            data["optimizer"]["max_iterations"] = max_iterations
        if time_limit_seconds is not None:
            data["optimizer"]["time_limit_seconds"] = time_limit_seconds
        if seed is not None:
            data["optimizer"]["seed"] = seed
        return PlacementConfig.model_validate(data)
