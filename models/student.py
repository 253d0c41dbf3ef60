"""Datenmodell für einen Schüler (Pydantic v2)."""

import unicodedata
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from config.schema import Gender

_GENDER_ALIASES = {
    "F": Gender.F, "W": Gender.F, "FILLE": Gender.F, "FEMALE": Gender.F,
    "WEIBLICH": Gender.F, "MADCHEN": Gender.F,
    "M": Gender.M, "G": Gender.M, "H": Gender.M, "GARCON": Gender.M,
    "MALE": Gender.M, "MANNLICH": Gender.M, "JUNGE": Gender.M,
}


class Student(BaseModel):
    """Repräsentiert einen Schüler mit Wahlen, Bewertungen und Zielklasse."""

    id: str                       # Schülernummer (opak)
    name: str                     # "Dupont, Léa"
    gender: Gender
    language: str = ""            # LV2, Rohwert (z.B. "ITALIEN", "ita 2")
    option: str = ""              # Option, Rohwert (z.B. "CHAV")
    together_code: str = ""       # ASSO: gleicher Code → gleiche Klasse
    apart_code: str = ""          # DISSO: gleicher Code → verschiedene Klassen
    communication: float = Field(2.5, ge=0.0, le=5.0)
    work: float = Field(2.5, ge=0.0, le=5.0)
    participation: float = Field(2.5, ge=0.0, le=5.0)
    attendance: float = Field(2.5, ge=0.0, le=5.0)
    destination: Optional[str] = None  # Zielklasse (None = nicht platziert)
    placed: bool = False

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, v):
        if isinstance(v, Gender):
            return v
        key = unicodedata.normalize("NFKD", str(v).strip().upper())
        key = "".join(ch for ch in key if not unicodedata.combining(ch))
        if key not in _GENDER_ALIASES:
            raise ValueError(f"Unbekanntes Geschlecht: {v!r}")
        return _GENDER_ALIASES[key]

    @field_validator("language", "option", "together_code", "apart_code", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else str(v).strip()

    @model_validator(mode="before")
    @classmethod
    def _sync_placed(cls, data):
        # placed ⇔ Zielklasse gesetzt (nur bei Rohdaten, fertige Instanzen bleiben unverändert)
        if isinstance(data, dict):
            data = dict(data)
            destination = data.get("destination")
            if isinstance(destination, str):
                destination = destination.strip()
            data["destination"] = destination or None
            data["placed"] = data["destination"] is not None
        return data

    # ─── Zuweisung ───

    def assign(self, class_id: str) -> None:
        """Setzt die Zielklasse und markiert den Schüler als platziert."""
        if not class_id:
            raise ValueError(f"Leere Klassen-ID für Schüler {self.id}")
        self.destination = class_id
        self.placed = True

    def unassign(self) -> None:
        """Entfernt die Zuweisung."""
        self.destination = None
        self.placed = False

    # ─── Abgeleitete Eigenschaften ───

    @property
    def has_constraint(self) -> bool:
        """True wenn LV2 oder Option (normalisiert) gesetzt ist."""
        from solver.normalization import normalize_tag
        return bool(normalize_tag(self.language) or normalize_tag(self.option))

    @property
    def has_pairing(self) -> bool:
        """True wenn ein ASSO- oder DISSO-Code gesetzt ist."""
        return bool(self.together_code or self.apart_code)

    def score(self, attribute: str) -> float:
        """Wert eines Bewertungsmerkmals (communication, work, ...)."""
        return float(getattr(self, attribute))
