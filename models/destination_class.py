"""Datenmodell für eine Zielklasse und kombinierte Zuteilungs-Entscheidungen (Pydantic v2)."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class DestinationClass(BaseModel):
    """Eine Zielklasse mit Zielgröße und angebotenen LV2/Optionen.

    quotas enthält normalisierte Einträge:
      - einfach:    "ITA" → 11
      - kombiniert: "[CHAV+ITA]" → 4 (nur für Schüler mit genau diesen Tags)
    """

    id: str                                   # "5°1", "5A"
    target_size: int = Field(ge=0)            # Soll-Schülerzahl
    quotas: dict[str, int] = {}               # Tag/Kombi-Token → Restplätze

    @field_validator("quotas")
    @classmethod
    def _non_negative(cls, v: dict[str, int]) -> dict[str, int]:
        for tag, count in v.items():
            if count < 0:
                raise ValueError(f"Quote für '{tag}' ist negativ ({count})")
        return v

    @property
    def quota_string(self) -> str:
        """Quoten im Format 'ITA=11, [CHAV+ITA]=4'."""
        from solver.quotas import format_quotas
        return format_quotas(self.quotas)

    @property
    def declared_tags(self) -> set[str]:
        """Alle einfachen Tags, für die die Klasse Kapazität deklariert."""
        return {t for t in self.quotas if not t.startswith("[")}


class CombinedAllocation(BaseModel):
    """Entscheidung für eine LV2+Option-Kombination.

    together: alle Schüler der Kombination in target_class (kombinierte Quote).
    separate: Kombination wird nur über die Priorität (lv2 oder opt) geroutet.
    """

    combination: str                          # "ITA+CHAV" (LV2+OPT)
    type: Literal["together", "separate"]
    target_class: Optional[str] = None
    priority: Literal["lv2", "opt"] = "lv2"

    @field_validator("combination")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def _check_target(self):
        if "+" not in self.combination:
            raise ValueError(
                f"Kombination '{self.combination}' muss die Form LV2+OPT haben."
            )
        if self.type == "together" and not self.target_class:
            raise ValueError(
                f"Kombination '{self.combination}': 'together' braucht eine Zielklasse."
            )
        return self

    @property
    def lv2(self) -> str:
        return self.combination.split("+", 1)[0]

    @property
    def opt(self) -> str:
        return self.combination.split("+", 1)[1]
