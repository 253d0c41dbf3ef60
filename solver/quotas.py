"""Kapazitäts-/Quoten-Matrix der Zielklassen.

Quoten-Format (eine Zelle pro Klasse):
    "ITA=11, CHAV=4, [CHAV+ITA]=4"

  - TAG=N          einfache Quote, Tag wird normalisiert ("ITA2=3" → ITA)
  - [TAG1+TAG2]=N  kombinierte Quote, NUR für Schüler mit genau {TAG1, TAG2}

Fehlerhafte Einträge werden übersprungen und als Warnung gemeldet – ein
kaputter Eintrag bedeutet "keine Kapazität für diesen Tag", nie einen Abbruch.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from models.destination_class import DestinationClass
from solver.normalization import normalize_tag

logger = logging.getLogger(__name__)


class QuotaError(ValueError):
    """Verbrauch über die Restquote hinaus – Zuweisung muss abgelehnt werden."""


# ─── Kombi-Token ──────────────────────────────────────────────────────────────

def combined_token(tags: Iterable[str]) -> str:
    """Kanonisches Token einer kombinierten Quote: "[CHAV+ITA]"."""
    return "[" + "+".join(sorted(set(tags))) + "]"


def is_combined_token(token: str) -> bool:
    return token.startswith("[") and token.endswith("]")


def token_tags(token: str) -> tuple[str, ...]:
    """Tags eines Quoten-Schlüssels ("[CHAV+ITA]" → ("CHAV", "ITA"))."""
    if is_combined_token(token):
        return tuple(t for t in token[1:-1].split("+") if t)
    return (token,)


# ─── Parsen / Formatieren ─────────────────────────────────────────────────────

def parse_quotas(
    raw: Optional[str],
    warnings: Optional[list[str]] = None,
    synonyms: Optional[Mapping[str, str]] = None,
) -> dict[str, int]:
    """Parst einen Quoten-String in {Tag/Kombi-Token: Anzahl}.

    Gleiche Tags nach Normalisierung werden addiert ("ESP1=3, ESP2=4" → ESP=7).
    Warnungen werden an `warnings` angehängt, falls angegeben.
    """
    result: dict[str, int] = {}
    if raw is None or not str(raw).strip():
        return result

    def warn(msg: str) -> None:
        logger.warning(msg)
        if warnings is not None:
            warnings.append(msg)

    for token in str(raw).replace(";", ",").split(","):
        token = token.strip()
        if not token:
            continue
        if "=" not in token:
            warn(f"Quoten-Eintrag '{token}' ohne '=' – übersprungen.")
            continue
        tag_part, _, count_part = token.partition("=")
        tag_part = tag_part.strip()
        try:
            count = int(count_part.strip())
        except ValueError:
            warn(f"Quoten-Eintrag '{token}': Anzahl '{count_part.strip()}' ist keine Ganzzahl – übersprungen.")
            continue
        if count < 0:
            warn(f"Quoten-Eintrag '{token}': negative Anzahl – übersprungen.")
            continue

        if tag_part.startswith("[") or tag_part.endswith("]") or "+" in tag_part:
            if not (tag_part.startswith("[") and tag_part.endswith("]")):
                warn(f"Quoten-Eintrag '{token}': Kombination ohne Klammern – als [..] gewertet.")
            inner = tag_part.strip("[]")
            tags = {normalize_tag(t, synonyms) for t in inner.split("+")}
            tags.discard("")
            if not tags:
                warn(f"Quoten-Eintrag '{token}': keine gültigen Tags – übersprungen.")
                continue
            if len(tags) == 1:
                warn(f"Quoten-Eintrag '{token}': Kombination mit nur einem Tag – als einfache Quote gewertet.")
                key = next(iter(tags))
            else:
                key = combined_token(tags)
        else:
            key = normalize_tag(tag_part, synonyms)
            if not key:
                warn(f"Quoten-Eintrag '{token}': leerer Tag – übersprungen.")
                continue

        result[key] = result.get(key, 0) + count
    return result


def format_quotas(quotas: Mapping[str, int]) -> str:
    """Formatiert {Tag: Anzahl} als "ITA=11, [CHAV+ITA]=4"."""
    return ", ".join(f"{tag}={count}" for tag, count in quotas.items())


# ─── Laufzeit-Zustand ─────────────────────────────────────────────────────────

@dataclass
class ClassQuotaState:
    """Restquoten einer Klasse während eines Verteilungslaufs.

    Verbrauch ist atomar: entweder alle Tags einer Gruppe haben genug
    Restquote oder es wird nichts abgebucht.
    """

    class_id: str
    target_size: int
    remaining: dict[str, int] = field(default_factory=dict)
    current_size: int = 0
    respect_target_size: bool = True

    @classmethod
    def from_class(
        cls,
        dest: DestinationClass,
        current_size: int = 0,
        respect_target_size: bool = True,
    ) -> "ClassQuotaState":
        return cls(
            class_id=dest.id,
            target_size=dest.target_size,
            remaining=dict(dest.quotas),
            current_size=current_size,
            respect_target_size=respect_target_size,
        )

    def _entries(self, tags: Iterable[str]) -> Optional[tuple[Optional[str], list[str]]]:
        """Quoten-Einträge, die eine Gruppe mit diesen Tags belasten kann.

        Rückgabe: (Kombi-Eintrag oder None, einfache Tag-Einträge). Die
        einfachen Einträge sind leer, wenn nicht jeder Tag einzeln deklariert
        ist. None = Klasse deklariert keine Kapazität für diese Tag-Menge.
        """
        tags = tuple(sorted(set(tags)))
        if not tags:
            return None, []
        token = None
        if len(tags) >= 2 and combined_token(tags) in self.remaining:
            token = combined_token(tags)
        simple = list(tags) if all(t in self.remaining for t in tags) else []
        if token is None and not simple:
            return None
        return token, simple

    def declares(self, tags: Iterable[str]) -> bool:
        return self._entries(tags) is not None

    @property
    def free_seats(self) -> Optional[int]:
        """Freie Plätze bis zur Zielgröße (None = unbegrenzt)."""
        if not self.respect_target_size:
            return None
        return max(0, self.target_size - self.current_size)

    def available(self, tags: Iterable[str]) -> int:
        """Restquote für eine Tag-Menge.

        Kombi-Restquote plus das Minimum der einfachen Restquoten, begrenzt
        durch die freien Plätze.
        """
        tags = tuple(tags)
        entries = self._entries(tags)
        if entries is None:
            return 0
        token, simple = entries
        seats = self.free_seats
        if token is None and not simple:
            # Keine Tags: nur die Sitzplatzgrenze zählt
            return 10 ** 9 if seats is None else seats
        total = 0
        if token is not None:
            total += max(0, self.remaining[token])
        if simple:
            total += max(0, min(self.remaining[t] for t in simple))
        if seats is not None:
            total = min(total, seats)
        return total

    def consume(self, tags: Iterable[str], n: int) -> None:
        """Bucht n Plätze für eine Tag-Menge ab (alles oder nichts).

        Der Kombi-Eintrag wird zuerst belastet, den Rest trägt jeder
        einfache Tag.
        """
        tags = tuple(tags)
        if n <= 0:
            raise QuotaError(f"{self.class_id}: Verbrauch muss > 0 sein (n={n}).")
        entries = self._entries(tags)
        if entries is None:
            raise QuotaError(
                f"{self.class_id}: keine Kapazität für {'+'.join(tags) or 'ohne Tag'} deklariert."
            )
        avail = self.available(tags)
        if n > avail:
            raise QuotaError(
                f"{self.class_id}: {n} Plätze für {'+'.join(tags)} angefragt, "
                f"nur {avail} verfügbar."
            )
        token, simple = entries
        rest = n
        if token is not None:
            taken = min(rest, max(0, self.remaining[token]))
            self.remaining[token] -= taken
            rest -= taken
        if rest:
            for t in simple:
                self.remaining[t] -= rest
        self.current_size += n

    @property
    def quota_string(self) -> str:
        return format_quotas(self.remaining)
