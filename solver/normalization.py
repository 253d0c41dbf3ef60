"""Normalisierung von LV2/Options-Tags und Bildung der Constraint-Gruppen.

Ein Rohwert wie "Italien", "ita 2" oder "CHAV-2" wird auf ein kanonisches
Kürzel abgebildet ("ITA", "CHAV"). Schüler mit identischer Tag-Menge bilden
eine ConstraintGroup; Gruppen mit zwei Tags werden zuerst verteilt, weil sie
die wenigsten passenden Klassen haben.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from config.defaults import TAG_SYNONYMS

if TYPE_CHECKING:
    from models.student import Student

UNCONSTRAINED_KEY = "NONE"

_NON_TAG_CHARS = re.compile(r"[^A-Z0-9 ]+")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_DIGITS = re.compile(r"[0-9 ]+$")


# ─── Tag-Normalisierung ───────────────────────────────────────────────────────

def clean_tag(raw) -> str:
    """Bereinigt einen Rohwert ohne Synonym-Abbildung.

    Akzente entfernen, Großschreibung, Satzzeichen entfernen, Leerraum
    zusammenfassen, Ziffern-Suffix abschneiden ("CHAV 2" → "CHAV").
    """
    if raw is None:
        return ""
    text = unicodedata.normalize("NFKD", str(raw))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).upper()
    text = _NON_TAG_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return _TRAILING_DIGITS.sub("", text).strip()


def build_synonym_table(extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Eingebaute Synonyme plus Zusatz-Synonyme aus der Config.

    Ketten (A → B, B → C) werden aufgelöst, damit jeder Wert ein Fixpunkt ist.
    """
    table = dict(TAG_SYNONYMS)
    for raw_key, raw_value in (extra or {}).items():
        key = clean_tag(raw_key)
        if key:
            table[key] = clean_tag(raw_value)

    resolved: dict[str, str] = {}
    for key, value in table.items():
        seen = {key}
        while value in table and table[value] != value and value not in seen:
            seen.add(value)
            value = table[value]
        resolved[key] = value
    return resolved


def normalize_tag(raw, synonyms: Optional[Mapping[str, str]] = None) -> str:
    """Kanonisches Kürzel eines Rohwerts; "" bedeutet "kein Tag".

    Unbekannte Werte bleiben als bereinigter String erhalten.
    """
    cleaned = clean_tag(raw)
    if not cleaned:
        return ""
    table = TAG_SYNONYMS if synonyms is None else synonyms
    return table.get(cleaned, cleaned)


# ─── Constraint-Schlüssel ─────────────────────────────────────────────────────

def combination_key(lv2: str, opt: str) -> str:
    """Schlüssel einer LV2+Option-Kombination in Wahl-Reihenfolge ("ITA+CHAV")."""
    return f"{lv2}+{opt}"


def constraint_tags(
    student: "Student",
    synonyms: Optional[Mapping[str, str]] = None,
    separations: Optional[Mapping[str, str]] = None,
) -> tuple[str, ...]:
    """Sortierte, deduplizierte Tag-Menge eines Schülers.

    separations: Kombination ("ITA+CHAV") → "lv2" | "opt". Für getrennt
    verteilte Kombinationen zählt nur der Prioritäts-Tag.
    """
    lv2 = normalize_tag(student.language, synonyms)
    opt = normalize_tag(student.option, synonyms)
    if lv2 and opt and separations:
        priority = separations.get(combination_key(lv2, opt))
        if priority == "lv2":
            opt = ""
        elif priority == "opt":
            lv2 = ""
    return tuple(sorted({t for t in (lv2, opt) if t}))


def constraint_key(tags: Iterable[str]) -> str:
    """Kanonischer ConstraintKey: "CHAV+ITA" bzw. UNCONSTRAINED_KEY."""
    ordered = sorted(set(tags))
    return "+".join(ordered) if ordered else UNCONSTRAINED_KEY


# ─── Constraint-Gruppen ───────────────────────────────────────────────────────

@dataclass
class ConstraintGroup:
    """Alle Schüler mit identischem ConstraintKey.

    Wird pro Lauf neu erzeugt und nicht gespeichert.
    """

    key: str
    tags: tuple[str, ...]
    members: list["Student"] = field(default_factory=list)
    first_index: int = 0                           # Position des ersten Mitglieds
    target_class: Optional[str] = None             # erste Klasse der Zuweisung
    placements: dict[str, int] = field(default_factory=dict)  # Klasse → Anzahl

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_multi(self) -> bool:
        return len(self.tags) >= 2

    @property
    def is_unconstrained(self) -> bool:
        return not self.tags

    @property
    def placed_count(self) -> int:
        return sum(self.placements.values())

    def __repr__(self) -> str:
        return f"ConstraintGroup({self.key}, {self.size} Schüler)"


def group_students(
    students: Iterable["Student"],
    synonyms: Optional[Mapping[str, str]] = None,
    separations: Optional[Mapping[str, str]] = None,
) -> list[ConstraintGroup]:
    """Bündelt Schüler nach ConstraintKey (Reihenfolge: erstes Auftreten)."""
    groups: dict[str, ConstraintGroup] = {}
    for index, student in enumerate(students):
        tags = constraint_tags(student, synonyms, separations)
        key = constraint_key(tags)
        group = groups.get(key)
        if group is None:
            group = ConstraintGroup(key=key, tags=tags, first_index=index)
            groups[key] = group
        group.members.append(student)
    return list(groups.values())


def prioritize_groups(groups: Iterable[ConstraintGroup]) -> list[ConstraintGroup]:
    """Sortiert Gruppen: Mehrfach-Tags zuerst, dann größere Gruppen, stabil.

    Die Gruppe ohne Tags steht immer am Ende.
    """
    def tier(g: ConstraintGroup) -> int:
        if g.is_unconstrained:
            return 2
        return 0 if g.is_multi else 1

    return sorted(groups, key=lambda g: (tier(g), -g.size, g.first_index))
