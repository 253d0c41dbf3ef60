"""Testdaten-Generator für die Klassenverteilung.

Erzeugt einen realistischen Jahrgang mit absichtlichen Engpässen für robuste Tests.

Absichtliche Engpässe:
  1. CHAV-Engpass: Die CHAV-Quote ist insgesamt um einen Platz zu knapp
  2. Kombinationen: ITA+CHAV passt nur in die Klassen, die beides anbieten
  3. Schreibvarianten: "Italien", "ita2", "Espagnol" statt der Kürzel
  4. ASSO/DISSO-Paare: einige Schüler mit Zusammen-/Getrennt-Codes

Lösbarkeits-Garantien:
  - Gesamt-Zielgröße ≥ Schülerzahl
  - Jeder LV2/Option-Tag wird von mindestens einer Klasse angeboten
"""

import math
import random
from collections import Counter
from typing import Optional

from config.schema import Gender, PlacementConfig
from models.destination_class import DestinationClass
from models.placement_data import PlacementData
from models.student import Student
from solver.normalization import normalize_tag

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_FIRST_NAMES_M = [
    "Adam", "Arthur", "Baptiste", "Clément", "Enzo", "Ethan", "Gabriel",
    "Hugo", "Jules", "Léo", "Louis", "Lucas", "Mathis", "Maxime", "Nathan",
    "Noah", "Paul", "Raphaël", "Sacha", "Théo", "Tom", "Yanis",
]

_FIRST_NAMES_F = [
    "Alice", "Ambre", "Anna", "Chloé", "Camille", "Emma", "Eva", "Inès",
    "Jade", "Juliette", "Léa", "Lina", "Louise", "Manon", "Mila", "Nina",
    "Rose", "Sarah", "Zoé", "Lou", "Clara", "Margaux",
]

_LAST_NAMES = [
    "Martin", "Bernard", "Dubois", "Thomas", "Robert", "Richard", "Petit",
    "Durand", "Leroy", "Moreau", "Simon", "Laurent", "Lefebvre", "Michel",
    "Garcia", "David", "Bertrand", "Roux", "Vincent", "Fournier", "Morel",
    "Girard", "André", "Mercier", "Dupont", "Lambert", "Bonnet", "François",
    "Martinez", "Legrand", "Garnier", "Faure", "Rousseau", "Blanc", "Guerin",
]

# ─── Wahlen (gewichtet) ───────────────────────────────────────────────────────

_LV2_CHOICES: list[tuple[str, int]] = [
    ("ITA", 25),
    ("ESP", 35),
    ("ALL", 15),
    ("", 25),
]

_OPTION_CHOICES: list[tuple[str, int]] = [
    ("CHAV", 15),
    ("LATIN", 20),
    ("", 65),
]

# Schreibweisen, wie sie in echten Listen vorkommen
_SPELLINGS: dict[str, list[str]] = {
    "ITA": ["ITA", "ITA", "Italien", "ita2"],
    "ESP": ["ESP", "ESP", "Espagnol", "ESP 2"],
    "ALL": ["ALL", "Allemand"],
    "CHAV": ["CHAV", "chav"],
    "LATIN": ["LATIN", "Latin", "LAT"],
    "": ["", "", "", "aucun"],
}

# Tag → Indizes der anbietenden Klassen (modulo Klassenzahl)
_OFFERS: dict[str, list[int]] = {
    "ITA": [0, 1],
    "ESP": [1, 2, 3],
    "ALL": [0, 3],
    "CHAV": [0, 2],
    "LATIN": [1, 3],
}


class FakeDataGenerator:
    """Generiert einen vollständigen Jahrgang auf Basis der PlacementConfig."""

    def __init__(self, config: PlacementConfig, seed: Optional[int] = None) -> None:
        self.config = config
        self.rng = random.Random(seed)

    # ─── Schüler ──────────────────────────────────────────────────────────────

    def _pick(self, choices: list[tuple[str, int]]) -> str:
        values = [v for v, _ in choices]
        weights = [w for _, w in choices]
        return self.rng.choices(values, weights=weights, k=1)[0]

    def _score(self, ability: float) -> float:
        """Bewertung 1–4 in halben Schritten um eine Grundfähigkeit."""
        raw = self.rng.gauss(ability, 0.6)
        return min(4.0, max(1.0, round(raw * 2) / 2))

    def _generate_students(self, count: int) -> list[Student]:
        students = []
        for i in range(1, count + 1):
            gender = Gender.F if self.rng.random() < 0.52 else Gender.M
            first = self.rng.choice(
                _FIRST_NAMES_F if gender == Gender.F else _FIRST_NAMES_M
            )
            last = self.rng.choice(_LAST_NAMES)
            lv2 = self._pick(_LV2_CHOICES)
            option = self._pick(_OPTION_CHOICES)
            ability = self.rng.uniform(1.5, 3.5)
            students.append(Student(
                id=f"E{i:03d}",
                name=f"{last}, {first}",
                gender=gender,
                language=self.rng.choice(_SPELLINGS[lv2]),
                option=self.rng.choice(_SPELLINGS[option]),
                communication=self._score(ability),
                work=self._score(ability),
                participation=self._score(ability),
                attendance=self._score(ability + 0.5),
            ))
        self._add_pair_codes(students)
        return students

    def _add_pair_codes(self, students: list[Student]) -> None:
        """Einige ASSO-Paare und DISSO-Paare unter den Schülern ohne Wahl."""
        free = [
            s for s in students
            if not normalize_tag(s.language) and not normalize_tag(s.option)
        ]
        self.rng.shuffle(free)
        pairs = max(1, len(students) // 40)
        for n in range(pairs):
            if len(free) < 2:
                break
            a, b = free.pop(), free.pop()
            a.together_code = b.together_code = f"A{n + 1}"
        for n in range(pairs):
            if len(free) < 2:
                break
            a, b = free.pop(), free.pop()
            a.apart_code = b.apart_code = f"D{n + 1}"

    # ─── Klassen ──────────────────────────────────────────────────────────────

    def _generate_classes(
        self, students: list[Student], num_classes: int
    ) -> list[DestinationClass]:
        """Zielklassen mit Quoten aus der tatsächlichen Nachfrage."""
        target = math.ceil(len(students) / num_classes) + 1
        quotas: list[dict[str, int]] = [{} for _ in range(num_classes)]

        demand: Counter = Counter()
        for s in students:
            for raw in (s.language, s.option):
                tag = normalize_tag(raw)
                if tag:
                    demand[tag] += 1

        for tag, indices in _OFFERS.items():
            offering = sorted({i % num_classes for i in indices})
            total = demand.get(tag, 0)
            if tag == "CHAV":
                total = max(0, total - 1)
            share, rest = divmod(total, len(offering))
            for pos, idx in enumerate(offering):
                n = share + (1 if pos < rest else 0)
                if n > 0:
                    quotas[idx][tag] = n

        return [
            DestinationClass(
                id=f"{self.config.level[:1] or '5'}{chr(ord('A') + i)}",
                target_size=target,
                quotas=quotas[i],
            )
            for i in range(num_classes)
        ]

    # ─── Vollständiger Datensatz ──────────────────────────────────────────────

    def generate(self, num_students: int = 100, num_classes: int = 4) -> PlacementData:
        """Erzeugt den vollständigen Datensatz als PlacementData-Objekt."""
        if num_classes < 1:
            raise ValueError("Mindestens eine Zielklasse erforderlich.")
        students = self._generate_students(num_students)
        classes = self._generate_classes(students, num_classes)
        return PlacementData(students=students, classes=classes, config=self.config)

    # ─── Ausgabe ──────────────────────────────────────────────────────────────

    def print_summary(self, data: PlacementData) -> None:
        """Gibt eine Rich-Tabelle mit Übersicht der erzeugten Daten aus."""
        from rich.console import Console
        from rich.table import Table
        from rich import box

        genders = Counter(s.gender for s in data.students)
        constrained = sum(1 for s in data.students if s.has_constraint)
        paired = sum(1 for s in data.students if s.has_pairing)

        console = Console()
        table = Table(title="Erzeugte Testdaten", box=box.ROUNDED)
        table.add_column("Kategorie", style="bold cyan")
        table.add_column("Anzahl", justify="right")
        table.add_column("Details")

        table.add_row("Schüler", str(len(data.students)),
                      f"{genders.get(Gender.F, 0)} F, {genders.get(Gender.M, 0)} M")
        table.add_row("Mit LV2/Option", str(constrained), "")
        table.add_row("Mit ASSO/DISSO", str(paired), "")
        for c in data.classes:
            table.add_row(f"Klasse {c.id}", str(c.target_size), c.quota_string)

        console.print(table)
