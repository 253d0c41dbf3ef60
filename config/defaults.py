from config.schema import (
    AllocationConfig,
    OptimizerConfig,
    ParityConfig,
    PlacementConfig,
)


# ─── Tag-Synonyme ─────────────────────────────────────────────────────────────
# Schlüssel sind bereits bereinigt (Großschreibung, ohne Akzente/Satzzeichen,
# ohne Ziffern-Suffix). Werte sind kanonische Kürzel; "" bedeutet "kein Tag".
# Jeder Wert muss sich selbst wieder auf sich abbilden (Idempotenz).

TAG_SYNONYMS: dict[str, str] = {
    # LV2
    "ITA": "ITA",
    "ITAL": "ITA",
    "ITALIEN": "ITA",
    "ITALIENNE": "ITA",
    "ITALIAN": "ITA",
    "ITALIENISCH": "ITA",
    "ESP": "ESP",
    "ESPA": "ESP",
    "ESPAGNOL": "ESP",
    "ESPAGNOLE": "ESP",
    "SPANISH": "ESP",
    "SPANISCH": "ESP",
    "ALL": "ALL",
    "ALLD": "ALL",
    "ALLEMAND": "ALL",
    "ALLEMANDE": "ALL",
    "GERMAN": "ALL",
    "DEUTSCH": "ALL",
    "ANG": "ANG",
    "ANGLAIS": "ANG",
    "ENGLISH": "ANG",
    "CHI": "CHI",
    "CHINOIS": "CHI",
    "POR": "POR",
    "PORTUGAIS": "POR",
    # Optionen
    "CHAV": "CHAV",
    "CHAM": "CHAM",
    "LATIN": "LATIN",
    "LAT": "LATIN",
    "GREC": "GREC",
    "GRE": "GREC",
    "LCA": "LCA",
    "EURO": "EURO",
    "SECTION EURO": "EURO",
    "SPORT": "SPORT",
    # Keine Wahl
    "AUCUN": "",
    "AUCUNE": "",
    "SANS": "",
    "NON": "",
    "NONE": "",
    "KEINE": "",
    "KEIN": "",
}

# Merkmale mit Bewertungsskala (typisch 1–4)
SCORE_ATTRIBUTES: tuple[str, ...] = (
    "communication",
    "work",
    "participation",
    "attendance",
)

# Anzeigenamen für Reports und Excel-Spalten
SCORE_LABELS: dict[str, str] = {
    "communication": "Kommunikation",
    "work": "Arbeit",
    "participation": "Mitarbeit",
    "attendance": "Anwesenheit",
}


def default_placement_config() -> PlacementConfig:
    """Standard-Konfiguration für einen Jahrgang eines Collège.

    Parität: Bezug "F", Toleranz 10 Prozentpunkte.
    Optimierung: 5000 Iterationen, max. 10 Sekunden, Seed 42.
    """
    return PlacementConfig(
        school_name="Collège Muster",
        level="5e",
        allocation=AllocationConfig(),
        parity=ParityConfig(),
        optimizer=OptimizerConfig(),
    )
