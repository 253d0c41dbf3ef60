"""Konfigurationsmanager: Laden, Speichern und Szenarien der Verteilungs-Config.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from rich.console import Console
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.schema import ParityPolicy, PlacementConfig

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-KOMMENTAR-AUFBAU ───

_YAML_HEADER = f"""\
# ============================================
# Klassenverteilung: Konfiguration
# Version: 1.0
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "extra_synonyms": (
        "Tag-Synonyme",
        "Zusätzliche Schreibweisen für LV2/Optionen, z.B. ITALIANO: ITA.",
    ),
    "allocation": (
        "Verteilung",
        "Phase 1: Schüler mit Sprach-/Optionswahl nach Quoten verteilen.",
    ),
    "parity": (
        "Parität",
        "Phase 2: Auffüllen mit globaler Geschlechterquote statt 50/50.\n"
        "tolerance_percent = erlaubte Abweichung in Prozentpunkten.",
    ),
    "optimizer": (
        "Optimierung",
        "Phase 3: Tauschsuche. Gewichte: höher = stärker berücksichtigt.\n"
        "parity_policy: preserve (nur gleichgeschlechtlich) oder allow.",
    ),
}


class ScenarioInfo(BaseModel):
    """Kurzüberblick einer gespeicherten Variante für `scenario list`."""

    name: str
    path: str
    description: str = ""
    created: str = ""
    tolerance_percent: float
    parity_policy: ParityPolicy
    max_iterations: int
    time_limit_seconds: float
    seed: Optional[int] = None

    @classmethod
    def from_config(cls, path: Path, meta: dict, config: PlacementConfig) -> "ScenarioInfo":
        return cls(
            name=str(meta.get("name") or path.stem),
            path=str(path),
            description=str(meta.get("description") or ""),
            created=str(meta.get("created") or ""),
            tolerance_percent=config.parity.tolerance_percent,
            parity_policy=config.optimizer.parity_policy,
            max_iterations=config.optimizer.max_iterations,
            time_limit_seconds=config.optimizer.time_limit_seconds,
            seed=config.optimizer.seed,
        )


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "placement_config.yaml"
    SCENARIOS_DIR = Path("scenarios")

    def first_run_check(self) -> bool:
        """Gibt True zurück wenn noch keine Config existiert (Erstaufruf)."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> PlacementConfig:
        """Lade Config aus YAML. Validiert automatisch via Pydantic."""
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'python main.py config init' aus."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return PlacementConfig.model_validate(dict(raw or {}))
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    # ─── Speichern ───

    def save(self, config: PlacementConfig, path: Optional[Path] = None) -> None:
        """Speichere Config als YAML mit deutschen Kommentaren."""
        target = path or self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    def _build_commented_yaml(self, config: PlacementConfig) -> CommentedMap:
        """Baut die YAML-Struktur mit Kommentaren auf."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        if "optimizer" in cm:
            opt_map = CommentedMap(cm["optimizer"])
            opt_map.yaml_add_eol_comment("Sekunden", "time_limit_seconds")
            cm["optimizer"] = opt_map

        return cm

    # ─── Szenarien (Verteilungsvarianten) ───

    def save_scenario(self, config: PlacementConfig, name: str,
                      description: str = "", overwrite: bool = False) -> Path:
        """Speichert eine Verteilungsvariante als scenarios/<name>.yaml.

        Die Datei enthält vorne einen Block `scenario` (Beschreibung, Datum),
        danach die vollständige Config.
        """
        path = self.SCENARIOS_DIR / f"{name}.yaml"
        if path.exists() and not overwrite:
            raise FileExistsError(
                f"Szenario '{name}' existiert bereits (--force zum Überschreiben)."
            )
        self.SCENARIOS_DIR.mkdir(parents=True, exist_ok=True)

        cm = self._build_commented_yaml(config)
        cm.insert(0, "scenario", CommentedMap([
            ("name", name),
            ("description", description),
            ("created", date.today().isoformat()),
        ]))
        cm.yaml_set_comment_before_after_key(
            "scenario", before="\n─── Szenario ───\nVariante für Vergleichsläufe."
        )
        with open(path, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(cm, f)
        console.print(f"[green]✓[/green] Szenario '{name}' gespeichert: {path}")
        return path

    def _read_scenario(self, path: Path) -> tuple[dict, PlacementConfig]:
        with open(path, "r", encoding="utf-8") as f:
            raw = dict(yaml.load(f) or {})
        meta = dict(raw.pop("scenario", None) or {})
        try:
            return meta, PlacementConfig.model_validate(raw)
        except Exception as e:
            raise ValueError(
                f"Szenario ungültig: {path}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    def list_scenarios(self) -> list[ScenarioInfo]:
        """Alle gespeicherten Varianten mit ihren Lauf-Parametern."""
        if not self.SCENARIOS_DIR.exists():
            return []
        scenarios = []
        for p in sorted(self.SCENARIOS_DIR.glob("*.yaml")):
            try:
                meta, config = self._read_scenario(p)
            except ValueError as e:
                console.print(f"[yellow]Übersprungen: {e}[/yellow]")
                continue
            scenarios.append(ScenarioInfo.from_config(p, meta, config))
        return scenarios

    def load_scenario(self, name: str) -> PlacementConfig:
        """Lädt die Config einer gespeicherten Variante."""
        path = self.SCENARIOS_DIR / f"{name}.yaml"
        if not path.exists():
            available = [s.name for s in self.list_scenarios()]
            raise FileNotFoundError(
                f"Szenario '{name}' nicht gefunden. Verfügbar: {available}"
            )
        return self._read_scenario(path)[1]
