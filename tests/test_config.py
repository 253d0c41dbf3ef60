"""Tests für Konfiguration, Datenmodelle, Testdaten, Excel-Import und CLI."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.defaults import TAG_SYNONYMS, default_placement_config
from config.manager import ConfigManager
from config.schema import (
    Gender,
    OptimizerConfig,
    ParityConfig,
    ParityPolicy,
    PlacementConfig,
)
from data.fake_data import FakeDataGenerator
from models.destination_class import DestinationClass
from models.placement_data import PlacementData, PlacementStructureError
from models.student import Student
from solver.normalization import normalize_tag


# ─── DEFAULT-KONFIGURATION ────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_default_config_valid(self):
        config = default_placement_config()
        assert config.parity.reference_gender == Gender.F
        assert config.parity.tolerance_percent == 10.0
        assert config.optimizer.max_iterations == 5000
        assert config.optimizer.seed == 42
        assert config.optimizer.parity_policy == ParityPolicy.PRESERVE
        assert config.allocation.reset_assignments is True

    def test_communication_weighted_highest(self):
        config = default_placement_config()
        weights = config.optimizer.weights.as_dict()
        assert list(weights) == ["communication", "work", "participation", "attendance"]
        assert weights["communication"].intra == max(w.intra for w in weights.values())
        assert config.parity.composite_weights.communication == 2.0

    def test_synonym_values_are_fixpoints(self):
        """Jeder kanonische Wert bildet auf sich selbst ab."""
        for value in set(TAG_SYNONYMS.values()):
            if value:
                assert normalize_tag(value) == value


# ─── PYDANTIC-VALIDIERUNG ─────────────────────────────────────────────────────

class TestPydanticValidation:
    def test_tolerance_above_100_raises(self):
        with pytest.raises(ValidationError):
            ParityConfig(tolerance_percent=150)

    def test_time_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            OptimizerConfig(time_limit_seconds=0)

    def test_targeted_probability_range(self):
        with pytest.raises(ValidationError):
            OptimizerConfig(targeted_probability=1.5)

    def test_negative_iterations_raise(self):
        with pytest.raises(ValidationError):
            OptimizerConfig(max_iterations=-1)

    def test_extra_synonyms_uppercased(self):
        config = PlacementConfig(extra_synonyms={" italiano ": "ita"})
        assert config.extra_synonyms == {"ITALIANO": "ITA"}

    def test_parity_policy_from_string(self):
        assert OptimizerConfig(parity_policy="allow").parity_policy == ParityPolicy.ALLOW


# ─── YAML SPEICHERN / LADEN ───────────────────────────────────────────────────

def _manager(tmp_path: Path) -> ConfigManager:
    mgr = ConfigManager()
    mgr.CONFIG_DIR = tmp_path
    mgr.DEFAULT_CONFIG = tmp_path / "placement_config.yaml"
    mgr.SCENARIOS_DIR = tmp_path / "scenarios"
    return mgr


class TestConfigManager:
    def test_save_and_load_roundtrip(self, tmp_path: Path):
        """Config speichern, laden und validieren: vollständiger Roundtrip."""
        config = default_placement_config()
        config.optimizer.parity_policy = ParityPolicy.ALLOW
        config.optimizer.weights.work.inter = 3.0
        config.extra_synonyms = {"ITALIANO": "ITA"}
        mgr = _manager(tmp_path)

        mgr.save(config)
        assert mgr.DEFAULT_CONFIG.exists()

        loaded = mgr.load()
        assert loaded.school_name == config.school_name
        assert loaded.optimizer.parity_policy == ParityPolicy.ALLOW
        assert loaded.optimizer.weights.work.inter == 3.0
        assert loaded.extra_synonyms == {"ITALIANO": "ITA"}

    def test_yaml_has_section_comments(self, tmp_path: Path):
        mgr = _manager(tmp_path)
        mgr.save(default_placement_config())
        text = mgr.DEFAULT_CONFIG.read_text(encoding="utf-8")
        assert "Klassenverteilung" in text
        assert "─── Parität ───" in text

    def test_first_run_check(self, tmp_path: Path):
        mgr = _manager(tmp_path)
        assert mgr.first_run_check() is True
        mgr.save(default_placement_config())
        assert mgr.first_run_check() is False

    def test_load_nonexistent_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            ConfigManager().load(tmp_path / "not_there.yaml")

    def test_load_invalid_raises_value_error(self, tmp_path: Path):
        path = tmp_path / "kaputt.yaml"
        path.write_text("parity:\n  tolerance_percent: 500\n", encoding="utf-8")
        with pytest.raises(ValueError, match="ungültig"):
            ConfigManager().load(path)

    def test_scenario_save_and_load(self, tmp_path: Path):
        """Szenario speichern und laden: Roundtrip."""
        config = default_placement_config().model_copy(update={"school_name": "Test-Collège"})
        mgr = _manager(tmp_path)

        mgr.save_scenario(config, "test_szenario", "Nur zum Testen")
        loaded = mgr.load_scenario("test_szenario")
        assert loaded.school_name == "Test-Collège"

        scenarios = mgr.list_scenarios()
        assert [s.name for s in scenarios] == ["test_szenario"]
        assert scenarios[0].description == "Nur zum Testen"
        assert scenarios[0].tolerance_percent == 10.0
        assert scenarios[0].parity_policy == ParityPolicy.PRESERVE

    def test_scenario_file_carries_metadata_block(self, tmp_path: Path):
        mgr = _manager(tmp_path)
        path = mgr.save_scenario(default_placement_config(), "streng", "5 Pp.")
        text = path.read_text(encoding="utf-8")
        assert text.index("scenario:") < text.index("parity:")
        assert "─── Szenario ───" in text
        assert not list((tmp_path / "scenarios").glob("*.meta.yaml"))

    def test_scenario_presets_listed(self, tmp_path: Path):
        """Varianten unterscheiden sich in Toleranz, Tauschregel und Suchbudget."""
        mgr = _manager(tmp_path)
        base = default_placement_config()
        mgr.save_scenario(base, "basis")
        mgr.save_scenario(base.with_overrides(
            tolerance_percent=5.0, parity_policy=ParityPolicy.ALLOW,
            max_iterations=20000, time_limit_seconds=30.0, seed=7,
        ), "streng")

        info = {s.name: s for s in mgr.list_scenarios()}
        assert set(info) == {"basis", "streng"}
        assert info["basis"].max_iterations == base.optimizer.max_iterations
        strict = info["streng"]
        assert (strict.tolerance_percent, strict.parity_policy) == (5.0, ParityPolicy.ALLOW)
        assert (strict.max_iterations, strict.time_limit_seconds, strict.seed) == (20000, 30.0, 7)

    def test_scenario_not_overwritten_without_flag(self, tmp_path: Path):
        mgr = _manager(tmp_path)
        config = default_placement_config()
        mgr.save_scenario(config, "basis")
        with pytest.raises(FileExistsError):
            mgr.save_scenario(config.with_overrides(tolerance_percent=1.0), "basis")
        assert mgr.load_scenario("basis").parity.tolerance_percent == 10.0
        mgr.save_scenario(config.with_overrides(tolerance_percent=1.0), "basis", overwrite=True)
        assert mgr.load_scenario("basis").parity.tolerance_percent == 1.0

    def test_with_overrides_validates_and_copies(self):
        config = default_placement_config()
        variant = config.with_overrides(max_iterations=10)
        assert variant.optimizer.max_iterations == 10
        assert config.optimizer.max_iterations == 5000
        assert config.with_overrides() == config
        with pytest.raises(ValidationError):
            config.with_overrides(tolerance_percent=500.0)

    def test_list_scenarios_empty(self, tmp_path: Path):
        assert _manager(tmp_path).list_scenarios() == []

    def test_load_missing_scenario_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            _manager(tmp_path).load_scenario("gibt_es_nicht")


# ─── MODELLE ──────────────────────────────────────────────────────────────────

class TestModels:
    def test_gender_aliases(self):
        assert Student(id="1", name="A", gender="fille").gender == Gender.F
        assert Student(id="2", name="B", gender="garçon").gender == Gender.M
        assert Student(id="3", name="C", gender="w").gender == Gender.F
        assert Student(id="4", name="D", gender="G").gender == Gender.M

    def test_unknown_gender_raises(self):
        with pytest.raises(ValidationError):
            Student(id="1", name="A", gender="X")

    def test_score_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            Student(id="1", name="A", gender="F", communication=6)

    def test_placed_follows_destination(self):
        """placed ⇔ Zielklasse gesetzt, auch wenn placed falsch übergeben wird."""
        s = Student(id="1", name="A", gender="F", destination="", placed=True)
        assert s.destination is None
        assert not s.placed
        s = Student(id="2", name="B", gender="F", destination="5A")
        assert s.placed

    def test_container_leaves_student_instances_untouched(self):
        """PlacementData übernimmt fertige Schüler ohne sie umzuschreiben."""
        s = Student(id="1", name="A", gender="F")
        s.placed = True
        data = PlacementData(
            students=[s],
            classes=[DestinationClass(id="5A", target_size=10)],
            config=default_placement_config(),
        )
        assert data.students[0] is s
        assert s.placed
        assert s.destination is None

    def test_assign_and_unassign(self):
        s = Student(id="1", name="A", gender="F")
        s.assign("5A")
        assert (s.destination, s.placed) == ("5A", True)
        s.unassign()
        assert (s.destination, s.placed) == (None, False)
        with pytest.raises(ValueError):
            s.assign("")

    def test_has_constraint_uses_normalization(self):
        assert not Student(id="1", name="A", gender="F", language="aucun").has_constraint
        assert Student(id="2", name="B", gender="F", option="Latin").has_constraint
        assert Student(id="3", name="C", gender="F", apart_code="D1").has_pairing

    def test_destination_class(self):
        c = DestinationClass(id="5A", target_size=25, quotas={"ITA": 11, "[CHAV+ITA]": 4})
        assert c.declared_tags == {"ITA"}
        assert c.quota_string == "ITA=11, [CHAV+ITA]=4"

    def test_negative_quota_raises(self):
        with pytest.raises(ValidationError):
            DestinationClass(id="5A", target_size=25, quotas={"ITA": -1})


class TestPlacementData:
    def _data(self, students=None, classes=None) -> PlacementData:
        return PlacementData(
            students=students if students is not None else [
                Student(id="1", name="A", gender="F", language="ITA"),
                Student(id="2", name="B", gender="M"),
            ],
            classes=classes if classes is not None else [
                DestinationClass(id="5A", target_size=2, quotas={"ITA": 1}),
            ],
            config=default_placement_config(),
        )

    def test_valid_structure(self):
        report = self._data().validate_structure()
        assert report.is_valid
        assert report.warnings == []

    def test_no_classes_is_error(self):
        data = self._data(classes=[])
        assert not data.validate_structure().is_valid
        with pytest.raises(PlacementStructureError) as exc:
            data.ensure_valid()
        assert exc.value.errors

    def test_duplicate_ids_are_errors(self):
        data = self._data(
            students=[Student(id="1", name="A", gender="F"),
                      Student(id="1", name="B", gender="F")],
            classes=[DestinationClass(id="5A", target_size=5),
                     DestinationClass(id="5A", target_size=5)],
        )
        report = data.validate_structure()
        assert len(report.errors) == 2

    def test_warnings(self):
        """Unbekannte Zielklasse, zu kleine Kapazität, nicht angebotener Tag."""
        data = self._data(
            students=[
                Student(id="1", name="A", gender="F", destination="9Z"),
                Student(id="2", name="B", gender="F", language="Espagnol"),
                Student(id="3", name="C", gender="F"),
            ],
            classes=[DestinationClass(id="5A", target_size=2, quotas={"ITA": 1})],
        )
        report = data.validate_structure()
        assert report.is_valid
        assert len(report.warnings) == 3
        assert any("ESP" in w for w in report.warnings)

    def test_save_and_load_json(self, tmp_path: Path):
        data = self._data()
        data.students[0].assign("5A")
        path = tmp_path / "daten.json"
        data.save_json(path)
        loaded = PlacementData.load_json(path)
        assert loaded.students[0].destination == "5A"
        assert loaded.classes[0].quotas == {"ITA": 1}
        assert loaded.created_at is not None

    def test_load_json_nonexistent_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            PlacementData.load_json(tmp_path / "does_not_exist.json")

    def test_summary_contains_key_info(self):
        summary = self._data().summary()
        assert "Schüler: 2" in summary
        assert "Klassen: 1" in summary


# ─── FAKE-DATEN ───────────────────────────────────────────────────────────────

class TestFakeData:
    def test_generate_counts(self):
        data = FakeDataGenerator(default_placement_config(), seed=42).generate()
        assert len(data.students) == 100
        assert [c.id for c in data.classes] == ["5A", "5B", "5C", "5D"]
        assert len({s.id for s in data.students}) == 100

    def test_capacity_covers_students(self):
        data = FakeDataGenerator(default_placement_config(), seed=1).generate(70, 3)
        assert sum(c.target_size for c in data.classes) >= len(data.students)
        assert data.validate_structure().is_valid

    def test_chav_bottleneck(self):
        """CHAV-Quote ist insgesamt genau einen Platz zu knapp."""
        data = FakeDataGenerator(default_placement_config(), seed=3).generate()
        demand = sum(1 for s in data.students if normalize_tag(s.option) == "CHAV")
        offered = sum(c.quotas.get("CHAV", 0) for c in data.classes)
        assert demand > 0
        assert offered == demand - 1

    def test_every_tag_offered(self):
        data = FakeDataGenerator(default_placement_config(), seed=5).generate(60, 2)
        report = data.validate_structure()
        assert not any("angeboten" in w for w in report.warnings)

    def test_pair_codes_generated(self):
        data = FakeDataGenerator(default_placement_config(), seed=42).generate()
        together = [s for s in data.students if s.together_code]
        apart = [s for s in data.students if s.apart_code]
        assert len(together) >= 2
        assert len(apart) >= 2
        assert not any(s.has_constraint for s in together + apart)

    def test_deterministic_with_seed(self):
        a = FakeDataGenerator(default_placement_config(), seed=9).generate(40, 2)
        b = FakeDataGenerator(default_placement_config(), seed=9).generate(40, 2)
        assert [s.model_dump() for s in a.students] == [s.model_dump() for s in b.students]

    def test_zero_classes_raises(self):
        with pytest.raises(ValueError):
            FakeDataGenerator(default_placement_config()).generate(10, 0)


# ─── EXCEL TEMPLATE / IMPORT ──────────────────────────────────────────────────

class TestExcelTemplate:
    def test_template_has_correct_sheets(self, tmp_path: Path):
        import openpyxl
        from data.excel_import import generate_template
        out = tmp_path / "vorlage.xlsx"
        generate_template(default_placement_config(), out)

        assert out.exists()
        wb = openpyxl.load_workbook(str(out))
        assert wb.sheetnames == ["Schüler", "Klassen", "Kombinationen"]

    def test_template_imports_cleanly(self, tmp_path: Path):
        """Die Beispielzeilen der Vorlage lassen sich direkt importieren."""
        from data.excel_import import generate_template, import_from_excel
        out = tmp_path / "vorlage.xlsx"
        generate_template(default_placement_config(), out)

        data, report = import_from_excel(out, default_placement_config())
        assert report.is_valid
        assert [s.id for s in data.students] == ["E001"]
        assert data.students[0].language == "ITA"
        assert data.students[0].communication == 3.0
        assert not data.students[0].placed
        assert [c.id for c in data.classes] == ["5A", "5B", "5C"]
        assert data.classes[2].quotas == {"ITA": 4, "CHAV": 4}
        assert data.combined_allocations == []


def _write_workbook(path: Path, sheets: dict[str, list[list]]) -> Path:
    import openpyxl
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    wb.save(str(path))
    return path


_FRENCH_STUDENTS = [
    ["NOM", "SEXE", "LV2", "OPT", "ASSO", "DISSO", "COM", "TRA", "PART", "ABS", "CLASSE"],
    ["Martin, Léa", "F", "Italien", "CHAV", "", "", 3, 2.5, 3, 4, ""],
    ["Petit, Hugo", "G", "ESP", "", "A1", "", 2, "2,5", 2, 3, "5B"],
    ["Roux, Zoé", "F", "", "", "A1", "D1", 4, 4, 4, 4, None],
]

_FRENCH_CLASSES = [
    ["Classe", "Effectif", "Quotas"],
    ["5A", 25, "ITA=4, CHAV=4"],
    ["5B", 25.0, "ESP=10"],
]


class TestExcelImport:
    def test_french_headers(self, tmp_path: Path):
        from data.excel_import import import_from_excel
        path = _write_workbook(tmp_path / "liste.xlsx", {
            "Élèves": _FRENCH_STUDENTS, "Classes": _FRENCH_CLASSES,
        })
        data, report = import_from_excel(path, default_placement_config())

        assert report.is_valid
        assert [s.id for s in data.students] == ["E001", "E002", "E003"]
        hugo = data.students[1]
        assert hugo.gender == Gender.M
        assert hugo.work == 2.5
        assert hugo.together_code == "A1"
        assert hugo.destination == "5B"
        assert data.students[0].language == "Italien"
        assert data.classes[1].target_size == 25

    def test_missing_sheet_raises(self, tmp_path: Path):
        from data.excel_import import ExcelImportError, import_from_excel
        path = _write_workbook(tmp_path / "liste.xlsx", {"Élèves": _FRENCH_STUDENTS})
        with pytest.raises(ExcelImportError, match="fehlt"):
            import_from_excel(path, default_placement_config())

    def test_missing_required_column_raises(self, tmp_path: Path):
        from data.excel_import import ExcelImportError, import_from_excel
        students = [["NOM", "LV2"], ["Martin, Léa", "ITA"]]
        path = _write_workbook(tmp_path / "liste.xlsx", {
            "Schüler": students, "Klassen": _FRENCH_CLASSES,
        })
        with pytest.raises(ExcelImportError, match="Pflichtspalten"):
            import_from_excel(path, default_placement_config())

    def test_invalid_gender_reports_row(self, tmp_path: Path):
        from data.excel_import import ExcelImportError, import_from_excel
        students = [["Name", "Geschlecht"], ["Martin, Léa", "?"]]
        path = _write_workbook(tmp_path / "liste.xlsx", {
            "Schüler": students, "Klassen": _FRENCH_CLASSES,
        })
        with pytest.raises(ExcelImportError, match="Zeile 2"):
            import_from_excel(path, default_placement_config())

    def test_malformed_quota_is_warning(self, tmp_path: Path):
        from data.excel_import import import_from_excel
        classes = [["Klasse", "Zielgröße", "Quoten"], ["5A", 25, "ITA=4, CHAV"]]
        path = _write_workbook(tmp_path / "liste.xlsx", {
            "Schüler": [["Name", "Geschlecht"], ["Martin, Léa", "F"]],
            "Klassen": classes,
        })
        data, report = import_from_excel(path, default_placement_config())
        assert data.classes[0].quotas == {"ITA": 4}
        assert any(w.startswith("Klasse 5A:") for w in report.warnings)

    def test_combinations_sheet(self, tmp_path: Path):
        from data.excel_import import import_from_excel
        path = _write_workbook(tmp_path / "liste.xlsx", {
            "Schüler": _FRENCH_STUDENTS,
            "Klassen": _FRENCH_CLASSES,
            "Kombinationen": [
                ["Kombination", "Typ", "Zielklasse", "Priorität"],
                ["ITA+CHAV", "zusammen", "5A", ""],
                ["ESP+LATIN", "getrennt", "", "opt"],
                ["ALL+CHAV", "vielleicht", "", ""],
            ],
        })
        data, report = import_from_excel(path, default_placement_config())
        assert [(d.combination, d.type) for d in data.combined_allocations] == [
            ("ITA+CHAV", "together"), ("ESP+LATIN", "separate"),
        ]
        assert data.combined_allocations[1].priority == "opt"
        assert any("vielleicht" in w for w in report.warnings)

    def test_nonexistent_file_raises(self, tmp_path: Path):
        from data.excel_import import ExcelImportError, import_from_excel
        with pytest.raises(ExcelImportError):
            import_from_excel(tmp_path / "fehlt.xlsx", default_placement_config())


# ─── MAIN.PY CLI ──────────────────────────────────────────────────────────────

class TestCli:
    def test_help(self):
        """main.py --help gibt Usage aus."""
        from click.testing import CliRunner
        from main import cli
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Usage" in result.output
        for command in ("allocate", "complete", "optimize", "run", "export"):
            assert command in result.output

    def test_config_init_and_show(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["config", "init"])
            assert result.exit_code == 0
            assert Path("config/placement_config.yaml").exists()
            result = runner.invoke(cli, ["config", "show"])
            assert result.exit_code == 0

    def test_generate_writes_json(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["generate", "--students", "40", "--classes", "2"])
            assert result.exit_code == 0
            assert Path("output/placement_data.json").exists()

    def test_run_validate_export(self):
        """generate → run → validate → export im selben Verzeichnis."""
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(cli, ["generate", "--students", "40", "--classes", "2"]).exit_code == 0
            assert runner.invoke(cli, ["run"]).exit_code == 0

            data = PlacementData.load_json(Path("output/placement_data.json"))
            assert data.placed_count > 0

            assert runner.invoke(cli, ["validate"]).exit_code == 0
            assert runner.invoke(cli, ["analyze"]).exit_code == 0
            result = runner.invoke(cli, ["export", "-o", "output/ergebnis.xlsx"])
            assert result.exit_code == 0
            assert Path("output/ergebnis.xlsx").exists()

    def test_single_phases(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["generate", "--students", "40", "--classes", "2"])
            assert runner.invoke(cli, ["allocate"]).exit_code == 0
            assert runner.invoke(cli, ["complete"]).exit_code == 0
            result = runner.invoke(cli, ["optimize", "--iterations", "50"])
            assert result.exit_code == 0

    def test_run_without_data_fails(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(cli, ["run"]).exit_code == 1

    def test_template_and_import(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["template", "-o", "vorlage.xlsx"])
            assert result.exit_code == 0
            result = runner.invoke(cli, ["import", "vorlage.xlsx", "--save-json"])
            assert result.exit_code == 0
            assert Path("output/placement_data.json").exists()

    def test_scenarios(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(cli, ["scenario", "list"]).exit_code == 0
            result = runner.invoke(cli, [
                "scenario", "save", "streng", "-d", "Enge Parität",
                "--tolerance", "5", "--policy", "allow", "--iterations", "100",
            ])
            assert result.exit_code == 0
            assert Path("scenarios/streng.yaml").exists()

            [info] = ConfigManager().list_scenarios()
            assert info.name == "streng"
            assert info.description == "Enge Parität"
            assert info.tolerance_percent == 5.0
            assert info.parity_policy == ParityPolicy.ALLOW
            assert info.max_iterations == 100
            assert runner.invoke(cli, ["scenario", "list"]).exit_code == 0

            # vorhandener Name nur mit --force
            assert runner.invoke(cli, ["scenario", "save", "streng"]).exit_code == 1
            assert runner.invoke(cli, ["scenario", "save", "streng", "--force"]).exit_code == 0
            assert runner.invoke(cli, ["scenario", "save", "kaputt", "--tolerance", "-1"]).exit_code == 1
            assert not Path("scenarios/kaputt.yaml").exists()

            assert runner.invoke(cli, ["scenario", "load", "streng"]).exit_code == 0
            assert Path("config/placement_config.yaml").exists()
            assert runner.invoke(cli, ["scenario", "load", "fehlt"]).exit_code == 1

    def test_run_with_scenario_keeps_stored_config(self):
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(cli, ["generate", "--students", "40", "--classes", "2"]).exit_code == 0
            assert runner.invoke(cli, ["scenario", "save", "kurz", "--iterations", "50"]).exit_code == 0
            assert runner.invoke(cli, ["run", "--scenario", "kurz"]).exit_code == 0

            data = PlacementData.load_json(Path("output/placement_data.json"))
            assert data.config.optimizer.max_iterations == 5000
            assert data.placed_count > 0
            assert runner.invoke(cli, ["run", "--scenario", "fehlt"]).exit_code == 1

    def test_optimize_overrides_not_persisted(self):
        """--iterations gilt nur für den Lauf, die JSON behält das Budget der Config."""
        from click.testing import CliRunner
        from main import cli
        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(cli, ["generate", "--students", "40", "--classes", "2"]).exit_code == 0
            assert runner.invoke(cli, ["allocate"]).exit_code == 0
            result = runner.invoke(cli, ["optimize", "--iterations", "5", "--time-limit", "1"])
            assert result.exit_code == 0

            data = PlacementData.load_json(Path("output/placement_data.json"))
            assert data.config.optimizer.max_iterations == 5000
            assert data.config.optimizer.time_limit_seconds == 10.0
