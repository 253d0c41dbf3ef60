"""Tests für den Excel-Export der Klassenverteilung."""

from pathlib import Path

import openpyxl
import pytest

from config.defaults import default_placement_config
from data.excel_import import import_from_excel
from data.fake_data import FakeDataGenerator
from export.excel_export import ExcelExporter
from models.destination_class import CombinedAllocation
from models.placement_data import PlacementData
from solver.pipeline import PipelineResult, PlacementPipeline


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def placed_data() -> tuple[PlacementData, PipelineResult]:
    """Kleiner Jahrgang nach vollständigem Lauf."""
    config = default_placement_config()
    config.optimizer.max_iterations = 200
    data = FakeDataGenerator(config, seed=42).generate(num_students=60, num_classes=3)
    result = PlacementPipeline(data, clock=lambda: 0.0).run()
    return data, result


def _sheet_values(path: Path, title: str) -> list[tuple]:
    wb = openpyxl.load_workbook(str(path))
    return list(wb[title].iter_rows(values_only=True))


def _column(rows: list[tuple], header: str) -> list:
    idx = list(rows[0]).index(header)
    return [r[idx] for r in rows[1:]]


# ─── Blätter ──────────────────────────────────────────────────────────────────

class TestExcelExporter:
    def test_creates_sheets(self, tmp_path: Path, placed_data):
        data, result = placed_data
        out = tmp_path / "sub" / "verteilung.xlsx"
        ExcelExporter(data, result).export(out)

        assert out.exists()
        wb = openpyxl.load_workbook(str(out))
        assert wb.sheetnames == ["Schüler", "Klassen", "Diagnose"]

    def test_student_sheet_rows(self, tmp_path: Path, placed_data):
        data, result = placed_data
        out = tmp_path / "verteilung.xlsx"
        ExcelExporter(data, result).export(out)

        rows = _sheet_values(out, "Schüler")
        assert len(rows) == len(data.students) + 1
        assert rows[0][-1] == "Wahl"
        placed = _column(rows, "Platziert")
        assert placed.count("ja") == data.placed_count

    def test_class_sheet_counts(self, tmp_path: Path, placed_data):
        data, result = placed_data
        out = tmp_path / "verteilung.xlsx"
        ExcelExporter(data, result).export(out)

        rows = _sheet_values(out, "Klassen")
        assert _column(rows, "Klasse") == [c.id for c in data.classes]
        assert _column(rows, "Ist") == [len(data.students_in(c.id)) for c in data.classes]

    def test_diagnostics_list_unplaced(self, tmp_path: Path, placed_data):
        data, result = placed_data
        out = tmp_path / "verteilung.xlsx"
        ExcelExporter(data, result).export(out)

        cells = [v for row in _sheet_values(out, "Diagnose") for v in row if v is not None]
        assert f"Nicht platzierte Schüler ({len(result.unplaced)})" in cells
        assert "Heterogenitäts-Optimierung" in cells
        for u in result.unplaced:
            assert u.student_id in cells

    def test_export_without_result(self, tmp_path: Path):
        data = FakeDataGenerator(default_placement_config(), seed=1).generate(20, 2)
        out = tmp_path / "nur_daten.xlsx"
        ExcelExporter(data).export(out)
        cells = [v for row in _sheet_values(out, "Diagnose") for v in row if v is not None]
        assert "Kein Verteilungslauf im Export enthalten." in cells

    def test_combinations_sheet_only_with_decisions(self, tmp_path: Path):
        data = FakeDataGenerator(default_placement_config(), seed=1).generate(20, 2)
        data.combined_allocations = [
            CombinedAllocation(combination="ITA+CHAV", type="together", target_class="5A"),
        ]
        out = tmp_path / "kombi.xlsx"
        ExcelExporter(data).export(out)
        rows = _sheet_values(out, "Kombinationen")
        assert rows[1] == ("ITA+CHAV", "zusammen", "5A", "lv2")


# ─── Roundtrip ────────────────────────────────────────────────────────────────

class TestExportRoundtrip:
    def test_exported_file_reimports(self, tmp_path: Path, placed_data):
        """Exportierte Datei lässt sich wieder importieren, Zuweisungen bleiben."""
        data, result = placed_data
        out = tmp_path / "verteilung.xlsx"
        ExcelExporter(data, result).export(out)

        loaded, report = import_from_excel(out, data.config)
        assert report.is_valid
        assert [s.id for s in loaded.students] == [s.id for s in data.students]
        assert [s.destination for s in loaded.students] == [s.destination for s in data.students]
        assert [s.gender for s in loaded.students] == [s.gender for s in data.students]
        assert [c.quotas for c in loaded.classes] == [c.quotas for c in data.classes]
        assert [c.target_size for c in loaded.classes] == [c.target_size for c in data.classes]
