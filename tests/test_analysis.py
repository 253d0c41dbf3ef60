"""Tests für Wahlstatistik, Verteilungs-Validierung und Qualitätsbericht."""

import pytest

from analysis.constraint_stats import analyze_constraints, apply_combined_allocations
from analysis.placement_report import PlacementAnalyzer, PlacementQualityReport
from analysis.placement_validator import PlacementValidator, ValidationReport
from config.defaults import default_placement_config
from models.destination_class import CombinedAllocation, DestinationClass
from models.placement_data import PlacementData
from models.student import Student


# ─── Testdaten-Hilfsfunktionen ────────────────────────────────────────────────

def _student(sid: str, lv2: str = "", opt: str = "", gender: str = "F",
             destination: str = None, **kwargs) -> Student:
    return Student(id=sid, name=f"Schüler {sid}", gender=gender,
                   language=lv2, option=opt, destination=destination, **kwargs)


def _data(students, classes, combined=None) -> PlacementData:
    return PlacementData(
        students=students,
        classes=classes,
        config=default_placement_config(),
        combined_allocations=combined or [],
    )


def _choices_population() -> list[Student]:
    """4× ITA+CHAV, 3× nur ITA, 2× nur CHAV, 1× ohne Wahl."""
    students = [_student(f"K{i}", "ITA", "CHAV") for i in range(4)]
    students += [_student(f"I{i}", "Italien") for i in range(3)]
    students += [_student(f"C{i}", "", "chav") for i in range(2)]
    students += [_student("N0")]
    return students


# ─── WAHLSTATISTIK ────────────────────────────────────────────────────────────

class TestConstraintStatistics:
    def test_counts(self):
        stats = analyze_constraints(_choices_population())
        assert stats.total == 10
        assert stats.lv2_counts == {"ITA": 7}
        assert stats.opt_counts == {"CHAV": 6}
        assert stats.unconstrained == 1

    def test_combination_intersection(self):
        """Überschneidung bezogen auf die kleinere Einzelwahl: 4 / 6 → 67 %."""
        stats = analyze_constraints(_choices_population())
        combo = stats.combination("ita+chav")
        assert combo is not None
        assert combo.count == 4
        assert combo.intersection == 67
        assert (combo.lv2, combo.opt) == ("ITA", "CHAV")

    def test_unknown_combination(self):
        stats = analyze_constraints(_choices_population())
        assert stats.combination("ESP+LATIN") is None

    def test_print_rich(self, capsys):
        analyze_constraints(_choices_population()).print_rich()
        assert "Wahlstatistik" in capsys.readouterr().out


class TestCombinedAllocations:
    def test_together_adds_combined_quota_to_copy(self):
        classes = [DestinationClass(id="A", target_size=20, quotas={"ITA": 10})]
        data = _data(_choices_population(), classes, [
            CombinedAllocation(combination="ITA+CHAV", type="together", target_class="A"),
        ])
        plan = apply_combined_allocations(data)
        assert plan.classes[0].quotas == {"ITA": 10, "[CHAV+ITA]": 4}
        assert data.classes[0].quotas == {"ITA": 10}
        assert plan.warnings == []

    def test_separate_sets_priority(self):
        data = _data(_choices_population(), [DestinationClass(id="A", target_size=20)], [
            CombinedAllocation(combination="ITA+CHAV", type="separate", priority="opt"),
        ])
        plan = apply_combined_allocations(data)
        assert plan.separations == {"ITA+CHAV": "opt"}

    def test_unknown_target_class_warns(self):
        data = _data(_choices_population(), [DestinationClass(id="A", target_size=20)], [
            CombinedAllocation(combination="ITA+CHAV", type="together", target_class="Z"),
        ])
        plan = apply_combined_allocations(data)
        assert len(plan.warnings) == 1
        assert "existiert nicht" in plan.warnings[0]
        assert plan.classes[0].quotas == {}

    def test_combination_without_students_warns(self):
        data = _data(_choices_population(), [DestinationClass(id="A", target_size=20)], [
            CombinedAllocation(combination="ESP+LATIN", type="together", target_class="A"),
        ])
        plan = apply_combined_allocations(data)
        assert "kein Schüler" in plan.warnings[0]

    def test_together_requires_target(self):
        with pytest.raises(ValueError):
            CombinedAllocation(combination="ITA+CHAV", type="together")

    def test_combination_format(self):
        with pytest.raises(ValueError):
            CombinedAllocation(combination="ITA", type="separate")


# ─── VALIDIERUNG ──────────────────────────────────────────────────────────────

class TestPlacementValidator:
    def _rules(self, report: ValidationReport) -> set[str]:
        return {v.constraint for v in report.violations}

    def test_valid_placement(self):
        data = _data(
            [_student("1", "ITA", destination="A"), _student("2", destination="A")],
            [DestinationClass(id="A", target_size=2, quotas={"ITA": 1})],
        )
        report = PlacementValidator().validate(data)
        assert report.is_valid
        assert report.violations == []

    def test_incompatible_constraint_is_error(self):
        data = _data(
            [_student("1", "ITA", destination="B")],
            [DestinationClass(id="A", target_size=5, quotas={"ITA": 1}),
             DestinationClass(id="B", target_size=5)],
        )
        report = PlacementValidator().validate(data)
        assert not report.is_valid
        assert self._rules(report) == {"constraint_incompatible"}
        assert report.errors[0].entity == "1"

    def test_quota_exceeded_is_warning(self):
        data = _data(
            [_student("1", "ITA", destination="A"), _student("2", "ITA", destination="A")],
            [DestinationClass(id="A", target_size=5, quotas={"ITA": 1})],
        )
        report = PlacementValidator().validate(data)
        assert report.is_valid
        assert self._rules(report) == {"quota_exceeded"}

    def test_separation_respected(self):
        """Getrennt verteilte Kombination: nur der Prioritäts-Tag wird geprüft."""
        data = _data(
            [_student("1", "ITA", "CHAV", destination="A")],
            [DestinationClass(id="A", target_size=5, quotas={"ITA": 1})],
            [CombinedAllocation(combination="ITA+CHAV", type="separate", priority="lv2")],
        )
        assert PlacementValidator().validate(data).is_valid

    def test_oversized_class(self):
        data = _data(
            [_student(str(i), destination="A") for i in range(3)],
            [DestinationClass(id="A", target_size=2)],
        )
        report = PlacementValidator().validate(data)
        assert not report.is_valid
        assert self._rules(report) == {"class_oversized"}

    def test_unknown_class(self):
        data = _data([_student("1", destination="Z")], [DestinationClass(id="A", target_size=2)])
        report = PlacementValidator().validate(data)
        assert "unknown_class" in self._rules(report)

    def test_placement_flag_mismatch(self):
        data = _data([_student("1"), _student("2", destination="A")],
                     [DestinationClass(id="A", target_size=2)])
        data.students[0].placed = True
        data.students[1].placed = False
        report = PlacementValidator().validate(data)
        assert self._rules(report) == {"placement_flag_mismatch"}
        assert {v.entity for v in report.errors} == {"1", "2"}

    def test_pairing_codes(self):
        data = _data(
            [
                _student("1", destination="A", together_code="A1"),
                _student("2", destination="B", together_code="A1"),
                _student("3", destination="A", apart_code="D1"),
                _student("4", destination="A", apart_code="D1"),
            ],
            [DestinationClass(id="A", target_size=5), DestinationClass(id="B", target_size=5)],
        )
        report = PlacementValidator().validate(data)
        assert report.is_valid
        assert self._rules(report) == {"together_split", "apart_shared"}
        assert {v.entity for v in report.warnings} == {"A1", "D1"}

    def test_print_rich(self, capsys):
        data = _data([_student("1", destination="Z")], [DestinationClass(id="A", target_size=2)])
        PlacementValidator().validate(data).print_rich()
        assert "unknown_class" in capsys.readouterr().out


# ─── QUALITÄTSBERICHT ─────────────────────────────────────────────────────────

class TestPlacementAnalyzer:
    def _report(self) -> PlacementQualityReport:
        data = _data(
            [
                _student("1", "ITA", gender="F", destination="X", communication=4.0),
                _student("2", gender="M", destination="X", communication=2.0),
                _student("3", gender="F", destination="Y", communication=3.0),
                _student("4", gender="M"),
            ],
            [DestinationClass(id="X", target_size=3, quotas={"ITA": 2}),
             DestinationClass(id="Y", target_size=3)],
        )
        return PlacementAnalyzer().analyze(data)

    def test_class_metrics(self):
        report = self._report()
        x = report.class_metrics[0]
        assert x.class_id == "X"
        assert x.size == 2
        assert x.gender_counts == {"F": 1, "M": 1}
        assert x.reference_share == 0.5
        assert x.means["communication"] == 3.0
        assert x.stds["communication"] == 1.0
        assert x.constraint_counts == {"ITA": 1}

    def test_totals(self):
        report = self._report()
        assert report.total_students == 4
        assert report.placed_count == 3
        assert report.unplaced_count == 1
        assert report.global_ratio == 0.5
        assert report.heterogeneity_score > 0
        assert len(report.breakdown) == 4

    def test_print_rich(self, capsys):
        PlacementAnalyzer().print_rich(self._report())
        assert "Heterogenität" in capsys.readouterr().out
