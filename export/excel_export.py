"""Excel-Export der Klassenverteilung (openpyxl)."""

from collections import Counter
from datetime import date
from pathlib import Path
from typing import Optional

from config.defaults import SCORE_ATTRIBUTES, SCORE_LABELS
from config.schema import Gender
from data.excel_import import (
    CLASS_HEADERS,
    COMBINATION_HEADERS,
    SHEET_CLASSES,
    SHEET_COMBINATIONS,
    SHEET_STUDENTS,
    STUDENT_HEADERS,
)
from models.placement_data import PlacementData
from solver.normalization import build_synonym_table, constraint_key, constraint_tags
from solver.pipeline import PipelineResult
from solver.quotas import format_quotas

COLORS = {
    "header": "2E6DA4",
    "unplaced": "F8D7DA",
    "warning": "FFF3CD",
}


class ExcelExporter:
    """Exportiert eine Verteilung in eine Excel-Datei.

    Die Blätter Schüler/Klassen/Kombinationen haben dasselbe Format wie der
    Import, eine exportierte Datei kann also wieder eingelesen werden.
    """

    COL_NAME_W = 26
    COL_DEFAULT_W = 12

    def __init__(self, data: PlacementData, result: Optional[PipelineResult] = None):
        self.data = data
        self.result = result
        self.synonyms = build_synonym_table(data.config.extra_synonyms)

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def export(self, output_path: Path) -> None:
        """Erstellt die Excel-Datei mit allen Sheets."""
        from openpyxl import Workbook
        wb = Workbook()
        wb.remove(wb.active)   # Leeres Standard-Sheet entfernen

        self._sheet_students(wb)
        self._sheet_classes(wb)
        if self.data.combined_allocations:
            self._sheet_combinations(wb)
        self._sheet_diagnostics(wb)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)

    # ─── Style-Helpers ────────────────────────────────────────────────────────

    def _fill(self, hex_color: str):
        from openpyxl.styles import PatternFill
        return PatternFill(start_color=hex_color, end_color=hex_color, fill_type="solid")

    def _thin_border(self):
        from openpyxl.styles import Border, Side
        s = Side(border_style="thin", color="BBBBBB")
        return Border(left=s, right=s, top=s, bottom=s)

    def _write_header_row(self, ws, headers: list[str], row: int = 1) -> None:
        from openpyxl.styles import Alignment, Font
        from openpyxl.utils import get_column_letter
        fill = self._fill(COLORS["header"])
        border = self._thin_border()
        for col, text in enumerate(headers, 1):
            cell = ws.cell(row=row, column=col, value=text)
            cell.fill = fill
            cell.font = Font(bold=True, color="FFFFFF", size=10)
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = border
            if row == 1:
                ws.column_dimensions[get_column_letter(col)].width = (
                    self.COL_NAME_W if text == "Name" else self.COL_DEFAULT_W
                )

    def _write_row(self, ws, row: int, values: list, fill_color: Optional[str] = None) -> None:
        border = self._thin_border()
        fill = self._fill(fill_color) if fill_color else None
        for col, val in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=val)
            cell.border = border
            if fill is not None:
                cell.fill = fill

    def _section_title(self, ws, row: int, text: str) -> None:
        from openpyxl.styles import Font
        ws.cell(row=row, column=1, value=text).font = Font(bold=True, size=11)

    # ─── Blätter ──────────────────────────────────────────────────────────────

    def _sheet_students(self, wb) -> None:
        ws = wb.create_sheet(title=SHEET_STUDENTS)
        headers = STUDENT_HEADERS + ["Wahl"]
        self._write_header_row(ws, headers)
        ws.freeze_panes = "A2"

        for row, s in enumerate(self.data.students, 2):
            tags = constraint_tags(s, self.synonyms)
            values = [
                s.id, s.name, s.gender.value, s.language, s.option,
                s.together_code, s.apart_code,
                *(s.score(a) for a in SCORE_ATTRIBUTES),
                s.destination or "",
                "ja" if s.placed else "nein",
                constraint_key(tags) if tags else "",
            ]
            self._write_row(ws, row, values, None if s.placed else COLORS["unplaced"])

    def _sheet_classes(self, wb) -> None:
        ws = wb.create_sheet(title=SHEET_CLASSES)
        headers = CLASS_HEADERS + ["Restquoten", "Ist", "F", "M"] + [
            f"Ø {SCORE_LABELS[a]}" for a in SCORE_ATTRIBUTES
        ]
        self._write_header_row(ws, headers)
        ws.column_dimensions["C"].width = 36
        ws.column_dimensions["D"].width = 36

        remaining: dict[str, dict[str, int]] = {}
        if self.result is not None and self.result.allocation is not None:
            remaining = self.result.allocation.remaining_quotas

        for row, c in enumerate(self.data.classes, 2):
            members = self.data.students_in(c.id)
            genders = Counter(s.gender for s in members)
            means = [
                round(sum(s.score(a) for s in members) / len(members), 2) if members else ""
                for a in SCORE_ATTRIBUTES
            ]
            rest = remaining.get(c.id)
            values = [
                c.id, c.target_size, c.quota_string,
                format_quotas(rest) if rest is not None else "",
                len(members), genders.get(Gender.F, 0), genders.get(Gender.M, 0),
                *means,
            ]
            color = COLORS["warning"] if len(members) > c.target_size else None
            self._write_row(ws, row, values, color)

    def _sheet_combinations(self, wb) -> None:
        ws = wb.create_sheet(title=SHEET_COMBINATIONS)
        self._write_header_row(ws, COMBINATION_HEADERS)
        labels = {"together": "zusammen", "separate": "getrennt"}
        for row, d in enumerate(self.data.combined_allocations, 2):
            self._write_row(ws, row, [
                d.combination, labels[d.type], d.target_class or "", d.priority,
            ])

    def _sheet_diagnostics(self, wb) -> None:
        """Offene Schüler, Quoten-Konflikte, Paritäts-Warnungen, Optimierung."""
        from openpyxl.styles import Font

        ws = wb.create_sheet(title="Diagnose")
        ws.column_dimensions["A"].width = 22
        ws.column_dimensions["B"].width = self.COL_NAME_W
        ws.column_dimensions["E"].width = 50
        ws.cell(row=1, column=1, value="Diagnose").font = Font(bold=True, size=13)
        ws.cell(row=2, column=1,
                value=f"{self.data.config.school_name} ({self.data.config.level}), "
                      f"erstellt {date.today().strftime('%d.%m.%Y')}")
        ws.cell(row=3, column=1,
                value=f"Platziert: {self.data.placed_count}/{len(self.data.students)}")
        row = 5

        result = self.result
        if result is None:
            ws.cell(row=row, column=1, value="Kein Verteilungslauf im Export enthalten.")
            return

        # ── Offene Schüler ───────────────────────────────────────────────
        self._section_title(ws, row, f"Nicht platzierte Schüler ({len(result.unplaced)})")
        row += 1
        self._write_header_row(ws, ["Schüler-ID", "Name", "Wahl", "Phase", "Grund"], row)
        row += 1
        for u in result.unplaced:
            self._write_row(ws, row, [u.student_id, u.name, u.constraint_key, u.phase, u.reason],
                            COLORS["unplaced"])
            row += 1
        row += 1

        # ── Quoten-Konflikte ─────────────────────────────────────────────
        conflicts = result.allocation.conflicts if result.allocation else []
        self._section_title(ws, row, f"Quoten-Konflikte ({len(conflicts)})")
        row += 1
        self._write_header_row(ws, ["Gruppe", "Größe", "Platziert", "Offen", "Grund"], row)
        row += 1
        for c in conflicts:
            self._write_row(ws, row, [c.group_key, c.group_size, c.placed, c.unplaced, c.reason],
                            COLORS["warning"])
            row += 1
        row += 1

        # ── Parität ──────────────────────────────────────────────────────
        warnings = list(result.parity.warnings) if result.parity else []
        if result.optimization is not None and result.optimization.parity_warnings:
            warnings = result.optimization.parity_warnings
        self._section_title(ws, row, f"Paritäts-Abweichungen ({len(warnings)})")
        row += 1
        self._write_header_row(ws, ["Klasse", "Größe", "Quote", "Soll", "Abweichung (Pp.)", "Pool erschöpft"], row)
        row += 1
        for w in warnings:
            self._write_row(ws, row, [
                w.class_id, w.size, f"{w.ratio:.0%}", f"{w.global_ratio:.0%}",
                w.deviation, "ja" if w.pool_limited else "nein",
            ], COLORS["warning"])
            row += 1
        row += 1

        # ── Optimierung ──────────────────────────────────────────────────
        opt = result.optimization
        if opt is None:
            return
        self._section_title(ws, row, "Heterogenitäts-Optimierung")
        row += 1
        self._write_header_row(ws, ["Kennzahl", "Wert"], row)
        row += 1
        for name, value in [
            ("Score vorher", round(opt.initial_score, 4)),
            ("Score nachher", round(opt.final_score, 4)),
            ("Iterationen", opt.iterations),
            ("Tausche", opt.swaps_applied),
            ("davon verbessernd", opt.improving_swaps),
            ("Abbruchgrund", opt.stop_reason),
        ]:
            self._write_row(ws, row, [name, value])
            row += 1
        row += 1

        self._write_header_row(ws, ["Merkmal", "Streuung vorher", "Streuung nachher",
                                    "Varianz Ø vorher", "Varianz Ø nachher"], row)
        row += 1
        after = {b.attribute: b for b in opt.breakdown_after}
        for b in opt.breakdown_before:
            a = after.get(b.attribute, b)
            self._write_row(ws, row, [
                SCORE_LABELS.get(b.attribute, b.attribute),
                b.intra_std, a.intra_std, b.inter_variance, a.inter_variance,
            ])
            row += 1
