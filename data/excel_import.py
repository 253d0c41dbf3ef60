"""Excel-Import und Template-Generator für Schüler- und Klassendaten.

Template-Generator: Leere Excel-Vorlage mit Kopfzeilen und Beispielzeilen.
Import-Funktion:    Excel → PlacementData mit Validierung und StructureReport.

Spaltennamen werden tolerant erkannt (deutsch oder wie in den französischen
Schullisten: SEXE, OPT, ASSO, DISSO, COM, TRA, PART, ABS, CLASSE).
"""

import unicodedata
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from config.defaults import SCORE_ATTRIBUTES, SCORE_LABELS
from config.schema import PlacementConfig
from models.destination_class import CombinedAllocation, DestinationClass
from models.placement_data import PlacementData, StructureReport
from models.student import Student
from solver.normalization import build_synonym_table
from solver.quotas import parse_quotas


class ExcelImportError(Exception):
    """Fehler beim Excel-Import."""


# ─── Blatt- und Spaltennamen ──────────────────────────────────────────────────

SHEET_STUDENTS = "Schüler"
SHEET_CLASSES = "Klassen"
SHEET_COMBINATIONS = "Kombinationen"

_SHEET_ALIASES: dict[str, tuple[str, ...]] = {
    SHEET_STUDENTS: ("schuler", "schueler", "eleves", "students"),
    SHEET_CLASSES: ("klassen", "classes"),
    SHEET_COMBINATIONS: ("kombinationen", "combinaisons", "combinations"),
}

STUDENT_HEADERS = [
    "ID", "Name", "Geschlecht", "LV2", "Option", "Zusammen", "Getrennt",
    *(SCORE_LABELS[a] for a in SCORE_ATTRIBUTES),
    "Zielklasse", "Platziert",
]
CLASS_HEADERS = ["Klasse", "Zielgröße", "Quoten"]
COMBINATION_HEADERS = ["Kombination", "Typ", "Zielklasse", "Priorität"]

# Feldname → erkannte Kopfzeilen (bereinigt, siehe _clean_header)
_STUDENT_COLUMNS: dict[str, tuple[str, ...]] = {
    "id": ("id", "nr", "numero", "num"),
    "name": ("name", "nom", "eleve", "schuler", "schueler"),
    "gender": ("geschlecht", "sexe", "sex", "gender"),
    "language": ("lv2", "langue", "sprache"),
    "option": ("option", "opt", "wahlfach"),
    "together_code": ("zusammen", "asso", "together"),
    "apart_code": ("getrennt", "disso", "apart"),
    "communication": ("kommunikation", "com", "communication"),
    "work": ("arbeit", "tra", "travail", "work"),
    "participation": ("mitarbeit", "part", "participation"),
    "attendance": ("anwesenheit", "abs", "absences", "attendance"),
    "destination": ("zielklasse", "classe", "klasse", "destination"),
    "placed": ("platziert", "place", "placed"),
}

_CLASS_COLUMNS: dict[str, tuple[str, ...]] = {
    "id": ("klasse", "classe", "class", "id"),
    "target_size": ("zielgrosse", "zielgroesse", "effectif", "grosse", "size"),
    "quotas": ("quoten", "quotas", "quota", "options"),
}

_COMBINATION_COLUMNS: dict[str, tuple[str, ...]] = {
    "combination": ("kombination", "combinaison", "combination"),
    "type": ("typ", "type"),
    "target_class": ("zielklasse", "classe", "klasse", "target"),
    "priority": ("prioritat", "prioritaet", "priorite", "priority"),
}

_TRUE_VALUES = {"ja", "j", "x", "1", "true", "oui", "yes", "wahr"}

_TYPE_ALIASES = {
    "together": "together", "zusammen": "together", "ensemble": "together",
    "separate": "separate", "getrennt": "separate", "separe": "separate",
}


def _clean_header(raw) -> str:
    """Kopfzeile → Kleinbuchstaben ohne Akzente, Leerzeichen und Satzzeichen."""
    text = unicodedata.normalize("NFKD", str(raw or "").replace("ß", "ss"))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower()
    return "".join(ch for ch in text if ch.isalnum())


def _cell_str(value) -> str:
    """Zellwert als String; 12.0 → "12"."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# ─── TEMPLATE-GENERATOR ───────────────────────────────────────────────────────

def generate_template(config: PlacementConfig, path: Path) -> None:
    """Erzeugt eine leere Excel-Vorlage.

    Blätter:
      - Schüler:        eine Zeile pro Schüler (Beispielzeile kursiv)
      - Klassen:        Zielklasse, Zielgröße, Quoten-String
      - Kombinationen:  optionale Entscheidungen für LV2+Option-Kombinationen
    """
    try:
        import openpyxl
        from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
        from openpyxl.utils import get_column_letter
        from openpyxl.worksheet.datavalidation import DataValidation
    except ImportError:
        raise ImportError("openpyxl nicht installiert. Bitte: pip install openpyxl")

    wb = openpyxl.Workbook()
    wb.properties.title = f"Klassenverteilung {config.school_name} ({config.level})"

    # ── Hilfs-Styles ─────────────────────────────────────────────────────────
    hdr_font = Font(bold=True, color="FFFFFF", size=11)
    hdr_fill = PatternFill("solid", fgColor="2E6DA4")
    ex_font = Font(italic=True, color="888888")
    ex_fill = PatternFill("solid", fgColor="F5F5F5")
    center = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin", color="BBBBBB")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)

    def write_header(ws, headers: list[str], widths: list[float]) -> None:
        for col, (h, w) in enumerate(zip(headers, widths), 1):
            cell = ws.cell(row=1, column=col, value=h)
            cell.font = hdr_font
            cell.fill = hdr_fill
            cell.alignment = center
            cell.border = border
            ws.column_dimensions[get_column_letter(col)].width = w
        ws.freeze_panes = "A2"

    def write_example(ws, row: int, values: list) -> None:
        for col, val in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=val)
            cell.font = ex_font
            cell.fill = ex_fill
            cell.border = border

    # ── Blatt 1: Schüler ─────────────────────────────────────────────────────
    ws_s = wb.active
    ws_s.title = SHEET_STUDENTS
    write_header(ws_s, STUDENT_HEADERS,
                 [8, 26, 12, 8, 10, 10, 10, 14, 8, 11, 13, 11, 10])
    write_example(ws_s, 2, ["E001", "Dupont, Léa", "F", "ITA", "CHAV", "", "",
                            3, 2.5, 3, 4, "", "nein"])

    dv_gender = DataValidation(type="list", formula1='"F,M"', allow_blank=False)
    dv_gender.sqref = "C3:C2000"
    ws_s.add_data_validation(dv_gender)
    dv_score = DataValidation(
        type="decimal", operator="between", formula1="0", formula2="5",
        allow_blank=True,
    )
    dv_score.sqref = "H3:K2000"
    ws_s.add_data_validation(dv_score)

    # ── Blatt 2: Klassen ─────────────────────────────────────────────────────
    ws_c = wb.create_sheet(SHEET_CLASSES)
    write_header(ws_c, CLASS_HEADERS, [10, 12, 48])
    write_example(ws_c, 2, ["5A", 25, "ITA=11"])
    write_example(ws_c, 3, ["5B", 25, "CHAV=10"])
    write_example(ws_c, 4, ["5C", 25, "ITA=4, CHAV=4"])

    # ── Blatt 3: Kombinationen ───────────────────────────────────────────────
    ws_k = wb.create_sheet(SHEET_COMBINATIONS)
    write_header(ws_k, COMBINATION_HEADERS, [16, 12, 12, 10])
    dv_type = DataValidation(type="list", formula1='"zusammen,getrennt"', allow_blank=False)
    dv_type.sqref = "B2:B200"
    ws_k.add_data_validation(dv_type)
    dv_prio = DataValidation(type="list", formula1='"lv2,opt"', allow_blank=True)
    dv_prio.sqref = "D2:D200"
    ws_k.add_data_validation(dv_prio)

    # ── Speichern ─────────────────────────────────────────────────────────────
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))


# ─── IMPORT ───────────────────────────────────────────────────────────────────

class ExcelImporter:
    """Importiert Schüler und Zielklassen aus einer Excel-Datei."""

    def __init__(self, path: Path, config: PlacementConfig) -> None:
        self.path = Path(path)
        self.config = config
        self.synonyms = build_synonym_table(config.extra_synonyms)
        self._wb = None
        self._errors: list[str] = []
        self._warnings: list[str] = []

    def _open(self):
        import openpyxl
        if not self.path.exists():
            raise ExcelImportError(f"Datei nicht gefunden: {self.path}")
        try:
            self._wb = openpyxl.load_workbook(
                str(self.path), read_only=True, data_only=True
            )
        except Exception as e:
            raise ExcelImportError(f"Fehler beim Öffnen der Excel-Datei: {e}")

    def _get_sheet(self, name: str):
        if self._wb is None:
            self._open()
        wanted = {_clean_header(name), *_SHEET_ALIASES.get(name, ())}
        for sn in self._wb.sheetnames:
            if _clean_header(sn) in wanted:
                return self._wb[sn]
        return None

    def _sheet_rows(
        self, sheet, columns: dict[str, tuple[str, ...]], required: tuple[str, ...]
    ) -> list[tuple[int, dict[str, str]]]:
        """Tabellenblatt → [(Zeilennummer, {Feld: Wert})] (erste Zeile = Header)."""
        rows = list(sheet.iter_rows(values_only=True))
        if not rows:
            raise ExcelImportError(f"Blatt '{sheet.title}' ist leer.")

        mapping: dict[int, str] = {}
        for i, raw in enumerate(rows[0]):
            header = _clean_header(raw)
            for field, aliases in columns.items():
                if header in aliases and field not in mapping.values():
                    mapping[i] = field
                    break

        missing = [f for f in required if f not in mapping.values()]
        if missing:
            raise ExcelImportError(
                f"Blatt '{sheet.title}': Pflichtspalten fehlen: {', '.join(missing)}"
            )

        result = []
        for row_no, row in enumerate(rows[1:], 2):
            values = {
                field: _cell_str(row[i]) if i < len(row) else ""
                for i, field in mapping.items()
            }
            if not any(values.values()):
                continue
            result.append((row_no, values))
        return result

    # ── Schüler ─────────────────────────────────────────────────────────────

    def _parse_score(self, raw: str, label: str, row_id: str) -> Optional[float]:
        if not raw:
            return None
        try:
            return float(raw.replace(",", "."))
        except ValueError:
            self._warnings.append(
                f"{row_id}: {label} '{raw}' ist keine Zahl – Standardwert verwendet."
            )
            return None

    def import_students(self) -> list[Student]:
        sheet = self._get_sheet(SHEET_STUDENTS)
        if sheet is None:
            raise ExcelImportError(f"Blatt '{SHEET_STUDENTS}' fehlt.")

        students: list[Student] = []
        for row_no, values in self._sheet_rows(sheet, _STUDENT_COLUMNS, ("name", "gender")):
            row_id = f"Schüler Zeile {row_no}"
            sid = values.get("id") or f"E{row_no - 1:03d}"

            fields = {
                "id": sid,
                "name": values.get("name", ""),
                "gender": values.get("gender", ""),
                "language": values.get("language", ""),
                "option": values.get("option", ""),
                "together_code": values.get("together_code", ""),
                "apart_code": values.get("apart_code", ""),
            }
            for attribute in SCORE_ATTRIBUTES:
                score = self._parse_score(
                    values.get(attribute, ""), SCORE_LABELS[attribute], row_id
                )
                if score is not None:
                    fields[attribute] = score

            destination = values.get("destination") or None
            placed_flag = values.get("placed", "").lower() in _TRUE_VALUES
            if placed_flag and destination is None:
                self._warnings.append(
                    f"{row_id}: als platziert markiert, aber ohne Zielklasse – gilt als offen."
                )
            fields["destination"] = destination

            try:
                students.append(Student(**fields))
            except ValidationError as e:
                problems = "; ".join(err["msg"] for err in e.errors())
                self._errors.append(f"{row_id} ({sid}): {problems}")
        return students

    # ── Klassen ─────────────────────────────────────────────────────────────

    def import_classes(self) -> list[DestinationClass]:
        sheet = self._get_sheet(SHEET_CLASSES)
        if sheet is None:
            raise ExcelImportError(f"Blatt '{SHEET_CLASSES}' fehlt.")

        classes: list[DestinationClass] = []
        for row_no, values in self._sheet_rows(sheet, _CLASS_COLUMNS, ("id", "target_size")):
            row_id = f"Klassen Zeile {row_no}"
            class_id = values.get("id", "")
            if not class_id:
                self._errors.append(f"{row_id}: Klassenname fehlt.")
                continue
            try:
                target_size = int(float(values.get("target_size", "").replace(",", ".")))
            except ValueError:
                self._errors.append(
                    f"{row_id} ({class_id}): Zielgröße '{values.get('target_size')}' ist keine Zahl."
                )
                continue

            quota_warnings: list[str] = []
            quotas = parse_quotas(values.get("quotas", ""), quota_warnings, self.synonyms)
            self._warnings.extend(f"Klasse {class_id}: {w}" for w in quota_warnings)
            try:
                classes.append(DestinationClass(
                    id=class_id, target_size=target_size, quotas=quotas
                ))
            except ValidationError as e:
                problems = "; ".join(err["msg"] for err in e.errors())
                self._errors.append(f"{row_id} ({class_id}): {problems}")
        return classes

    # ── Kombinationen ───────────────────────────────────────────────────────

    def import_combinations(self) -> list[CombinedAllocation]:
        """Optionales Blatt; fehlt es, gibt es keine Kombi-Entscheidungen."""
        sheet = self._get_sheet(SHEET_COMBINATIONS)
        if sheet is None:
            return []
        try:
            rows = self._sheet_rows(sheet, _COMBINATION_COLUMNS, ("combination", "type"))
        except ExcelImportError as e:
            self._warnings.append(str(e))
            return []

        decisions: list[CombinedAllocation] = []
        for row_no, values in rows:
            row_id = f"Kombinationen Zeile {row_no}"
            kind = _TYPE_ALIASES.get(_clean_header(values.get("type", "")))
            if kind is None:
                self._warnings.append(
                    f"{row_id}: Typ '{values.get('type')}' unbekannt "
                    f"(zusammen/getrennt) – übersprungen."
                )
                continue
            priority = values.get("priority", "").lower() or "lv2"
            try:
                decisions.append(CombinedAllocation(
                    combination=values.get("combination", ""),
                    type=kind,
                    target_class=values.get("target_class") or None,
                    priority=priority,
                ))
            except ValidationError as e:
                problems = "; ".join(err["msg"] for err in e.errors())
                self._warnings.append(f"{row_id}: {problems} – übersprungen.")
        return decisions

    # ── Vollständiger Import ───────────────────────────────────────────────

    def import_all(self) -> tuple[PlacementData, StructureReport]:
        """Importiert alle Daten → PlacementData + StructureReport."""
        self._open()
        self._errors = []
        self._warnings = []

        classes = self.import_classes()
        students = self.import_students()
        combinations = self.import_combinations()

        if self._errors:
            raise ExcelImportError(
                f"Import mit {len(self._errors)} Fehlern:\n"
                + "\n".join(f"  • {e}" for e in self._errors)
            )

        data = PlacementData(
            students=students,
            classes=classes,
            config=self.config,
            combined_allocations=combinations,
        )

        structure = data.validate_structure()
        report = StructureReport(
            is_valid=structure.is_valid,
            errors=structure.errors,
            warnings=structure.warnings + self._warnings,
        )
        return data, report


def import_from_excel(
    path: Path, config: PlacementConfig
) -> tuple[PlacementData, StructureReport]:
    """Importiert Schüler und Zielklassen aus einer Excel-Datei.

    Args:
        path:   Pfad zur Excel-Datei (.xlsx)
        config: Konfiguration (Synonyme für die Quoten-Normalisierung)

    Returns:
        (PlacementData, StructureReport)

    Raises:
        ExcelImportError: Fehlende Blätter/Spalten oder ungültige Zeilen.
    """
    importer = ExcelImporter(path, config)
    return importer.import_all()
