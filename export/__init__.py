"""Export-Modul: Excel (openpyxl) für die Klassenverteilung."""

from export.excel_export import ExcelExporter

__all__ = ["ExcelExporter"]
