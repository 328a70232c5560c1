"""Spreadsheet export of the in-memory deal collection (XLSX via openpyxl, CSV)."""

from src.crm.export.deals import (
    CSV_MEDIA_TYPE,
    HEADERS,
    XLSX_MEDIA_TYPE,
    deal_rows,
    deals_to_csv,
    deals_to_xlsx,
)

__all__ = [
    "CSV_MEDIA_TYPE",
    "HEADERS",
    "XLSX_MEDIA_TYPE",
    "deal_rows",
    "deals_to_csv",
    "deals_to_xlsx",
]
