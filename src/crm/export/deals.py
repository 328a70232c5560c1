"""Deal export -- the in-memory deal collection as a spreadsheet file.

Pure, synchronous, one-shot transforms: they take the rows the board already
holds and return file bytes. Nothing is fetched.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date, datetime
from io import BytesIO, StringIO
from typing import Any

import structlog
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from src.crm.entities.schemas import PipelineStage, label_for

logger = structlog.get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

HEADERS = [
    "Nom",
    "Étape",
    "Montant (€)",
    "Probabilité (%)",
    "Taux de commission (%)",
    "Commission (€)",
    "Clôture prévue",
    "Contact",
    "Bien",
    "Créée le",
]


def _get(deal: Any, name: str) -> Any:
    if isinstance(deal, dict):
        return deal.get(name)
    return getattr(deal, name, None)


def _as_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return value.date()
    return value


def _relation(deal: Any, relation: str, *fields: str) -> str:
    related = _get(deal, relation) or {}
    for name in fields:
        if related.get(name):
            return str(related[name])
    return ""


def deal_rows(deals: Iterable[Any]) -> list[list[Any]]:
    """One row per deal, typed (numbers stay numbers, dates stay dates)."""
    rows = []
    for deal in deals:
        stage = _get(deal, "stage")
        rows.append(
            [
                _get(deal, "name") or "",
                label_for(stage, PipelineStage),
                float(_get(deal, "amount") or 0),
                int(_get(deal, "probability") or 0),
                float(_get(deal, "commission_rate") or 0),
                float(_get(deal, "commission_amount") or 0),
                _as_date(_get(deal, "expected_close_date")),
                _relation(deal, "contacts", "full_name"),
                _relation(deal, "properties", "title", "address"),
                _as_date(_get(deal, "created_at")),
            ]
        )
    return rows


def deals_to_xlsx(deals: Iterable[Any], sheet_title: str = "Affaires") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    rows = deal_rows(deals)
    for row in rows:
        ws.append(row)

    for index, header in enumerate(HEADERS, start=1):
        letter = get_column_letter(index)
        width = max([len(header)] + [len(str(r[index - 1] or "")) for r in rows])
        ws.column_dimensions[letter].width = min(width + 2, 50)
        if header.endswith("(€)"):
            for cell in ws[letter][1:]:
                cell.number_format = "#,##0.00"
        elif header in ("Clôture prévue", "Créée le"):
            for cell in ws[letter][1:]:
                cell.number_format = "DD/MM/YYYY"
    ws.freeze_panes = "A2"

    output = BytesIO()
    wb.save(output)
    logger.info("export.deals_xlsx", rows=len(rows))
    return output.getvalue()


def deals_to_csv(deals: Iterable[Any]) -> bytes:
    """Semicolon-separated, UTF-8 with BOM, French decimal commas."""
    output = StringIO()
    writer = csv.writer(output, delimiter=";", lineterminator="\r\n")
    writer.writerow(HEADERS)

    rows = deal_rows(deals)
    for row in rows:
        writer.writerow([_csv_cell(value) for value in row])
    logger.info("export.deals_csv", rows=len(rows))
    return output.getvalue().encode("utf-8-sig")


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, float):
        return f"{value:.2f}".replace(".", ",")
    return str(value)
