"""Spreadsheet rendering for the transaction ledger export."""

from __future__ import annotations

import io
from datetime import date
from typing import Dict, Iterable, List, Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from .. import schemas

SHEET_NAME = "Транзакции"
DATE_FORMAT = "%d.%m.%Y %H:%M"

EXPORT_COLUMNS: List[str] = [
    "Дата",
    "Клиент",
    "ID клиента",
    "Источник",
    "Сумма",
    "Способ оплаты",
    "Чек отправлен",
]

CODE_LABELS: Dict[str, str] = {
    "card": "Карта",
    "cash": "Наличные",
    "transfer": "Перевод",
    "platform": "Платформа",
    "self-employed": "Самозанятый",
    "ip": "ИП",
}


def localize_code(code: Optional[str]) -> str:
    """Translate a payment code for display; unknown codes are kept as is."""

    if code is None:
        return ""
    return CODE_LABELS.get(code, code)


def build_transactions_frame(rows: Iterable[schemas.ExportTransaction]) -> pd.DataFrame:
    records = [
        {
            "Дата": row.date.strftime(DATE_FORMAT),
            "Клиент": row.client_name,
            "ID клиента": row.client_display_id,
            "Источник": row.client_source,
            "Сумма": row.amount,
            "Способ оплаты": localize_code(row.payment_method),
            "Чек отправлен": "Да" if row.receipt_sent else "Нет",
        }
        for row in rows
    ]
    return pd.DataFrame.from_records(records, columns=EXPORT_COLUMNS)


def render_transactions_xlsx(rows: Iterable[schemas.ExportTransaction]) -> bytes:
    frame = build_transactions_frame(rows)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        worksheet = writer.sheets[SHEET_NAME]
        for index, column in enumerate(EXPORT_COLUMNS, start=1):
            values = [column, *frame[column].astype(str).tolist()]
            width = max(len(value) for value in values) + 2
            worksheet.column_dimensions[get_column_letter(index)].width = width
    return buffer.getvalue()


def export_filename(start: date, end: date) -> str:
    return f"transactions_{start.isoformat()}_{end.isoformat()}.xlsx"
