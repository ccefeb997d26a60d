from __future__ import annotations

import io
from datetime import date, datetime

import openpyxl
import pandas as pd
import pytest
from openpyxl.utils import get_column_letter

from backend.app import schemas
from backend.app.services.exports import (
    EXPORT_COLUMNS,
    SHEET_NAME,
    build_transactions_frame,
    export_filename,
    localize_code,
    render_transactions_xlsx,
)
from backend.app.services.finances import FinanceService, FinanceServiceError


def _row(**overrides) -> schemas.ExportTransaction:
    values = {
        "date": datetime(2024, 3, 4, 10, 5),
        "client_name": "Анна",
        "client_display_id": "A-1",
        "client_source": "yasno",
        "amount": 3500,
        "payment_method": "card",
        "receipt_sent": True,
    }
    values.update(overrides)
    return schemas.ExportTransaction(**values)


@pytest.mark.parametrize(
    ("code", "label"),
    [
        ("card", "Карта"),
        ("cash", "Наличные"),
        ("transfer", "Перевод"),
        ("platform", "Платформа"),
        ("self-employed", "Самозанятый"),
        ("ip", "ИП"),
        ("crypto", "crypto"),
        (None, ""),
    ],
)
def test_localize_code(code, label):
    assert localize_code(code) == label


def test_build_transactions_frame_formats_cells():
    frame = build_transactions_frame(
        [_row(), _row(payment_method=None, receipt_sent=False, client_name="Борис")]
    )

    assert list(frame.columns) == EXPORT_COLUMNS
    first = frame.iloc[0]
    assert first["Дата"] == "04.03.2024 10:05"
    assert first["Способ оплаты"] == "Карта"
    assert first["Чек отправлен"] == "Да"
    assert first["Сумма"] == 3500
    assert frame.iloc[1]["Способ оплаты"] == ""
    assert frame.iloc[1]["Чек отправлен"] == "Нет"


def test_empty_frame_keeps_headers():
    frame = build_transactions_frame([])

    assert frame.empty
    assert list(frame.columns) == EXPORT_COLUMNS


def test_render_transactions_xlsx_round_trips_through_pandas():
    content = render_transactions_xlsx([_row(), _row(amount=4000)])

    workbook = pd.read_excel(io.BytesIO(content), sheet_name=SHEET_NAME, engine="openpyxl")
    assert list(workbook.columns) == EXPORT_COLUMNS
    assert workbook["Сумма"].tolist() == [3500, 4000]
    assert workbook["Клиент"].tolist() == ["Анна", "Анна"]


def test_export_filename():
    assert export_filename(date(2024, 3, 1), date(2024, 3, 31)) == (
        "transactions_2024-03-01_2024-03-31.xlsx"
    )


def test_export_endpoint_json(client, make_client, make_session):
    record = make_client("Анна", client_code="A-1", source="zigmund")
    make_session(record, datetime(2024, 3, 4, 10), paid=True)

    response = client.get(
        "/finances/transactions/export",
        params={"start_date": "2024-03-01", "end_date": "2024-03-31"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 1
    assert payload["items"][0]["client_display_id"] == "A-1"
    assert payload["items"][0]["client_source"] == "zigmund"


def test_export_endpoint_xlsx(client, make_client, make_session):
    record = make_client("Анна")
    make_session(record, datetime(2024, 3, 4, 10), paid=True)

    response = client.get(
        "/finances/transactions/export",
        params={"start_date": "2024-03-01", "end_date": "2024-03-31", "format": "xlsx"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "transactions_2024-03-01_2024-03-31.xlsx" in response.headers["content-disposition"]
    workbook = pd.read_excel(io.BytesIO(response.content), sheet_name=SHEET_NAME)
    assert len(workbook) == 1


def test_export_endpoint_reports_failure(client, monkeypatch):
    def broken_export(*_args, **_kwargs):
        raise FinanceServiceError("boom")

    monkeypatch.setattr(FinanceService, "transactions_for_export", staticmethod(broken_export))

    response = client.get(
        "/finances/transactions/export",
        params={"start_date": "2024-03-01", "end_date": "2024-03-31"},
    )

    assert response.status_code == 503


def test_render_transactions_xlsx_sizes_every_column():
    content = render_transactions_xlsx([_row(client_name="Анастасия Владимировна")])

    worksheet = openpyxl.load_workbook(io.BytesIO(content))[SHEET_NAME]
    for index, header in enumerate(EXPORT_COLUMNS, start=1):
        width = worksheet.column_dimensions[get_column_letter(index)].width
        assert width >= len(header) + 2
    assert worksheet.column_dimensions["B"].width == len("Анастасия Владимировна") + 2
