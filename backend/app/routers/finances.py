"""Router exposing the financial summary, statistics and the transaction export."""

from __future__ import annotations

import logging
from datetime import date
from typing import Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import CurrentUser, get_current_user
from ..services import FinanceService, FinanceServiceError
from ..services.exports import export_filename, render_transactions_xlsx
from ..services.finances import MAX_TREND_MONTHS
from ..timeutils import end_of_day, month_bounds, practice_now, start_of_day

LOGGER = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

router = APIRouter()


def _resolve_period(start_date: Optional[date], end_date: Optional[date]) -> Tuple[date, date]:
    today = practice_now().date()
    first, last = month_bounds(today.year, today.month)
    start = start_date or first
    end = end_date or last
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date cannot be after end_date",
        )
    return start, end


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Financial data is temporarily unavailable",
    )


@router.get("/summary", response_model=schemas.FinancialSummary)
def get_summary(
    start_date: Optional[date] = Query(None, description="First day of the period; defaults to this month"),
    end_date: Optional[date] = Query(None, description="Last day of the period (inclusive)"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.FinancialSummary:
    start, end = _resolve_period(start_date, end_date)
    try:
        return FinanceService.compute_summary(db, user.id, start_of_day(start), end_of_day(end))
    except FinanceServiceError as exc:
        raise _unavailable() from exc


@router.get("/statistics", response_model=schemas.PeriodStatistics)
def get_statistics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.PeriodStatistics:
    start, end = _resolve_period(start_date, end_date)
    try:
        return FinanceService.period_statistics(db, user.id, start_of_day(start), end_of_day(end))
    except FinanceServiceError as exc:
        raise _unavailable() from exc


@router.get("/trend", response_model=schemas.RevenueTrendResponse)
def get_revenue_trend(
    months: int = Query(6, ge=1, le=MAX_TREND_MONTHS, description="Number of calendar months"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.RevenueTrendResponse:
    try:
        items = FinanceService.monthly_revenue_trend(db, user.id, months)
    except FinanceServiceError as exc:
        raise _unavailable() from exc
    return schemas.RevenueTrendResponse(items=items)


@router.get(
    "/transactions/export",
    response_model=schemas.TransactionExportResponse,
    responses={200: {"content": {XLSX_MEDIA_TYPE: {}}}},
)
def export_transactions(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    export_format: Literal["json", "xlsx"] = Query("json", alias="format"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Return paid sessions for the period as JSON rows or an xlsx workbook."""
    start, end = _resolve_period(start_date, end_date)
    try:
        rows = FinanceService.transactions_for_export(db, user.id, start, end)
    except FinanceServiceError as exc:
        raise _unavailable() from exc

    if export_format == "xlsx":
        LOGGER.info("Rendering %d transactions for %s..%s", len(rows), start, end)
        return Response(
            content=render_transactions_xlsx(rows),
            media_type=XLSX_MEDIA_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="{export_filename(start, end)}"'
            },
        )

    return schemas.TransactionExportResponse(
        start_date=start, end_date=end, items=rows, total=len(rows)
    )
