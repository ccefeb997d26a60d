from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Debtor(BaseModel):
    client_id: str
    client_name: str
    debt_amount: int = Field(..., ge=0)
    sessions_count: int = Field(..., ge=1)


class ReceiptReminder(BaseModel):
    client_id: str
    client_name: str
    session_id: str
    session_date: datetime


class RecentTransaction(BaseModel):
    id: str
    client_id: str
    client_name: str
    amount: int = Field(..., ge=0)
    date: datetime
    payment_method: Optional[str] = None


class FinancialSummary(BaseModel):
    """Derived view of the practice's money; recomputed on every request."""

    period_start: datetime
    period_end: datetime
    total_revenue: int = Field(..., ge=0)
    revenue_breakdown: Dict[str, int] = Field(default_factory=dict)
    expected_revenue: int = Field(..., ge=0)
    total_debt: int = Field(..., ge=0)
    debt_sessions_count: int = Field(..., ge=0)
    debtors: List[Debtor] = Field(default_factory=list)
    receipts_to_send_count: int = Field(..., ge=0)
    receipt_reminders: List[ReceiptReminder] = Field(default_factory=list)
    recent_transactions: List[RecentTransaction] = Field(default_factory=list)


class ExportTransaction(BaseModel):
    """One paid session as written to the downloadable ledger."""

    date: datetime
    client_name: str
    client_display_id: str = ""
    client_source: str = ""
    amount: int = Field(..., ge=0)
    payment_method: Optional[str] = None
    receipt_sent: bool


class TransactionExportResponse(BaseModel):
    start_date: date
    end_date: date
    items: List[ExportTransaction]
    total: int = Field(..., ge=0)


class PeriodStatistics(BaseModel):
    period_start: datetime
    period_end: datetime
    sessions_count: int = Field(..., ge=0)
    paid_sessions_count: int = Field(..., ge=0)
    payment_rate: float = Field(..., ge=0, le=100)
    average_session_fee: float = Field(..., ge=0)


class MonthlyRevenue(BaseModel):
    year: int
    month: int = Field(..., ge=1, le=12)
    revenue: int = Field(..., ge=0)


class RevenueTrendResponse(BaseModel):
    items: List[MonthlyRevenue]
