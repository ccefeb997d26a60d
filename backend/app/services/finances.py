"""Financial aggregation over a practitioner's sessions."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..timeutils import end_of_day, month_bounds, practice_now, shift_month, start_of_day, to_practice_local
from .clients import ClientService

LOGGER = logging.getLogger(__name__)

UNKNOWN_CLIENT = "Unknown Client"
UNKNOWN_METHOD = "unknown"
RECENT_TRANSACTIONS_LIMIT = 5
MAX_TREND_MONTHS = 24


class FinanceServiceError(RuntimeError):
    """Raised when session data cannot be loaded for a financial report."""


class FinanceService:
    """Derives revenue, debt, receipt and export views from sessions.

    Nothing here is persisted: every call recomputes from the current rows so
    repeated calls over unchanged data return identical results.
    """

    @staticmethod
    def _base_query(db: Session, user_id: str):
        return db.query(models.TherapySession).filter(
            models.TherapySession.user_id == user_id,
            models.TherapySession.status != models.SessionStatus.CANCELLED,
        )

    @classmethod
    def _period_sessions(
        cls, db: Session, user_id: str, start: datetime, end: datetime
    ) -> List[models.TherapySession]:
        return (
            cls._base_query(db, user_id)
            .filter(
                models.TherapySession.scheduled_at >= start,
                models.TherapySession.scheduled_at <= end,
            )
            .order_by(models.TherapySession.scheduled_at, models.TherapySession.id)
            .all()
        )

    @classmethod
    def _unpaid_completed_sessions(
        cls, db: Session, user_id: str
    ) -> List[models.TherapySession]:
        return (
            cls._base_query(db, user_id)
            .filter(
                models.TherapySession.status == models.SessionStatus.COMPLETED,
                models.TherapySession.paid.is_(False),
            )
            .all()
        )

    @classmethod
    def _receipt_pending_sessions(
        cls, db: Session, user_id: str
    ) -> List[models.TherapySession]:
        return (
            cls._base_query(db, user_id)
            .filter(
                models.TherapySession.paid.is_(True),
                models.TherapySession.receipt_sent.is_(False),
            )
            .all()
        )

    @staticmethod
    def _resolve_clients(
        db: Session, user_id: str, client_ids: Iterable[str]
    ) -> Dict[str, models.Client]:
        try:
            return ClientService.lookup_many(db, user_id, client_ids)
        except SQLAlchemyError as exc:
            LOGGER.warning(
                "Client lookup failed for user %s; names degrade to %r: %s",
                user_id,
                UNKNOWN_CLIENT,
                exc,
            )
            return {}

    @staticmethod
    def _client_name(clients: Dict[str, models.Client], client_id: str) -> str:
        client = clients.get(str(client_id))
        if client is None or not client.name:
            return UNKNOWN_CLIENT
        return client.name

    @staticmethod
    def _method_code(session: models.TherapySession) -> Optional[str]:
        method = session.payment_method
        if method is None:
            return None
        return method.value if isinstance(method, models.PaymentMethod) else str(method)

    @classmethod
    def compute_summary(
        cls,
        db: Session,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> schemas.FinancialSummary:
        """Build the financial summary for ``[start, end]`` (both inclusive).

        Revenue, expected revenue and recent transactions are period-scoped;
        debt and receipt reminders cover all time.
        """

        start = to_practice_local(start)
        end = to_practice_local(end)

        try:
            period_sessions = cls._period_sessions(db, user_id, start, end)
            debt_sessions = cls._unpaid_completed_sessions(db, user_id)
            receipt_sessions = cls._receipt_pending_sessions(db, user_id)
        except SQLAlchemyError as exc:
            LOGGER.warning("Unable to load sessions for financial summary: %s", exc)
            raise FinanceServiceError("Unable to load sessions for financial summary") from exc

        clients = cls._resolve_clients(
            db,
            user_id,
            [
                session.client_id
                for session in (*period_sessions, *debt_sessions, *receipt_sessions)
            ],
        )

        total_revenue = 0
        expected_revenue = 0
        breakdown: Dict[str, int] = defaultdict(int)
        for session in period_sessions:
            price = session.price or 0
            if session.paid:
                total_revenue += price
                breakdown[cls._method_code(session) or UNKNOWN_METHOD] += price
            elif session.status == models.SessionStatus.SCHEDULED:
                expected_revenue += price

        total_debt = 0
        debt_by_client: Dict[str, list[int]] = {}
        for session in debt_sessions:
            price = session.price or 0
            total_debt += price
            entry = debt_by_client.setdefault(str(session.client_id), [0, 0])
            entry[0] += price
            entry[1] += 1

        debtors = [
            schemas.Debtor(
                client_id=client_id,
                client_name=cls._client_name(clients, client_id),
                debt_amount=amount,
                sessions_count=count,
            )
            for client_id, (amount, count) in debt_by_client.items()
        ]
        debtors.sort(key=lambda debtor: (-debtor.debt_amount, debtor.client_name, debtor.client_id))

        reminders = []
        for session in receipt_sessions:
            client = clients.get(str(session.client_id))
            if client is not None and client.receipt_exempt:
                continue
            reminders.append(
                schemas.ReceiptReminder(
                    client_id=str(session.client_id),
                    client_name=cls._client_name(clients, session.client_id),
                    session_id=str(session.id),
                    session_date=session.scheduled_at,
                )
            )
        reminders.sort(key=lambda item: (item.session_date, item.session_id), reverse=True)

        paid_in_period = [session for session in period_sessions if session.paid]
        paid_in_period.sort(key=lambda item: (item.scheduled_at, str(item.id)), reverse=True)
        recent = [
            schemas.RecentTransaction(
                id=str(session.id),
                client_id=str(session.client_id),
                client_name=cls._client_name(clients, session.client_id),
                amount=session.price or 0,
                date=session.scheduled_at,
                payment_method=cls._method_code(session),
            )
            for session in paid_in_period[:RECENT_TRANSACTIONS_LIMIT]
        ]

        return schemas.FinancialSummary(
            period_start=start,
            period_end=end,
            total_revenue=total_revenue,
            revenue_breakdown=dict(breakdown),
            expected_revenue=expected_revenue,
            total_debt=total_debt,
            debt_sessions_count=len(debt_sessions),
            debtors=debtors,
            receipts_to_send_count=len(reminders),
            receipt_reminders=reminders,
            recent_transactions=recent,
        )

    @classmethod
    def transactions_for_export(
        cls,
        db: Session,
        user_id: str,
        start_date: date,
        end_date: date,
    ) -> List[schemas.ExportTransaction]:
        """Return every paid session between the two calendar days, oldest first.

        A failed fetch raises ``FinanceServiceError``; an empty list always
        means there was nothing to export.
        """

        start = start_of_day(start_date)
        end = end_of_day(end_date)
        try:
            sessions = (
                cls._base_query(db, user_id)
                .filter(
                    models.TherapySession.paid.is_(True),
                    models.TherapySession.scheduled_at >= start,
                    models.TherapySession.scheduled_at <= end,
                )
                .order_by(models.TherapySession.scheduled_at, models.TherapySession.id)
                .all()
            )
        except SQLAlchemyError as exc:
            LOGGER.warning("Unable to load transactions for export: %s", exc)
            raise FinanceServiceError("Unable to load transactions for export") from exc

        clients = cls._resolve_clients(db, user_id, [session.client_id for session in sessions])

        rows = []
        for session in sessions:
            client = clients.get(str(session.client_id))
            rows.append(
                schemas.ExportTransaction(
                    date=session.scheduled_at,
                    client_name=cls._client_name(clients, session.client_id),
                    client_display_id=(client.client_code or "") if client else "",
                    client_source=(client.source or "") if client else "",
                    amount=session.price or 0,
                    payment_method=cls._method_code(session),
                    receipt_sent=bool(session.receipt_sent),
                )
            )
        return rows

    @classmethod
    def period_statistics(
        cls,
        db: Session,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> schemas.PeriodStatistics:
        start = to_practice_local(start)
        end = to_practice_local(end)
        try:
            sessions = cls._period_sessions(db, user_id, start, end)
        except SQLAlchemyError as exc:
            raise FinanceServiceError("Unable to load sessions for statistics") from exc

        paid_prices = [session.price or 0 for session in sessions if session.paid]
        payment_rate = 0.0
        if sessions:
            payment_rate = round(len(paid_prices) / len(sessions) * 100, 2)
        average_fee = 0.0
        if paid_prices:
            average_fee = round(sum(paid_prices) / len(paid_prices), 2)

        return schemas.PeriodStatistics(
            period_start=start,
            period_end=end,
            sessions_count=len(sessions),
            paid_sessions_count=len(paid_prices),
            payment_rate=payment_rate,
            average_session_fee=average_fee,
        )

    @classmethod
    def monthly_revenue_trend(
        cls,
        db: Session,
        user_id: str,
        months: int = 6,
        reference: Optional[date] = None,
    ) -> List[schemas.MonthlyRevenue]:
        """Realised revenue per calendar month, oldest month first."""

        if months < 1 or months > MAX_TREND_MONTHS:
            raise ValueError(f"months must be between 1 and {MAX_TREND_MONTHS}")

        reference = reference or practice_now().date()
        buckets = [
            shift_month(reference.year, reference.month, offset)
            for offset in range(-(months - 1), 1)
        ]
        first_day, _ = month_bounds(*buckets[0])
        _, last_day = month_bounds(*buckets[-1])

        try:
            sessions = (
                cls._base_query(db, user_id)
                .filter(
                    models.TherapySession.paid.is_(True),
                    models.TherapySession.scheduled_at >= start_of_day(first_day),
                    models.TherapySession.scheduled_at <= end_of_day(last_day),
                )
                .all()
            )
        except SQLAlchemyError as exc:
            raise FinanceServiceError("Unable to load sessions for revenue trend") from exc

        revenue: Dict[tuple[int, int], int] = defaultdict(int)
        for session in sessions:
            key = (session.scheduled_at.year, session.scheduled_at.month)
            revenue[key] += session.price or 0

        return [
            schemas.MonthlyRevenue(year=year, month=month, revenue=revenue.get((year, month), 0))
            for year, month in buckets
        ]
