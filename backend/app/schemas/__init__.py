"""Expose Pydantic schemas for convenient imports."""

from .common import PaginatedResponse
from .client import (
    ClientBase,
    ClientCreate,
    ClientListResponse,
    ClientRead,
    ClientSessionStats,
    ClientUpdate,
)
from .finances import (
    Debtor,
    ExportTransaction,
    FinancialSummary,
    MonthlyRevenue,
    PeriodStatistics,
    ReceiptReminder,
    RecentTransaction,
    RevenueTrendResponse,
    TransactionExportResponse,
)
from .session import (
    SessionCreate,
    SessionListResponse,
    SessionPaymentUpdate,
    SessionRead,
    SessionRescheduleRequest,
    SessionUpdate,
)
from .scheduling import ConflictCheckResult, ProposedSlot, SessionCompletionResponse

__all__ = [
    "PaginatedResponse",
    "ClientBase",
    "ClientCreate",
    "ClientRead",
    "ClientListResponse",
    "ClientSessionStats",
    "ClientUpdate",
    "Debtor",
    "ExportTransaction",
    "FinancialSummary",
    "MonthlyRevenue",
    "PeriodStatistics",
    "ReceiptReminder",
    "RecentTransaction",
    "RevenueTrendResponse",
    "TransactionExportResponse",
    "SessionCreate",
    "SessionRead",
    "SessionListResponse",
    "SessionPaymentUpdate",
    "SessionRescheduleRequest",
    "SessionUpdate",
    "ConflictCheckResult",
    "ProposedSlot",
    "SessionCompletionResponse",
]

ClientListResponse.model_rebuild(_types_namespace={"ClientRead": ClientRead})
SessionListResponse.model_rebuild(_types_namespace={"SessionRead": SessionRead})
