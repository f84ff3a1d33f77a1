"""Core payment orchestration logic."""
from .errors import (
    ErrorCode,
    GatewayError,
    NetworkError,
    PaymentError,
    PaymentValidationError,
    RedirectError,
)
from .flow import PaymentFlow
from .gateway import GatewayInvoker
from .models import (
    AttemptStatus,
    CreateTransactionRequest,
    PaymentAttempt,
    PaymentOutcome,
    PaymentStatus,
    PaymentStatusCode,
    Provider,
    ServiceType,
    Transaction,
)
from .reconciliation import StatusReconciler
from .redirect import ManualHandoff, Navigator, RedirectResult, RedirectStrategy
from .transactions import TransactionInitiator

__all__ = [
    "AttemptStatus",
    "CreateTransactionRequest",
    "ErrorCode",
    "GatewayError",
    "GatewayInvoker",
    "ManualHandoff",
    "Navigator",
    "NetworkError",
    "PaymentAttempt",
    "PaymentError",
    "PaymentFlow",
    "PaymentOutcome",
    "PaymentStatus",
    "PaymentStatusCode",
    "PaymentValidationError",
    "Provider",
    "RedirectError",
    "RedirectResult",
    "RedirectStrategy",
    "ServiceType",
    "StatusReconciler",
    "Transaction",
    "TransactionInitiator",
]
