"""
Payment error taxonomy and message extraction.

Every failure in the payment flow is expressed as a PaymentError subclass,
and every PaymentError converts to the same failed PaymentOutcome shape so
callers need a single failure branch.
"""
import json
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from .models import PaymentOutcome

# User-facing messages (Uzbek, as shown by the portal)
DEFAULT_PAYMENT_ERROR = "To'lovni amalga oshirishda xatolik yuz berdi."
NETWORK_ERROR_MESSAGE = "Internet aloqasi yo'q. Iltimos, internet aloqasini tekshiring."
TRANSACTION_NOT_CREATED_MESSAGE = "Transaction yaratilmadi. Server javob bermadi."
MISSING_URL_MESSAGE = "To'lov URL topilmadi. Iltimos, qayta urinib ko'ring."
INVALID_URL_MESSAGE = "To'lov sahifasi manzili noto'g'ri. Iltimos, qayta urinib ko'ring."
REDIRECT_FAILED_MESSAGE = "To'lov sahifasini ochib bo'lmadi. Iltimos, qayta urinib ko'ring."

STATUS_MESSAGES = {
    401: "Sizning sessiyangiz muddati tugagan. Iltimos, qayta kiring.",
    403: "Sizda bu amalni bajarish huquqi yo'q.",
    404: "Ma'lumot topilmadi.",
    500: "Server xatosi. Iltimos, keyinroq urinib ko'ring.",
}

# Field priority when pulling a message out of an error payload
MESSAGE_FIELDS = (
    "user_message",
    "userMessage",
    "error_note",
    "errorNote",
    "error",
    "detail",
    "message",
    "non_field_errors",
)


class ErrorCode(str, Enum):
    """Taxonomy codes carried by failed outcomes."""

    VALIDATION = "validation_error"
    NETWORK = "network_error"
    GATEWAY = "gateway_error"
    TRANSACTION_NOT_CREATED = "transaction_not_created"
    MISSING_PAYMENT_URL = "missing_payment_url"
    REDIRECT = "redirect_error"


class PaymentError(Exception):
    """Base exception for payment flow errors."""

    default_code = ErrorCode.GATEWAY

    def __init__(
        self,
        message: str,
        code: Union[ErrorCode, str, None] = None,
        provider_code: Any = None,
    ):
        """
        Initialize payment error.

        Args:
            message: Human-readable, localized message
            code: Taxonomy code (defaults to the class default)
            provider_code: Error code reported by the backend or gateway
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.provider_code = provider_code

    @property
    def code_value(self) -> str:
        return self.code.value if isinstance(self.code, ErrorCode) else str(self.code)

    def to_outcome(self, transaction_id: Optional[str] = None) -> "PaymentOutcome":
        """Convert to a failed outcome."""
        from .models import PaymentOutcome

        return PaymentOutcome(
            success=False,
            transaction_id=transaction_id,
            error_code=self.code_value,
            provider_code=self.provider_code,
            message=self.message,
        )


class PaymentValidationError(PaymentError):
    """Raised when payment input validation fails."""

    default_code = ErrorCode.VALIDATION


class NetworkError(PaymentError):
    """Raised when the backend cannot be reached."""

    default_code = ErrorCode.NETWORK

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE, **kwargs: Any):
        super().__init__(message, **kwargs)


class GatewayError(PaymentError):
    """Raised when the backend or provider reports a failure."""

    default_code = ErrorCode.GATEWAY

    def __init__(
        self,
        message: str,
        code: Union[ErrorCode, str, None] = None,
        provider_code: Any = None,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message, code=code, provider_code=provider_code)
        self.status_code = status_code
        self.payload = payload


class RedirectError(PaymentError):
    """Raised when a checkout URL is unusable or navigation did not happen."""

    default_code = ErrorCode.REDIRECT


def _stringify(value: Any) -> Optional[str]:
    if value is None or value == "" or value == [] or value == {}:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        for item in value:
            text = _stringify(item)
            if text:
                return text
        return None
    if isinstance(value, dict):
        return extract_error_message(value, default=None) or json.dumps(value, ensure_ascii=False)
    return json.dumps(value, ensure_ascii=False)


def extract_error_message(
    payload: Any, default: Optional[str] = DEFAULT_PAYMENT_ERROR
) -> Optional[str]:
    """
    Pull the best human-readable message out of an error payload.

    Order: user-facing message, provider error note, generic error, detail,
    message, first non-field error, raw string, default. Nested objects are
    searched with the same order.

    Args:
        payload: Error payload (dict, string, list or anything else)
        default: Returned when nothing usable is found

    Returns:
        Optional[str]: Extracted message
    """
    if isinstance(payload, str):
        return payload or default

    if isinstance(payload, dict):
        for field in MESSAGE_FIELDS:
            text = _stringify(payload.get(field))
            if text:
                return text
        return default

    if isinstance(payload, list):
        return _stringify(payload) or default

    return default


def message_for_status(status_code: Optional[int], payload: Any = None) -> str:
    """
    Message for an HTTP error response.

    Auth, permission, not-found and server errors use fixed messages;
    anything else falls back to the payload.
    """
    if status_code is not None:
        if status_code >= 500:
            return STATUS_MESSAGES[500]
        if status_code in STATUS_MESSAGES:
            return STATUS_MESSAGES[status_code]
    return extract_error_message(payload) or DEFAULT_PAYMENT_ERROR
