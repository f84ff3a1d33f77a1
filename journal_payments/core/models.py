"""
Pydantic models for transactions, gateway responses and payment attempts.
"""
import math
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class ServiceType(str, Enum):
    """Billable services offered by the portal."""

    TOP_UP = "top_up"
    PUBLICATION_FEE = "publication_fee"
    FAST_TRACK = "fast_track"
    LANGUAGE_EDITING = "language_editing"
    TRANSLATION = "translation"
    BOOK_PUBLICATION = "book_publication"


class Provider(str, Enum):
    """Supported payment gateways."""

    CLICK = "click"
    PAYME = "payme"


class AttemptStatus(str, Enum):
    """Client-side payment attempt states."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentStatusCode(int, Enum):
    """Numeric payment status reported by reconciliation."""

    FAILED = -1
    PENDING = 0
    SUCCESS = 2


def _clean_ref(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CreateTransactionRequest(BaseModel):
    """Request for a new backend transaction."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., description="Amount in so'm, must be positive")
    currency: str = Field(default="UZS", description="Currency code")
    service_type: ServiceType = Field(..., description="Billable service")
    article_id: Optional[str] = Field(default=None, description="Related article")
    translation_request_id: Optional[str] = Field(
        default=None, description="Related translation request"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> Decimal:
        """Amount must be a positive finite number."""
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("Amount must be finite")
        try:
            amount = Decimal(str(v))
        except (InvalidOperation, ValueError):
            raise ValueError("Amount must be a number") from None
        if not amount.is_finite():
            raise ValueError("Amount must be finite")
        if amount <= 0:
            raise ValueError("Amount must be positive")
        return amount

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        v = v.strip()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    @field_validator("article_id", "translation_request_id", mode="before")
    @classmethod
    def drop_blank_refs(cls, v: Any) -> Optional[str]:
        """Blank references count as absent."""
        return _clean_ref(v)

    @model_validator(mode="after")
    def validate_single_ref(self) -> "CreateTransactionRequest":
        """A transaction relates to an article or a translation request, not both."""
        if self.article_id and self.translation_request_id:
            raise ValueError("Only one of article_id or translation_request_id may be set")
        return self

    def to_payload(self) -> Dict[str, Any]:
        """Backend payload, omitting absent references."""
        amount: Union[int, float] = (
            int(self.amount) if self.amount == self.amount.to_integral_value() else float(self.amount)
        )
        payload: Dict[str, Any] = {
            "amount": amount,
            "currency": self.currency,
            "service_type": self.service_type.value,
        }
        if self.article_id:
            payload["article"] = self.article_id
        if self.translation_request_id:
            payload["translation_request"] = self.translation_request_id
        return payload


class Transaction(BaseModel):
    """Backend-tracked transaction."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    amount: Decimal
    currency: str = "UZS"
    service_type: ServiceType
    article_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("article_id", "article")
    )
    translation_request_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("translation_request_id", "translation_request"),
    )
    status: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        text = _clean_ref(v)
        if not text:
            raise ValueError("Transaction id is required")
        return text

    @field_validator("article_id", "translation_request_id", mode="before")
    @classmethod
    def coerce_refs(cls, v: Any) -> Optional[str]:
        return _clean_ref(v)

    @classmethod
    def from_response(
        cls, data: Dict[str, Any], request: CreateTransactionRequest
    ) -> "Transaction":
        """Build from a create response, filling fields the backend omitted."""
        defaults: Dict[str, Any] = {
            "amount": request.amount,
            "currency": request.currency,
            "service_type": request.service_type,
            "article": request.article_id,
            "translation_request": request.translation_request_id,
        }
        merged = {k: v for k, v in defaults.items() if v is not None}
        merged.update({k: v for k, v in data.items() if v is not None})
        return cls.model_validate(merged)

    @classmethod
    def from_request(cls, transaction_id: Any, request: CreateTransactionRequest) -> "Transaction":
        """Build from the server-assigned id and the submitted request only."""
        return cls(
            id=transaction_id,
            amount=request.amount,
            currency=request.currency,
            service_type=request.service_type,
            article_id=request.article_id,
            translation_request_id=request.translation_request_id,
        )


class GatewayResponse(BaseModel):
    """
    Raw process-payment response.

    Field presence is inconsistent: `success` may be missing, or false while
    a usable checkout URL is still present.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: Optional[bool] = None
    payment_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("payment_url", "paymentUrl")
    )
    error_code: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("error_code", "errorCode")
    )
    error: Optional[Any] = None
    error_note: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("error_note", "errorNote")
    )
    user_message: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("user_message", "userMessage")
    )
    detail: Optional[Any] = None

    @field_validator("payment_url", mode="before")
    @classmethod
    def blank_url_is_missing(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


class PaymentOutcome(BaseModel):
    """Normalized result of a gateway call."""

    success: bool
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None
    error_code: Optional[str] = None
    provider_code: Optional[Any] = None
    message: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


class PaymentStatus(BaseModel):
    """Reconciliation result for a transaction."""

    error_code: int
    error_note: str
    payment_status: Optional[PaymentStatusCode] = None
    backend_status: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.error_code == 0 and self.payment_status == PaymentStatusCode.PENDING


class PaymentAttempt(BaseModel):
    """Client-local, ephemeral state of one payment flow."""

    status: AttemptStatus = AttemptStatus.IDLE
    provider: Provider = Provider.CLICK
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    handoff: Optional[str] = None
