"""
Transaction initiator.

Creates the backend transaction record for a billable action. Input is
validated before any request is sent; failures surface as PaymentError
subclasses and are never retried here.
"""
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Union

import structlog
from pydantic import ValidationError

from journal_payments.monitoring.metrics import metrics

from .errors import (
    TRANSACTION_NOT_CREATED_MESSAGE,
    ErrorCode,
    GatewayError,
    PaymentValidationError,
)
from .models import CreateTransactionRequest, ServiceType, Transaction

if TYPE_CHECKING:
    from journal_payments.integrations.portal_client import PortalClient

logger = structlog.get_logger(__name__)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        msg = item.get("msg", "")
        # pydantic prefixes custom ValueError messages
        msg = msg.removeprefix("Value error, ")
        loc = ".".join(str(p) for p in item.get("loc", ()) if p != "__root__")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid transaction request"


def build_transaction_request(
    amount: Union[int, float, Decimal, str],
    currency: Optional[str],
    service_type: Union[ServiceType, str],
    article_id: Optional[str] = None,
    translation_request_id: Optional[str] = None,
    default_currency: str = "UZS",
) -> CreateTransactionRequest:
    """
    Validate raw input into a transaction request.

    Args:
        amount: Positive finite amount
        currency: Currency code (falls back to default_currency when empty)
        service_type: Billable service
        article_id: Optional related article
        translation_request_id: Optional related translation request
        default_currency: Currency used when none is given

    Returns:
        CreateTransactionRequest: Validated request

    Raises:
        PaymentValidationError: If validation fails
    """
    try:
        return CreateTransactionRequest(
            amount=amount,
            currency=currency or default_currency,
            service_type=service_type,
            article_id=article_id,
            translation_request_id=translation_request_id,
        )
    except ValidationError as e:
        message = _validation_message(e)
        logger.warning("transaction_request_invalid", error=message)
        raise PaymentValidationError(message) from e


class TransactionInitiator:
    """Creates backend transactions for billable actions."""

    def __init__(self, client: "PortalClient", default_currency: str = "UZS") -> None:
        """
        Initialize transaction initiator.

        Args:
            client: Portal API client
            default_currency: Currency used when the caller gives none
        """
        self.client = client
        self.default_currency = default_currency

    async def create_transaction(
        self,
        amount: Union[int, float, Decimal, str],
        currency: Optional[str],
        service_type: Union[ServiceType, str],
        article_id: Optional[str] = None,
        translation_request_id: Optional[str] = None,
    ) -> Transaction:
        """
        Validate input and create a transaction.

        Raises:
            PaymentValidationError: If input validation fails
            NetworkError: If the backend cannot be reached
            GatewayError: If the backend rejects the request or returns no id
        """
        request = build_transaction_request(
            amount,
            currency,
            service_type,
            article_id,
            translation_request_id,
            default_currency=self.default_currency,
        )
        return await self.submit(request)

    async def submit(self, request: CreateTransactionRequest) -> Transaction:
        """
        Create a transaction from an already validated request.

        Args:
            request: Validated request

        Returns:
            Transaction: Created transaction with a non-empty id
        """
        payload = request.to_payload()
        data: Any = await self.client.create_transaction(payload)

        if not isinstance(data, dict) or not str(data.get("id") or "").strip():
            logger.error("transaction_creation_failed", response=data)
            raise GatewayError(
                TRANSACTION_NOT_CREATED_MESSAGE,
                code=ErrorCode.TRANSACTION_NOT_CREATED,
                payload=data,
            )

        try:
            transaction = Transaction.from_response(data, request)
        except ValidationError as e:
            # The id alone identifies the created record; echoed fields fall back to the request
            logger.warning("transaction_response_partial", response=data, error=str(e))
            transaction = Transaction.from_request(data["id"], request)

        metrics.record_transaction_created(transaction.service_type.value, transaction.currency)
        logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            service_type=transaction.service_type.value,
            amount=str(transaction.amount),
            currency=transaction.currency,
        )
        return transaction
