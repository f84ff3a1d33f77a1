"""
Gateway invoker.

Turns a transaction id into a hosted-checkout URL through the backend.

The backend composes two calls (invoice pre-registration and checkout URL
generation), so its response is inconsistent: `success` may be missing, or
false while a usable `payment_url` was still produced. The success flag is
normalized in this order:

1. No `success` field: success if `payment_url` is present, or `error_code`
   is 0, or neither `error_code` nor `error` is present; failure otherwise.
2. `success` false but `payment_url` non-empty: success. The checkout URL
   stays usable even when the auxiliary invoice record failed.
3. Otherwise the explicit `success` field.

These rules must not be tightened.
"""
from typing import TYPE_CHECKING, Any, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from journal_payments.monitoring.metrics import metrics

from .errors import (
    DEFAULT_PAYMENT_ERROR,
    MISSING_URL_MESSAGE,
    ErrorCode,
    GatewayError,
    PaymentError,
    PaymentValidationError,
    extract_error_message,
)
from .models import GatewayResponse, PaymentOutcome, Provider
from .redirect import validate_payment_url

if TYPE_CHECKING:
    from journal_payments.integrations.portal_client import PortalClient

logger = structlog.get_logger(__name__)


def _is_zero_code(error_code: Any) -> bool:
    return isinstance(error_code, int) and not isinstance(error_code, bool) and error_code == 0


def resolve_success(response: GatewayResponse) -> Tuple[bool, Optional[str]]:
    """
    Apply the success precedence rules.

    Returns:
        Tuple[bool, Optional[str]]: Normalized flag and the rule that changed
        or inferred it (None when the explicit flag was trusted)
    """
    success = response.success
    rule: Optional[str] = None

    if success is None:
        if response.payment_url:
            success = True
        elif _is_zero_code(response.error_code) or (
            not response.error_code and not response.error
        ):
            success = True
        else:
            success = False
        rule = "inferred_success" if success else "inferred_failure"

    if response.payment_url and success is False:
        success = True
        rule = "url_override"

    return success, rule


def normalize_response(
    data: Any,
    transaction_id: Optional[str] = None,
    implied_success: Optional[bool] = None,
) -> PaymentOutcome:
    """
    Normalize a raw process-payment body into an outcome.

    Args:
        data: Raw response body (dict, string or anything else)
        transaction_id: Transaction the response belongs to
        implied_success: Flag to assume when the body has none (HTTP error
            bodies imply False)

    Returns:
        PaymentOutcome: Normalized outcome; successful outcomes always carry
        a valid http(s) URL
    """
    if not isinstance(data, dict):
        message = extract_error_message(data)
        return PaymentOutcome(
            success=False,
            transaction_id=transaction_id,
            error_code=ErrorCode.GATEWAY.value,
            message=message,
        )

    try:
        response = GatewayResponse.model_validate(data)
    except ValidationError:
        logger.warning("gateway_response_unparseable", response=data)
        raw_url = data.get("payment_url") or data.get("paymentUrl")
        if not isinstance(raw_url, str) or not raw_url.strip():
            return PaymentOutcome(
                success=False,
                transaction_id=transaction_id,
                error_code=ErrorCode.GATEWAY.value,
                message=extract_error_message(data),
                raw=data,
            )
        # A usable URL still wins over fields that failed to parse
        response = GatewayResponse(payment_url=raw_url, success=False)

    if response.success is None and implied_success is not None:
        response = response.model_copy(update={"success": implied_success})

    success, rule = resolve_success(response)
    if rule is not None:
        metrics.record_gateway_override(rule)
        if rule == "url_override":
            logger.warning(
                "gateway_success_overridden",
                transaction_id=transaction_id,
                error_code=response.error_code,
            )
        else:
            logger.info("gateway_success_inferred", transaction_id=transaction_id, rule=rule)

    if not success:
        return PaymentOutcome(
            success=False,
            transaction_id=transaction_id,
            error_code=ErrorCode.GATEWAY.value,
            provider_code=response.error_code,
            message=extract_error_message(data),
            raw=data,
        )

    if not response.payment_url:
        return GatewayError(
            MISSING_URL_MESSAGE,
            code=ErrorCode.MISSING_PAYMENT_URL,
            provider_code=response.error_code,
        ).to_outcome(transaction_id)

    try:
        payment_url = validate_payment_url(response.payment_url)
    except PaymentError as e:
        outcome = e.to_outcome(transaction_id)
        return outcome.model_copy(update={"raw": data})

    return PaymentOutcome(
        success=True,
        transaction_id=transaction_id,
        payment_url=payment_url,
        provider_code=response.error_code,
        raw=data,
    )


class GatewayInvoker:
    """Obtains hosted-checkout URLs from the backend."""

    def __init__(
        self,
        client: "PortalClient",
        default_provider: Union[Provider, str] = Provider.CLICK,
    ) -> None:
        """
        Initialize gateway invoker.

        Args:
            client: Portal API client
            default_provider: Provider used when the caller gives none
        """
        self.client = client
        self.default_provider = Provider(default_provider)

    async def process_payment(
        self,
        transaction_id: str,
        provider: Union[Provider, str, None] = None,
    ) -> PaymentOutcome:
        """
        Request a checkout URL for a transaction.

        Never raises: every failure, including bad input and transport
        errors, comes back as a failed outcome.

        Args:
            transaction_id: Backend transaction id
            provider: Payment provider (defaults to the configured one)

        Returns:
            PaymentOutcome: Normalized outcome
        """
        transaction_id = str(transaction_id or "").strip()
        provider_value = provider or self.default_provider

        try:
            provider_enum = Provider(provider_value)
        except ValueError:
            outcome = PaymentValidationError(
                f"Unsupported provider: {provider_value}"
            ).to_outcome(transaction_id or None)
            self._record(str(provider_value), outcome)
            return outcome

        if not transaction_id:
            outcome = PaymentValidationError("Transaction id is required").to_outcome()
            self._record(provider_enum.value, outcome)
            return outcome

        log = logger.bind(transaction_id=transaction_id, provider=provider_enum.value)

        try:
            data = await self.client.process_payment(transaction_id, provider_enum.value)
            outcome = normalize_response(data, transaction_id)
        except GatewayError as e:
            # HTTP error bodies go through the same rules with success=False implied
            if isinstance(e.payload, dict):
                outcome = normalize_response(e.payload, transaction_id, implied_success=False)
                if not outcome.success and e.status_code is not None:
                    outcome = outcome.model_copy(update={"message": e.message})
            else:
                outcome = e.to_outcome(transaction_id)
        except PaymentError as e:
            outcome = e.to_outcome(transaction_id)

        if outcome.success:
            log.info("payment_url_obtained", payment_url=outcome.payment_url)
        else:
            log.error(
                "payment_processing_failed",
                error_code=outcome.error_code,
                provider_code=outcome.provider_code,
                message=outcome.message or DEFAULT_PAYMENT_ERROR,
            )

        self._record(provider_enum.value, outcome)
        return outcome

    @staticmethod
    def _record(provider: str, outcome: PaymentOutcome) -> None:
        metrics.record_gateway_outcome(provider, outcome.success, outcome.error_code or "")

