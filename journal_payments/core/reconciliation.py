"""
Transaction status reconciliation.

Optional path: after the user returns from the hosted checkout, the backend
status of a transaction (set by the gateway webhook) can be polled through
the Listing API and mapped to a numeric payment status:

- ``completed`` -> 2 (success)
- ``failed``    -> -1 (failure)
- anything else -> 0 (pending)
"""
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .errors import PaymentError
from .models import PaymentStatus, PaymentStatusCode

if TYPE_CHECKING:
    from journal_payments.integrations.portal_client import PortalClient

logger = structlog.get_logger(__name__)

# Provider-style lookup codes
LOOKUP_OK = 0
TRANSACTION_NOT_FOUND = -5
LOOKUP_FAILED = -9

BACKEND_STATUS_CODES = {
    "completed": PaymentStatusCode.SUCCESS,
    "failed": PaymentStatusCode.FAILED,
}


def payment_status_code(backend_status: Any) -> PaymentStatusCode:
    """Map a backend transaction status to a numeric payment status."""
    key = str(backend_status or "").strip().lower()
    return BACKEND_STATUS_CODES.get(key, PaymentStatusCode.PENDING)


def _last_result(retry_state: RetryCallState) -> PaymentStatus:
    if retry_state.outcome is None:
        raise RuntimeError("No status lookup completed")
    return retry_state.outcome.result()


class StatusReconciler:
    """Looks up backend transaction status."""

    def __init__(
        self,
        client: "PortalClient",
        poll_interval: float = 3.0,
        poll_attempts: int = 20,
    ) -> None:
        """
        Initialize status reconciler.

        Args:
            client: Portal API client
            poll_interval: Seconds between polls in wait_for_settlement
            poll_attempts: Max polls in wait_for_settlement
        """
        self.client = client
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

    async def check_payment_status(self, transaction_id: str) -> PaymentStatus:
        """
        Look up one transaction.

        Never raises; lookup failures are reported through `error_code`.

        Args:
            transaction_id: Backend transaction id

        Returns:
            PaymentStatus: Lookup result
        """
        try:
            transactions = await self.client.list_transactions()
        except PaymentError as e:
            logger.error(
                "payment_status_lookup_failed",
                transaction_id=transaction_id,
                error=e.message,
            )
            return PaymentStatus(error_code=LOOKUP_FAILED, error_note=e.message)

        transaction: Optional[Dict[str, Any]] = next(
            (
                t
                for t in transactions
                if isinstance(t, dict) and str(t.get("id")) == str(transaction_id)
            ),
            None,
        )
        if transaction is None:
            logger.warning("payment_status_transaction_not_found", transaction_id=transaction_id)
            return PaymentStatus(error_code=TRANSACTION_NOT_FOUND, error_note="Transaction not found")

        raw_status = transaction.get("status")
        backend_status = str(raw_status) if raw_status is not None else None
        status = PaymentStatus(
            error_code=LOOKUP_OK,
            error_note="Success",
            payment_status=payment_status_code(backend_status),
            backend_status=backend_status,
        )
        logger.info(
            "payment_status_checked",
            transaction_id=transaction_id,
            backend_status=backend_status,
            payment_status=int(status.payment_status),
        )
        return status

    async def wait_for_settlement(self, transaction_id: str) -> PaymentStatus:
        """
        Poll until the transaction leaves the pending state.

        Stops early on a terminal status or a lookup error; after the last
        attempt the latest (possibly still pending) status is returned.

        Args:
            transaction_id: Backend transaction id

        Returns:
            PaymentStatus: Last observed status
        """
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda status: status.is_pending),
            stop=stop_after_attempt(self.poll_attempts),
            wait=wait_fixed(self.poll_interval),
            retry_error_callback=_last_result,
            reraise=True,
        )
        return await retrying(self.check_payment_status, transaction_id)
