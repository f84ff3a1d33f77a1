"""
Payment flow: the client-side state machine for one billable intent.

States::

    idle -> processing -> success
                       -> failed -> processing (retry, same transaction)

The transaction is created at most once per flow; retries only repeat the
gateway call. A trigger while processing is a no-op, and cancellation is
accepted only in idle and failed.
"""
import asyncio
from typing import TYPE_CHECKING, Optional, Union

import structlog

from journal_payments.monitoring.metrics import metrics

from .errors import DEFAULT_PAYMENT_ERROR, INVALID_URL_MESSAGE, PaymentError, RedirectError
from .models import (
    AttemptStatus,
    CreateTransactionRequest,
    PaymentAttempt,
    PaymentOutcome,
    Provider,
    Transaction,
)
from .redirect import is_valid_payment_url

if TYPE_CHECKING:
    from .gateway import GatewayInvoker
    from .redirect import RedirectStrategy
    from .transactions import TransactionInitiator

logger = structlog.get_logger(__name__)

CANCELLABLE_STATES = (AttemptStatus.IDLE, AttemptStatus.FAILED)


class PaymentFlow:
    """
    Owns the payment attempt for one payment context.

    Each page/command creates its own flow; flows share services by
    reference but never share attempt state.
    """

    def __init__(
        self,
        initiator: "TransactionInitiator",
        invoker: "GatewayInvoker",
        request: Optional[CreateTransactionRequest] = None,
        transaction_id: Optional[str] = None,
        provider: Union[Provider, str] = Provider.CLICK,
        redirector: Optional["RedirectStrategy"] = None,
        redirect_delay: float = 0.0,
    ) -> None:
        """
        Initialize payment flow.

        Args:
            initiator: Transaction initiator
            invoker: Gateway invoker
            request: Billable intent; used to create the transaction on first pay
            transaction_id: Existing transaction to pay for instead of creating one
            provider: Payment provider
            redirector: Redirect strategy run before entering success (None skips the handoff)
            redirect_delay: Seconds between obtaining the URL and the handoff
        """
        if request is None and not transaction_id:
            raise ValueError("Either request or transaction_id is required")

        self.initiator = initiator
        self.invoker = invoker
        self.request = request
        self.redirector = redirector
        self.redirect_delay = redirect_delay
        self.transaction: Optional[Transaction] = None
        self._transaction_id = str(transaction_id).strip() if transaction_id else None
        self.attempt = PaymentAttempt(
            provider=Provider(provider),
            transaction_id=self._transaction_id,
        )

    @property
    def status(self) -> AttemptStatus:
        return self.attempt.status

    @property
    def transaction_id(self) -> Optional[str]:
        return self._transaction_id

    def _transition(self, to_state: AttemptStatus, **fields: object) -> None:
        from_state = self.attempt.status
        self.attempt = self.attempt.model_copy(update={"status": to_state, **fields})
        metrics.record_attempt_transition(from_state.value, to_state.value)
        logger.info(
            "payment_attempt_transition",
            from_state=from_state.value,
            to_state=to_state.value,
            transaction_id=self._transaction_id,
        )

    def _fail(self, outcome: PaymentOutcome) -> None:
        self._transition(
            AttemptStatus.FAILED,
            payment_url=None,
            handoff=None,
            error_code=outcome.error_code,
            error_message=outcome.message,
        )

    async def pay(self, provider: Union[Provider, str, None] = None) -> PaymentAttempt:
        """
        Run (or retry) the payment.

        Args:
            provider: Switch provider for this attempt

        Returns:
            PaymentAttempt: Attempt state after the call
        """
        if self.attempt.status == AttemptStatus.PROCESSING:
            logger.warning("payment_already_processing", transaction_id=self._transaction_id)
            return self.attempt
        if self.attempt.status == AttemptStatus.SUCCESS:
            logger.info("payment_already_completed", transaction_id=self._transaction_id)
            return self.attempt

        # Check-and-set happens before the first await
        self._transition(
            AttemptStatus.PROCESSING,
            provider=Provider(provider) if provider else self.attempt.provider,
            payment_url=None,
            handoff=None,
            error_code=None,
            error_message=None,
        )

        with structlog.contextvars.bound_contextvars(provider=self.attempt.provider.value):
            try:
                outcome = await self._obtain_outcome()
            except (Exception, asyncio.CancelledError):
                self._fail(PaymentError(DEFAULT_PAYMENT_ERROR).to_outcome(self._transaction_id))
                raise

            if not outcome.success:
                self._fail(outcome)
                return self.attempt

            if not is_valid_payment_url(outcome.payment_url):
                self._fail(RedirectError(INVALID_URL_MESSAGE).to_outcome(self._transaction_id))
                return self.attempt

            handoff: Optional[str] = None
            if self.redirector is not None:
                try:
                    handoff = await self._handoff(self.redirector, outcome.payment_url)
                except RedirectError as e:
                    self._fail(e.to_outcome(self._transaction_id))
                    return self.attempt

            self._transition(
                AttemptStatus.SUCCESS, payment_url=outcome.payment_url, handoff=handoff
            )

        return self.attempt

    async def retry(self) -> PaymentAttempt:
        """Retry after a failure with the same transaction."""
        if self.attempt.status != AttemptStatus.FAILED:
            logger.warning("payment_retry_ignored", status=self.attempt.status.value)
            return self.attempt
        return await self.pay()

    async def _obtain_outcome(self) -> PaymentOutcome:
        if self._transaction_id is None and self.request is not None:
            try:
                self.transaction = await self.initiator.submit(self.request)
            except PaymentError as e:
                return e.to_outcome()
            self._transaction_id = self.transaction.id
            self.attempt = self.attempt.model_copy(update={"transaction_id": self._transaction_id})

        with structlog.contextvars.bound_contextvars(transaction_id=self._transaction_id):
            return await self.invoker.process_payment(self._transaction_id, self.attempt.provider)

    async def _handoff(self, redirector: "RedirectStrategy", payment_url: str) -> str:
        if self.redirect_delay > 0:
            await asyncio.sleep(self.redirect_delay)
        result = await redirector.redirect(payment_url)
        return result.method

    def cancel(self) -> bool:
        """
        Close the flow.

        Clears the local attempt; the backend transaction is left untouched
        and no request is sent.

        Returns:
            bool: False if the flow is processing or already succeeded
        """
        if self.attempt.status not in CANCELLABLE_STATES:
            logger.warning(
                "payment_cancel_refused",
                status=self.attempt.status.value,
                transaction_id=self._transaction_id,
            )
            return False

        self.attempt = PaymentAttempt(
            provider=self.attempt.provider,
            transaction_id=self._transaction_id,
        )
        logger.info("payment_flow_cancelled", transaction_id=self._transaction_id)
        return True
