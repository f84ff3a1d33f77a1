"""
Payment flow scenarios against a fake portal backend.
"""
import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from journal_payments.container import PaymentServices
from journal_payments.core.errors import (
    DEFAULT_PAYMENT_ERROR,
    NETWORK_ERROR_MESSAGE,
    REDIRECT_FAILED_MESSAGE,
    STATUS_MESSAGES,
    TRANSACTION_NOT_CREATED_MESSAGE,
    RedirectError,
)
from journal_payments.core.flow import PaymentFlow
from journal_payments.core.gateway import GatewayInvoker
from journal_payments.core.models import AttemptStatus, PaymentOutcome, Provider
from journal_payments.core.redirect import RedirectResult, RedirectStrategy
from journal_payments.core.transactions import TransactionInitiator

CHECKOUT_URL = "https://my.click.uz/services/pay?service_id=1&transaction_param=42"


class TestPaymentScenarios:
    """End-to-end flows through the service container."""

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_language_editing_payment(
        self, services: PaymentServices, backend: Any, navigator: Any
    ) -> None:
        """Create, process and hand off a 50000 so'm language editing payment."""
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.transaction_id == "42"
        assert attempt.payment_url == CHECKOUT_URL
        assert attempt.handoff == "primary"
        assert navigator.opened == [CHECKOUT_URL]

        assert len(backend.create_calls) == 1
        assert json.loads(backend.create_calls[0].content) == {
            "amount": 50000,
            "currency": "UZS",
            "service_type": "language_editing",
        }
        assert len(backend.process_calls) == 1
        assert backend.process_calls[0].url.path == (
            "/api/payments/transactions/42/process_payment/"
        )
        assert json.loads(backend.process_calls[0].content) == {"provider": "click"}

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_retry_reuses_transaction(
        self, services: PaymentServices, backend: Any
    ) -> None:
        """A failed gateway call is retried without creating a second transaction."""
        backend.process_responses = [
            (500, {"detail": "Internal server error"}),
            (200, {"success": True, "payment_url": CHECKOUT_URL}),
        ]
        flow = services.new_flow(50000, "language_editing")

        first = await flow.pay()

        assert first.status == AttemptStatus.FAILED
        assert first.error_message == STATUS_MESSAGES[500]
        assert first.transaction_id == "42"

        second = await flow.retry()

        assert second.status == AttemptStatus.SUCCESS
        assert second.error_message is None
        assert len(backend.create_calls) == 1
        assert len(backend.process_calls) == 2
        assert {r.url.path for r in backend.process_calls} == {
            "/api/payments/transactions/42/process_payment/"
        }

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_checkout_url_despite_failure_flag(
        self, services: PaymentServices, backend: Any, navigator: Any
    ) -> None:
        """The checkout URL is used even when invoice pre-registration failed."""
        backend.process_responses = [
            (200, {"success": False, "payment_url": CHECKOUT_URL, "error_code": -1}),
        ]
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.SUCCESS
        assert navigator.opened == [CHECKOUT_URL]

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_declined_payment_shows_user_message(
        self, services: PaymentServices, backend: Any, navigator: Any
    ) -> None:
        backend.process_responses = [
            (
                200,
                {
                    "success": False,
                    "error": "insufficient_funds",
                    "user_message": "Balans yetarli emas",
                },
            ),
        ]
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "gateway_error"
        assert attempt.error_message == "Balans yetarli emas"
        assert attempt.payment_url is None
        assert navigator.opened == []

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_network_failure_before_transaction(
        self, services: PaymentServices, backend: Any
    ) -> None:
        backend.network_down = True
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "network_error"
        assert attempt.error_message == NETWORK_ERROR_MESSAGE
        assert attempt.transaction_id is None

        backend.network_down = False
        attempt = await flow.retry()

        assert attempt.status == AttemptStatus.SUCCESS
        assert len(backend.create_calls) == 2
        assert len(backend.process_calls) == 1

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_transaction_not_created(
        self, services: PaymentServices, backend: Any
    ) -> None:
        backend.create_responses = [(201, {"status": "pending"})]
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "transaction_not_created"
        assert attempt.error_message == TRANSACTION_NOT_CREATED_MESSAGE
        assert backend.process_calls == []

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_odd_create_echo_still_creates_once(
        self, services: PaymentServices, backend: Any
    ) -> None:
        """A create response with an id but unexpected echoed fields is not re-created."""
        backend.create_responses = [
            (201, {"id": 42, "amount": "50000", "service_type": "Language editing"})
        ]
        backend.process_responses = [
            (500, {"detail": "Internal server error"}),
            (200, {"success": True, "payment_url": CHECKOUT_URL}),
        ]
        flow = services.new_flow(50000, "language_editing")

        first = await flow.pay()

        assert first.status == AttemptStatus.FAILED
        assert first.error_code == "gateway_error"
        assert first.transaction_id == "42"

        second = await flow.retry()

        assert second.status == AttemptStatus.SUCCESS
        assert len(backend.create_calls) == 1
        assert len(backend.process_calls) == 2

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_existing_transaction_with_provider_switch(
        self, services: PaymentServices, backend: Any
    ) -> None:
        flow = services.flow_for_transaction("77")

        attempt = await flow.pay(provider=Provider.PAYME)

        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.provider == Provider.PAYME
        assert backend.create_calls == []
        assert json.loads(backend.process_calls[0].content) == {"provider": "payme"}

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_cancel_after_failure_sends_nothing(
        self, services: PaymentServices, backend: Any
    ) -> None:
        backend.process_responses = [
            (400, {"error": "Invoice failed"}),
            (200, {"success": True, "payment_url": CHECKOUT_URL}),
        ]
        flow = services.new_flow(50000, "language_editing")
        await flow.pay()
        request_count = len(backend.requests)

        assert flow.cancel() is True

        assert flow.status == AttemptStatus.IDLE
        assert flow.attempt.error_message is None
        assert flow.transaction_id == "42"
        assert len(backend.requests) == request_count

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.SUCCESS
        assert len(backend.create_calls) == 1

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_redirect_failure_is_retryable(
        self, services: PaymentServices, backend: Any, make_navigator: Any
    ) -> None:
        """A handoff that never took effect leaves the attempt failed."""
        flow = services.new_flow(50000, "language_editing", redirect=False)
        flow.redirector = RedirectStrategy(
            [make_navigator("primary", accept=False)], verify_delay=0
        )

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "redirect_error"
        assert attempt.error_message == REDIRECT_FAILED_MESSAGE

        flow.redirector = RedirectStrategy([make_navigator("primary")], verify_delay=0)
        attempt = await flow.retry()

        assert attempt.status == AttemptStatus.SUCCESS
        assert len(backend.create_calls) == 1
        assert len(backend.process_calls) == 2

    @pytest.mark.scenario
    @pytest.mark.asyncio
    async def test_manual_handoff_when_browser_ignored(
        self,
        services: PaymentServices,
        navigator: Any,
        manual_handoff: Any,
    ) -> None:
        navigator.accept = False
        flow = services.new_flow(50000, "language_editing")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.handoff == "manual"
        assert manual_handoff.presented == [CHECKOUT_URL]


class TestPaymentFlow:
    """Unit tests for PaymentFlow state handling."""

    @pytest.fixture
    def initiator(self) -> AsyncMock:
        return AsyncMock(spec=TransactionInitiator)

    @pytest.fixture
    def invoker(self) -> AsyncMock:
        invoker = AsyncMock(spec=GatewayInvoker)
        invoker.process_payment.return_value = PaymentOutcome(
            success=True, transaction_id="42", payment_url=CHECKOUT_URL
        )
        return invoker

    @pytest.mark.unit
    def test_requires_request_or_transaction(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        with pytest.raises(ValueError):
            PaymentFlow(initiator, invoker)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_trigger_while_processing_is_noop(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        """Test a second trigger during processing sends nothing."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_process(transaction_id: str, provider: Provider) -> PaymentOutcome:
            started.set()
            await release.wait()
            return PaymentOutcome(
                success=True, transaction_id=transaction_id, payment_url=CHECKOUT_URL
            )

        invoker.process_payment.side_effect = slow_process
        flow = PaymentFlow(initiator, invoker, transaction_id="42")

        task = asyncio.create_task(flow.pay())
        await started.wait()

        second = await flow.pay()

        assert second.status == AttemptStatus.PROCESSING
        assert flow.cancel() is False

        release.set()
        attempt = await task

        assert attempt.status == AttemptStatus.SUCCESS
        invoker.process_payment.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pay_after_success_is_noop(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        flow = PaymentFlow(initiator, invoker, transaction_id="42")
        await flow.pay()

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.SUCCESS
        assert flow.cancel() is False
        invoker.process_payment.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_only_from_failed(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        flow = PaymentFlow(initiator, invoker, transaction_id="42")

        attempt = await flow.retry()

        assert attempt.status == AttemptStatus.IDLE
        invoker.process_payment.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error_fails_attempt(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        invoker.process_payment.side_effect = RuntimeError("boom")
        flow = PaymentFlow(initiator, invoker, transaction_id="42")

        with pytest.raises(RuntimeError):
            await flow.pay()

        assert flow.status == AttemptStatus.FAILED
        assert flow.attempt.error_message == DEFAULT_PAYMENT_ERROR

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_url_in_success_outcome(
        self, initiator: AsyncMock, invoker: AsyncMock
    ) -> None:
        invoker.process_payment.return_value = PaymentOutcome(
            success=True, transaction_id="42", payment_url="javascript:alert(1)"
        )
        flow = PaymentFlow(initiator, invoker, transaction_id="42")

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "redirect_error"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_handoff_never_enters_success(
        self, initiator: AsyncMock, invoker: AsyncMock, mocker: Any
    ) -> None:
        """Test success is only entered once the handoff took effect."""
        mock_metrics = mocker.patch("journal_payments.core.flow.metrics")
        redirector = AsyncMock(spec=RedirectStrategy)
        redirector.redirect.side_effect = RedirectError(REDIRECT_FAILED_MESSAGE)
        flow = PaymentFlow(initiator, invoker, transaction_id="42", redirector=redirector)

        attempt = await flow.pay()

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.error_code == "redirect_error"
        assert attempt.payment_url is None
        transitions = [c.args for c in mock_metrics.record_attempt_transition.call_args_list]
        assert transitions == [("idle", "processing"), ("processing", "failed")]

        redirector.redirect.side_effect = None
        redirector.redirect.return_value = RedirectResult(url=CHECKOUT_URL, method="secondary")
        attempt = await flow.retry()

        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.handoff == "secondary"
        assert attempt.payment_url == CHECKOUT_URL
        assert mock_metrics.record_attempt_transition.call_args_list[-1].args == (
            "processing",
            "success",
        )

    @pytest.mark.unit
    def test_cancel_from_idle(self, initiator: AsyncMock, invoker: AsyncMock) -> None:
        flow = PaymentFlow(initiator, invoker, transaction_id="42", provider="payme")

        assert flow.cancel() is True
        assert flow.attempt.provider == Provider.PAYME
        assert flow.transaction_id == "42"
