"""
Unit tests for transaction creation.
"""
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from journal_payments.core.errors import (
    TRANSACTION_NOT_CREATED_MESSAGE,
    ErrorCode,
    GatewayError,
    NetworkError,
    PaymentValidationError,
)
from journal_payments.core.models import ServiceType
from journal_payments.core.transactions import TransactionInitiator, build_transaction_request
from journal_payments.integrations.portal_client import PortalClient


@pytest.fixture
def client() -> AsyncMock:
    client = AsyncMock(spec=PortalClient)
    client.create_transaction.return_value = {"id": 42, "status": "pending"}
    return client


class TestBuildTransactionRequest:
    """Test suite for build_transaction_request."""

    @pytest.mark.unit
    def test_default_currency(self) -> None:
        request = build_transaction_request(50000, None, "language_editing")

        assert request.currency == "UZS"
        assert request.amount == Decimal("50000")
        assert request.service_type == ServiceType.LANGUAGE_EDITING

    @pytest.mark.unit
    def test_configured_default_currency(self) -> None:
        request = build_transaction_request(10, "", "top_up", default_currency="USD")

        assert request.currency == "USD"

    @pytest.mark.unit
    def test_negative_amount(self) -> None:
        """Test validation error names the offending field."""
        with pytest.raises(PaymentValidationError, match="amount: Amount must be positive") as exc:
            build_transaction_request(-100, None, "top_up")

        assert exc.value.code == ErrorCode.VALIDATION

    @pytest.mark.unit
    def test_both_refs(self) -> None:
        with pytest.raises(PaymentValidationError, match="Only one of"):
            build_transaction_request(1, None, "translation", "1", "2")


class TestTransactionInitiator:
    """Test suite for TransactionInitiator."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_transaction_success(self, client: AsyncMock) -> None:
        initiator = TransactionInitiator(client)

        transaction = await initiator.create_transaction(
            50000, None, ServiceType.LANGUAGE_EDITING, article_id="9"
        )

        assert transaction.id == "42"
        assert transaction.amount == Decimal("50000")
        assert transaction.article_id == "9"
        assert transaction.status == "pending"
        client.create_transaction.assert_awaited_once_with(
            {
                "amount": 50000,
                "currency": "UZS",
                "service_type": "language_editing",
                "article": "9",
            }
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, "not-a-number"])
    async def test_invalid_input_sends_nothing(self, client: AsyncMock, amount: object) -> None:
        """Invalid input is rejected before any request is sent."""
        initiator = TransactionInitiator(client)

        with pytest.raises(PaymentValidationError):
            await initiator.create_transaction(amount, None, "top_up")

        client.create_transaction.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [{}, {"id": ""}, {"id": None}, None, ["42"]])
    async def test_response_without_id(self, client: AsyncMock, response: object) -> None:
        client.create_transaction.return_value = response
        initiator = TransactionInitiator(client)

        with pytest.raises(GatewayError) as exc:
            await initiator.create_transaction(50000, None, "top_up")

        assert exc.value.code == ErrorCode.TRANSACTION_NOT_CREATED
        assert exc.value.message == TRANSACTION_NOT_CREATED_MESSAGE

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            {"id": 1, "service_type": "Language editing"},
            {"id": 1, "amount": "fifty thousand", "currency": 860},
        ],
    )
    async def test_unparseable_echo_keeps_id(
        self, client: AsyncMock, response: dict
    ) -> None:
        """A response with an id is a created transaction even if other fields are odd."""
        client.create_transaction.return_value = response
        initiator = TransactionInitiator(client)

        transaction = await initiator.create_transaction(50000, None, "top_up", article_id="9")

        assert transaction.id == "1"
        assert transaction.amount == Decimal("50000")
        assert transaction.currency == "UZS"
        assert transaction.service_type == ServiceType.TOP_UP
        assert transaction.article_id == "9"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_network_error_propagates(self, client: AsyncMock) -> None:
        client.create_transaction.side_effect = NetworkError()
        initiator = TransactionInitiator(client)

        with pytest.raises(NetworkError):
            await initiator.create_transaction(50000, None, "top_up")
