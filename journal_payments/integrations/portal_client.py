"""
Async client for the journal portal REST API.

Covers the three payment collaborators:
- Transaction API (create)
- Payment Gateway API (process payment for a transaction)
- Listing API (list transactions, used for status reconciliation)

Transport and HTTP failures are converted into the payment error taxonomy
here, so nothing above this layer sees raw httpx exceptions.
"""
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from journal_payments.config import Settings
from journal_payments.core.errors import (
    ErrorCode,
    GatewayError,
    NetworkError,
    message_for_status,
)
from journal_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

TRANSACTIONS_PATH = "/payments/transactions/"
PROCESS_PAYMENT_PATH = "/payments/transactions/{transaction_id}/process_payment/"

# Guard against a backend that keeps returning the same "next" link
MAX_LIST_PAGES = 50


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class PortalClient:
    """
    Thin wrapper over httpx.AsyncClient for the portal payment endpoints.

    One instance is created per process by the service container and shared
    by reference.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize portal client.

        Args:
            settings: Application settings
            transport: Optional transport (tests pass httpx.MockTransport)
        """
        self.settings = settings

        headers = {"Accept": "application/json"}
        if settings.backend_api_token:
            headers["Authorization"] = f"Bearer {settings.backend_api_token}"

        client_kwargs: Dict[str, Any] = {
            "base_url": settings.backend_api_url,
            "headers": headers,
        }
        if settings.request_timeout is not None:
            client_kwargs["timeout"] = settings.request_timeout
        if transport is not None:
            client_kwargs["transport"] = transport

        self._client = httpx.AsyncClient(**client_kwargs)

        logger.info("portal_client_initialized", base_url=settings.backend_api_url)

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Args:
            operation: Operation name for logs and metrics
            method: HTTP method
            url: Path relative to the API base URL, or an absolute URL
            json: Optional JSON body

        Returns:
            Any: Decoded response body

        Raises:
            NetworkError: If the backend cannot be reached
            GatewayError: If the backend answers with an error status
        """
        start_time = time.monotonic()

        try:
            response = await self._client.request(method, url, json=json)
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            payload = _response_payload(e.response)
            metrics.record_backend_request(
                operation, str(status_code), time.monotonic() - start_time
            )
            logger.error(
                "backend_http_error",
                operation=operation,
                status_code=status_code,
                payload=payload,
            )
            provider_code = payload.get("error_code") if isinstance(payload, dict) else None
            raise GatewayError(
                message_for_status(status_code, payload),
                code=ErrorCode.GATEWAY,
                provider_code=provider_code,
                status_code=status_code,
                payload=payload,
            ) from e

        except httpx.TransportError as e:
            metrics.record_backend_request(operation, "network_error", time.monotonic() - start_time)
            logger.error(
                "backend_unreachable",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise NetworkError() from e

        metrics.record_backend_request(
            operation, str(response.status_code), time.monotonic() - start_time
        )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "backend_invalid_json",
                operation=operation,
                status_code=response.status_code,
            )
            raise GatewayError(
                message_for_status(None, None),
                status_code=response.status_code,
                payload=response.text,
            ) from e

    async def create_transaction(self, payload: Dict[str, Any]) -> Any:
        """
        Create a transaction record.

        Args:
            payload: Transaction payload (amount, currency, service_type, ...)

        Returns:
            Any: Backend response, normally a dict with an `id`
        """
        logger.info("creating_transaction", payload=payload)
        return await self._request("create_transaction", "POST", TRANSACTIONS_PATH, json=payload)

    async def process_payment(self, transaction_id: str, provider: str) -> Any:
        """
        Ask the backend for a hosted-checkout URL.

        Args:
            transaction_id: Backend transaction id
            provider: Payment provider name

        Returns:
            Any: Raw gateway response
        """
        logger.info("processing_payment", transaction_id=transaction_id, provider=provider)
        return await self._request(
            "process_payment",
            "POST",
            PROCESS_PAYMENT_PATH.format(transaction_id=transaction_id),
            json={"provider": provider},
        )

    async def list_transactions(self) -> List[Dict[str, Any]]:
        """
        List the current user's transactions.

        Accepts both a plain list and DRF-style paginated pages
        (`{"results": [...], "next": url}`).

        Returns:
            List[Dict[str, Any]]: Transactions
        """
        transactions: List[Dict[str, Any]] = []
        url: Optional[str] = TRANSACTIONS_PATH

        for _ in range(MAX_LIST_PAGES):
            if not url:
                break
            page = await self._request("list_transactions", "GET", url)
            if isinstance(page, list):
                transactions.extend(page)
                break
            if isinstance(page, dict):
                transactions.extend(page.get("results") or [])
                url = page.get("next")
            else:
                break

        logger.debug("transactions_listed", count=len(transactions))
        return transactions

    async def ping(self) -> int:
        """
        Probe the backend health path.

        Returns:
            int: HTTP status code

        Raises:
            NetworkError: If the backend cannot be reached
        """
        try:
            response = await self._client.get(self.settings.health_path)
        except httpx.TransportError as e:
            raise NetworkError() from e
        return response.status_code
