"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from journal_payments.config import Settings
from journal_payments.container import PaymentServices
from journal_payments.core.redirect import ManualHandoff, Navigator
from journal_payments.integrations.portal_client import PortalClient

BASE_URL = "https://api.journal.test/api"
CHECKOUT_URL = "https://my.click.uz/services/pay?service_id=1&transaction_param=42"

CannedResponse = Tuple[int, Any]


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "scenario: end-to-end payment flow scenarios")


class FakeBackend:
    """
    In-memory portal backend served through httpx.MockTransport.

    Each endpoint answers from a queue of (status, body) pairs; the last
    pair is repeated once the queue is drained.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.network_down = False
        self.create_responses: List[CannedResponse] = [
            (
                201,
                {
                    "id": 42,
                    "amount": 50000,
                    "currency": "UZS",
                    "service_type": "language_editing",
                    "status": "pending",
                },
            )
        ]
        self.process_responses: List[CannedResponse] = [
            (200, {"success": True, "payment_url": CHECKOUT_URL})
        ]
        self.list_responses: List[CannedResponse] = [(200, [])]
        self.list_pages: Dict[str, CannedResponse] = {}
        self.health_response: CannedResponse = (200, {"status": "ok"})

    @staticmethod
    def _next(queue: List[CannedResponse]) -> CannedResponse:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    @staticmethod
    def _build(canned: CannedResponse) -> httpx.Response:
        status_code, body = canned
        if body is None:
            return httpx.Response(status_code)
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.endswith("/process_payment/"):
            return self._build(self._next(self.process_responses))
        if path == "/api/payments/transactions/":
            if request.method == "POST":
                return self._build(self._next(self.create_responses))
            page = request.url.params.get("page")
            if page and page in self.list_pages:
                return self._build(self.list_pages[page])
            return self._build(self._next(self.list_responses))
        return self._build(self.health_response)

    def calls(self, method: str, suffix: str) -> List[httpx.Request]:
        """Requests matching a method and path suffix."""
        return [
            r for r in self.requests if r.method == method and r.url.path.endswith(suffix)
        ]

    @property
    def create_calls(self) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == "POST" and r.url.path == "/api/payments/transactions/"
        ]

    @property
    def process_calls(self) -> List[httpx.Request]:
        return self.calls("POST", "/process_payment/")


class RecordingNavigator(Navigator):
    """Navigator that records URLs and accepts or rejects as told."""

    def __init__(
        self,
        name: str = "primary",
        accept: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.accept = accept
        self.error = error
        self.opened: List[str] = []

    def _open(self, url: str) -> bool:
        self.opened.append(url)
        if self.error is not None:
            raise self.error
        return self.accept


class RecordingHandoff(ManualHandoff):
    """Manual handoff that records presented URLs."""

    def __init__(self) -> None:
        self.presented: List[str] = []

    def present(self, url: str) -> None:
        self.presented.append(url)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        backend_api_url=BASE_URL,
        backend_api_token="test-token",
        redirect_delay=0,
        redirect_verify_delay=0,
        status_poll_interval=0,
        status_poll_attempts=3,
        app_name="journal-payments-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def backend() -> FakeBackend:
    """Fake portal backend."""
    return FakeBackend()


@pytest.fixture
def transport(backend: FakeBackend) -> httpx.MockTransport:
    return httpx.MockTransport(backend.handler)


@pytest.fixture
def make_navigator() -> Any:
    """Factory for recording navigators."""
    return RecordingNavigator


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def manual_handoff() -> RecordingHandoff:
    return RecordingHandoff()


@pytest_asyncio.fixture
async def portal_client(
    test_settings: Settings, transport: httpx.MockTransport
) -> AsyncGenerator[PortalClient, Any]:
    """Portal client wired to the fake backend."""
    async with PortalClient(test_settings, transport=transport) as client:
        yield client


@pytest_asyncio.fixture
async def services(
    test_settings: Settings,
    transport: httpx.MockTransport,
    navigator: RecordingNavigator,
    manual_handoff: RecordingHandoff,
) -> AsyncGenerator[PaymentServices, Any]:
    """Payment services wired to the fake backend and recording navigators."""
    async with PaymentServices.from_settings(
        test_settings,
        transport=transport,
        navigators=[navigator],
        manual=manual_handoff,
    ) as wired:
        yield wired
