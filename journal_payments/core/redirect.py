"""
Checkout redirect handoff.

Navigation to the hosted checkout page is a one-shot external handoff that
a host environment may silently ignore. The handoff is therefore a
retry-with-fallback strategy:

1. primary navigator, verified after a short bounded delay
2. secondary navigator, verified the same way
3. manual handoff (present the URL so the user can open it)

If every step fails and no manual handoff is configured, a RedirectError is
raised.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from journal_payments.monitoring.metrics import metrics

from .errors import INVALID_URL_MESSAGE, REDIRECT_FAILED_MESSAGE, RedirectError

logger = structlog.get_logger(__name__)

ALLOWED_SCHEMES = ("http", "https")

_http_url_adapter = TypeAdapter(AnyHttpUrl)


def validate_payment_url(url: Optional[str]) -> str:
    """
    Check that a checkout URL is an absolute http(s) URL with a host.

    Args:
        url: Candidate URL

    Returns:
        str: The URL, unchanged apart from surrounding whitespace

    Raises:
        RedirectError: If the URL is empty, relative or uses another scheme
    """
    candidate = (url or "").strip()
    if not candidate:
        raise RedirectError(INVALID_URL_MESSAGE)

    try:
        parsed = _http_url_adapter.validate_python(candidate)
    except ValidationError as e:
        logger.warning("payment_url_rejected", url=candidate)
        raise RedirectError(INVALID_URL_MESSAGE) from e

    if parsed.scheme not in ALLOWED_SCHEMES or not parsed.host:
        logger.warning("payment_url_rejected", url=candidate)
        raise RedirectError(INVALID_URL_MESSAGE)

    return candidate


def is_valid_payment_url(url: Optional[str]) -> bool:
    try:
        validate_payment_url(url)
    except RedirectError:
        return False
    return True


class Navigator(ABC):
    """A primitive that sends the user to a URL."""

    name: str = "navigator"

    def __init__(self) -> None:
        self._last_url: Optional[str] = None
        self._accepted = False

    @abstractmethod
    def _open(self, url: str) -> bool:
        """Request navigation; return whether the host accepted it."""

    def navigate(self, url: str) -> bool:
        self._last_url = url
        self._accepted = bool(self._open(url))
        return self._accepted

    def verify(self, url: str) -> bool:
        """Whether navigation to `url` took effect."""
        return self._accepted and self._last_url == url


class ManualHandoff(ABC):
    """Last resort: show the URL to the user for manual activation."""

    @abstractmethod
    def present(self, url: str) -> None:
        """Present the URL."""


@dataclass(frozen=True)
class RedirectResult:
    """How a checkout URL was handed off."""

    url: str
    method: str
    manual: bool = False


class RedirectStrategy:
    """Primary action, verify, secondary action, verify, manual handoff."""

    def __init__(
        self,
        navigators: Sequence[Navigator],
        manual: Optional[ManualHandoff] = None,
        verify_delay: float = 0.1,
    ) -> None:
        """
        Initialize redirect strategy.

        Args:
            navigators: Navigators tried in order
            manual: Optional manual handoff used when no navigator took effect
            verify_delay: Seconds to wait before verifying each navigation
        """
        self.navigators = list(navigators)
        self.manual = manual
        self.verify_delay = verify_delay

    async def redirect(self, url: str) -> RedirectResult:
        """
        Hand the user off to the checkout page.

        Args:
            url: Checkout URL

        Returns:
            RedirectResult: Delivery method

        Raises:
            RedirectError: If the URL is invalid or no handoff took effect
        """
        target = validate_payment_url(url)

        for navigator in self.navigators:
            try:
                navigator.navigate(target)
            except Exception as e:  # host browser APIs may raise anything
                logger.warning(
                    "navigator_failed",
                    navigator=navigator.name,
                    error=str(e),
                )
                continue

            await asyncio.sleep(self.verify_delay)

            if navigator.verify(target):
                logger.info("redirect_completed", navigator=navigator.name, url=target)
                metrics.record_redirect_handoff(navigator.name)
                return RedirectResult(url=target, method=navigator.name)

            logger.warning("redirect_not_taken", navigator=navigator.name, url=target)

        if self.manual is not None:
            self.manual.present(target)
            logger.info("redirect_manual_handoff", url=target)
            metrics.record_redirect_handoff("manual")
            return RedirectResult(url=target, method="manual", manual=True)

        metrics.record_redirect_handoff("failed")
        logger.error("redirect_failed", url=target)
        raise RedirectError(REDIRECT_FAILED_MESSAGE)
