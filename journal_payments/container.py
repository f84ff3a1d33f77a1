"""
Service container.

Builds the payment services once per process from settings and hands them
out by reference. Flows are created per payment context and never shared.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Union

import httpx
import structlog

from journal_payments.config import Settings
from journal_payments.core.flow import PaymentFlow
from journal_payments.core.gateway import GatewayInvoker
from journal_payments.core.models import Provider, ServiceType
from journal_payments.core.reconciliation import StatusReconciler
from journal_payments.core.redirect import ManualHandoff, Navigator, RedirectStrategy
from journal_payments.core.transactions import (
    TransactionInitiator,
    build_transaction_request,
)
from journal_payments.integrations.browser import (
    ConsoleHandoff,
    LaunchNavigator,
    WebBrowserNavigator,
)
from journal_payments.integrations.portal_client import PortalClient
from journal_payments.monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


def default_navigators() -> List[Navigator]:
    """Primary and secondary browser navigators."""
    return [LaunchNavigator(), WebBrowserNavigator(new=2)]


@dataclass
class PaymentServices:
    """Process-wide payment services."""

    settings: Settings
    client: PortalClient
    initiator: TransactionInitiator
    invoker: GatewayInvoker
    reconciler: StatusReconciler
    health: HealthCheck
    redirector: Optional[RedirectStrategy] = field(default=None)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        navigators: Optional[List[Navigator]] = None,
        manual: Optional[ManualHandoff] = None,
        open_browser: bool = True,
    ) -> "PaymentServices":
        """
        Wire every service from settings.

        Args:
            settings: Application settings
            transport: Optional HTTP transport override
            navigators: Navigators for the redirect (defaults to browser ones)
            manual: Manual handoff (defaults to the console)
            open_browser: False presents the URL without trying a browser

        Returns:
            PaymentServices: Wired services
        """
        client = PortalClient(settings, transport=transport)
        if open_browser:
            navigator_list = navigators if navigators is not None else default_navigators()
        else:
            navigator_list = []

        redirector = RedirectStrategy(
            navigator_list,
            manual=manual or ConsoleHandoff(),
            verify_delay=settings.redirect_verify_delay,
        )

        logger.info(
            "payment_services_initialized",
            default_provider=settings.default_provider,
            navigators=[n.name for n in navigator_list],
        )

        return cls(
            settings=settings,
            client=client,
            initiator=TransactionInitiator(client, default_currency=settings.default_currency),
            invoker=GatewayInvoker(client, default_provider=settings.default_provider),
            reconciler=StatusReconciler(
                client,
                poll_interval=settings.status_poll_interval,
                poll_attempts=settings.status_poll_attempts,
            ),
            health=HealthCheck(client),
            redirector=redirector,
        )

    async def __aenter__(self) -> "PaymentServices":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def new_flow(
        self,
        amount: Union[int, float, Decimal, str],
        service_type: Union[ServiceType, str],
        currency: Optional[str] = None,
        article_id: Optional[str] = None,
        translation_request_id: Optional[str] = None,
        provider: Union[Provider, str, None] = None,
        redirect: bool = True,
    ) -> PaymentFlow:
        """
        Start a flow for a new billable intent.

        Input is validated here, before any request is sent.

        Raises:
            PaymentValidationError: If the intent is invalid
        """
        request = build_transaction_request(
            amount,
            currency,
            service_type,
            article_id,
            translation_request_id,
            default_currency=self.settings.default_currency,
        )
        return PaymentFlow(
            self.initiator,
            self.invoker,
            request=request,
            provider=provider or self.settings.default_provider,
            redirector=self.redirector if redirect else None,
            redirect_delay=self.settings.redirect_delay,
        )

    def flow_for_transaction(
        self,
        transaction_id: str,
        provider: Union[Provider, str, None] = None,
        redirect: bool = True,
    ) -> PaymentFlow:
        """Start a flow that pays for an existing transaction."""
        return PaymentFlow(
            self.initiator,
            self.invoker,
            transaction_id=transaction_id,
            provider=provider or self.settings.default_provider,
            redirector=self.redirector if redirect else None,
            redirect_delay=self.settings.redirect_delay,
        )
