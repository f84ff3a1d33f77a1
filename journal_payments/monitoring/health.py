"""
Health checks for the portal backend.

Checks:
- Backend reachability
- API authorization (token accepted)
"""
from typing import TYPE_CHECKING, Any, Dict

import structlog

from journal_payments.core.errors import NetworkError, PaymentError

if TYPE_CHECKING:
    from journal_payments.integrations.portal_client import PortalClient

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the payment backend."""

    def __init__(self, client: "PortalClient") -> None:
        """
        Initialize health check service.

        Args:
            client: Portal API client
        """
        self.client = client

    async def check_backend(self) -> Dict[str, Any]:
        """
        Check that the backend answers on its health path.

        Returns:
            Dict[str, Any]: Backend health status

        Raises:
            HealthCheckError: If the backend is unreachable or failing
        """
        try:
            status_code = await self.client.ping()
        except NetworkError as e:
            logger.error("backend_health_check_failed", error=e.message)
            raise HealthCheckError(f"Backend health check failed: {e.message}") from e

        if status_code >= 500:
            logger.error("backend_health_check_failed", status_code=status_code)
            raise HealthCheckError(f"Backend health check failed: HTTP {status_code}")

        return {
            "status": "healthy",
            "service": "backend",
            "message": f"Backend responded with HTTP {status_code}",
        }

    async def check_api_access(self) -> Dict[str, Any]:
        """
        Check that the payment API accepts our credentials.

        Returns:
            Dict[str, Any]: API access status
        """
        try:
            await self.client.list_transactions()
        except PaymentError as e:
            logger.warning("api_access_check_failed", error=e.message)
            return {
                "status": "unhealthy",
                "service": "payments_api",
                "message": e.message,
            }

        return {
            "status": "healthy",
            "service": "payments_api",
            "message": "Payment API accessible",
        }

    async def get_health_status(self) -> Dict[str, Any]:
        """
        Get overall health status.

        Returns:
            Dict[str, Any]: Overall health with per-check details
        """
        checks: Dict[str, Any] = {}

        try:
            checks["backend"] = await self.check_backend()
        except HealthCheckError as e:
            checks["backend"] = {"status": "unhealthy", "service": "backend", "message": str(e)}
            return {"status": "unhealthy", "checks": checks}

        checks["payments_api"] = await self.check_api_access()
        healthy = all(check["status"] == "healthy" for check in checks.values())
        return {"status": "healthy" if healthy else "unhealthy", "checks": checks}
