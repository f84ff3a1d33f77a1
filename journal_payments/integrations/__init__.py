"""External integrations: portal REST API and browser handoff."""
from .browser import ConsoleHandoff, LaunchNavigator, WebBrowserNavigator
from .portal_client import PortalClient

__all__ = ["ConsoleHandoff", "LaunchNavigator", "PortalClient", "WebBrowserNavigator"]
