"""DNS-SD (RFC 6763) responder and browser over multicast DNS (RFC 6762)."""

from .discovery import META_SERVICE_NAME, ServiceDiscovery
from .events import EventHook, Subscription
from .profile import InvalidArgumentError, ServiceProfile

__all__ = [
    "META_SERVICE_NAME",
    "EventHook",
    "InvalidArgumentError",
    "ServiceDiscovery",
    "ServiceProfile",
    "Subscription",
]
