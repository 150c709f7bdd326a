"""Transports that carry mDNS messages to and from the network."""

from .base import BaseTransport
from .multicast import MulticastError, MulticastService

__all__ = ["BaseTransport", "MulticastError", "MulticastService"]
