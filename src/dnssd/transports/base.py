from __future__ import annotations

import abc
import logging

from dnslib import DNSRecord

from ..events import EventHook

logger = logging.getLogger(__name__)


class BaseTransport(abc.ABC):
    """Brief: Contract between the DNS-SD engine and an mDNS transport.

    Inputs:
      - None.

    Outputs:
      - Transport instance exposing three event hooks:
          - query_received(message: DNSRecord)
          - answer_received(message: DNSRecord)
          - malformed_message(data: bytes)

    Notes:
      - Implementations fire the hooks from their own receive threads.
      - dispose() must be safe to call more than once.
    """

    def __init__(self) -> None:
        self.query_received = EventHook("query_received")
        self.answer_received = EventHook("answer_received")
        self.malformed_message = EventHook("malformed_message")

    @abc.abstractmethod
    def start(self) -> None:
        """Start receiving messages."""

    @abc.abstractmethod
    def send_query(self, name: str, qtype: int) -> None:
        """Multicast a single question for `name` of type `qtype`."""

    @abc.abstractmethod
    def send_answer(self, message: DNSRecord) -> None:
        """Multicast a response message."""

    @abc.abstractmethod
    def dispose(self) -> None:
        """Stop receiving and release network resources."""

    def dispatch(self, message: DNSRecord) -> None:
        """Brief: Route a parsed message to the query or answer hook.

        Inputs:
          - message: dnslib DNSRecord received from the network.

        Outputs:
          - None.
        """

        if message.header.qr:
            self.answer_received.fire(message)
        else:
            self.query_received.fire(message)
