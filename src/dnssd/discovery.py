"""DNS-based Service Discovery (RFC 6763) over multicast DNS.

Brief:
  ServiceDiscovery answers mDNS questions for advertised ServiceProfile
  records and reports service types announced by other responders.

Inputs:
  - A BaseTransport (owned MulticastService by default).

Outputs:
  - service_discovered / service_instance_discovered event hooks.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Set

from dnslib import QTYPE, RCODE, DNSHeader, DNSRecord

from .events import EventHook, Subscription
from .profile import ServiceProfile
from .resolve.catalog import Catalog, normalize_name
from .resolve.name_server import NameServer
from .transports.base import BaseTransport

logger = logging.getLogger(__name__)

# RFC 6763 section 9: service type enumeration.
META_SERVICE_NAME = "_services._dns-sd._udp.local"
_META_KEY = normalize_name(META_SERVICE_NAME)


class ServiceDiscovery:
    """Brief: Advertise service profiles and browse for DNS-SD services.

    Inputs:
      - transport: Optional BaseTransport. When omitted a MulticastService is
        created, owned, and started immediately.

    Outputs:
      - ServiceDiscovery instance subscribed to the transport's
        query_received and answer_received hooks.

    Notes:
      - Queries are resolved synchronously on the transport's receive thread;
        each query yields at most one response.
      - Advertised records stay in the catalog for the object's lifetime.
      - Supports `with ServiceDiscovery(...) as sd:`.

    Example:
      >>> sd = ServiceDiscovery()
      >>> sd.service_discovered.subscribe(print)
      >>> sd.advertise(ServiceProfile("x", "_http._tcp", 8080))
      >>> sd.query_all_services()
    """

    META_SERVICE_NAME = META_SERVICE_NAME

    def __init__(self, transport: Optional[BaseTransport] = None) -> None:
        self._lock = threading.RLock()
        self._disposed = False
        self._profiles: List[ServiceProfile] = []
        self._instance_queries: Set[str] = set()

        self.name_server = NameServer(Catalog(), answer_all_questions=True)
        self.service_discovered = EventHook("service_discovered")
        self.service_instance_discovered = EventHook("service_instance_discovered")

        self.owns_transport = transport is None
        if transport is None:
            from .transports.multicast import MulticastService

            transport = MulticastService()
        self.transport: Optional[BaseTransport] = transport

        self._subscriptions: List[Subscription] = [
            transport.query_received.subscribe(self._on_query),
            transport.answer_received.subscribe(self._on_answer),
        ]

        if self.owns_transport:
            try:
                transport.start()
            except Exception:
                self.dispose()
                raise

    def __enter__(self) -> "ServiceDiscovery":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    @property
    def profiles(self) -> List[ServiceProfile]:
        with self._lock:
            return list(self._profiles)

    @property
    def catalog(self) -> Catalog:
        return self.name_server.catalog

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _require_transport(self) -> BaseTransport:
        transport = self.transport
        if transport is None:
            raise RuntimeError("ServiceDiscovery has been disposed")
        return transport

    def query_all_services(self) -> None:
        """Brief: Ask responders on the link to enumerate their service types.

        Inputs:
          - None.

        Outputs:
          - None. Answers arrive through service_discovered.
        """

        self._require_transport().send_query(META_SERVICE_NAME, QTYPE.PTR)

    def query_service_instances(self, service: str) -> str:
        """Brief: Ask for the instances of one service type.

        Inputs:
          - service: `_http._tcp` (".local" is appended) or an already
            qualified name such as `_http._tcp.local`.

        Outputs:
          - str: The qualified name that was queried. PTR answers for it fire
            service_instance_discovered(instance_fqdn).
        """

        name = normalize_name(service)
        if name.endswith("._tcp") or name.endswith("._udp"):
            name = f"{name}.local"
        with self._lock:
            self._instance_queries.add(name)
        self._require_transport().send_query(name, QTYPE.PTR)
        return name

    def advertise(self, profile: ServiceProfile) -> None:
        """Brief: Publish a profile's records as authoritative answers.

        Inputs:
          - profile: ServiceProfile to advertise (kept by reference).

        Outputs:
          - None.

        Notes:
          - Advertising the same profile object again is ignored.
        """

        with self._lock:
            if any(p is profile for p in self._profiles):
                logger.debug("ServiceDiscovery: %s already advertised", profile)
                return
            self._profiles.append(profile)

            catalog = self.name_server.catalog
            catalog.add(profile.instance_ptr_record, authoritative=True)
            catalog.add(profile.service_ptr_record, authoritative=True)
            for rr in profile.resources:
                catalog.add(rr, authoritative=True)

        logger.info(
            "ServiceDiscovery: advertising %s on port %d",
            profile.fully_qualified_name,
            profile.port,
        )

    def announce(self, profile: ServiceProfile) -> None:
        """Brief: Send one unsolicited response carrying a profile's records.

        Inputs:
          - profile: ServiceProfile to announce (need not be advertised).

        Outputs:
          - None.
        """

        message = DNSRecord(DNSHeader(id=0, qr=1, aa=1))
        message.add_answer(profile.instance_ptr_record)
        for rr in profile.resources:
            if rr.rtype in (QTYPE.SRV, QTYPE.TXT):
                message.add_answer(rr)
        for rr in profile.address_records:
            message.add_ar(rr)
        self._require_transport().send_answer(message)

    def _on_query(self, request: DNSRecord) -> None:
        try:
            if logger.isEnabledFor(logging.DEBUG) and request.questions:
                q = request.questions[0]
                logger.debug(
                    "got query for %s %s", q.qname, QTYPE.get(q.qtype, q.qtype)
                )

            response = self.name_server.resolve(request)
            if response.header.rcode != RCODE.NOERROR:
                return

            # Many Bonjour browsers reject service-enumeration responses
            # that carry additional records.
            if any(normalize_name(rr.rname) == _META_KEY for rr in response.rr):
                response.ar = []

            transport = self.transport
            if transport is None:
                return
            transport.send_answer(response)
            logger.debug("sent answer %s", response.rr[0] if response.rr else None)
        except Exception:
            logger.exception("ServiceDiscovery: failed to answer query")

    def _on_answer(self, message: DNSRecord) -> None:
        try:
            with self._lock:
                instance_queries = set(self._instance_queries)

            for rr in message.rr:
                if rr.rtype != QTYPE.PTR:
                    continue
                owner = normalize_name(rr.rname)
                target = str(rr.rdata.label).rstrip(".")
                if owner == _META_KEY:
                    self.service_discovered.fire(target)
                elif owner in instance_queries:
                    self.service_instance_discovered.fire(target)
        except Exception:
            logger.exception("ServiceDiscovery: failed to process answer")

    def dispose(self) -> None:
        """Brief: Detach from the transport; dispose it when owned.

        Inputs:
          - None.

        Outputs:
          - None. Safe to call more than once.
        """

        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            subscriptions, self._subscriptions = self._subscriptions, []
            transport, self.transport = self.transport, None

        for sub in subscriptions:
            sub.cancel()
        if transport is not None and self.owns_transport:
            transport.dispose()
        logger.debug("ServiceDiscovery disposed (owned transport=%s)", self.owns_transport)
