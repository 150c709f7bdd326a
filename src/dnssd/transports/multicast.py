from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
from typing import List, Optional, Tuple, Union

import ifaddr
from cachetools import TTLCache  # type: ignore[import]
from dnslib import QTYPE, DNSHeader, DNSQuestion, DNSRecord

from ..config.config_schema import MDNS_GROUP_V4, MDNS_GROUP_V6, MulticastConfig
from .base import BaseTransport

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Upper bound on remembered datagrams for duplicate suppression.
_RECENT_MESSAGES_MAX = 1024

# Receive timeout so loops notice dispose() promptly.
_RECV_TIMEOUT_S = 0.5


class MulticastError(Exception):
    """
    Brief: mDNS multicast transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class MulticastService(BaseTransport):
    """Brief: Send and receive mDNS messages over UDP multicast.

    Inputs:
      - config: Optional MulticastConfig; keyword overrides build one when
        omitted (for example `MulticastService(use_ipv6=True)`).

    Outputs:
      - Transport instance. start() binds the sockets and spawns one daemon
        receive thread per socket; parsed messages are routed to
        query_received / answer_received, unparsable ones to
        malformed_message.

    Notes:
      - Identical datagrams received within `duplicate_window_seconds` are
        dropped. The same packet commonly arrives once per joined interface.
      - dispose() is idempotent.
    """

    def __init__(self, config: Optional[MulticastConfig] = None, **overrides) -> None:
        super().__init__()
        self.config = config if config is not None else MulticastConfig(**overrides)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sockets: List[Tuple[socket.socket, tuple]] = []
        self._threads: List[threading.Thread] = []
        self._started = False
        self._disposed = False

        window = float(self.config.duplicate_window_seconds)
        self._recent: Optional[TTLCache] = None
        self._recent_lock = threading.Lock()
        if self.config.ignore_duplicate_messages and window > 0:
            self._recent = TTLCache(maxsize=_RECENT_MESSAGES_MAX, ttl=window)

    @property
    def running(self) -> bool:
        return self._started and not self._disposed

    @staticmethod
    def get_ip_addresses() -> List[IPAddress]:
        """Brief: Enumerate non-loopback addresses of local network adapters.

        Inputs:
          - None.

        Outputs:
          - list of ipaddress.IPv4Address / IPv6Address, adapter order.
        """

        out: List[IPAddress] = []
        for adapter in ifaddr.get_adapters():
            for ip in adapter.ips:
                raw = ip.ip[0] if isinstance(ip.ip, tuple) else ip.ip
                try:
                    addr = ipaddress.ip_address(str(raw).split("%", 1)[0])
                except ValueError:
                    logger.debug("Skipping unparsable adapter address %r", raw)
                    continue
                if addr.is_loopback or addr in out:
                    continue
                out.append(addr)
        return out

    @classmethod
    def get_link_local_addresses(cls) -> List[IPAddress]:
        """Brief: Addresses reachable on the local link.

        Inputs:
          - None.

        Outputs:
          - list: Every IPv4 address plus IPv6 link-local addresses.
        """

        return [
            a
            for a in cls.get_ip_addresses()
            if a.version == 4 or a.is_link_local
        ]

    @staticmethod
    def get_ipv6_interface_indexes(interfaces: List[str]) -> List[int]:
        """Brief: Map configured IPv6 interface addresses to interface indexes.

        Inputs:
          - interfaces: Interface IP strings; IPv4 entries are ignored.

        Outputs:
          - list[int]: One index per IPv6 entry, in order, without repeats.

        Raises:
          - MulticastError: when no local adapter carries an IPv6 entry.
        """

        wanted = [
            ipaddress.ip_address(i) for i in interfaces if ipaddress.ip_address(i).version == 6
        ]
        if not wanted:
            return []

        adapters = ifaddr.get_adapters()
        out: List[int] = []
        for addr in wanted:
            for adapter in adapters:
                # ifaddr reports IPv6 addresses as (ip, flowinfo, scope_id)
                if any(
                    isinstance(ip.ip, tuple)
                    and ipaddress.ip_address(ip.ip[0].split("%", 1)[0]) == addr
                    for ip in adapter.ips
                ):
                    index = socket.if_nametoindex(adapter.name)
                    if index not in out:
                        out.append(index)
                    break
            else:
                raise MulticastError(f"No local adapter has IPv6 address {addr}")
        return out

    def start(self) -> None:
        """Brief: Bind the multicast sockets and start the receive loops.

        Inputs:
          - None.

        Outputs:
          - None.

        Raises:
          - MulticastError: when disposed, or when no socket could be bound.
        """

        with self._lock:
            if self._disposed:
                raise MulticastError("MulticastService has been disposed")
            if self._started:
                return
            v6_indexes: List[int] = []
            if self.config.use_ipv6:
                v6_indexes = self.get_ipv6_interface_indexes(self.config.interfaces)
            self._started = True

            if self.config.use_ipv4:
                self._open_socket(socket.AF_INET)
            if self.config.use_ipv6:
                self._open_socket(socket.AF_INET6, v6_indexes)
            if not self._sockets:
                self._started = False
                raise MulticastError("MulticastService: no multicast socket could be opened")

            for sock, dest in self._sockets:
                t = threading.Thread(
                    target=self._receive_loop,
                    args=(sock,),
                    name=f"dnssd-mdns-{dest[0]}",
                    daemon=True,
                )
                self._threads.append(t)
                t.start()

        logger.info(
            "MulticastService started: port=%d ipv4=%s ipv6=%s interfaces=%s",
            self.config.port,
            self.config.use_ipv4,
            self.config.use_ipv6,
            self.config.interfaces or "default",
        )

    def _open_socket(self, family: int, v6_indexes: Optional[List[int]] = None) -> None:
        cfg = self.config
        sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:  # pragma: no cover - platform specific
                    logger.debug("SO_REUSEPORT not supported")

            if family == socket.AF_INET:
                sock.bind(("", cfg.port))
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, cfg.multicast_ttl)
                sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if cfg.loopback else 0
                )
                v4_ifaces = [i for i in cfg.interfaces if ipaddress.ip_address(i).version == 4]
                for iface in v4_ifaces or ["0.0.0.0"]:
                    mreq = socket.inet_aton(MDNS_GROUP_V4) + socket.inet_aton(iface)
                    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
                if len(v4_ifaces) == 1:
                    sock.setsockopt(
                        socket.IPPROTO_IP,
                        socket.IP_MULTICAST_IF,
                        socket.inet_aton(v4_ifaces[0]),
                    )
                dest: tuple = (MDNS_GROUP_V4, cfg.port)
            else:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                sock.bind(("", cfg.port))
                sock.setsockopt(
                    socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, cfg.multicast_ttl
                )
                sock.setsockopt(
                    socket.IPPROTO_IPV6,
                    socket.IPV6_MULTICAST_LOOP,
                    1 if cfg.loopback else 0,
                )
                group6 = socket.inet_pton(socket.AF_INET6, MDNS_GROUP_V6)
                for index in v6_indexes or [0]:
                    mreq6 = group6 + struct.pack("@I", index)
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq6)
                scope = 0
                if v6_indexes and len(v6_indexes) == 1:
                    scope = v6_indexes[0]
                    sock.setsockopt(
                        socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_IF, struct.pack("@I", scope)
                    )
                dest = (MDNS_GROUP_V6, cfg.port, 0, scope)

            sock.settimeout(_RECV_TIMEOUT_S)
        except OSError as exc:
            sock.close()
            logger.error(
                "MulticastService: failed to open %s socket on port %d: %s",
                "IPv4" if family == socket.AF_INET else "IPv6",
                cfg.port,
                exc,
            )
            return

        self._sockets.append((sock, dest))

    def _receive_loop(self, sock: socket.socket) -> None:
        size = int(self.config.max_packet_size)
        while not self._stop.is_set():
            try:
                data, addr = sock.recvfrom(size)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop.is_set():
                    break
                logger.warning("MulticastService receive error: %s", exc)
                continue
            try:
                self.handle_datagram(data, addr)
            except Exception:  # pragma: no cover - hooks already contain listener errors
                logger.exception("MulticastService failed handling datagram from %s", addr)

    def _seen_recently(self, data: bytes) -> bool:
        if self._recent is None:
            return False
        with self._recent_lock:
            if data in self._recent:
                return True
            self._recent[data] = True
            return False

    def handle_datagram(self, data: bytes, addr: Optional[tuple] = None) -> Optional[DNSRecord]:
        """Brief: Parse one received datagram and fire the matching event.

        Inputs:
          - data: Raw UDP payload.
          - addr: Sender address tuple (used for logging only).

        Outputs:
          - DNSRecord when the datagram was parsed and dispatched, None when
            it was a recent duplicate or could not be parsed.
        """

        if self._seen_recently(bytes(data)):
            logger.debug("MulticastService dropped duplicate datagram from %s", addr)
            return None

        try:
            message = DNSRecord.parse(data)
        except Exception as exc:
            logger.debug("MulticastService malformed datagram from %s: %s", addr, exc)
            self.malformed_message.fire(bytes(data))
            return None

        self.dispatch(message)
        return message

    def send_query(self, name: str, qtype: int = QTYPE.PTR) -> None:
        """Brief: Multicast one question.

        Inputs:
          - name: Question name (for example `_services._dns-sd._udp.local`).
          - qtype: Numeric question type (default PTR).

        Outputs:
          - None.
        """

        msg = DNSRecord(DNSHeader(id=0, qr=0), q=DNSQuestion(name, int(qtype)))
        logger.debug("MulticastService query %s %s", name, QTYPE.get(int(qtype), qtype))
        self._send(msg.pack())

    def send_answer(self, message: DNSRecord) -> None:
        """Brief: Multicast a response in mDNS form.

        Inputs:
          - message: Response DNSRecord; its header id is set to 0, qr and aa
            are set, and the question section is removed (RFC 6762 section 6).

        Outputs:
          - None.
        """

        message.header.id = 0
        message.header.qr = 1
        message.header.aa = 1
        message.header.tc = 0
        message.questions = []
        packet = message.pack()
        if len(packet) > int(self.config.max_packet_size):
            logger.warning(
                "MulticastService answer is %d bytes, above max_packet_size=%d",
                len(packet),
                self.config.max_packet_size,
            )
        self._send(packet)

    def _send(self, packet: bytes) -> None:
        with self._lock:
            targets = list(self._sockets)
        if not targets:
            raise MulticastError("MulticastService is not started")

        failures = 0
        for sock, dest in targets:
            try:
                sock.sendto(packet, dest)
            except OSError as exc:
                failures += 1
                logger.warning("MulticastService send to %s failed: %s", dest[0], exc)
        if failures == len(targets):
            raise MulticastError("MulticastService: send failed on every socket")

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            sockets = list(self._sockets)
            threads = list(self._threads)
            self._sockets = []
            self._threads = []

        self._stop.set()
        for sock, _dest in sockets:
            try:
                sock.close()
            except OSError:  # pragma: no cover - best effort close
                logger.debug("MulticastService socket close failed", exc_info=True)
        for t in threads:
            if t is not threading.current_thread():
                t.join(timeout=2.0)
        logger.info("MulticastService disposed")
