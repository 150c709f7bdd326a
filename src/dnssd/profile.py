from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Iterable, List, Optional, Union

from dnslib import AAAA, PTR, QTYPE, RR, SRV, TXT, A

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "local"
DEFAULT_TTL = 60

# RFC 6762 section 10: records carrying a host name use 120 s, others 75 min.
HOST_RECORD_TTL = 120
OTHER_RECORD_TTL = 4500

TXT_VERSION = "txtvers=1"

AddressLike = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]


class InvalidArgumentError(ValueError):
    """
    Brief: Raised when a service profile is built from malformed inputs.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def _simplify_service_name(service_name: str) -> str:
    """Brief: Reduce `_http._tcp` to `http` for use in the host name.

    Inputs:
      - service_name: Two-label service type.

    Outputs:
      - str: Service name with `._tcp`/`._udp` removed and leading
        underscores stripped.
    """

    return service_name.replace("._tcp", "").replace("._udp", "").lstrip("_")


def _address_record(host_name: str, address: AddressLike, ttl: int) -> RR:
    try:
        ip = ipaddress.ip_address(str(address))
    except ValueError as exc:
        raise InvalidArgumentError(f"invalid address {address!r}") from exc
    if ip.version == 4:
        return RR(host_name, QTYPE.A, rdata=A(str(ip)), ttl=ttl)
    return RR(host_name, QTYPE.AAAA, rdata=AAAA(str(ip)), ttl=ttl)


class ServiceProfile:
    """Brief: Resource records describing one discoverable service instance.

    Inputs:
      - instance_name: Unique instance label (for example "printer").
      - service_name: Service type of the form `_<service>._tcp` or `._udp`.
      - port: TCP/UDP port of the service.
      - addresses: IP addresses of the instance; None means the local
        link addresses reported by MulticastService.
      - domain: Registration domain (default "local").
      - ttl: TTL in seconds for the two PTR records.

    Outputs:
      - ServiceProfile whose `resources` hold the SRV, TXT and address
        records, plus `service_ptr_record` and `instance_ptr_record`.

    Raises:
      - InvalidArgumentError: empty names, a port outside 1..65535, a
        negative TTL, or an unparsable address.

    Example:
      >>> p = ServiceProfile("x", "_http._tcp", 80, addresses=["192.0.2.1"])
      >>> p.fully_qualified_name
      'x._http._tcp.local'
      >>> p.host_name
      'x.http.local'
    """

    def __init__(
        self,
        instance_name: str,
        service_name: str,
        port: int,
        addresses: Optional[Iterable[AddressLike]] = None,
        domain: str = DEFAULT_DOMAIN,
        ttl: int = DEFAULT_TTL,
    ) -> None:
        instance_name = str(instance_name or "").strip()
        service_name = str(service_name or "").strip().strip(".")
        domain = str(domain or "").strip().strip(".")

        if not instance_name:
            raise InvalidArgumentError("instance_name must not be empty")
        if not service_name.startswith("_"):
            raise InvalidArgumentError(
                f"service_name must look like _<service>._tcp, got {service_name!r}"
            )
        if not domain:
            raise InvalidArgumentError("domain must not be empty")
        try:
            port = int(port)
            ttl = int(ttl)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(f"port and ttl must be integers: {exc}") from exc
        if not 1 <= port <= 65535:
            raise InvalidArgumentError(f"port must be in 1..65535, got {port}")
        if ttl < 0:
            raise InvalidArgumentError(f"ttl must not be negative, got {ttl}")

        self.instance_name = instance_name
        self.service_name = service_name
        self.domain = domain
        self.host_name = (
            f"{instance_name}.{_simplify_service_name(service_name)}.{domain}"
        )

        fqn = self.fully_qualified_name
        self.resources: List[RR] = [
            RR(
                fqn,
                QTYPE.SRV,
                rdata=SRV(priority=0, weight=0, port=port, target=self.host_name),
                ttl=HOST_RECORD_TTL,
            ),
            RR(fqn, QTYPE.TXT, rdata=TXT([TXT_VERSION]), ttl=OTHER_RECORD_TTL),
        ]

        if addresses is None:
            from .transports.multicast import MulticastService

            addresses = MulticastService.get_link_local_addresses()
            logger.debug("ServiceProfile %s using local addresses %s", fqn, addresses)
        for address in addresses:
            self.resources.append(_address_record(self.host_name, address, HOST_RECORD_TTL))

        self.service_ptr_record = RR(
            self.service_name, QTYPE.PTR, rdata=PTR(self.qualified_service_name), ttl=ttl
        )
        self.instance_ptr_record = RR(
            self.qualified_service_name, QTYPE.PTR, rdata=PTR(fqn), ttl=ttl
        )

    def __repr__(self) -> str:
        return f"ServiceProfile({self.fully_qualified_name!r}, port={self.port})"

    @property
    def qualified_service_name(self) -> str:
        return f"{self.service_name}.{self.domain}"

    @property
    def fully_qualified_name(self) -> str:
        return f"{self.instance_name}.{self.qualified_service_name}"

    @property
    def srv_record(self) -> RR:
        return next(rr for rr in self.resources if rr.rtype == QTYPE.SRV)

    @property
    def txt_record(self) -> RR:
        return next(rr for rr in self.resources if rr.rtype == QTYPE.TXT)

    @property
    def address_records(self) -> List[RR]:
        return [rr for rr in self.resources if rr.rtype in (QTYPE.A, QTYPE.AAAA)]

    @property
    def port(self) -> int:
        return int(self.srv_record.rdata.port)

    @property
    def ttl(self) -> int:
        return int(self.service_ptr_record.ttl)

    @property
    def properties(self) -> Dict[str, str]:
        """Brief: TXT strings parsed into a mapping.

        Inputs:
          - None.

        Outputs:
          - dict: `key -> value`; strings without `=` map to "". Later keys
            win over earlier ones.
        """

        out: Dict[str, str] = {}
        for raw in self.txt_record.rdata.data:
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else str(raw)
            key, _, value = text.partition("=")
            out[key] = value
        return out

    def all_records(self) -> List[RR]:
        """Every record the profile publishes: both PTRs, then `resources`."""
        return [self.instance_ptr_record, self.service_ptr_record] + list(self.resources)

    def add_property(self, key: str, value: str) -> None:
        """Brief: Append `key=value` to the TXT record.

        Inputs:
          - key: Property name (must not be empty or contain "=").
          - value: Property value.

        Outputs:
          - None.
        """

        key = str(key)
        if not key or "=" in key:
            raise InvalidArgumentError(f"invalid TXT property key {key!r}")
        entry = f"{key}={value}".encode("utf-8")
        if len(entry) > 255:
            raise InvalidArgumentError(f"TXT property {key!r} exceeds 255 bytes")
        self.txt_record.rdata.data.append(entry)

    def set_ttl(self, seconds: int) -> None:
        """Brief: Update the TTL of both PTR records together.

        Inputs:
          - seconds: New TTL in seconds.

        Outputs:
          - None. SRV, TXT and address records keep their own TTLs.
        """

        seconds = int(seconds)
        if seconds < 0:
            raise InvalidArgumentError(f"ttl must not be negative, got {seconds}")
        self.service_ptr_record.ttl = seconds
        self.instance_ptr_record.ttl = seconds
