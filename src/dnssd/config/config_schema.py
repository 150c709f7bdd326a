"""Typed configuration models for dnssd.

Brief:
  Pydantic models describing the YAML configuration consumed by the CLI and
  by MulticastService. Validation errors surface as pydantic ValidationError
  and are wrapped into ValueError by config_parser.
"""

from __future__ import annotations

import ipaddress
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, validator

MDNS_PORT = 5353
MDNS_GROUP_V4 = "224.0.0.251"
MDNS_GROUP_V6 = "ff02::fb"


class MulticastConfig(BaseModel):
    """Brief: Socket and receive-loop settings for MulticastService.

    Inputs:
      - use_ipv4: bool, join the IPv4 group 224.0.0.251.
      - use_ipv6: bool, join the IPv6 group ff02::fb.
      - port: int UDP port (5353 unless testing).
      - interfaces: list[str] of local interface IPs to join on; empty means
        the default interface. IPv4 entries are used by the IPv4 socket and
        IPv6 entries are mapped to interface indexes for the IPv6 socket.
      - loopback: bool, receive our own multicast traffic.
      - multicast_ttl: int IP hop limit for outgoing packets (RFC 6762 says 255).
      - ignore_duplicate_messages: bool, drop datagrams seen recently.
      - duplicate_window_seconds: float window for duplicate suppression.
      - max_packet_size: int receive buffer and send-size ceiling.

    Outputs:
      - MulticastConfig instance.
    """

    use_ipv4: bool = True
    use_ipv6: bool = False
    port: int = Field(default=MDNS_PORT, ge=0, le=65535)
    interfaces: List[str] = Field(default_factory=list)
    loopback: bool = True
    multicast_ttl: int = Field(default=255, ge=1, le=255)
    ignore_duplicate_messages: bool = True
    duplicate_window_seconds: float = Field(default=1.0, ge=0)
    max_packet_size: int = Field(default=9000, ge=512, le=65535)

    @validator("interfaces", pre=True)
    def _normalize_interfaces(cls, v):  # type: ignore[no-untyped-def]
        """Brief: Accept a single IP string or a list, dropping blanks.

        Inputs:
          - v: None, str, or list of IP strings.

        Outputs:
          - list[str]: Validated interface addresses.
        """

        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        out = []
        for item in v:
            s = str(item or "").strip()
            if not s:
                continue
            ipaddress.ip_address(s)
            out.append(s)
        return out

    class Config:
        extra = "forbid"


class ServiceConfig(BaseModel):
    """Brief: One service instance to advertise.

    Inputs:
      - instance: Instance label (for example "printer").
      - service: Service type, `_<name>._tcp` or `_<name>._udp`.
      - port: Service port.
      - domain: Registration domain (default "local").
      - ttl: PTR TTL in seconds.
      - addresses: Optional explicit address list; when omitted the local
        interface addresses are used.
      - properties: TXT key/value pairs appended after `txtvers=1`.

    Outputs:
      - ServiceConfig instance.
    """

    instance: str
    service: str
    port: int = Field(ge=1, le=65535)
    domain: str = "local"
    ttl: int = Field(default=60, ge=0)
    addresses: Optional[List[str]] = None
    properties: Dict[str, str] = Field(default_factory=dict)

    @validator("service")
    def _check_service(cls, v):  # type: ignore[no-untyped-def]
        s = str(v).strip()
        if not s.startswith("_"):
            raise ValueError(f"service must look like _name._tcp, got {v!r}")
        return s

    @validator("domain", pre=True)
    def _normalize_domain(cls, v):  # type: ignore[no-untyped-def]
        s = str(v or "local").strip().strip(".")
        return s or "local"

    @validator("properties", pre=True)
    def _stringify_properties(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return {}
        return {str(k): "" if val is None else str(val) for k, val in dict(v).items()}

    class Config:
        extra = "forbid"


class LoggingConfig(BaseModel):
    level: str = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: object = None


class DnssdConfig(BaseModel):
    """Brief: Root of the YAML configuration file.

    Inputs:
      - logging: LoggingConfig mapping passed to init_logging().
      - multicast: MulticastConfig for the owned transport.
      - browse: bool, send a service-enumeration query at startup.
      - services: list of ServiceConfig entries to advertise.

    Outputs:
      - DnssdConfig instance.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    multicast: MulticastConfig = Field(default_factory=MulticastConfig)
    browse: bool = False
    services: List[ServiceConfig] = Field(default_factory=list)

    class Config:
        extra = "forbid"
