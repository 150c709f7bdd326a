"""Brief: Unit tests for dnssd.config.config_parser helpers.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from pathlib import Path

import pytest
from dnslib import QTYPE

from dnssd.config import config_parser as cp
from dnssd.config.config_schema import DnssdConfig, MulticastConfig

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "dnssd.yaml"


def test_parse_config_defaults() -> None:
    """Brief: An empty mapping (or None) yields the default configuration.

    Inputs:
      - None.

    Outputs:
      - None; asserts default multicast and logging settings.
    """

    for raw in ({}, None):
        cfg = cp.parse_config(raw)
        assert isinstance(cfg, DnssdConfig)
        assert cfg.multicast.port == 5353
        assert cfg.multicast.use_ipv4 is True
        assert cfg.multicast.use_ipv6 is False
        assert cfg.logging.level == "info"
        assert cfg.browse is False
        assert cfg.services == []


def test_parse_config_rejects_non_mapping_root() -> None:
    with pytest.raises(ValueError, match="must be a mapping"):
        cp.parse_config([1, 2, 3])  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "raw",
    [
        {"unknown_section": {}},
        {"multicast": {"port": 70000}},
        {"multicast": {"interfaces": ["not-an-ip"]}},
        {"services": [{"instance": "x", "service": "http", "port": 80}]},
        {"services": [{"instance": "x", "service": "_http._tcp", "port": 0}]},
    ],
)
def test_parse_config_invalid_values_raise_value_error(raw) -> None:
    """Brief: Schema violations surface as ValueError.

    Inputs:
      - raw: invalid configuration mapping.

    Outputs:
      - None; asserts ValueError mentioning the invalid configuration.
    """

    with pytest.raises(ValueError, match="Invalid configuration"):
        cp.parse_config(raw)


def test_multicast_interfaces_accept_single_string() -> None:
    cfg = MulticastConfig(interfaces=" 192.0.2.1 ")
    assert cfg.interfaces == ["192.0.2.1"]
    assert MulticastConfig(interfaces=None).interfaces == []


def test_parse_config_file_reads_example() -> None:
    """Brief: The shipped example config parses and builds two profiles.

    Inputs:
      - None.

    Outputs:
      - None; asserts services, TXT properties and browse flag.
    """

    cfg = cp.parse_config_file(str(EXAMPLE_CONFIG))
    assert cfg.browse is True
    assert [s.instance for s in cfg.services] == ["printer", "notes"]

    printer = cp.build_profile(cfg.services[0])
    assert printer.fully_qualified_name == "printer._ipp._tcp.local"
    assert printer.port == 631
    assert printer.properties == {
        "txtvers": "1",
        "rp": "printers/main",
        "note": "Second floor",
    }
    assert [rr.rtype for rr in printer.address_records] == [QTYPE.A]


def test_parse_config_file_invalid_yaml(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("services: [unclosed\n")
    with pytest.raises(ValueError, match="invalid YAML"):
        cp.parse_config_file(str(path))


def test_parse_config_file_missing_raises_oserror(tmp_path) -> None:
    with pytest.raises(OSError):
        cp.parse_config_file(str(tmp_path / "missing.yaml"))


def test_build_profiles_normalizes_domain_and_properties() -> None:
    """Brief: Domain dots are stripped and property values stringified.

    Inputs:
      - None.

    Outputs:
      - None; asserts names and TXT strings of the built profile.
    """

    cfg = cp.parse_config(
        {
            "services": [
                {
                    "instance": "cam",
                    "service": "_rtsp._udp",
                    "port": 554,
                    "domain": "lan.",
                    "addresses": [],
                    "properties": {"fps": 30, "flag": None},
                }
            ]
        }
    )
    profiles = cp.build_profiles(cfg)
    assert len(profiles) == 1
    p = profiles[0]
    assert p.qualified_service_name == "_rtsp._udp.lan"
    assert p.host_name == "cam.rtsp.lan"
    strings = [s.decode() for s in p.txt_record.rdata.data]
    assert strings == ["txtvers=1", "fps=30", "flag="]
