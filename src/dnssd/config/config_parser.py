"""Configuration parsing helpers for dnssd.

Brief:
  Reads the YAML config used by the CLI, validates it against the pydantic
  models in config_schema, and turns service entries into ServiceProfile
  objects.

Inputs:
  - YAML config paths or already-parsed mappings

Outputs:
  - DnssdConfig instances and ServiceProfile lists
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from ..profile import ServiceProfile
from .config_schema import DnssdConfig, ServiceConfig

logger = logging.getLogger(__name__)


def parse_config(cfg: Dict[str, Any]) -> DnssdConfig:
    """Brief: Validate a parsed configuration mapping.

    Inputs:
      - cfg: Mapping loaded from YAML (None is treated as empty).

    Outputs:
      - DnssdConfig: Validated configuration.

    Raises:
      - ValueError: When the root is not a mapping or validation fails.
    """

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    try:
        return DnssdConfig(**cfg)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def parse_config_file(config_path: str) -> DnssdConfig:
    """Brief: Read and validate a YAML configuration file.

    Inputs:
      - config_path: Path to the YAML file.

    Outputs:
      - DnssdConfig: Validated configuration.

    Raises:
      - ValueError: When YAML parsing or validation fails.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path}: invalid YAML: {exc}") from exc
    return parse_config(cfg)


def build_profile(service: ServiceConfig) -> ServiceProfile:
    """Brief: Build a ServiceProfile from one validated service entry.

    Inputs:
      - service: ServiceConfig.

    Outputs:
      - ServiceProfile with configured TXT properties appended in order.
    """

    profile = ServiceProfile(
        service.instance,
        service.service,
        service.port,
        addresses=service.addresses,
        domain=service.domain,
        ttl=service.ttl,
    )
    for key, value in service.properties.items():
        profile.add_property(key, value)
    return profile


def build_profiles(cfg: DnssdConfig) -> List[ServiceProfile]:
    profiles = [build_profile(s) for s in cfg.services]
    logger.debug("Built %d service profile(s) from config", len(profiles))
    return profiles
