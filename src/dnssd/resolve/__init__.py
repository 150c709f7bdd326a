"""Authoritative record set and name-resolution engine."""

from .catalog import Catalog, normalize_name
from .name_server import NameServer

__all__ = ["Catalog", "NameServer", "normalize_name"]
