from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from dnslib import QTYPE, RR

logger = logging.getLogger(__name__)


def normalize_name(name: object) -> str:
    """Brief: Normalize a DNS owner name for use as a catalog key.

    Inputs:
      - name: str or dnslib DNSLabel (any case, optional trailing dot).

    Outputs:
      - str: Lowercased name without trailing dot.

    Example:
      - `Printer._IPP._tcp.local.` -> `printer._ipp._tcp.local`
    """

    return str(name).rstrip(".").lower()


def _same_record(a: RR, b: RR) -> bool:
    return (
        a.rtype == b.rtype
        and (a.rclass & 0x7FFF) == (b.rclass & 0x7FFF)
        and normalize_name(a.rname) == normalize_name(b.rname)
        and a.rdata == b.rdata
    )


def _collapse(records: Iterable[RR]) -> List[RR]:
    out: List[RR] = []
    for rr in records:
        for i, existing in enumerate(out):
            if _same_record(existing, rr):
                out[i] = rr
                break
        else:
            out.append(rr)
    return out


@dataclass
class _Node:
    """Brief: All records owned by one name.

    Inputs:
      - authoritative: True when every record at this name was added as
        authoritative data.
      - records: Ordered list of dnslib RR objects.

    Outputs:
      - _Node instance.
    """

    authoritative: bool = True
    records: List[RR] = field(default_factory=list)


class Catalog:
    """Brief: Thread-safe set of resource records keyed by owner name.

    Inputs:
      - None.

    Outputs:
      - Catalog instance.

    Notes:
      - The catalog is append-only; there is no removal API and nothing here
        ages records out.
      - Records are stored by reference, so a TTL change made on a record
        object after insertion is visible to later lookups.
      - The catalog never writes to a record it holds. When several equal
        records (owner, type, class and rdata) are stored, lookup() returns
        the most recently added one at the position of the first.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: Dict[str, _Node] = {}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(n.records) for n in self._nodes.values())

    def __contains__(self, name: object) -> bool:
        return self.contains(str(name))

    def add(self, rr: RR, authoritative: bool = True) -> RR:
        """Brief: Insert a record under its owner name.

        Inputs:
          - rr: dnslib RR to insert.
          - authoritative: Whether the record is ground truth for the owner.

        Outputs:
          - RR: `rr` itself. Adding the same object twice stores it once;
            equal records added as separate objects are all kept unchanged.
        """

        key = normalize_name(rr.rname)
        with self._lock:
            node = self._nodes.get(key)
            if node is None:
                node = _Node(authoritative=bool(authoritative))
                self._nodes[key] = node
            elif not authoritative:
                node.authoritative = False

            if any(existing is rr for existing in node.records):
                return rr
            node.records.append(rr)

        logger.debug(
            "Catalog add %s %s authoritative=%s",
            key,
            QTYPE.get(rr.rtype, rr.rtype),
            bool(authoritative),
        )
        return rr

    def add_all(self, records: Iterable[RR], authoritative: bool = True) -> None:
        for rr in records:
            self.add(rr, authoritative=authoritative)

    def contains(self, name: str) -> bool:
        with self._lock:
            return normalize_name(name) in self._nodes

    def is_authoritative(self, name: str) -> bool:
        with self._lock:
            node = self._nodes.get(normalize_name(name))
            return bool(node is not None and node.authoritative)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._nodes.keys())

    def lookup(self, name: str, qtype: int) -> List[RR]:
        """Brief: Return records at `name` matching `qtype`.

        Inputs:
          - name: Owner name (any case, optional trailing dot).
          - qtype: Numeric record type; QTYPE.ANY matches every type.

        Outputs:
          - list[RR]: Matching records in insertion order (may be empty).
        """

        with self._lock:
            node = self._nodes.get(normalize_name(name))
            if node is None:
                return []
            if int(qtype) == int(QTYPE.ANY):
                return _collapse(node.records)
            return _collapse(rr for rr in node.records if rr.rtype == int(qtype))
