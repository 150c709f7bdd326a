from __future__ import annotations

import logging
from typing import List, Optional

from dnslib import QTYPE, RCODE, RR, DNSHeader, DNSRecord

from .catalog import Catalog, normalize_name

logger = logging.getLogger(__name__)

# Question class with the mDNS "unicast response" bit masked off.
_QCLASS_MASK = 0x7FFF
_CLASS_IN = 1
_CLASS_ANY = 255


class NameServer:
    """Brief: Answer DNS questions from a Catalog.

    Inputs:
      - catalog: Catalog holding the records to answer from (a new empty one
        when omitted).
      - answer_all_questions: When True (the mDNS default) every question in a
        request is answered; when False resolution stops at the first
        question that produced answers.

    Outputs:
      - NameServer instance.

    Notes:
      - resolve() is synchronous and only reads the catalog, so it may run
        concurrently from several receive threads.
    """

    def __init__(
        self, catalog: Optional[Catalog] = None, answer_all_questions: bool = True
    ) -> None:
        self.catalog = catalog if catalog is not None else Catalog()
        self.answer_all_questions = bool(answer_all_questions)

    def resolve(self, request: DNSRecord) -> DNSRecord:
        """Brief: Build a response for `request`.

        Inputs:
          - request: Parsed dnslib DNSRecord carrying one or more questions.

        Outputs:
          - DNSRecord: Response with the request id and questions, answers,
            RFC 6763 section 12 additional records, and rcode NOERROR when
            at least one answer was found, NXDOMAIN otherwise.
        """

        reply = DNSRecord(
            DNSHeader(id=request.header.id, qr=1, aa=1, ra=0),
            questions=list(request.questions),
        )

        authoritative = True
        for q in request.questions:
            qclass = int(q.qclass) & _QCLASS_MASK
            if qclass not in (_CLASS_IN, _CLASS_ANY):
                logger.debug("NameServer skip %s class=%d", q.qname, qclass)
                continue

            found = self.catalog.lookup(str(q.qname), int(q.qtype))
            for rr in found:
                if not self._contains(reply.rr, rr):
                    reply.add_answer(rr)
            if found and not self.catalog.is_authoritative(str(q.qname)):
                authoritative = False
            if found and not self.answer_all_questions:
                break

        if not reply.rr:
            reply.header.rcode = RCODE.NXDOMAIN
            return reply

        reply.header.aa = 1 if authoritative else 0
        reply.header.rcode = RCODE.NOERROR
        self._add_additional_records(reply)
        return reply

    @staticmethod
    def _contains(section: List[RR], rr: RR) -> bool:
        return any(existing == rr for existing in section)

    def _add_additional(self, reply: DNSRecord, rr: RR) -> None:
        if self._contains(reply.rr, rr) or self._contains(reply.ar, rr):
            return
        reply.add_ar(rr)

    def _add_host_addresses(self, reply: DNSRecord, host: str) -> None:
        for rtype in (QTYPE.A, QTYPE.AAAA):
            for rr in self.catalog.lookup(host, int(rtype)):
                self._add_additional(reply, rr)

    def _add_additional_records(self, reply: DNSRecord) -> None:
        """Brief: Append DNS-SD additional records for the answers in `reply`.

        Inputs:
          - reply: Response whose answer section is already populated.

        Outputs:
          - None; reply.ar is extended in place.

        Behavior:
          - PTR answer: SRV and TXT at the PTR target, plus A/AAAA for each
            SRV target.
          - SRV answer: A/AAAA for the SRV target.
        """

        for answer in list(reply.rr):
            if answer.rtype == QTYPE.PTR:
                target = normalize_name(answer.rdata.label)
                for rr in self.catalog.lookup(target, int(QTYPE.SRV)):
                    self._add_additional(reply, rr)
                    self._add_host_addresses(reply, normalize_name(rr.rdata.target))
                for rr in self.catalog.lookup(target, int(QTYPE.TXT)):
                    self._add_additional(reply, rr)
            elif answer.rtype == QTYPE.SRV:
                self._add_host_addresses(reply, normalize_name(answer.rdata.target))
