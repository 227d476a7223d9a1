"""Audit collaborator interface.

Adapters emit one ``AuditRecord`` per mutating or search operation.  Where
the records end up (the clinic's ``audit_log`` table, a SIEM, ...) is the
sink's business; the default sink writes a structured log line.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

from dental_pms.models import AuditRecord

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(self, entry: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Writes each audit record as one JSON log line on ``dental_pms.audit``."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger("dental_pms.audit")

    async def record(self, entry: AuditRecord) -> None:
        self._log.info(
            "audit %s",
            json.dumps(
                {
                    "tenant": entry.tenant,
                    "actor": entry.actor,
                    "action": entry.action,
                    "entity": entry.entity,
                    "details": entry.details,
                },
                default=str,
            ),
        )


class InMemoryAuditSink:
    """Keeps records in a list; used by tests and the CLI."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    async def record(self, entry: AuditRecord) -> None:
        self.records.append(entry)

    def actions(self) -> list[str]:
        return [r.action for r in self.records]
