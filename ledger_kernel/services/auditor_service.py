"""
AuditorService -- audit records for every state change.

Responsibility:
    Builds ``AuditRecord`` values (actor, action, entity, before/after
    snapshots) while an operation runs and hands them to the registered
    ``AuditSink`` objects once the operation's transaction has committed.

Architecture position:
    Kernel > Services.  Called by the journal engine, fiscal-year service and
    every document service in ledger_services.  Audit persistence itself is
    an external collaborator reached through the sink interface.

Invariants enforced:
    - Records are queued on the session (``session.info``) and dispatched
      only after commit, so a rolled-back operation emits nothing.
    - A failing sink never fails the business operation: the error is
      logged and the remaining sinks still receive the record.

Audit relevance:
    This IS the audit output.  ``LogAuditSink`` writes each record to the
    structured log; other sinks (database table, HTTP collector) plug in
    through ``AuditSink``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.auditor")

_PENDING_KEY = "auditor.pending_records"


@dataclass(frozen=True)
class AuditRecord:
    """One audited state change."""

    actor_id: UUID
    action: str
    entity_type: str
    entity_id: str
    occurred_at: datetime
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None


class AuditSink(ABC):
    """Destination for committed audit records."""

    @abstractmethod
    def emit(self, record: AuditRecord) -> None:
        ...


class LogAuditSink(AuditSink):
    """Writes audit records to the structured log."""

    def __init__(self) -> None:
        self._logger = get_logger("audit")

    def emit(self, record: AuditRecord) -> None:
        self._logger.info(
            "audit_record",
            extra={
                "audit_actor_id": str(record.actor_id),
                "audit_action": record.action,
                "audit_entity_type": record.entity_type,
                "audit_entity_id": record.entity_id,
                "audit_occurred_at": record.occurred_at,
                "audit_before": record.before,
                "audit_after": record.after,
            },
        )


@dataclass
class RecordingAuditSink(AuditSink):
    """Keeps records in memory. Used by tests and embedding callers."""

    records: list[AuditRecord] = field(default_factory=list)

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self) -> list[str]:
        return [r.action for r in self.records]


class AuditorService:
    """
    Queues audit records on a session and dispatches them after commit.

    Contract:
        ``record()`` never touches the database.  ``dispatch()`` is called by
        the owner of the transaction once it has committed;
        ``discard()`` after a rollback.

    Non-goals:
        - Does NOT persist records itself; sinks decide where they go.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        actor_id: UUID,
        action: str,
        entity_type: str,
        entity_id: Any,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditRecord:
        audit_record = AuditRecord(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            occurred_at=self._clock.now(),
            before=before,
            after=after,
        )
        self._session.info.setdefault(_PENDING_KEY, []).append(audit_record)
        return audit_record

    def discard(self) -> None:
        self._session.info.pop(_PENDING_KEY, None)

    def dispatch(self, sinks: Iterable[AuditSink]) -> int:
        """
        Send queued records to every sink and clear the queue.

        Returns:
            Number of records dispatched.
        """
        records = self._session.info.pop(_PENDING_KEY, [])
        sinks = list(sinks)
        for audit_record in records:
            for sink in sinks:
                try:
                    sink.emit(audit_record)
                except Exception:
                    # Audit output is best effort; the operation has committed.
                    logger.exception(
                        "audit_sink_failed",
                        extra={
                            "sink": type(sink).__name__,
                            "audit_action": audit_record.action,
                            "audit_entity_id": audit_record.entity_id,
                        },
                    )
        return len(records)
