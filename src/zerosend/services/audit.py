"""Best-effort audit recording.

One row per security-relevant event. Writing is attempted, its failure is
logged, and the caller always continues: audit logging is never the reason
a request fails.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING, Any

from zerosend.core.hashing import hash_user_agent
from zerosend.core.net import parse_ip
from zerosend.db.models import AuditEventType, AuditLogEntry, AuditResult

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from zerosend.services.store import TransferStore

logger = logging.getLogger(__name__)

CSV_HEADER = ("id", "session_id", "actor_id", "event_type", "result", "ip_address", "created_at")


class AuditRecorder:
    """Appends audit entries through the durable store, swallowing failures."""

    def __init__(self, store: TransferStore) -> None:
        self._store = store

    async def record(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        *,
        session_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        error_code: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Attempt to append one audit entry.

        Args:
            event_type: Event being recorded.
            result: Success or failure of the audited action.
            session_id: Transfer session concerned, if any.
            actor_id: User who acted, if known.
            ip_address: Client address; anything unparsable is stored as NULL.
            user_agent: Raw User-Agent header; only its hash is stored.
            error_code: Error kind for failures.
            metadata: Extra structured context (never secrets).

        Returns:
            True if the entry was written, False if writing failed.
        """
        entry = AuditLogEntry(
            session_id=session_id,
            actor_id=actor_id,
            event_type=event_type,
            result=result,
            ip_address=parse_ip(ip_address),
            user_agent_hash=hash_user_agent(user_agent),
            error_code=error_code,
            event_metadata=metadata,
        )
        try:
            await self._store.append_audit_log(entry)
        except Exception:
            logger.warning(
                "Audit write failed for event %s",
                event_type.value,
                exc_info=True,
                extra={"session_id": str(session_id) if session_id else None},
            )
            return False
        return True


def render_audit_csv(entries: Iterable[AuditLogEntry]) -> str:
    """Render audit entries as CSV with a fixed header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for entry in entries:
        writer.writerow(
            (
                entry.id,
                entry.session_id or "",
                entry.actor_id or "",
                entry.event_type.value,
                entry.result.value,
                entry.ip_address or "",
                entry.created_at.isoformat() if entry.created_at else "",
            )
        )
    return buffer.getvalue()
