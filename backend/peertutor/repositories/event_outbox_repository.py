# backend/peertutor/repositories/event_outbox_repository.py
"""
Session event outbox storage.

Rows are written in the same transaction as the session change that caused
them and drained by the Celery dispatcher. The idempotency key is unique,
so re-publishing an event returns the row already queued.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional, cast

from sqlalchemy import select, update
from sqlalchemy.orm import Session
import ulid

from ..database import get_dialect_name
from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository(BaseRepository[EventOutbox]):
    """Queue, fetch and settle outbox rows."""

    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)
        self._row_locks = get_dialect_name(db, default="postgresql").lower() == "postgresql"

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        next_attempt_at: Optional[datetime] = None,
    ) -> EventOutbox:
        """
        Queue an event for ``aggregate_id`` (the session id).

        When the key is already queued the existing row is returned as is;
        its attempt counters are left alone.
        """
        deliver_at = next_attempt_at or _now_utc()
        key = idempotency_key or f"{event_type}:{aggregate_id}:{int(deliver_at.timestamp())}"

        written = self._insert_unless_exists(
            {
                "id": str(ulid.ULID()),
                "event_type": event_type,
                "aggregate_id": aggregate_id,
                "payload": payload or {},
                "idempotency_key": key,
                "status": EventOutboxStatus.PENDING.value,
                "attempt_count": 0,
                "next_attempt_at": deliver_at,
            },
            unique_column="idempotency_key",
        )
        if not written:
            logger.debug("Outbox event %s already queued", key)

        row = self.get_by_key(key)
        if row is None:
            raise RuntimeError(f"Outbox row {key} missing after enqueue")
        return row

    # Reads

    def fetch_pending(self, limit: int = 200, now: Optional[datetime] = None) -> list[EventOutbox]:
        """Due PENDING rows, oldest due first; locked rows are skipped on PostgreSQL."""
        stmt = (
            select(EventOutbox)
            .where(
                EventOutbox.status == EventOutboxStatus.PENDING.value,
                EventOutbox.next_attempt_at <= (now or _now_utc()),
            )
            .order_by(EventOutbox.next_attempt_at, EventOutbox.id)
            .limit(limit)
        )
        if self._row_locks:
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(list[EventOutbox], self.db.scalars(stmt).all())

    def get_by_id(  # type: ignore[override]
        self, id: str, load_relationships: bool = True, for_update: bool = False
    ) -> Optional[EventOutbox]:
        if for_update and self._row_locks:
            stmt = select(EventOutbox).where(EventOutbox.id == id).with_for_update(skip_locked=True)
            return cast(Optional[EventOutbox], self.db.scalars(stmt).first())
        return cast(Optional[EventOutbox], self.db.get(EventOutbox, id))

    def get_by_key(self, idempotency_key: str) -> Optional[EventOutbox]:
        stmt = select(EventOutbox).where(EventOutbox.idempotency_key == idempotency_key)
        return cast(Optional[EventOutbox], self.db.scalars(stmt).first())

    def list_for_aggregate(self, aggregate_id: str) -> list[EventOutbox]:
        """Every event recorded for one session, oldest first."""
        stmt = (
            select(EventOutbox)
            .where(EventOutbox.aggregate_id == aggregate_id)
            .order_by(EventOutbox.created_at, EventOutbox.id)
        )
        return cast(list[EventOutbox], self.db.scalars(stmt).all())

    # Settling

    def _settle(self, event_id: str, **values: Any) -> None:
        values["updated_at"] = _now_utc()
        self.db.execute(update(EventOutbox).where(EventOutbox.id == event_id).values(**values))
        self.db.flush()

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        self._settle(
            event_id,
            status=EventOutboxStatus.SENT.value,
            attempt_count=attempt_count,
            last_error=None,
            next_attempt_at=None,
        )

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Record a failed attempt; a terminal failure is never retried."""
        retry_at = None if terminal else _now_utc() + timedelta(seconds=max(backoff_seconds, 1))
        self._settle(
            event_id,
            status=(EventOutboxStatus.FAILED if terminal else EventOutboxStatus.PENDING).value,
            attempt_count=attempt_count,
            last_error=error[:1000] if error else None,
            next_attempt_at=retry_at,
        )
