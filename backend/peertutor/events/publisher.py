"""Event publisher - writes session events to the transactional outbox."""
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from ..models.event_outbox import EventOutbox
from ..repositories.event_outbox_repository import EventOutboxRepository


class Event(Protocol):
    """Protocol for session event types."""

    event_type: str
    session_id: str

    def idempotency_key(self) -> str:
        ...

    def to_dict(self) -> Dict[str, Any]:
        ...


class EventPublisher:
    """
    Queues events in the caller's transaction.

    Nothing is delivered here; the outbox dispatcher picks the rows up after
    commit, so a rolled back operation never notifies anyone.
    """

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: Event, deliver_at: Optional[datetime] = None) -> EventOutbox:
        return self.outbox_repo.enqueue(
            event_type=event.event_type,
            aggregate_id=event.session_id,
            payload=event.to_dict(),
            idempotency_key=event.idempotency_key(),
            next_attempt_at=deliver_at,
        )
