# backend/peertutor/repositories/notification_delivery_repository.py
"""
Per-recipient delivery log.

One row per (event, recipient) key. A retried outbox event finds the row
and the sender skips the duplicate instead of notifying the user again.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Tuple, cast

from sqlalchemy import func, select
from sqlalchemy.orm import Session
import ulid

from ..models.event_outbox import NotificationDelivery
from .base_repository import BaseRepository


class NotificationDeliveryRepository(BaseRepository[NotificationDelivery]):
    def __init__(self, db: Session):
        super().__init__(db, NotificationDelivery)

    def record_delivery(
        self,
        event_type: str,
        recipient_id: str,
        idempotency_key: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> Tuple[NotificationDelivery, bool]:
        """
        Log a delivery under its key.

        Returns the row and whether this call created it. A repeated key
        bumps ``attempt_count`` on the existing row instead.
        """
        payload = payload or {}
        created = self._insert_unless_exists(
            {
                "id": str(ulid.ULID()),
                "event_type": event_type,
                "recipient_id": recipient_id,
                "idempotency_key": idempotency_key,
                "payload": payload,
                "attempt_count": 1,
                "delivered_at": datetime.now(timezone.utc),
            },
            unique_column="idempotency_key",
        )
        row = self.get_by_idempotency_key(idempotency_key)
        if row is None:
            raise RuntimeError(f"Delivery {idempotency_key} missing after insert")
        if not created:
            row.touch(payload)
            self.db.flush()
        return row, created

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[NotificationDelivery]:
        stmt = select(NotificationDelivery).where(
            NotificationDelivery.idempotency_key == idempotency_key
        )
        return cast(Optional[NotificationDelivery], self.db.scalars(stmt).first())

    def has_delivery(self, idempotency_key: str) -> bool:
        return self.exists(idempotency_key=idempotency_key)

    def count_for_recipient(self, recipient_id: str, event_type: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(NotificationDelivery).where(
            NotificationDelivery.recipient_id == recipient_id
        )
        if event_type:
            stmt = stmt.where(NotificationDelivery.event_type == event_type)
        return int(self.db.scalar(stmt) or 0)
