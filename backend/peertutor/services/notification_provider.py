# backend/peertutor/services/notification_provider.py
"""
Notification sender used by the outbox dispatcher.

Real email/SMS transport is outside the session core; this sender looks up
the recipient in the user directory, logs the message and records it in
``notification_delivery`` so each (event, recipient) pair is delivered at most
once even when the outbox retries. A test-only environment flag
(``NOTIFICATION_PROVIDER_RAISE_ON``) triggers transient failures for matching
event types or keys.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import json
import logging
import os
from typing import Any, Callable, Dict, Generator, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..repositories.factory import RepositoryFactory
from .user_directory import SqlUserDirectory

logger = logging.getLogger(__name__)


class NotificationProviderTemporaryError(RuntimeError):
    """Transient delivery failure; the outbox retries the event."""


def _should_raise(event_type: str, idempotency_key: str) -> bool:
    raw = os.getenv("NOTIFICATION_PROVIDER_RAISE_ON")
    if not raw:
        return False
    tokens = {token.strip() for token in raw.split(",") if token.strip()}
    return "*" in tokens or event_type in tokens or idempotency_key in tokens


@contextmanager
def _managed_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(slots=True)
class NotificationDispatchResult:
    """Outcome of one notify call."""

    recipient_id: str
    kind: str
    idempotency_key: str
    delivered: bool
    attempt_count: int
    address: Optional[str] = None


class NotificationSender:
    """
    Delivers one notification to one user.

    Usage:
        sender = NotificationSender()
        sender.notify("user-id", "session.cancelled", {...}, idempotency_key="...")
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def notify(
        self,
        user_id: str,
        kind: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        """
        Send ``kind`` to ``user_id``.

        Duplicate keys are recorded as another attempt and not re-sent.

        Raises:
            NotificationProviderTemporaryError: transient failure, safe to retry
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")

        if _should_raise(kind, idempotency_key):
            logger.warning("Simulating provider failure for %s (%s)", kind, idempotency_key)
            raise NotificationProviderTemporaryError(f"Simulated transient failure for {kind}")

        payload = payload or {}
        with _managed_session(self._session_factory) as session:
            repo = RepositoryFactory.create_notification_delivery_repository(session)
            record, created = repo.record_delivery(kind, user_id, idempotency_key, payload)
            contact = SqlUserDirectory(session).get_contact(user_id)
            address = contact.email if contact else None
            if created:
                if address is None:
                    logger.warning("No contact on file for user %s; %s recorded only", user_id, kind)
                logger.info(
                    "Notification %s to user %s <%s> key=%s payload=%s",
                    kind,
                    user_id,
                    address,
                    idempotency_key,
                    json.dumps(payload, sort_keys=True, default=str)[:500],
                )
            else:
                logger.info(
                    "Skipping duplicate notification %s to user %s (attempt %s)",
                    kind,
                    user_id,
                    record.attempt_count,
                )
            return NotificationDispatchResult(
                recipient_id=user_id,
                kind=kind,
                idempotency_key=idempotency_key,
                delivered=created,
                attempt_count=record.attempt_count,
                address=address,
            )
