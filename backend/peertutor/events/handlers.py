"""Event handlers - turn outbox events into per-recipient notifications."""
import logging
from typing import Any, Callable, Dict, List

from ..services.notification_provider import NotificationDispatchResult, NotificationSender
from .session_events import (
    SessionBooked,
    SessionCancelled,
    SessionCompleted,
    SessionConfirmed,
    SessionReminder,
    SessionRescheduled,
)

logger = logging.getLogger(__name__)

RecipientRule = Callable[[Dict[str, Any]], List[str]]


def _both_participants(payload: Dict[str, Any]) -> List[str]:
    return [payload["student_id"], payload["tutor_id"]]


def _other_party(actor_field: str) -> RecipientRule:
    def rule(payload: Dict[str, Any]) -> List[str]:
        actor = payload.get(actor_field)
        return [uid for uid in _both_participants(payload) if uid != actor]

    return rule


def _student_only(payload: Dict[str, Any]) -> List[str]:
    return [payload["student_id"]]


# Registry of event type -> who hears about it
EVENT_RECIPIENTS: Dict[str, RecipientRule] = {
    SessionBooked.event_type: _both_participants,
    SessionRescheduled.event_type: _other_party("rescheduled_by"),
    SessionCancelled.event_type: _other_party("cancelled_by"),
    SessionConfirmed.event_type: _student_only,
    SessionReminder.event_type: _both_participants,
    SessionCompleted.event_type: _both_participants,
}


def recipients_for(event_type: str, payload: Dict[str, Any]) -> List[str]:
    rule = EVENT_RECIPIENTS.get(event_type)
    if rule is None:
        return []
    return rule(payload)


def process_event(
    event_type: str,
    payload: Dict[str, Any],
    idempotency_key: str,
    sender: NotificationSender,
) -> List[NotificationDispatchResult]:
    """
    Notify every recipient of an event.

    Each recipient gets its own delivery key, so a retry after a partial
    failure only reaches the recipients that were missed.

    Raises:
        NotificationProviderTemporaryError: propagated to the dispatcher for retry
    """
    recipients = recipients_for(event_type, payload)
    if not recipients:
        logger.warning("No handler for event type: %s", event_type)
        return []

    results = []
    for recipient_id in recipients:
        results.append(
            sender.notify(
                recipient_id,
                event_type,
                payload,
                idempotency_key=f"{idempotency_key}:{recipient_id}",
            )
        )
    logger.info("Processed %s for %s recipient(s)", event_type, len(results))
    return results
