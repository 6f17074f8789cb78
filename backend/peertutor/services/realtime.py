# backend/peertutor/services/realtime.py
"""
Realtime bus for session status changes.

Publishing is fire-and-forget: failures are logged, never raised. Clients
re-sync from the API on reconnect, so a lost event only delays a UI update.
Each participant has one channel, ``user:{user_id}:sessions``.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import threading
from typing import Any, Dict, Optional, Protocol

from redis import Redis

from ..core.config import settings
from ..core.constants import SESSION_CHANNEL_TEMPLATE

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def session_channel(user_id: str) -> str:
    return SESSION_CHANNEL_TEMPLATE.format(user_id=user_id)


class RealtimeBus(Protocol):
    def publish(self, topic: str, event: Dict[str, Any]) -> None:
        ...


class NullRealtimeBus:
    """Bus used when realtime is disabled."""

    def publish(self, topic: str, event: Dict[str, Any]) -> None:
        logger.debug("[REALTIME] disabled; dropping %s on %s", event.get("type"), topic)


class RedisRealtimeBus:
    """Publishes JSON events on Redis pub/sub channels."""

    def __init__(self, client: Optional[Redis] = None, redis_url: Optional[str] = None):
        self._client = client
        self._redis_url = redis_url or settings.redis_url
        self._lock = threading.Lock()
        self._publish_count = 0
        self._error_count = 0

    def _get_client(self) -> Redis:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = Redis.from_url(
                        self._redis_url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_connect_timeout=0.5,
                        socket_timeout=0.5,
                    )
        return self._client

    def publish(self, topic: str, event: Dict[str, Any]) -> None:
        message = {
            "schema_version": SCHEMA_VERSION,
            "published_at": datetime.now(timezone.utc).isoformat(),
            **event,
        }
        try:
            receivers = self._get_client().publish(topic, json.dumps(message, default=str))
            self._publish_count += 1
            logger.debug("[REALTIME] %s -> %s (%s receivers)", event.get("type"), topic, receivers)
        except Exception as exc:
            self._error_count += 1
            logger.warning(
                "[REALTIME] publish failed",
                extra={"topic": topic, "error": str(exc), "error_type": type(exc).__name__},
            )

    def get_stats(self) -> Dict[str, int]:
        return {"publish_count": self._publish_count, "error_count": self._error_count}


_default_bus: Optional[RealtimeBus] = None
_default_bus_lock = threading.Lock()


def get_realtime_bus() -> RealtimeBus:
    """Process-wide bus chosen from settings."""
    global _default_bus
    if _default_bus is None:
        with _default_bus_lock:
            if _default_bus is None:
                _default_bus = (
                    RedisRealtimeBus()
                    if settings.realtime_enabled and not settings.is_testing
                    else NullRealtimeBus()
                )
    return _default_bus
