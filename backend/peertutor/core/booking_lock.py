from __future__ import annotations

from contextlib import ExitStack, contextmanager
import logging
import threading
import time
from typing import Iterable, Iterator, List, Optional
import zlib

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()
_REDIS_RETRY_AFTER: float = 0.0
_REDIS_RETRY_SECONDS = 30.0

# In-process locks, one per stripe of the user-id hash. Reentrant: both
# participants of one booking may land on the same stripe.
LOCAL_LOCK_STRIPES = 64
_LOCAL_LOCKS = tuple(threading.RLock() for _ in range(LOCAL_LOCK_STRIPES))
LOCAL_WAIT_SECONDS = 5.0


def _lock_key(user_id: str) -> str:
    return f"session-booking:{user_id}:mutex"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS, _REDIS_RETRY_AFTER
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        if time.monotonic() < _REDIS_RETRY_AFTER:
            return None
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=0.5,
                socket_timeout=0.5,
            )
            client.ping()
        except Exception as exc:
            _REDIS_RETRY_AFTER = time.monotonic() + _REDIS_RETRY_SECONDS
            logger.warning("booking_lock_sync_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _stripe(user_id: str) -> int:
    return zlib.crc32(user_id.encode("utf-8")) % LOCAL_LOCK_STRIPES


def _local_lock(user_id: str):
    return _LOCAL_LOCKS[_stripe(user_id)]


def lock_order(user_ids: Iterable[str]) -> List[str]:
    """Distinct non-empty ids ordered by stripe, then id."""
    return sorted({uid for uid in user_ids if uid}, key=lambda uid: (_stripe(uid), uid))


def acquire_participant_lock_sync(user_id: str, ttl_s: int) -> bool:
    """
    SET NX EX on the participant key.

    Degrades to permit when Redis is unreachable.
    """
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("degraded")
        logger.warning("booking_lock_sync_redis_unavailable", extra={"user_id": user_id})
        return True
    try:
        acquired = bool(client.set(_lock_key(user_id), str(time.time()), nx=True, ex=ttl_s))
    except Exception as exc:
        prometheus_metrics.record_booking_lock("degraded")
        logger.warning(
            "booking_lock_sync_failed",
            extra={"user_id": user_id, "error": str(exc), "error_type": type(exc).__name__},
        )
        return True
    prometheus_metrics.record_booking_lock("acquired" if acquired else "contended")
    return acquired


def release_participant_lock_sync(user_id: str) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        client.delete(_lock_key(user_id))
    except Exception as exc:
        logger.warning(
            "booking_lock_sync_release_failed",
            extra={"user_id": user_id, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def _participant_lock(user_id: str, ttl_s: int) -> Iterator[bool]:
    local = _local_lock(user_id)
    if not local.acquire(timeout=LOCAL_WAIT_SECONDS):
        prometheus_metrics.record_booking_lock("contended")
        yield False
        return
    try:
        acquired = acquire_participant_lock_sync(user_id, ttl_s)
        try:
            yield acquired
        finally:
            if acquired:
                release_participant_lock_sync(user_id)
    finally:
        local.release()


@contextmanager
def participants_lock_sync(user_ids: Iterable[str], ttl_s: Optional[int] = None) -> Iterator[bool]:
    """
    Hold the booking lock of every participant.

    Keys are taken in ``lock_order`` so two bookings sharing a participant
    or a stripe cannot deadlock. Yields False as soon as one key is held
    elsewhere; keys already taken are released on exit.
    """
    ttl = ttl_s or settings.booking_lock_ttl_seconds
    ordered = lock_order(user_ids)
    with ExitStack() as stack:
        for user_id in ordered:
            if not stack.enter_context(_participant_lock(user_id, ttl)):
                logger.info("Booking lock contended", extra={"user_id": user_id})
                yield False
                return
        yield True
