from unittest.mock import MagicMock

import pytest

from peertutor.core import booking_lock


@pytest.fixture
def redis_client(monkeypatch):
    client = MagicMock()
    client.set.return_value = True
    monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: client)
    return client


def test_locks_taken_in_lock_order_and_released(redis_client):
    with booking_lock.participants_lock_sync(["tutor-b", "student-a"], ttl_s=30) as acquired:
        assert acquired is True

    keys = [c.args[0] for c in redis_client.set.call_args_list]
    expected = booking_lock.lock_order(["student-a", "tutor-b"])
    assert keys == [f"session-booking:{uid}:mutex" for uid in expected]
    for call in redis_client.set.call_args_list:
        assert call.kwargs == {"nx": True, "ex": 30}
    released = sorted(c.args[0] for c in redis_client.delete.call_args_list)
    assert released == sorted(keys)


def test_contended_key_yields_false_and_releases_taken_keys(redis_client):
    redis_client.set.side_effect = [True, False]

    with booking_lock.participants_lock_sync(["a", "b"], ttl_s=30) as acquired:
        assert acquired is False

    first = booking_lock.lock_order(["a", "b"])[0]
    redis_client.delete.assert_called_once_with(f"session-booking:{first}:mutex")


def test_redis_error_degrades_to_permit(redis_client):
    redis_client.set.side_effect = ConnectionError("down")
    assert booking_lock.acquire_participant_lock_sync("a", 30) is True


def test_unavailable_redis_permits():
    # conftest patches the client lookup to return None
    with booking_lock.participants_lock_sync(["a", "b"]) as acquired:
        assert acquired is True


def test_duplicate_and_empty_ids_are_ignored(redis_client):
    with booking_lock.participants_lock_sync(["a", "a", ""], ttl_s=5):
        pass
    assert redis_client.set.call_count == 1


def _same_stripe_pair():
    first = "user-0"
    stripe = booking_lock._stripe(first)
    for n in range(1, 10_000):
        candidate = f"user-{n}"
        if booking_lock._stripe(candidate) == stripe:
            return first, candidate
    raise AssertionError("no colliding ids found")


def test_local_locks_do_not_grow_with_users():
    for n in range(500):
        with booking_lock.participants_lock_sync([f"student-{n}", f"tutor-{n}"]):
            pass
    assert len(booking_lock._LOCAL_LOCKS) == booking_lock.LOCAL_LOCK_STRIPES


def test_participants_sharing_a_stripe_are_both_locked(redis_client):
    first, second = _same_stripe_pair()

    with booking_lock.participants_lock_sync([first, second], ttl_s=30) as acquired:
        assert acquired is True

    assert redis_client.set.call_count == 2


def test_lock_order_groups_by_stripe():
    ids = [f"user-{n}" for n in range(50)] + ["", "user-1"]
    ordered = booking_lock.lock_order(ids)

    assert len(ordered) == 50
    stripes = [booking_lock._stripe(uid) for uid in ordered]
    assert stripes == sorted(stripes)
