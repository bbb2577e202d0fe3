"""
SnapCap Client: Data Sync Tests
=================================

What we test:
    ✅ Full refresh fills friends, stories (friends only) and locations
    ✅ Pushes patch one entry; pushes older than the entry are ignored
    ✅ A push that lands during a refresh survives the refresh
    ✅ Story history keeps the ten newest, on refresh and on push
    ✅ Concurrent refreshes collapse; request_sync debounces
    ✅ Listener errors are isolated; reconnect backoff gives up
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from snapcap.client.api import APIError
from snapcap.client.sync import (
    FRIEND_LOCATIONS,
    FRIEND_STORIES,
    FRIENDS,
    STORY_HISTORY,
    DataSyncService,
    ReconnectPolicy,
    format_last_seen,
)


class Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeAPI:
    """Stands in for SnapCapAPI; `gate` lets a test hold get_friends open."""

    def __init__(self, friends=None, stories=None):
        self.friends = friends if friends is not None else []
        self.stories = stories if stories is not None else []
        self.gate = None
        self.friend_calls = 0
        self.reachable = True

    async def test_connection(self) -> bool:
        return self.reachable

    async def get_friends(self):
        self.friend_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return [dict(f) for f in self.friends]

    async def get_stories(self):
        return list(self.stories)


def _friend(friend_id: str, **extra):
    return {"id": friend_id, "username": friend_id, "isOnline": False, "location": None, **extra}


@pytest.fixture
def clock():
    return Clock()


async def test_sync_all_populates_datasets(clock):
    api = FakeAPI(
        friends=[_friend("f1", location={"lat": 1.0, "lng": 2.0}), _friend("f2")],
        stories=[
            {"id": "s1", "author": {"id": "f1"}},
            {"id": "s2", "author": {"id": "stranger"}},
        ],
    )
    sync = DataSyncService(api, clock=clock)
    events = []
    sync.add_listener(lambda event, data: events.append(event))

    assert await sync.sync_all() is True
    assert [f["id"] for f in sync.get(FRIENDS)] == ["f1", "f2"]
    assert sync.get(FRIEND_LOCATIONS) == {"f1": {"lat": 1.0, "lng": 2.0}, "f2": None}
    assert list(sync.get(FRIEND_STORIES)) == ["f1"]
    assert events == ["friends_updated", "friendStories_updated", "friendLocations_updated"]
    assert sync.get_status()["friendsCount"] == 2


async def test_stale_push_is_ignored(clock):
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")]), clock=clock)
    await sync.sync_all()

    newer = {"friendId": "f1", "location": {"lat": 5.0, "lng": 5.0}, "timestamp": clock.now + 10}
    older = {"friendId": "f1", "location": {"lat": 9.0, "lng": 9.0}, "timestamp": clock.now + 5}

    assert sync.handle_event("friend_location_updated", newer) is True
    assert sync.handle_event("friend_location_updated", older) is False
    assert sync.get(FRIEND_LOCATIONS)["f1"] == {"lat": 5.0, "lng": 5.0}


async def test_push_older_than_refresh_is_ignored(clock):
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")]), clock=clock)
    await sync.sync_all()
    push = {"friendId": "f1", "isOnline": True, "timestamp": clock.now - 30}
    assert sync.handle_event("friend_online_status", push) is False
    assert sync.get(FRIENDS)[0]["isOnline"] is False


async def test_push_during_refresh_survives(clock):
    api = FakeAPI(friends=[_friend("f1")])
    sync = DataSyncService(api, clock=clock)
    await sync.sync_all()

    api.gate = asyncio.Event()
    refresh = asyncio.create_task(sync.sync_all())
    await asyncio.sleep(0)
    assert sync.get_status()["syncInFlight"] is True

    # Lands after the refresh started but before its response
    clock.now += 1
    sync.handle_event("friend_online_status", {"friendId": "f1", "isOnline": True})
    sync.handle_event("friend_location_updated", {"friendId": "f1", "location": {"lat": 3.0, "lng": 4.0}})

    api.gate.set()
    assert await refresh is True
    friend = sync.get(FRIENDS)[0]
    assert friend["isOnline"] is True
    assert sync.get(FRIEND_LOCATIONS)["f1"] == {"lat": 3.0, "lng": 4.0}


async def test_removed_friend_not_resurrected_by_inflight_refresh(clock):
    api = FakeAPI(friends=[_friend("f1"), _friend("f2")])
    sync = DataSyncService(api, clock=clock)
    await sync.sync_all()

    api.gate = asyncio.Event()
    refresh = asyncio.create_task(sync.sync_all())
    await asyncio.sleep(0)
    clock.now += 1
    assert sync.handle_event("friend_removed", {"friendId": "f2"}) is True

    api.gate.set()
    await refresh
    assert [f["id"] for f in sync.get(FRIENDS)] == ["f1"]


async def test_concurrent_sync_is_skipped(clock):
    api = FakeAPI(friends=[_friend("f1")])
    api.gate = asyncio.Event()
    sync = DataSyncService(api, clock=clock)

    first = asyncio.create_task(sync.sync_all())
    await asyncio.sleep(0)
    assert await sync.sync_all() is False
    api.gate.set()
    assert await first is True
    assert api.friend_calls == 1


async def test_story_history_is_bounded(clock):
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")]), clock=clock)
    await sync.sync_all()

    for n in range(STORY_HISTORY + 3):
        clock.now += 1
        assert sync.handle_event(
            "friend_posted", {"friendId": "f1", "post": {"id": f"p{n}", "caption": f"post {n}"}}
        ) is True

    stories = sync.get(FRIEND_STORIES)["f1"]
    assert len(stories) == STORY_HISTORY
    assert stories[0]["id"] == f"p{STORY_HISTORY + 2}"


async def test_refresh_keeps_newest_stories(clock):
    newest_first = [{"id": f"s{n}", "author": {"id": "f1"}} for n in range(12, 0, -1)]
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")], stories=newest_first), clock=clock)
    await sync.sync_all()

    stories = sync.get(FRIEND_STORIES)["f1"]
    assert [s["id"] for s in stories] == [f"s{n}" for n in range(12, 2, -1)]

    # A push after the refresh lands on the newest end
    clock.now += 1
    sync.handle_event("friend_posted", {"friendId": "f1", "post": {"id": "s13"}})
    stories = sync.get(FRIEND_STORIES)["f1"]
    assert stories[0]["id"] == "s13"
    assert stories[-1]["id"] == "s4"


async def test_new_friend_and_presence(clock):
    sync = DataSyncService(FakeAPI(), clock=clock)
    await sync.sync_all()

    clock.now += 1
    assert sync.handle_event("new_friend_added", {"friend": _friend("f9")}) is True
    assert sync.handle_event("new_friend_added", {"friend": _friend("f9")}) is False

    clock.now += 1
    assert sync.handle_event("user_online", {"userId": "f9", "isOnline": True}) is True
    clock.now += 1
    assert sync.handle_event("user_offline", {"userId": "f9", "isOnline": False}) is True
    friend = sync.get(FRIENDS)[0]
    assert friend["isOnline"] is False
    assert friend["lastSeen"]

    assert sync.handle_event("unknown_event", {}) is False


async def test_listener_errors_are_isolated(clock):
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")]), clock=clock)
    received = []

    def broken(event, data):
        raise RuntimeError("boom")

    sync.add_listener(broken)
    unsubscribe = sync.add_listener(lambda event, data: received.append(event))
    await sync.sync_all()
    assert "friends_updated" in received

    unsubscribe()
    assert sync.get_status()["listenersCount"] == 1


async def test_request_sync_debounces(clock):
    api = FakeAPI(friends=[_friend("f1")])
    sync = DataSyncService(api, debounce=0.01, clock=clock)

    for _ in range(5):
        sync.request_sync()
    await asyncio.sleep(0.05)
    assert api.friend_calls == 1
    sync.destroy()


async def test_initialize_requires_backend(clock):
    api = FakeAPI()
    api.reachable = False
    sync = DataSyncService(api, clock=clock)
    with pytest.raises(APIError):
        await sync.initialize()
    assert sync.get_status()["isInitialized"] is False


async def test_initialize_and_destroy(clock):
    sync = DataSyncService(FakeAPI(friends=[_friend("f1")]), interval=3600, clock=clock)
    await sync.initialize()
    assert sync.get_status()["isInitialized"] is True
    assert sync.get_status()["cacheSize"] == 2

    sync.destroy()
    assert sync.get(FRIENDS) == []
    assert sync.get_status()["listenersCount"] == 0


class TestReconnectPolicy:
    async def test_gives_up_after_max_attempts(self):
        delays = []

        async def sleep(delay):
            delays.append(delay)

        async def connect():
            raise ConnectionError("refused")

        policy = ReconnectPolicy(max_attempts=5, base_delay=1.0)
        assert await policy.run(connect, sleep=sleep) is False
        assert delays == [1.0, 2.0, 3.0, 4.0, 5.0]

    async def test_succeeds_after_retries(self):
        attempts = []

        async def sleep(delay):
            pass

        async def connect():
            attempts.append(1)
            if len(attempts) < 3:
                raise OSError("network down")

        policy = ReconnectPolicy()
        assert await policy.run(connect, sleep=sleep) is True
        assert len(attempts) == 3

    def test_reset(self):
        policy = ReconnectPolicy(max_attempts=1)
        assert policy.next_delay() == 1.0
        assert policy.next_delay() is None
        policy.reset()
        assert policy.next_delay() == 1.0


class TestFormatLastSeen:
    NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=30), "Just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(days=2), "2d ago"),
        ],
    )
    def test_relative(self, delta, expected):
        assert format_last_seen(self.NOW - delta, now=self.NOW) == expected

    def test_online_wins(self):
        assert format_last_seen(self.NOW, is_online=True, now=self.NOW) == "Online"

    def test_unknown(self):
        assert format_last_seen(None) == "Just now"
