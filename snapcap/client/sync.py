"""
SnapCap Client: Data Sync
===========================

What:  In-memory cache of the friend datasets a map/home screen renders,
       kept fresh by polling and by gateway push events.
How:   Datasets:
           friends          list of friend summaries (GET /api/friends)
           friendStories    friend id -> deque of the 10 newest stories
           friendLocations  friend id -> {lat, lng} or None
       Writers:
           1. sync_all()    full refresh, at start and every 60 s; bursts of
                            request_sync() collapse into one fetch after 1 s
           2. handle_event  push frames from the gateway patch one entry
       Every entry remembers when it was last written. A push older than
       that is dropped, and a refresh stamps its start time, so a push that
       lands while a fetch is in flight still wins.
       Listeners are called synchronously after each mutation with
       (event, data); a failing listener is logged and skipped.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

from snapcap.client.api import APIError, SnapCapAPI

logger = logging.getLogger(__name__)

SYNC_INTERVAL = 60.0
DEBOUNCE_DELAY = 1.0
STORY_HISTORY = 10

FRIENDS = "friends"
FRIEND_STORIES = "friendStories"
FRIEND_LOCATIONS = "friendLocations"

Listener = Callable[[str, Any], None]


def _parse_time(value: Any) -> Optional[float]:
    """Epoch seconds from epoch seconds, epoch milliseconds or ISO 8601."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return value / 1000.0 if value > 1e11 else float(value)
    if isinstance(value, datetime):
        return value.timestamp()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def format_last_seen(last_seen: Optional[datetime], is_online: bool = False, now: Optional[datetime] = None) -> str:
    if is_online:
        return "Online"
    if last_seen is None:
        return "Just now"
    if last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    minutes = int((now - last_seen).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


class ReconnectPolicy:
    """Linear backoff: attempt n waits base_delay * n; gives up after max_attempts."""

    def __init__(self, max_attempts: int = 5, base_delay: float = 1.0):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.attempts = 0

    def reset(self) -> None:
        self.attempts = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None when attempts are exhausted."""
        if self.attempts >= self.max_attempts:
            return None
        self.attempts += 1
        return self.base_delay * self.attempts

    async def run(
        self,
        connect: Callable[[], Awaitable[None]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> bool:
        """
        Keep calling `connect` until it returns normally.

        `connect` should call reset() once its session is established so a
        long lived connection that drops starts over at one attempt.

        Returns:
            True on a clean exit, False after max_attempts failures
        """
        while True:
            try:
                await connect()
                return True
            except (OSError, ConnectionError, APIError) as e:
                delay = self.next_delay()
                if delay is None:
                    logger.error("Max reconnection attempts reached: %s", e)
                    return False
                logger.info(
                    "Reconnecting in %.1fs (%d/%d): %s", delay, self.attempts, self.max_attempts, e
                )
                await sleep(delay)


class DataSyncService:
    def __init__(
        self,
        api: SnapCapAPI,
        interval: float = SYNC_INTERVAL,
        debounce: float = DEBOUNCE_DELAY,
        clock: Callable[[], float] = time.time,
    ):
        self.api = api
        self.interval = interval
        self.debounce = debounce
        self._clock = clock

        self.friends: List[Dict[str, Any]] = []
        self.friend_stories: Dict[str, Deque[Dict[str, Any]]] = {}
        self.friend_locations: Dict[str, Optional[Dict[str, float]]] = {}
        self._stamps: Dict[Tuple[str, str], float] = {}

        self.listeners: Set[Listener] = set()
        self.is_initialized = False
        self.last_sync_time: Optional[float] = None
        self._in_flight = False
        self._periodic: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Task] = None

        self._push_handlers: Dict[str, Callable[[Dict[str, Any]], bool]] = {
            "friend_posted": self._on_friend_posted,
            "friend_location_updated": self._on_location,
            "new_friend_added": self._on_new_friend,
            "friend_removed": self._on_friend_removed,
            "friend_online_status": self._on_online_status,
            "user_online": self._on_presence,
            "user_offline": self._on_presence,
        }

    # ── Listeners ─────────────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns an unsubscribe callable."""
        self.listeners.add(listener)
        return lambda: self.listeners.discard(listener)

    def _notify(self, event: str, data: Any) -> None:
        for listener in list(self.listeners):
            try:
                listener(event, data)
            except Exception as e:
                logger.error("Error in sync listener for %s: %s", event, e)

    # ── Cache access ──────────────────────────────────────────────────────

    def get(self, dataset: str) -> Any:
        if dataset == FRIENDS:
            return self.friends
        if dataset == FRIEND_STORIES:
            return {k: list(v) for k, v in self.friend_stories.items()}
        if dataset == FRIEND_LOCATIONS:
            return dict(self.friend_locations)
        raise KeyError(dataset)

    def _find(self, friend_id: str) -> Optional[Dict[str, Any]]:
        for friend in self.friends:
            if str(friend.get("id")) == friend_id:
                return friend
        return None

    def _fresh(self, dataset: str, key: str, at: float) -> bool:
        """True when a write stamped `at` is not older than the entry's last write."""
        return at >= self._stamps.get((dataset, key), float("-inf"))

    def _stamp(self, dataset: str, key: str, at: float) -> None:
        self._stamps[(dataset, key)] = at

    # ── Full refresh ──────────────────────────────────────────────────────

    async def sync_all(self) -> bool:
        """Refetch every dataset. Returns False if a refresh is already running."""
        if self._in_flight:
            logger.debug("Sync skipped: already in flight")
            return False
        self._in_flight = True
        started = self._clock()
        try:
            friends = await self.api.get_friends()
            stories = await self.api.get_stories()
        finally:
            self._in_flight = False

        self._apply_friends(friends, started)
        self._apply_stories(stories, started)
        self.last_sync_time = self._clock()
        self._notify("friends_updated", self.friends)
        self._notify("friendStories_updated", self.get(FRIEND_STORIES))
        self._notify("friendLocations_updated", self.get(FRIEND_LOCATIONS))
        return True

    def _apply_friends(self, fetched: List[Dict[str, Any]], started: float) -> None:
        merged = []
        for friend in fetched:
            key = str(friend["id"])
            current = self._find(key)
            if not self._fresh(FRIENDS, key, started):
                # Pushed (or removed) after the fetch started
                if current is not None:
                    merged.append(current)
                continue
            self._stamp(FRIENDS, key, started)
            merged.append(friend)
            if self._fresh(FRIEND_LOCATIONS, key, started):
                self.friend_locations[key] = friend.get("location")
                self._stamp(FRIEND_LOCATIONS, key, started)
        # Friends added by push during the fetch are not in `fetched` yet
        fetched_ids = {str(f["id"]) for f in fetched}
        for friend in self.friends:
            key = str(friend.get("id"))
            if key not in fetched_ids and not self._fresh(FRIENDS, key, started):
                merged.append(friend)
        self.friends = merged
        keep = {str(f.get("id")) for f in merged}
        self.friend_locations = {k: v for k, v in self.friend_locations.items() if k in keep}

    def _apply_stories(self, stories: List[Dict[str, Any]], started: float) -> None:
        # /stories is newest first; the deque keeps that order (newest at the left)
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for story in stories:
            author_id = str((story.get("author") or {}).get("id", ""))
            if author_id and self._find(author_id) is not None:
                grouped.setdefault(author_id, []).append(story)
        for key, items in grouped.items():
            if self._fresh(FRIEND_STORIES, key, started):
                self.friend_stories[key] = deque(items[:STORY_HISTORY], maxlen=STORY_HISTORY)
                self._stamp(FRIEND_STORIES, key, started)

    # ── Scheduling ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self.is_initialized:
            return
        if not await self.api.test_connection():
            raise APIError(0, "Backend connection failed")
        await self.sync_all()
        self._periodic = asyncio.create_task(self._periodic_loop())
        self.is_initialized = True
        logger.info("Data sync service initialized")

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.request_sync()

    def request_sync(self) -> None:
        """Schedule a refresh after the debounce delay; calls inside the window collapse."""
        if self._pending is not None and not self._pending.done():
            return
        self._pending = asyncio.create_task(self._debounced_sync())

    async def _debounced_sync(self) -> None:
        await asyncio.sleep(self.debounce)
        try:
            await self.sync_all()
        except APIError as e:
            logger.error("Periodic sync failed: %s", e)

    # ── Push events ───────────────────────────────────────────────────────

    def handle_event(self, event: str, data: Dict[str, Any]) -> bool:
        """
        Apply one gateway push. Returns True if the cache changed.

        Unknown events and pushes older than the entry they target are ignored.
        """
        handler = self._push_handlers.get(event)
        if handler is None:
            logger.debug("Ignoring push event %s", event)
            return False
        changed = handler(data or {})
        if changed:
            self._notify("friends_updated", self.friends)
        return changed

    def _push_time(self, data: Dict[str, Any]) -> float:
        at = _parse_time(data.get("timestamp"))
        return self._clock() if at is None else at

    def _on_friend_posted(self, data: Dict[str, Any]) -> bool:
        key = str(data.get("friendId", ""))
        post = data.get("post") or {}
        at = self._push_time(data)
        if self._find(key) is None or not self._fresh(FRIEND_STORIES, key, at):
            return False
        story = {
            "id": post.get("id"),
            "image": post.get("image") or post.get("imageUrl"),
            "caption": post.get("caption", ""),
            "timestamp": _parse_time(post.get("createdAt")) or at,
            "likes": post.get("likesCount", 0),
            "comments": post.get("commentsCount", 0),
        }
        self.friend_stories.setdefault(key, deque(maxlen=STORY_HISTORY)).appendleft(story)
        self._stamp(FRIEND_STORIES, key, at)
        self._notify("friendStories_updated", self.get(FRIEND_STORIES))
        return True

    def _on_location(self, data: Dict[str, Any]) -> bool:
        key = str(data.get("friendId", ""))
        at = self._push_time(data)
        friend = self._find(key)
        if friend is None or not self._fresh(FRIEND_LOCATIONS, key, at):
            return False
        friend["location"] = data.get("location")
        self.friend_locations[key] = data.get("location")
        self._stamp(FRIEND_LOCATIONS, key, at)
        self._notify("friendLocations_updated", self.get(FRIEND_LOCATIONS))
        return True

    def _on_new_friend(self, data: Dict[str, Any]) -> bool:
        friend = data.get("friend") or {}
        key = str(friend.get("id", ""))
        at = self._push_time(data)
        if not key or self._find(key) is not None or not self._fresh(FRIENDS, key, at):
            return False
        self.friends.append(friend)
        self.friend_locations[key] = friend.get("location")
        self._stamp(FRIENDS, key, at)
        return True

    def _on_friend_removed(self, data: Dict[str, Any]) -> bool:
        key = str(data.get("friendId", ""))
        at = self._push_time(data)
        if self._find(key) is None or not self._fresh(FRIENDS, key, at):
            return False
        self.friends = [f for f in self.friends if str(f.get("id")) != key]
        self.friend_stories.pop(key, None)
        self.friend_locations.pop(key, None)
        self._stamp(FRIENDS, key, at)
        return True

    def _set_online(self, key: str, is_online: bool, last_seen: Any, at: float) -> bool:
        friend = self._find(key)
        if friend is None or not self._fresh(FRIENDS, key, at):
            return False
        friend["isOnline"] = is_online
        if last_seen is not None:
            friend["lastSeen"] = last_seen
        self._stamp(FRIENDS, key, at)
        return True

    def _on_online_status(self, data: Dict[str, Any]) -> bool:
        return self._set_online(
            str(data.get("friendId", "")), bool(data.get("isOnline")), data.get("lastSeen"), self._push_time(data)
        )

    def _on_presence(self, data: Dict[str, Any]) -> bool:
        is_online = bool(data.get("isOnline"))
        at = self._push_time(data)
        last_seen = None if is_online else datetime.fromtimestamp(at, timezone.utc).isoformat()
        return self._set_online(str(data.get("userId", "")), is_online, last_seen, at)

    # ── Status / teardown ─────────────────────────────────────────────────

    def get_status(self) -> Dict[str, Any]:
        return {
            "isInitialized": self.is_initialized,
            "lastSyncTime": self.last_sync_time,
            "cacheSize": sum(1 for d in (self.friends, self.friend_stories, self.friend_locations) if d),
            "friendsCount": len(self.friends),
            "listenersCount": len(self.listeners),
            "syncInFlight": self._in_flight,
        }

    def destroy(self) -> None:
        for task in (self._periodic, self._pending):
            if task is not None and not task.done():
                task.cancel()
        self._periodic = self._pending = None
        self.listeners.clear()
        self.friends = []
        self.friend_stories.clear()
        self.friend_locations.clear()
        self._stamps.clear()
        self.is_initialized = False
