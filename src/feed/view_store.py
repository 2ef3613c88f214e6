"""
Feed View Store

Per (user, item) render history used by view decay:
- seen_count: how many times the item was rendered (monotonic)
- last_shown_at: most recent render time
- interacted: user saved / rated / otherwise engaged with the item

Increments are commutative, so concurrent renders of the same item never
lose a count.

Supports two backends:
1. InMemory: For development/testing (default)
2. Redis: HINCRBY / ZADD GT / SADD per user, read back in one pipeline
"""

from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

import redis

from core.errors import RepositoryUnavailable
from core.logging import get_logger
from feed.models import FeedViewRecord

logger = get_logger(__name__)


class FeedViewStore(Protocol):
    def get(self, user_id: str, item_ids: Iterable[str]) -> Dict[str, FeedViewRecord]:
        """Records for the given items; items never shown are absent."""
        ...

    def increment(
        self, user_id: str, item_id: str, now: datetime, interacted: bool = False,
    ) -> FeedViewRecord:
        ...

    def mark_interacted(self, user_id: str, item_id: str) -> None:
        ...


# =============================================================================
# In-memory backend
# =============================================================================

class InMemoryFeedViewStore:
    """Thread-safe dict-backed view store."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], FeedViewRecord] = {}
        self._lock = Lock()

    def get(self, user_id: str, item_ids: Iterable[str]) -> Dict[str, FeedViewRecord]:
        with self._lock:
            result = {}
            for item_id in item_ids:
                record = self._records.get((user_id, item_id))
                if record is not None:
                    result[item_id] = record
            return result

    def increment(
        self, user_id: str, item_id: str, now: datetime, interacted: bool = False,
    ) -> FeedViewRecord:
        key = (user_id, item_id)
        with self._lock:
            current = self._records.get(key) or FeedViewRecord(user_id=user_id, item_id=item_id)
            last = current.last_shown_at
            record = current.model_copy(update={
                "seen_count": current.seen_count + 1,
                "last_shown_at": now if last is None or now > last else last,
                "interacted": current.interacted or interacted,
            })
            self._records[key] = record
            return record

    def mark_interacted(self, user_id: str, item_id: str) -> None:
        key = (user_id, item_id)
        with self._lock:
            current = self._records.get(key) or FeedViewRecord(user_id=user_id, item_id=item_id)
            self._records[key] = current.model_copy(update={"interacted": True})

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "records": len(self._records),
                "users": len({uid for uid, _ in self._records}),
            }


# =============================================================================
# Redis backend
# =============================================================================

class RedisFeedViewStore:
    """
    Redis-backed view store.

    Keys per user:
        {prefix}:{user_id}:seen        HASH  item_id -> seen count
        {prefix}:{user_id}:shown       ZSET  item_id -> last shown (epoch seconds)
        {prefix}:{user_id}:interacted  SET   item_ids
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "feedview",
        client: Optional["redis.Redis"] = None,
    ):
        if client is None:
            if not redis_url:
                raise ValueError("RedisFeedViewStore needs a redis_url or a client")
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Connected to Redis", host=redis_url.split("@")[-1])
        self._redis = client
        self._prefix = key_prefix

    def _key(self, user_id: str, suffix: str) -> str:
        return f"{self._prefix}:{user_id}:{suffix}"

    def get(self, user_id: str, item_ids: Iterable[str]) -> Dict[str, FeedViewRecord]:
        ids: List[str] = list(item_ids)
        if not ids:
            return {}
        try:
            pipe = self._redis.pipeline(transaction=False)
            pipe.hmget(self._key(user_id, "seen"), ids)
            pipe.smismember(self._key(user_id, "interacted"), ids)
            pipe.zmscore(self._key(user_id, "shown"), ids)
            counts, flags, shown = pipe.execute()
        except redis.RedisError as e:
            raise RepositoryUnavailable("feed_views", str(e)) from e

        result: Dict[str, FeedViewRecord] = {}
        for item_id, count, flag, ts in zip(ids, counts, flags, shown):
            if count is None and not flag:
                continue
            result[item_id] = FeedViewRecord(
                user_id=user_id,
                item_id=item_id,
                seen_count=int(count or 0),
                last_shown_at=(
                    datetime.fromtimestamp(float(ts), tz=timezone.utc)
                    if ts is not None else None
                ),
                interacted=bool(flag),
            )
        return result

    def increment(
        self, user_id: str, item_id: str, now: datetime, interacted: bool = False,
    ) -> FeedViewRecord:
        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.hincrby(self._key(user_id, "seen"), item_id, 1)
            pipe.zadd(self._key(user_id, "shown"), {item_id: now.timestamp()}, gt=True)
            if interacted:
                pipe.sadd(self._key(user_id, "interacted"), item_id)
            results = pipe.execute()
            is_interacted = interacted or bool(
                self._redis.sismember(self._key(user_id, "interacted"), item_id)
            )
        except redis.RedisError as e:
            raise RepositoryUnavailable("feed_views", str(e)) from e
        return FeedViewRecord(
            user_id=user_id,
            item_id=item_id,
            seen_count=int(results[0]),
            last_shown_at=now,
            interacted=is_interacted,
        )

    def mark_interacted(self, user_id: str, item_id: str) -> None:
        try:
            self._redis.sadd(self._key(user_id, "interacted"), item_id)
        except redis.RedisError as e:
            raise RepositoryUnavailable("feed_views", str(e)) from e


# =============================================================================
# Backend selection
# =============================================================================

def create_feed_view_store(settings, backend: str = "auto") -> FeedViewStore:
    """
    Build a view store.

    Args:
        settings: ``config.Settings``
        backend: "auto", "redis", or "memory". "auto" uses Redis when it is
            enabled and reachable, in-memory otherwise.
    """
    if backend == "memory":
        return InMemoryFeedViewStore()
    if backend == "redis":
        return RedisFeedViewStore(settings.redis_url, key_prefix=settings.feed_view_key_prefix)

    if settings.redis_enabled and settings.redis_url:
        try:
            store = RedisFeedViewStore(
                settings.redis_url, key_prefix=settings.feed_view_key_prefix,
            )
            logger.info("Using Redis feed view store")
            return store
        except (redis.RedisError, ValueError) as e:
            logger.warning("Redis unavailable, using in-memory feed view store", error=str(e))
            return InMemoryFeedViewStore()

    logger.info("Redis disabled, using in-memory feed view store")
    return InMemoryFeedViewStore()
