"""
Tag-aware response cache on top of redis.

Each cached value lives under ``<namespace>:item:<key>``. Every tag is a redis
set ``<namespace>:tag:<tag>`` listing the item keys stored with that tag, so
invalidating a tag deletes all of its items at once.

Every tag also has a version counter ``<namespace>:tagver:<tag>`` bumped on
invalidation. Items record the versions of their tags as they were before the
value was computed; an item whose tag versions have moved is a miss, and a
value whose tags were invalidated while it was being computed is not stored.
"""
from __future__ import annotations

import json
import logging
from typing import Callable, Iterable, Optional

import redis
from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "tag_cache"

# tag shared by every cached catalog listing
CACHE_TAG = "booksCache"


class TagAwareCache:
    def __init__(self, client: redis.Redis, namespace: str = "bookapi", default_timeout: int = 3600):
        self.client = client
        self.namespace = namespace
        self.default_timeout = default_timeout

    def _item_key(self, key: str) -> str:
        return f"{self.namespace}:item:{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.namespace}:tag:{tag}"

    def _version_key(self, tag: str) -> str:
        return f"{self.namespace}:tagver:{tag}"

    def _tag_versions(self, tags: list[str]) -> dict[str, int]:
        if not tags:
            return {}
        raw = self.client.mget([self._version_key(tag) for tag in tags])
        return {tag: int(value or 0) for tag, value in zip(tags, raw)}

    def get(
        self,
        key: str,
        callback: Callable[[], str],
        tags: Iterable[str] = (),
        timeout: Optional[int] = None,
    ) -> str:
        """
        Return the value stored under `key`, computing and storing it with
        `callback` on a miss. The stored item is attached to every tag in `tags`.
        """
        tags = list(tags)
        item_key = self._item_key(key)
        versions = self._tag_versions(tags)

        cached = self.client.get(item_key)
        if cached is not None:
            item = json.loads(cached)
            if item["tags"] == versions:
                logger.debug("Cache hit %s", key)
                return item["value"]
            logger.debug("Cache item %s outdated by tag invalidation", key)

        logger.debug("Cache miss %s", key)
        value = callback()

        if self._tag_versions(tags) != versions:
            logger.debug("Tags of %s invalidated during computation, not storing", key)
            return value

        ttl = timeout if timeout is not None else self.default_timeout
        item = json.dumps({"tags": versions, "value": value}, ensure_ascii=False)
        pipe = self.client.pipeline()
        pipe.set(item_key, item, ex=ttl)
        for tag in tags:
            pipe.sadd(self._tag_key(tag), item_key)
        pipe.execute()
        return value

    def delete(self, key: str) -> bool:
        return bool(self.client.delete(self._item_key(key)))

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Delete every item stored with one of `tags`. Returns the number of items removed."""
        removed = 0
        for tag in tags:
            # bump first so values being computed right now are not stored
            self.client.incr(self._version_key(tag))
            tag_key = self._tag_key(tag)
            members = self.client.smembers(tag_key)
            if members:
                removed += self.client.delete(*members)
            self.client.delete(tag_key)
            logger.info("Cache tag invalidated: %s (%d items)", tag, len(members))
        return removed


def init_cache(app, client: Optional[redis.Redis] = None) -> TagAwareCache:
    settings = app.config["SETTINGS"]
    if client is None:
        client = redis.Redis.from_url(settings.redis_url)
    cache = TagAwareCache(
        client,
        namespace=settings.cache_namespace,
        default_timeout=settings.cache_ttl_seconds,
    )
    app.extensions[EXTENSION_KEY] = cache
    return cache


def get_cache() -> TagAwareCache:
    return current_app.extensions[EXTENSION_KEY]
