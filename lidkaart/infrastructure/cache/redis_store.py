"""
Redis cache store.

Persists namespaces across restarts and shares them between edge
workers. Layout:

- ``<prefix>:namespaces``        set of namespace names
- ``<prefix>:ns:<namespace>``     hash of ``"<METHOD> <url>"`` -> JSON entry
"""

import json
import logging
from typing import List, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from ...core.exceptions import CacheStoreException
from ...domain.cache.entities import CachedResponse
from ...domain.cache.repository_interfaces import CacheStore, KeyPredicate
from ...domain.cache.value_objects import CacheNamespace, RequestKey

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RedisCacheStore(CacheStore):
    """CacheStore backed by one Redis hash per namespace."""

    def __init__(self, redis: Redis, key_prefix: str = "lidkaart"):
        self._redis = redis
        self.key_prefix = key_prefix

    @classmethod
    def from_url(
        cls, url: str, max_connections: int = 10, key_prefix: str = "lidkaart"
    ) -> "RedisCacheStore":
        """Create a store with its own connection pool."""
        pool = ConnectionPool.from_url(
            url, max_connections=max_connections, decode_responses=True
        )
        return cls(Redis(connection_pool=pool), key_prefix=key_prefix)

    @property
    def registry_key(self) -> str:
        return f"{self.key_prefix}:namespaces"

    def _hash_key(self, name: str) -> str:
        return f"{self.key_prefix}:ns:{name}"

    async def get(
        self, namespace: CacheNamespace, key: RequestKey
    ) -> Optional[CachedResponse]:
        with tracer.start_as_current_span("redis_store.get") as span:
            span.set_attribute("namespace", namespace.name)
            try:
                raw = await self._redis.hget(self._hash_key(namespace.name), str(key))
            except RedisError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CacheStoreException(
                    "get", namespace.name, str(key), original_error=e
                )

            span.set_attribute("hit", raw is not None)
            if raw is None:
                return None
            try:
                return CachedResponse.from_dict(json.loads(raw))
            except (ValueError, KeyError) as e:
                raise CacheStoreException(
                    "decode", namespace.name, str(key), original_error=e
                )

    async def put(
        self, namespace: CacheNamespace, key: RequestKey, response: CachedResponse
    ) -> None:
        await self.put_all(namespace, [(key, response)])

    async def put_all(
        self,
        namespace: CacheNamespace,
        entries: List[Tuple[RequestKey, CachedResponse]],
    ) -> None:
        if not entries:
            return
        with tracer.start_as_current_span("redis_store.put") as span:
            span.set_attribute("namespace", namespace.name)
            span.set_attribute("entries", len(entries))
            mapping = {
                str(key): json.dumps(response.to_dict()) for key, response in entries
            }
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.sadd(self.registry_key, namespace.name)
                    pipe.hset(self._hash_key(namespace.name), mapping=mapping)
                    await pipe.execute()
            except RedisError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CacheStoreException("put", namespace.name, original_error=e)

    async def delete_matching(
        self, namespace: CacheNamespace, predicate: KeyPredicate
    ) -> int:
        with tracer.start_as_current_span("redis_store.delete_matching") as span:
            span.set_attribute("namespace", namespace.name)
            doomed = [str(key) for key in await self.keys(namespace) if predicate(key)]
            if not doomed:
                return 0
            try:
                deleted = await self._redis.hdel(self._hash_key(namespace.name), *doomed)
            except RedisError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CacheStoreException(
                    "delete_matching", namespace.name, original_error=e
                )
            span.set_attribute("deleted", int(deleted))
            return int(deleted)

    async def keys(self, namespace: CacheNamespace) -> List[RequestKey]:
        try:
            raw_keys = await self._redis.hkeys(self._hash_key(namespace.name))
        except RedisError as e:
            raise CacheStoreException("keys", namespace.name, original_error=e)

        keys = []
        for raw in raw_keys:
            try:
                keys.append(RequestKey.parse(raw))
            except ValueError:
                logger.warning(f"Skipping malformed cache key in {namespace}: {raw!r}")
        return keys

    async def list_namespaces(self) -> List[str]:
        try:
            names = await self._redis.smembers(self.registry_key)
        except RedisError as e:
            raise CacheStoreException("list_namespaces", original_error=e)
        return sorted(names)

    async def delete_namespace(self, name: str) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._hash_key(name))
                pipe.srem(self.registry_key, name)
                _, removed = await pipe.execute()
        except RedisError as e:
            raise CacheStoreException("delete_namespace", name, original_error=e)
        return bool(removed)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            raise CacheStoreException("ping", original_error=e)

    async def close(self) -> None:
        await self._redis.aclose()
