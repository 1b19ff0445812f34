"""
In-memory cache store.

Dict-of-dicts implementation of the CacheStore contract guarded by an
asyncio lock. Used for single-process deployments and in tests.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ...domain.cache.entities import CachedResponse
from ...domain.cache.repository_interfaces import CacheStore, KeyPredicate
from ...domain.cache.value_objects import CacheNamespace, RequestKey

logger = logging.getLogger(__name__)


class InMemoryCacheStore(CacheStore):
    """
    Process-local namespaced store.

    Entries are cloned on the way in and out so callers never share a
    mutable response with the store.
    """

    def __init__(self):
        self._namespaces: Dict[str, Dict[RequestKey, CachedResponse]] = {}
        self._lock = asyncio.Lock()

    async def get(
        self, namespace: CacheNamespace, key: RequestKey
    ) -> Optional[CachedResponse]:
        async with self._lock:
            entry = self._namespaces.get(namespace.name, {}).get(key)
            return _copy(entry) if entry else None

    async def put(
        self, namespace: CacheNamespace, key: RequestKey, response: CachedResponse
    ) -> None:
        async with self._lock:
            self._namespaces.setdefault(namespace.name, {})[key] = _copy(response)

    async def put_all(
        self,
        namespace: CacheNamespace,
        entries: List[Tuple[RequestKey, CachedResponse]],
    ) -> None:
        async with self._lock:
            bucket = self._namespaces.setdefault(namespace.name, {})
            bucket.update({key: _copy(response) for key, response in entries})

    async def delete_matching(
        self, namespace: CacheNamespace, predicate: KeyPredicate
    ) -> int:
        async with self._lock:
            bucket = self._namespaces.get(namespace.name)
            if not bucket:
                return 0
            doomed = [key for key in bucket if predicate(key)]
            for key in doomed:
                del bucket[key]
            return len(doomed)

    async def keys(self, namespace: CacheNamespace) -> List[RequestKey]:
        async with self._lock:
            return list(self._namespaces.get(namespace.name, {}))

    async def list_namespaces(self) -> List[str]:
        async with self._lock:
            return list(self._namespaces)

    async def delete_namespace(self, name: str) -> bool:
        async with self._lock:
            existed = self._namespaces.pop(name, None) is not None
        if existed:
            logger.debug(f"Deleted namespace {name}")
        return existed


def _copy(response: CachedResponse) -> CachedResponse:
    return CachedResponse(
        status_code=response.status_code,
        headers=dict(response.headers),
        body=response.body,
        stored_at=response.stored_at,
    )
