"""
Cache Repository Interfaces

Abstract interfaces for the capabilities the policy engine depends on.
Defines contracts for namespaced cache storage and for network access.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from .entities import CachedResponse, InterceptedRequest
from .value_objects import CacheNamespace, RequestKey


KeyPredicate = Callable[[RequestKey], bool]


class CacheStore(ABC):
    """
    Abstract namespaced request/response store.

    Implementations MUST be safe for concurrent reads and writes from
    multiple in-flight requests. Failures are reported by raising
    CacheStoreException; the engine decides whether to swallow them.
    """

    @abstractmethod
    async def get(
        self, namespace: CacheNamespace, key: RequestKey
    ) -> Optional[CachedResponse]:
        """Find a stored response by request key."""
        pass

    @abstractmethod
    async def put(
        self, namespace: CacheNamespace, key: RequestKey, response: CachedResponse
    ) -> None:
        """Store a response, creating the namespace on demand."""
        pass

    @abstractmethod
    async def put_all(
        self,
        namespace: CacheNamespace,
        entries: List[Tuple[RequestKey, CachedResponse]],
    ) -> None:
        """Store several ``(key, response)`` pairs as one unit."""
        pass

    @abstractmethod
    async def delete_matching(
        self, namespace: CacheNamespace, predicate: KeyPredicate
    ) -> int:
        """Delete every entry whose key satisfies predicate; return count."""
        pass

    @abstractmethod
    async def keys(self, namespace: CacheNamespace) -> List[RequestKey]:
        """List request keys stored in namespace."""
        pass

    @abstractmethod
    async def list_namespaces(self) -> List[str]:
        """List names of all existing namespaces."""
        pass

    @abstractmethod
    async def delete_namespace(self, name: str) -> bool:
        """Delete a namespace and all its entries."""
        pass

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


class Fetcher(ABC):
    """
    Abstract network access.

    ``fetch`` resolves with whatever response the server produced,
    including 4xx/5xx, and raises NetworkUnavailableException only when
    no response could be obtained at all.
    """

    @abstractmethod
    async def fetch(self, request: InterceptedRequest) -> CachedResponse:
        """Perform the request against the network."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
