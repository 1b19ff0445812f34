"""
Cache Value Objects

Immutable value objects for the offline cache domain.
Provides type safety and validation for namespaces, request keys
and request classification.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern
from urllib.parse import urlsplit


class RequestDestination(str, Enum):
    """Fetch destination as reported by the hosting runtime."""

    DOCUMENT = "document"
    SCRIPT = "script"
    STYLE = "style"
    IMAGE = "image"
    OTHER = ""

    @classmethod
    def parse(cls, value: Optional[str]) -> "RequestDestination":
        """Map a ``Sec-Fetch-Dest`` style value onto a destination."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def is_static_asset(self) -> bool:
        return self in _STATIC_DESTINATIONS


_STATIC_DESTINATIONS = frozenset(
    {
        RequestDestination.DOCUMENT,
        RequestDestination.SCRIPT,
        RequestDestination.STYLE,
        RequestDestination.IMAGE,
    }
)


class CacheStrategy(str, Enum):
    """Handling path selected for an intercepted request."""

    NETWORK_FIRST = "network_first"
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"
    NETWORK_ONLY = "network_only"


class EngineState(str, Enum):
    """Lifecycle states of a policy engine instance."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


@dataclass(frozen=True)
class CacheNamespace:
    """
    Immutable cache namespace name.

    A namespace partitions stored request/response pairs. Versioned names
    (``lidkaart-v1``, ``lidkaart-static-v1``) make older partitions easy to
    recognise and purge on activation.
    """

    name: str

    NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

    def __post_init__(self) -> None:
        """Validate namespace name."""
        if not self.name:
            raise ValueError("Namespace name cannot be empty")
        if len(self.name) > 100:
            raise ValueError("Namespace name too long (max 100 characters)")
        if not self.NAME_PATTERN.match(self.name):
            raise ValueError(f"Invalid namespace name: {self.name!r}")

    @classmethod
    def dynamic(cls, prefix: str, version: str) -> "CacheNamespace":
        """Create the dynamic (API) namespace name."""
        return cls(f"{prefix}-v{version}")

    @classmethod
    def static(cls, prefix: str, version: str) -> "CacheNamespace":
        """Create the static asset namespace name."""
        return cls(f"{prefix}-static-v{version}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RequestKey:
    """
    Cache key identifying a request: method plus full URL.
    """

    method: str
    url: str

    def __post_init__(self) -> None:
        if not self.method:
            raise ValueError("Request method cannot be empty")
        if not self.url:
            raise ValueError("Request URL cannot be empty")
        # Normalise method casing without breaking frozen semantics
        object.__setattr__(self, "method", self.method.upper())

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @classmethod
    def parse(cls, value: str) -> "RequestKey":
        """Parse the ``"GET https://..."`` form produced by ``str()``."""
        method, sep, url = value.partition(" ")
        if not sep:
            raise ValueError(f"Malformed request key: {value!r}")
        return cls(method, url)

    def __str__(self) -> str:
        return f"{self.method} {self.url}"


@dataclass(frozen=True)
class VerifyPathPattern:
    """
    Matcher for the card verification endpoint.

    Matches ``<prefix>/<member id segment>`` where the segment is a single
    non-empty path component.
    """

    prefix: str

    def __post_init__(self) -> None:
        if not self.prefix.startswith("/"):
            raise ValueError("Verify path prefix must start with '/'")

    @property
    def regex(self) -> Pattern[str]:
        return re.compile(rf"^{re.escape(self.prefix.rstrip('/'))}/[^/]+/?$")

    def matches_path(self, path: str) -> bool:
        return bool(self.regex.match(path))

    def matches_url(self, url: str) -> bool:
        return self.matches_path(urlsplit(url).path)

    def matches_key(self, key: RequestKey) -> bool:
        return self.matches_path(key.path)

    def __str__(self) -> str:
        return f"{self.prefix.rstrip('/')}/<memberId>"
