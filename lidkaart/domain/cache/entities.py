"""
Cache Domain Entities

Core domain entities for the offline cache policy.
Encapsulates intercepted requests, stored responses and the card
verification payload together with their invariants.
"""

import base64
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Dict, Any, Mapping
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from ...constants import (
    JSON_CONTENT_TYPE,
    OFFLINE_ERROR_MESSAGE,
    OFFLINE_ERROR_STATUS_CODE,
    STATUS_NOT_CURRENT,
    get_current_timestamp,
    isoformat_utc,
)
from .value_objects import RequestDestination, RequestKey


def _normalize_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    return {str(k).lower(): str(v) for k, v in (headers or {}).items()}


@dataclass
class InterceptedRequest:
    """
    Request entity as seen by the policy engine.

    The destination and mode are supplied by the hosting runtime
    (``Sec-Fetch-Dest``/``Sec-Fetch-Mode`` for HTTP adapters).
    """

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    destination: RequestDestination = RequestDestination.OTHER
    mode: Optional[str] = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = _normalize_headers(self.headers)
        if not urlsplit(self.url).scheme:
            raise ValueError(f"Request URL must be absolute: {self.url!r}")

    @property
    def key(self) -> RequestKey:
        return RequestKey(self.method, self.url)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"


@dataclass
class CachedResponse:
    """
    Stored (or live) response entity.

    Holds status, headers and the fully read body so the same response
    can be returned to the caller and written to a namespace.
    """

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stored_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not 100 <= self.status_code <= 599:
            raise ValueError(f"Invalid HTTP status code: {self.status_code}")
        self.headers = _normalize_headers(self.headers)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @classmethod
    def json_response(
        cls, payload: Any, status_code: int = 200
    ) -> "CachedResponse":
        """Create a synthetic JSON response."""
        return cls(
            status_code=status_code,
            headers={"content-type": JSON_CONTENT_TYPE},
            body=json.dumps(payload).encode("utf-8"),
        )

    def json(self) -> Any:
        """Decode the body as JSON (raises ValueError when malformed)."""
        return json.loads(self.body.decode("utf-8"))

    def clone(self) -> "CachedResponse":
        """Independent copy, stamped with the moment it is stored."""
        return replace(
            self, headers=dict(self.headers), stored_at=get_current_timestamp()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage backends that only hold text."""
        return {
            "status_code": self.status_code,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
            "stored_at": self.stored_at.isoformat() if self.stored_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResponse":
        stored_at = data.get("stored_at")
        return cls(
            status_code=int(data["status_code"]),
            headers=data.get("headers") or {},
            body=base64.b64decode(data.get("body") or ""),
            stored_at=datetime.fromisoformat(stored_at) if stored_at else None,
        )

    def same_content(self, other: "CachedResponse") -> bool:
        """Compare status, headers and body, ignoring storage metadata."""
        return (
            self.status_code == other.status_code
            and self.headers == other.headers
            and self.body == other.body
        )


class VerificationResult(BaseModel):
    """
    Card verification payload returned by ``GET <prefix>/<memberId>``.

    Only ``status`` and ``refreshedAt`` are interpreted; every other field
    the membership API sends (validUntil, member, ...) is kept as-is.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status: str = Field(..., description="Card status (ACTUEEL, NIET_ACTUEEL, ...)")
    refreshed_at: Optional[str] = Field(
        None, alias="refreshedAt", description="ISO-8601 refresh timestamp"
    )
    offline: Optional[bool] = Field(
        None, description="Set when served without network"
    )

    def as_offline(self, moment: Optional[datetime] = None) -> "VerificationResult":
        """
        Degraded copy for the offline path.

        Stale verification data must never look current: the status is
        forced to NIET_ACTUEEL and the refresh timestamp moved to now.
        """
        moment = moment or get_current_timestamp()
        return self.model_copy(
            update={
                "status": STATUS_NOT_CURRENT,
                "offline": True,
                "refreshed_at": isoformat_utc(moment),
            }
        )

    @classmethod
    def offline_from(
        cls, payload: Dict[str, Any], moment: Optional[datetime] = None
    ) -> "VerificationResult":
        """
        Degraded result built from any cached JSON object.

        The overridden fields are replaced before validation, so error
        bodies such as ``{"error": ...}`` are accepted as well.
        """
        moment = moment or get_current_timestamp()
        data = {k: v for k, v in payload.items() if k != "refreshed_at"}
        data.update(
            {
                "status": STATUS_NOT_CURRENT,
                "refreshedAt": isoformat_utc(moment),
                "offline": True,
            }
        )
        return cls.model_validate(data)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class OfflineError(BaseModel):
    """Body of the synthetic response when no cached verification exists."""

    error: str = OFFLINE_ERROR_MESSAGE
    status: str = STATUS_NOT_CURRENT
    offline: bool = True

    def to_response(self) -> CachedResponse:
        return CachedResponse.json_response(
            self.model_dump(), status_code=OFFLINE_ERROR_STATUS_CODE
        )
