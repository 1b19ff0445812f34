"""
Network Infrastructure

Fetcher implementations used by the policy engine and the httpx
transport that puts the engine in front of a client.
"""

from .http_fetcher import HttpxFetcher, strip_hop_by_hop
from .offline_transport import OfflineCacheTransport

__all__ = ["HttpxFetcher", "OfflineCacheTransport", "strip_hop_by_hop"]
