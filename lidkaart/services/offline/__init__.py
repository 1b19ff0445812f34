"""
Offline Cache Services

Policy engine, caching strategies and background task tracking.
"""

from .background import BackgroundTaskSink
from .policy_engine import EngineConfig, OfflineCachePolicyEngine
from .strategies import (
    CachingStrategy,
    NetworkFirstStrategy,
    NetworkOnlyStrategy,
    StaleWhileRevalidateStrategy,
)

__all__ = [
    "BackgroundTaskSink",
    "EngineConfig",
    "OfflineCachePolicyEngine",
    "CachingStrategy",
    "NetworkFirstStrategy",
    "NetworkOnlyStrategy",
    "StaleWhileRevalidateStrategy",
]
