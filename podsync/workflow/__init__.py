"""Concurrency and tuning for feed synchronization.

Provides the fixed-size worker pool that runs fetch jobs and the
environment-driven settings that size it.
"""

from .config import SyncConfig
from .pool import WorkerPool

__all__ = [
    "SyncConfig",
    "WorkerPool",
]
