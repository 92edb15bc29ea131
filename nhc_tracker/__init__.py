"""
NHC Cyclone Tracker

Relays National Hurricane Center tropical cyclone updates to Discord:
- NHC RSS feed polling and record normalization
- Snapshot diffing keyed by ATCF id
- Pinned per-storm guild reports and a daily admin digest
- JSON run state carried between invocations
"""

from .fetcher import NHCFetcher, Basin, CycloneRecord, FetchError, ValidationError
from .discord import DiscordClient, DiscordError
from .tracking import TrackingUpdate, diff, next_tracked_ids
from .notifier import Notifier, CleanupResult, RunReport, next_digest_due
from .store import RunState, StateStore
from .scheduler import TrackerRun, TrackerScheduler

__version__ = "1.0.0"

__all__ = [
    "NHCFetcher",
    "Basin",
    "CycloneRecord",
    "FetchError",
    "ValidationError",
    "DiscordClient",
    "DiscordError",
    "TrackingUpdate",
    "diff",
    "next_tracked_ids",
    "Notifier",
    "CleanupResult",
    "RunReport",
    "next_digest_due",
    "RunState",
    "StateStore",
    "TrackerRun",
    "TrackerScheduler",
]
