"""
Change detection module for the NHC Cyclone Tracker.

Compares the previous run's snapshot with the current poll:
- Snapshot differencing keyed by ATCF id, using the feed guid as update token
- Tracked-id state machine (untracked -> tracked -> tracked | evicted)
- Operator track commands read from the admin channel
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .fetcher import CycloneRecord

logger = logging.getLogger(__name__)

TRACK_COMMAND = "!nhctrack"
COMMAND_MAX_AGE = timedelta(days=30)


@dataclass
class TrackingUpdate:
    """Result of diffing two snapshots for a set of tracked ids."""
    updated: List[CycloneRecord] = field(default_factory=list)
    still_trackable: List[str] = field(default_factory=list)


def build_cyclone_map(cyclones: Iterable[CycloneRecord]) -> Dict[str, CycloneRecord]:
    """ATCF id -> record. A later duplicate replaces an earlier one."""
    return {cyclone.atcf: cyclone for cyclone in cyclones}


def diff(
    tracked_ids: Iterable[str],
    previous: Sequence[CycloneRecord],
    current: Sequence[CycloneRecord]
) -> TrackingUpdate:
    """
    Work out which tracked cyclones changed since the previous snapshot.

    A tracked id missing from `current` is dropped. One that is present stays
    trackable, and counts as updated when the previous snapshot has no record
    for it or its update_guid changed. Results follow `tracked_ids` order.
    """
    previous_map = build_cyclone_map(previous)
    current_map = build_cyclone_map(current)

    result = TrackingUpdate()
    for atcf in tracked_ids:
        recent = current_map.get(atcf)
        if recent is None:
            logger.info(f"Cyclone {atcf} no longer in feed, no longer tracked")
            continue

        result.still_trackable.append(atcf)

        old = previous_map.get(atcf)
        if old is None or old.update_guid != recent.update_guid:
            result.updated.append(recent)

    return result


def next_tracked_ids(
    tracked_ids: Iterable[str],
    commanded_ids: Iterable[str],
    current: Sequence[CycloneRecord]
) -> List[str]:
    """
    Tracked set for this run.

    Previously tracked ids still in the feed keep their order, followed by
    newly commanded ids that exist in the feed. Duplicates are dropped.
    """
    current_ids = set(build_cyclone_map(current))

    result = []
    for atcf in list(tracked_ids) + list(commanded_ids):
        if atcf in current_ids and atcf not in result:
            result.append(atcf)
    return result


def find_track_command(
    messages: Iterable[Dict[str, Any]],
    now: datetime,
    command: str = TRACK_COMMAND
) -> Optional[str]:
    """Content of the newest non-bot message within the last 30 days containing the command."""
    newest_content = None
    newest_at = now - COMMAND_MAX_AGE

    for message in messages:
        if message.get("author", {}).get("bot"):
            continue
        content = message.get("content") or ""
        if command not in content:
            continue

        sent_at = datetime.fromisoformat(message["timestamp"].replace("Z", "+00:00"))
        if sent_at > newest_at:
            newest_content = content
            newest_at = sent_at

    return newest_content


def extract_commanded_ids(content: str, current: Sequence[CycloneRecord]) -> List[str]:
    """Words of a track command that name a cyclone in the current snapshot."""
    current_ids = set(build_cyclone_map(current))
    return [word.strip() for word in content.split() if word.strip() in current_ids]
