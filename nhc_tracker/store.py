"""
Run state persistence module for the NHC Cyclone Tracker.

The process keeps no memory between invocations, so everything a run needs
from the previous one lives in a single JSON document:
- Latest cyclone snapshot
- Tracked ATCF ids
- Broadcast and digest message ids
- Next digest due time
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field

from .fetcher import CycloneRecord

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path(__file__).parent.parent / "metadata.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunState(BaseModel):
    """Everything carried from one run to the next."""
    cyclones: List[CycloneRecord] = Field(default_factory=list)
    tracked_ids: List[str] = Field(default_factory=list)
    broadcast_message_ids: List[str] = Field(default_factory=list)
    digest_message_id: Optional[str] = None
    # Defaults to "now" so a first run posts the digest immediately.
    # Timestamps without an offset are rejected and the file treated as corrupt.
    digest_next_due_at: AwareDatetime = Field(default_factory=_utcnow)
    last_run_at: Optional[AwareDatetime] = None


class StateStore:
    """
    JSON file store for RunState.

    Loaded once at process start and overwritten wholesale at the end of a
    successful run. No locking: overlapping runs are last-write-wins.
    """

    def __init__(self, path=None) -> None:
        self.path = Path(path) if path else DEFAULT_STATE_PATH

    def load(self, now: Optional[datetime] = None) -> RunState:
        """Read the state file, falling back to defaults when absent or unreadable."""
        now = now or _utcnow()

        if not self.path.exists():
            logger.info(f"No state file at {self.path}, starting fresh")
            return RunState(digest_next_due_at=now)

        try:
            raw = self.path.read_text(encoding="utf-8")
            return RunState.model_validate_json(raw)
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable state file {self.path}: {e}")
            return RunState(digest_next_due_at=now)

    def save(self, state: RunState) -> None:
        """Overwrite the state file with the given state."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(indent=4), encoding="utf-8")
        logger.debug(f"State saved to {self.path}")
