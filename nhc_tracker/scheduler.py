"""
Scheduler module for the NHC Cyclone Tracker.

One tracker run is: load state, poll the feed, read track commands, diff,
send reports, save state. Runs are meant to be triggered by cron; the
TrackerScheduler can take that role with APScheduler instead.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import Settings
from .discord import DiscordClient
from .fetcher import CycloneRecord, NHCFetcher
from .notifier import Notifier, RunContext, RunReport, digest_is_due, next_digest_due
from .store import StateStore
from .tracking import diff, extract_commanded_ids, find_track_command, next_tracked_ids

logger = logging.getLogger(__name__)

COMMAND_SCAN_LIMIT = 10  # most recent admin messages searched for a track command


class TrackerRun:
    """
    A single poll-diff-notify cycle.

    State is saved only when the whole cycle succeeds. Errors from the feed,
    from reading commands, or from creating report messages propagate and
    leave the previous state file untouched.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[NHCFetcher] = None,
        messenger: Optional[DiscordClient] = None,
        store: Optional[StateStore] = None
    ):
        self.settings = settings
        self.fetcher = fetcher or NHCFetcher()
        self.messenger = messenger or DiscordClient(settings.discord_bot_token)
        self.store = store or StateStore(settings.state_path)
        self.notifier = Notifier(self.messenger, self.fetcher)

    def run_once(self, now: Optional[datetime] = None) -> RunReport:
        now = now or datetime.now(timezone.utc)
        report = RunReport(started_at=now)

        state = self.store.load(now)
        current = self.fetcher.fetch_active_cyclones(self.settings.basin)
        report.cyclones_seen = len(current)

        digest_due = digest_is_due(state.digest_next_due_at, now)
        # Admin DM channel is needed only to read commands or send the digest
        admin_channel_id = None
        if current or digest_due:
            admin_channel_id = self.messenger.get_dm_channel(self.settings.discord_admin_id)["id"]
        ctx = RunContext(
            guild_channel_id=self.settings.discord_guild_channel_id,
            admin_channel_id=admin_channel_id,
            now=now,
        )

        commanded = []
        if current:
            commanded = self._read_track_command(ctx, current)

        tracked = next_tracked_ids(state.tracked_ids, commanded, current)
        update = diff(tracked, state.cyclones, current)
        state.tracked_ids = update.still_trackable
        report.updated_ids = [cyclone.atcf for cyclone in update.updated]

        if state.tracked_ids and update.updated:
            logger.info("Cyclone updates found, reporting to discord guild...")
            state.broadcast_message_ids = self.notifier.send_broadcast_reports(
                ctx, update.updated, state.broadcast_message_ids, report
            )

        if digest_due:
            logger.info("Generating new admin cyclone report...")
            state.digest_message_id = self.notifier.send_digest_report(
                ctx, current, state.digest_message_id, report
            )
            state.digest_next_due_at = next_digest_due(now)

        state.cyclones = current
        state.last_run_at = now
        self.store.save(state)

        failures = len(report.cleanup_failures)
        logger.info(
            f"Run complete: {len(current)} cyclone(s), {len(state.tracked_ids)} tracked, "
            f"broadcast={'sent' if report.broadcast_sent else 'skipped'}, "
            f"digest={'sent' if report.digest_sent else 'skipped'}, "
            f"cleanup failures={failures}"
        )
        return report

    def _read_track_command(self, ctx: RunContext, current: Sequence[CycloneRecord]) -> List[str]:
        messages = self.messenger.get_recent_messages(ctx.admin_channel_id, limit=COMMAND_SCAN_LIMIT)
        content = find_track_command(messages, ctx.now)
        if not content:
            return []

        commanded = extract_commanded_ids(content, current)
        if commanded:
            logger.info(f"Track command names active cyclone(s): {', '.join(commanded)}")
        return commanded

    def close(self) -> None:
        self.fetcher.close()
        self.messenger.close()


class TrackerScheduler:
    """
    Runs the tracker on a fixed interval in the foreground.

    One job, max_instances=1 and coalesced, so runs never overlap. A failed
    run is logged and the next interval tries again.
    """

    def __init__(self, tracker: TrackerRun, interval_minutes: int):
        self.tracker = tracker
        self.interval_minutes = interval_minutes
        self.scheduler = BlockingScheduler(timezone=timezone.utc)
        self._last_report: Optional[RunReport] = None

    def _run_job(self) -> None:
        try:
            self._last_report = self.tracker.run_once()
        except Exception:
            logger.exception("Tracker run failed; previous state kept")

    def start(self) -> None:
        """Run once now, then block running every interval until interrupted."""
        self.scheduler.add_job(
            self._run_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone=timezone.utc),
            id='tracker_job',
            name='NHC Cyclone Tracker Run',
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        logger.info(f"Scheduler started: tracker runs every {self.interval_minutes}min")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")

    @property
    def last_report(self) -> Optional[RunReport]:
        return self._last_report
