"""
Notification module for the NHC Cyclone Tracker.

Produces the two Discord reports:
- Broadcast: one pinned message with an uploaded cone image per updated,
  tracked cyclone, posted to the guild channel
- Digest: one rolling message listing every active cyclone with image links,
  posted to the admin DM channel once a day

Cleanup steps (unpin, delete, edit) are best-effort. Each one yields a
CleanupResult collected on the RunReport; creating or pinning the new
messages is not best-effort and errors propagate.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from .discord import DiscordClient, DiscordError
from .fetcher import CycloneRecord, NHCFetcher, cone_image_link
from .tracking import TRACK_COMMAND

logger = logging.getLogger(__name__)

DIGEST_TIME_UTC = time(8, 0)


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of one best-effort cleanup call."""
    action: str
    message_id: str
    success: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls, action: str, message_id: str) -> "CleanupResult":
        return cls(action=action, message_id=message_id, success=True)

    @classmethod
    def failed(cls, action: str, message_id: str, reason: str) -> "CleanupResult":
        return cls(action=action, message_id=message_id, success=False, reason=reason)


@dataclass
class RunReport:
    """What a single run did."""
    started_at: datetime
    cyclones_seen: int = 0
    updated_ids: List[str] = field(default_factory=list)
    broadcast_sent: bool = False
    digest_sent: bool = False
    cleanup: List[CleanupResult] = field(default_factory=list)

    @property
    def cleanup_failures(self) -> List[CleanupResult]:
        return [result for result in self.cleanup if not result.success]


@dataclass(frozen=True)
class RunContext:
    """Per-run values resolved once and passed to every report step."""
    guild_channel_id: str
    admin_channel_id: Optional[str]  # None when the run reads and sends nothing to the admin
    now: datetime


# =============================================================================
# Formatting
# =============================================================================

def to_title_case(text: str) -> str:
    """'TROPICAL STORM lee' -> 'Tropical Storm Lee'."""
    return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def format_heading(cyclone: CycloneRecord) -> str:
    """Markdown heading prefix shared by both reports, with a trailing space."""
    heading = f"## {to_title_case(cyclone.type)} {to_title_case(cyclone.name)} "
    if cyclone.hurricane_category > 0:
        heading += f"(Category {cyclone.hurricane_category}) "
    return heading


def format_report_time(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def no_cyclones_message(now: datetime) -> str:
    return f"There are no tropical cyclones at this time. Last updated: {format_report_time(now)}"


def format_digest(cyclones: Sequence[CycloneRecord], now: datetime) -> str:
    """Digest body: heading and cone link per cyclone, then usage hint and timestamp."""
    body = ""
    for cyclone in cyclones:
        body += f"{format_heading(cyclone)}`ATCF:{cyclone.atcf}`\n"
        body += cone_image_link(cyclone.season_wallet, cyclone.atcf)
        body += "\n\n"

    body += f'_Track cyclones in your guild by PMing me "{TRACK_COMMAND} <One or more ATCF IDs>"_\n'
    body += f"Last updated: {format_report_time(now)}"
    return body


# =============================================================================
# Digest schedule
# =============================================================================

def next_digest_due(now: datetime) -> datetime:
    """Tomorrow (UTC calendar day) at the fixed digest hour."""
    today = now.astimezone(timezone.utc).date()
    return datetime.combine(today + timedelta(days=1), DIGEST_TIME_UTC, tzinfo=timezone.utc)


def digest_is_due(next_due_at: datetime, now: datetime) -> bool:
    return now >= next_due_at


class Notifier:
    """
    Drives the messaging client for both reports.

    Calls are made one at a time, in order: old broadcast messages are
    unpinned before new ones are created, and the old digest is deleted
    before its replacement is posted.
    """

    def __init__(self, messenger: DiscordClient, fetcher: NHCFetcher):
        self.messenger = messenger
        self.fetcher = fetcher

    def _best_effort(
        self,
        report: RunReport,
        action: str,
        message_id: str,
        call: Callable[[], object]
    ) -> CleanupResult:
        try:
            call()
            result = CleanupResult.ok(action, message_id)
        except DiscordError as e:
            logger.info(f"Unable to {action} discord message id:{message_id}. Reason:{e}")
            result = CleanupResult.failed(action, message_id, str(e))

        report.cleanup.append(result)
        return result

    # =========================================================================
    # Broadcast report
    # =========================================================================

    def send_broadcast_reports(
        self,
        ctx: RunContext,
        cyclones: Sequence[CycloneRecord],
        previous_message_ids: Sequence[str],
        report: RunReport
    ) -> List[str]:
        """
        Replace the pinned guild reports with one message per cyclone.

        Returns:
            The ids of the new messages, in cyclone order
        """
        channel_id = ctx.guild_channel_id

        for message_id in previous_message_ids:
            self._best_effort(
                report, "unpin", message_id,
                lambda message_id=message_id: self.messenger.unpin_message(channel_id, message_id)
            )

        message_ids = []
        stamp = int(ctx.now.timestamp() * 1000)
        for cyclone in cyclones:
            content = f"{format_heading(cyclone)}- Public Advisory Update"
            image = self.fetcher.fetch_cone_image(cyclone.season_wallet, cyclone.atcf)

            message = self.messenger.create_image_attachment_message(
                channel_id,
                attachments=[{
                    "name": f"{cyclone.atcf}_{stamp}",
                    "data": image.data,
                    "mime_type": image.mime_type,
                }],
                content=content
            )
            self.messenger.pin_message(channel_id, message["id"])
            message_ids.append(message["id"])
            logger.info(f"Broadcast report sent for {cyclone.atcf} (message {message['id']})")

        report.broadcast_sent = True
        return message_ids

    # =========================================================================
    # Digest report
    # =========================================================================

    def send_digest_report(
        self,
        ctx: RunContext,
        cyclones: Sequence[CycloneRecord],
        previous_message_id: Optional[str],
        report: RunReport
    ) -> str:
        """
        Post or refresh the admin digest.

        Returns:
            The id of the digest message now standing in the admin channel
        """
        channel_id = ctx.admin_channel_id

        if cyclones:
            # A fresh message notifies the recipient; an edit would not
            if previous_message_id:
                self._best_effort(
                    report, "delete", previous_message_id,
                    lambda: self.messenger.delete_message(channel_id, previous_message_id)
                )
            message = self.messenger.create_text_message(channel_id, format_digest(cyclones, ctx.now))

        elif previous_message_id:
            content = no_cyclones_message(ctx.now)
            result = self._best_effort(
                report, "edit", previous_message_id,
                lambda: self.messenger.edit_text_message(channel_id, previous_message_id, content)
            )
            if result.success:
                message = {"id": previous_message_id}
            else:
                message = self.messenger.create_text_message(channel_id, content)

        else:
            message = self.messenger.create_text_message(channel_id, no_cyclones_message(ctx.now))

        report.digest_sent = True
        logger.info(f"Digest report posted (message {message['id']})")
        return message["id"]
