from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any

import pytest

from nhc_tracker.config import Settings
from nhc_tracker.discord import DiscordError
from nhc_tracker.fetcher import ConeImage, CycloneRecord

SAMPLE_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:nhc="https://www.nhc.noaa.gov">
<channel>
<title>National Hurricane Center (Atlantic)</title>
<link>https://www.nhc.noaa.gov/</link>
<description>Active tropical cyclones in the Atlantic</description>
<item>
<title>NHC Atlantic Outlook</title>
<guid isPermaLink="false">https://www.nhc.noaa.gov/gtwo.php?basin=atlc</guid>
<pubDate>Sun, 10 Sep 2023 12:00:00 GMT</pubDate>
</item>
<item>
<title>Summary for Hurricane Lee (AT3/AL132023)</title>
<guid isPermaLink="false">summary-al132023-202309101500</guid>
<pubDate>Sun, 10 Sep 2023 15:00:00 GMT</pubDate>
<nhc:Cyclone>
<nhc:center>22.3, -60.0</nhc:center>
<nhc:type>HURRICANE</nhc:type>
<nhc:name>Lee</nhc:name>
<nhc:wallet>AT3</nhc:wallet>
<nhc:atcf>AL132023</nhc:atcf>
<nhc:datetime>11:00 AM AST Sun Sep 10</nhc:datetime>
<nhc:movement>WNW at 7 mph</nhc:movement>
<nhc:pressure>946 mb</nhc:pressure>
<nhc:wind>120 mph</nhc:wind>
<nhc:headline>LEE CONTINUES MOVING SLOWLY</nhc:headline>
</nhc:Cyclone>
</item>
<item>
<title>Hurricane Lee Public Advisory Number 20</title>
<guid isPermaLink="false">https://www.nhc.noaa.gov/text/MIATCPAT3.shtml?202309101445</guid>
<pubDate>Sun, 10 Sep 2023 14:45:00 GMT</pubDate>
</item>
<item>
<title>Summary for Tropical Storm Margot (AT4/AL142023)</title>
<guid isPermaLink="false">summary-al142023-202309101500</guid>
<pubDate>Sun, 10 Sep 2023 15:00:00 GMT</pubDate>
<nhc:Cyclone>
<nhc:center>20.1, -37.5</nhc:center>
<nhc:type>TROPICAL STORM</nhc:type>
<nhc:name>Margot</nhc:name>
<nhc:wallet>AT4</nhc:wallet>
<nhc:atcf>AL142023</nhc:atcf>
<nhc:datetime>11:00 AM AST Sun Sep 10</nhc:datetime>
<nhc:movement>NW at 9 mph</nhc:movement>
<nhc:pressure>997 mb</nhc:pressure>
<nhc:wind>60 mph</nhc:wind>
<nhc:headline>MARGOT STRENGTHENS</nhc:headline>
</nhc:Cyclone>
</item>
</channel>
</rss>
"""


def make_cyclone(atcf: str, guid: str = "g1", **overrides: Any) -> CycloneRecord:
    fields = {
        "atcf": atcf,
        "update_guid": guid,
        "type": "TROPICAL STORM",
        "name": f"Storm {atcf}",
        "wind": "50 mph",
        "wallet": "AT01",
        "season_wallet": f"{atcf[:2]}{atcf[2:4]}",
    }
    fields.update(overrides)
    return CycloneRecord(**fields)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeMessenger:
    """In-memory stand-in for DiscordClient that records every call in order."""

    def __init__(self, fail_on: set[str] | None = None, messages: list[dict] | None = None) -> None:
        self.calls: list[tuple] = []
        self.fail_on = set(fail_on or ())
        self.messages = messages or []
        self._ids = itertools.count(100)

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise DiscordError(f"{name} failed", status=404)

    def _new_message(self) -> dict:
        return {"id": str(next(self._ids))}

    def create_text_message(self, channel_id: str, content: str) -> dict:
        self.calls.append(("create_text_message", channel_id, content))
        self._maybe_fail("create_text_message")
        return self._new_message()

    def edit_text_message(self, channel_id: str, message_id: str, content: str) -> dict:
        self.calls.append(("edit_text_message", channel_id, message_id, content))
        self._maybe_fail("edit_text_message")
        return {"id": message_id}

    def delete_message(self, channel_id: str, message_id: str) -> None:
        self.calls.append(("delete_message", channel_id, message_id))
        self._maybe_fail("delete_message")

    def create_image_attachment_message(self, channel_id: str, attachments, content=None) -> dict:
        self.calls.append(("create_image_attachment_message", channel_id, content, list(attachments)))
        self._maybe_fail("create_image_attachment_message")
        return self._new_message()

    def pin_message(self, channel_id: str, message_id: str) -> None:
        self.calls.append(("pin_message", channel_id, message_id))
        self._maybe_fail("pin_message")

    def unpin_message(self, channel_id: str, message_id: str) -> None:
        self.calls.append(("unpin_message", channel_id, message_id))
        self._maybe_fail("unpin_message")

    def get_dm_channel(self, user_id: str) -> dict:
        self.calls.append(("get_dm_channel", user_id))
        self._maybe_fail("get_dm_channel")
        return {"id": f"dm-{user_id}"}

    def get_recent_messages(self, channel_id: str, limit: int = 100, after=None, before=None) -> list:
        self.calls.append(("get_recent_messages", channel_id, limit))
        self._maybe_fail("get_recent_messages")
        return list(self.messages)

    def close(self) -> None:
        pass

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeFetcher:
    """Stand-in for NHCFetcher returning a fixed snapshot."""

    def __init__(self, cyclones: list[CycloneRecord] | None = None, error: Exception | None = None) -> None:
        self.cyclones = cyclones or []
        self.error = error
        self.image_requests: list[tuple[str, str]] = []

    def fetch_active_cyclones(self, basin=None) -> list[CycloneRecord]:
        if self.error:
            raise self.error
        return list(self.cyclones)

    def fetch_cone_image(self, season_wallet: str, atcf: str, cone_type: str = "5day") -> ConeImage:
        self.image_requests.append((season_wallet, atcf))
        return ConeImage(data=b"\x89PNG", mime_type="image/png")

    def close(self) -> None:
        pass


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        discord_bot_token="token",
        discord_admin_id="admin",
        discord_guild_channel_id="guild",
        state_path=str(tmp_path / "metadata.json"),
    )
