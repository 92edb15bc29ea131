"""
Discord REST client module for the NHC Cyclone Tracker.

Thin wrapper over the Discord v10 HTTP API covering what the tracker needs:
- Text messages (create, edit, delete)
- Image attachment messages (multipart upload)
- Pins (list, pin, unpin)
- Direct message channels and recent channel history
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

API_BASE_URL = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/nhc-tracker, 1.0.0)"
DEFAULT_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
RETRY_BACKOFF = 0.5

DISCORD_EPOCH_MS = 1420070400000
MESSAGE_PAGE_LIMIT = 100

IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/gif": "gif",
}


class DiscordError(Exception):
    """Raised for any failed Discord API call."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def snowflake_from_datetime(moment: datetime) -> str:
    """Smallest snowflake id that could have been issued at the given time."""
    millis = int(_as_utc(moment).timestamp() * 1000)
    return str((millis - DISCORD_EPOCH_MS) << 22)


def image_extension(mime_type: str) -> str:
    try:
        return IMAGE_EXTENSIONS[mime_type]
    except KeyError:
        raise ValueError(f"Unsupported image mime type '{mime_type}'")


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DiscordClient:
    """
    Discord bot client.

    Every call is synchronous and raises DiscordError on a non-2xx response
    or a transport failure. Callers decide which failures are tolerable.
    """

    def __init__(self, token: str, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._session = self._create_session(token)

    def _create_session(self, token: str) -> requests.Session:
        """Create HTTP session with bot auth and retries for idempotent verbs."""
        session = requests.Session()

        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=RETRY_BACKOFF,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "PUT", "DELETE"],
            raise_on_status=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)

        session.headers.update({
            "Authorization": f"Bot {token}",
            "User-Agent": USER_AGENT,
        })

        return session

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{API_BASE_URL}/{endpoint.lstrip('/')}"

        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise DiscordError(f"{method} {endpoint} failed: {e}")

        if response.status_code == 204:
            return None
        if response.status_code != 200:
            raise DiscordError(
                f"Unexpected status {response.status_code} {response.reason}.",
                status=response.status_code
            )
        return response.json()

    # =========================================================================
    # Messages
    # =========================================================================

    def create_text_message(self, channel_id: str, content: str) -> Dict[str, Any]:
        return self._request("POST", f"channels/{channel_id}/messages", json={"content": content})

    def edit_text_message(self, channel_id: str, message_id: str, content: str) -> Dict[str, Any]:
        return self._request(
            "PATCH", f"channels/{channel_id}/messages/{message_id}", json={"content": content}
        )

    def delete_message(self, channel_id: str, message_id: str) -> None:
        self._request("DELETE", f"channels/{channel_id}/messages/{message_id}")

    def create_image_attachment_message(
        self,
        channel_id: str,
        attachments: Sequence[Dict[str, Any]],
        content: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Post a message with uploaded images.

        Each attachment is a dict with "name" (file name without extension),
        "data" (bytes) and "mime_type" (png, jpeg or gif).
        """
        files = {}
        metadata = []
        for index, attachment in enumerate(attachments):
            filename = f"{attachment['name']}.{image_extension(attachment['mime_type'])}"
            metadata.append({"id": index, "filename": filename})
            files[f"files[{index}]"] = (filename, attachment["data"], attachment["mime_type"])

        payload: Dict[str, Any] = {}
        if content:
            payload["content"] = content
        if metadata:
            payload["attachments"] = metadata

        return self._request(
            "POST",
            f"channels/{channel_id}/messages",
            data={"payload_json": json.dumps(payload)},
            files=files
        )

    def get_recent_messages(
        self,
        channel_id: str,
        limit: int = MESSAGE_PAGE_LIMIT,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Messages in a channel, optionally bounded by dates.

        With both bounds, pages forward from `after` and keeps only messages
        older than `before`. With one or no bound, returns a single page
        (no bound means the page before now). Order is not guaranteed.
        """
        limit = max(1, min(limit, MESSAGE_PAGE_LIMIT))
        params: Dict[str, Any] = {"limit": limit}
        paginate = False

        if after and before:
            paginate = True
            params["after"] = snowflake_from_datetime(after)
        elif before:
            params["before"] = snowflake_from_datetime(before)
        elif after:
            params["after"] = snowflake_from_datetime(after)
        else:
            params["before"] = snowflake_from_datetime(datetime.now(timezone.utc))

        if not paginate:
            return self._request("GET", f"channels/{channel_id}/messages", params=params) or []

        messages = []
        while True:
            page = self._request("GET", f"channels/{channel_id}/messages", params=dict(params)) or []

            reached_end = False
            latest_at = None
            latest_id = None
            for message in page:
                sent_at = _parse_timestamp(message["timestamp"])
                if sent_at < _as_utc(before):
                    messages.append(message)
                else:
                    reached_end = True

                if latest_at is None or sent_at > latest_at:
                    latest_at = sent_at
                    latest_id = message["id"]

            if len(page) < limit or reached_end or latest_id is None:
                break
            params["after"] = latest_id

        return messages

    # =========================================================================
    # Pins
    # =========================================================================

    def get_pinned_messages(self, channel_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"channels/{channel_id}/pins") or []

    def pin_message(self, channel_id: str, message_id: str) -> None:
        self._request("PUT", f"channels/{channel_id}/pins/{message_id}")

    def unpin_message(self, channel_id: str, message_id: str) -> None:
        self._request("DELETE", f"channels/{channel_id}/pins/{message_id}")

    # =========================================================================
    # Channels
    # =========================================================================

    def get_dm_channel(self, user_id: str) -> Dict[str, Any]:
        """Open (or fetch) the direct message channel with a user."""
        return self._request("POST", "users/@me/channels", json={"recipient_id": user_id})

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()
