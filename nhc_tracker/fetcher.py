"""
NHC RSS Feed Fetcher module for the NHC Cyclone Tracker.

Handles data retrieval from the National Hurricane Center:
- Basin RSS feeds (index-at.xml, index-ep.xml, index-cp.xml)
- Forecast cone graphics from the storm archives

Normalizes the feed into strongly-typed CycloneRecord objects:
- Explicit mapping table from raw nhc:Cyclone fields to record fields
- Zero-padded wallet and seasonal wallet identifiers
- Saffir-Simpson category derived from the wind description
- Public advisory publication dates matched by storm name
"""

import logging
import re
import xml.etree.ElementTree as ET
from calendar import timegm
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# Configuration constants
DEFAULT_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
RETRY_BACKOFF = 0.5
USER_AGENT = "nhc-tracker/1.0"

NHC_BASE_URL = "https://www.nhc.noaa.gov"
STORM_GRAPHICS_URL = f"{NHC_BASE_URL}/storm_graphics"

# Raw nhc:Cyclone element name -> CycloneRecord field
RAW_FIELD_MAP = {
    "center": "center",
    "type": "type",
    "name": "name",
    "wallet": "wallet",
    "atcf": "atcf",
    "datetime": "report_datetime",
    "movement": "movement",
    "pressure": "pressure",
    "wind": "wind",
    "headline": "headline",
}

PUBLIC_ADVISORY_PATTERN = re.compile(r"public advisory", re.IGNORECASE)

IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/gif")


class Basin(Enum):
    """Ocean basins covered by NHC RSS feeds."""
    ATLANTIC = "at"
    EASTERN_PACIFIC = "ep"
    CENTRAL_PACIFIC = "cp"

    @property
    def feed_url(self) -> str:
        return f"{NHC_BASE_URL}/index-{self.value}.xml"

    @classmethod
    def from_name(cls, name: str) -> "Basin":
        """Resolve a basin from a config value like 'atlantic' or 'ep'."""
        key = name.strip().lower().replace("-", "_").replace(" ", "_")
        for basin in cls:
            if key in (basin.name.lower(), basin.value):
                return basin
        raise ValueError(f"Unknown basin: {name}")


@dataclass
class CycloneRecord:
    """Represents one active storm as seen in a single feed poll."""
    atcf: str               # Lifetime-unique id, e.g. AL132023
    update_guid: str        # Feed item guid; changes whenever the entry is revised
    type: str               # e.g. HURRICANE, TROPICAL STORM
    name: str
    wind: str               # Free text, e.g. "115 mph"
    wallet: str = ""        # Reusable wallet, e.g. AT03
    season_wallet: str = ""  # Seasonal wallet used in image links, e.g. AL13
    hurricane_category: int = 0
    center: str = ""
    report_datetime: str = ""
    movement: str = ""
    pressure: str = ""
    headline: str = ""
    advisory_published_at: Optional[datetime] = None


@dataclass
class ConeImage:
    """Raw forecast cone graphic."""
    data: bytes
    mime_type: str


class FetchError(Exception):
    """Custom exception for feed fetching errors."""
    pass


class ValidationError(Exception):
    """Custom exception for feed validation errors."""
    pass


# =============================================================================
# Normalization helpers
# =============================================================================

def derive_hurricane_category(storm_type: str, wind: str) -> int:
    """
    Saffir-Simpson category from the wind description.

    Non-hurricanes are category 0. A hurricane whose wind text carries no
    number is treated as 0 mph, i.e. category 1.
    """
    if storm_type.strip().lower() != "hurricane":
        return 0

    match = re.search(r"\d+", wind or "")
    wind_mph = int(match.group(0)) if match else 0

    if wind_mph > 156:
        return 5
    if wind_mph > 129:
        return 4
    if wind_mph > 110:
        return 3
    if wind_mph > 95:
        return 2
    return 1


def pad_wallet(wallet: str) -> str:
    """EP1 -> EP01, AT12 -> AT12."""
    basin, number = wallet[:2], wallet[2:]
    try:
        return f"{basin}{int(number):02d}"
    except ValueError:
        logger.warning(f"Unexpected wallet format: {wallet}")
        return wallet


def season_wallet_for(wallet: str, atcf: str) -> str:
    """Build the seasonal wallet from the wallet basin and the ATCF season number."""
    if not wallet or len(atcf) < 4:
        return ""
    try:
        return f"{wallet[:2]}{int(atcf[2:4]):02d}"
    except ValueError:
        logger.warning(f"Unexpected ATCF format: {atcf}")
        return ""


def _local_name(tag: str) -> str:
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    if ":" in tag:
        tag = tag.rsplit(":", 1)[1]
    return tag


def normalize_cyclone(raw: Dict[str, str], update_guid: str) -> CycloneRecord:
    """Map a raw nhc:Cyclone field dictionary onto a CycloneRecord."""
    fields = {
        RAW_FIELD_MAP[key]: value
        for key, value in raw.items()
        if key in RAW_FIELD_MAP
    }
    if not fields.get("atcf"):
        raise ValidationError("Cyclone entry without ATCF identifier")

    record = CycloneRecord(
        atcf=fields.pop("atcf"),
        update_guid=update_guid,
        type=fields.pop("type", ""),
        name=fields.pop("name", ""),
        wind=fields.pop("wind", ""),
        **fields,
    )

    if record.wallet:
        record.season_wallet = season_wallet_for(record.wallet, record.atcf)
        record.wallet = pad_wallet(record.wallet)

    record.hurricane_category = derive_hurricane_category(record.type, record.wind)
    return record


def cone_image_link(season_wallet: str, atcf: str, cone_type: str = "5day") -> str:
    """Link to the latest forecast cone graphic in the NHC storm archive."""
    if cone_type not in ("3day", "5day"):
        raise ValueError(f"Unsupported cone type: {cone_type}")
    return f"{STORM_GRAPHICS_URL}/{season_wallet}/{atcf}_{cone_type}_cone_with_line_and_wind.png"


class NHCFetcher:
    """
    Fetcher for National Hurricane Center data.

    Parsing strategies:
    1. nhc:Cyclone blocks - structured XML, parsed with ElementTree
    2. Public advisory items - plain RSS entries, parsed with feedparser

    Network failures raise FetchError and malformed documents raise
    ValidationError; neither is swallowed here.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create HTTP session with retry strategy for availability."""
        session = requests.Session()

        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=RETRY_BACKOFF,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({"User-Agent": USER_AGENT})

        return session

    def _fetch(self, url: str) -> requests.Response:
        try:
            response = self._session.get(url, timeout=self.timeout, allow_redirects=True)
            response.raise_for_status()
            return response

        except requests.Timeout:
            raise FetchError(f"Request timed out after {self.timeout}s")
        except requests.ConnectionError as e:
            raise FetchError(f"Connection error - source unavailable: {e}")
        except requests.HTTPError as e:
            raise FetchError(f"HTTP error {e.response.status_code}")
        except requests.RequestException as e:
            raise FetchError(f"Request failed: {e}")

    # =========================================================================
    # RSS Feed Parsing
    # =========================================================================

    def fetch_active_cyclones(self, basin: Basin = Basin.ATLANTIC) -> List[CycloneRecord]:
        """Fetch the basin RSS feed and return its active cyclones."""
        response = self._fetch(basin.feed_url)
        cyclones = self.parse_feed(response.content)
        logger.info(f"Fetched {basin.name.lower()} feed: {len(cyclones)} active cyclone(s)")
        return cyclones

    def load_feed_file(self, path) -> List[CycloneRecord]:
        """Read active cyclones from a saved RSS document."""
        return self.parse_feed(Path(path).read_bytes())

    def parse_feed(self, content: bytes) -> List[CycloneRecord]:
        """Parse an NHC RSS document into cyclone records."""
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ValidationError(f"XML parsing failed: {e}")

        if _local_name(root.tag) != "rss":
            raise ValidationError("Unable to find root of rss document")

        cyclones = self._parse_cyclone_items(root)
        if cyclones:
            self._apply_advisory_dates(content, cyclones)
        return cyclones

    def _parse_cyclone_items(self, root: ET.Element) -> List[CycloneRecord]:
        cyclones = []

        for item in root.iter("item"):
            block = next(
                (child for child in item if _local_name(child.tag) == "Cyclone"),
                None
            )
            if block is None:
                continue  # summary or product item without cyclone data

            raw = {
                _local_name(child.tag): (child.text or "").strip()
                for child in block
            }
            guid = (item.findtext("guid") or "").strip()

            try:
                cyclones.append(normalize_cyclone(raw, guid))
            except ValidationError as e:
                logger.warning(f"Skipping cyclone entry {guid or '<no guid>'}: {e}")

        return cyclones

    def _apply_advisory_dates(self, content: bytes, cyclones: List[CycloneRecord]) -> None:
        """Set advisory_published_at from "Public Advisory" items naming each storm."""
        parsed = feedparser.parse(content)

        for entry in parsed.entries:
            title = entry.get("title", "")
            if not PUBLIC_ADVISORY_PATTERN.search(title):
                continue

            published = entry.get("published_parsed")
            if not published:
                continue
            published_at = datetime.fromtimestamp(timegm(published), tz=timezone.utc)

            for cyclone in cyclones:
                if cyclone.name and re.search(re.escape(cyclone.name), title, re.IGNORECASE):
                    cyclone.advisory_published_at = published_at

    # =========================================================================
    # Forecast Cone Graphics
    # =========================================================================

    def fetch_cone_image(self, season_wallet: str, atcf: str, cone_type: str = "5day") -> ConeImage:
        """Download the current forecast cone graphic for a storm."""
        url = cone_image_link(season_wallet, atcf, cone_type)
        response = self._fetch(url)

        mime_type = response.headers.get("Content-Type", "image/png").split(";")[0].strip()
        if mime_type not in IMAGE_MIME_TYPES:
            raise FetchError(f"Unable to retrieve cyclone cone image: unexpected content type {mime_type}")

        return ConeImage(data=response.content, mime_type=mime_type)

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()
