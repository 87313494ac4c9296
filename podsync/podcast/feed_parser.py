"""RSS/Atom feed parser for podcast metadata and episodes.

Uses feedparser library to handle various feed formats and extract
podcast metadata including iTunes namespace extensions. Output is
identity-free: nothing here carries a database id.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union

import feedparser

from ..errors import FeedParseError

logger = logging.getLogger(__name__)

# HH:MM:SS, MM:SS or SS, ASCII digits only
_DURATION_RE = re.compile(r"(\d+)(?::(\d+))?(?::(\d+))?", re.ASCII)

# Raw channel-level itunes:explicit; feedparser only distinguishes "yes" and "clean"
_CHANNEL_EXPLICIT_RE = re.compile(
    rb"<itunes:explicit>\s*([^<]*?)\s*</itunes:explicit>", re.IGNORECASE
)
_FIRST_ITEM_RE = re.compile(rb"<(item|entry)[\s>]", re.IGNORECASE)

_EXPLICIT_TRUE = ("yes", "explicit", "true")
_EXPLICIT_FALSE = ("no", "clean", "false")


@dataclass
class ParsedEpisode:
    """Parsed episode data from RSS feed."""

    title: str = ""
    url: str = ""  # Enclosure URL, empty when the item has no enclosure
    guid: str = ""  # Empty when the feed does not provide one
    description: str = ""
    pubdate: Optional[datetime] = None  # Naive UTC
    duration: Optional[int] = None  # Seconds
    image_url: Optional[str] = None


@dataclass
class ParsedPodcast:
    """Parsed podcast data from RSS feed."""

    feed_url: str
    title: str = ""
    description: str = ""
    author: Optional[str] = None
    explicit: Optional[bool] = None
    image_url: Optional[str] = None
    last_checked: datetime = field(
        default_factory=lambda: datetime.now(UTC).replace(tzinfo=None)
    )

    # Episodes in feed order (usually newest first)
    episodes: List[ParsedEpisode] = field(default_factory=list)


def parse_duration(value: Optional[str]) -> Optional[int]:
    """Parse an episode duration into seconds.

    Handles the formats:
    - Seconds: "3600"
    - MM:SS: "60:00"
    - HH:MM:SS: "1:00:00"

    Returns None unless every component is a group of ASCII digits, so a
    partially valid value like "1:ab:03" is rejected as a whole.
    """
    if value is None:
        return None

    match = _DURATION_RE.fullmatch(str(value).strip())
    if not match:
        return None

    parts = [int(group) for group in match.groups() if group is not None]

    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    if len(parts) == 1:
        return parts[0]
    return None


def parse_explicit(value: Union[str, bool, None]) -> Optional[bool]:
    """Normalize an explicit-content flag.

    Returns:
        True for yes/explicit/true, False for no/clean/false, None otherwise
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    value_str = str(value).lower().strip()
    if value_str in _EXPLICIT_TRUE:
        return True
    if value_str in _EXPLICIT_FALSE:
        return False

    return None


def _channel_explicit(content: bytes) -> Optional[str]:
    """Return the raw channel-level itunes:explicit text, if present."""
    first_item = _FIRST_ITEM_RE.search(content)
    header = content[: first_item.start()] if first_item else content
    match = _CHANNEL_EXPLICIT_RE.search(header)
    if not match:
        return None
    return match.group(1).decode("utf-8", errors="replace")


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class FeedParser:
    """Parser for podcast RSS/Atom feeds.

    Tolerates feeds that deviate from the RSS specification: missing
    fields default to empty strings and unparseable dates or durations
    become None instead of failing the whole feed.

    Example:
        parser = FeedParser()
        podcast = parser.parse(content, "https://example.com/feed.xml")
        for episode in podcast.episodes:
            print(f"  - {episode.title}")
    """

    def parse(self, content: bytes, feed_url: str = "") -> ParsedPodcast:
        """Parse raw feed bytes.

        Args:
            content: Feed document as fetched
            feed_url: URL the document was fetched from

        Returns:
            ParsedPodcast with podcast and episode data

        Raises:
            FeedParseError: If the document is not a recognizable feed
        """
        feed = feedparser.parse(content)

        if not feed.get("version"):
            reason = feed.get("bozo_exception") or "unrecognized feed format"
            raise FeedParseError(f"Failed to parse feed {feed_url}: {reason}", url=feed_url)

        if feed.bozo and feed.get("bozo_exception"):
            logger.warning(f"Feed parsing warning for {feed_url}: {feed.bozo_exception}")

        podcast = self._parse_feed(feed, feed_url)

        raw_explicit = _channel_explicit(content)
        if raw_explicit is not None:
            podcast.explicit = parse_explicit(raw_explicit)

        return podcast

    def parse_string(self, content: str, feed_url: str = "") -> ParsedPodcast:
        """Parse a podcast feed from string content."""
        return self.parse(content.encode("utf-8"), feed_url)

    def _parse_feed(self, feed: feedparser.FeedParserDict, feed_url: str) -> ParsedPodcast:
        """Convert a feedparser result into a ParsedPodcast."""
        f = feed.feed

        podcast = ParsedPodcast(
            feed_url=feed_url,
            title=f.get("title") or "",
            description=f.get("description") or f.get("subtitle") or "",
            author=f.get("author") or f.get("itunes_author"),
            explicit=parse_explicit(f.get("itunes_explicit")),
            image_url=self._extract_image_url(f),
        )

        for entry in feed.entries:
            podcast.episodes.append(self._parse_episode(entry))

        logger.info(f"Parsed podcast '{podcast.title}' with {len(podcast.episodes)} episodes")
        return podcast

    def _parse_episode(self, entry: feedparser.FeedParserDict) -> ParsedEpisode:
        """Convert a feed entry into a ParsedEpisode.

        Entries are never dropped: an item without an enclosure keeps an
        empty url so callers can treat it as having no playable content.
        """
        url = ""
        for enclosure in entry.get("enclosures", []):
            href = enclosure.get("href") or enclosure.get("url")
            if href:
                url = href
                break

        image_url = None
        image = entry.get("image")
        if isinstance(image, dict):
            image_url = image.get("href")

        return ParsedEpisode(
            title=entry.get("title") or "",
            url=url,
            guid=entry.get("id") or "",
            description=entry.get("description") or "",
            pubdate=self._parse_pubdate(entry),
            duration=parse_duration(entry.get("itunes_duration")),
            image_url=image_url,
        )

    def _parse_pubdate(self, entry: feedparser.FeedParserDict) -> Optional[datetime]:
        """Parse the publish date, falling back to a lenient RFC 2822 parser."""
        if entry.get("published_parsed"):
            try:
                return datetime(*entry.published_parsed[:6])
            except (TypeError, ValueError):
                pass

        raw = entry.get("published")
        if raw:
            try:
                return _to_naive_utc(parsedate_to_datetime(raw))
            except (TypeError, ValueError, IndexError):
                logger.debug(f"Unparseable publish date: {raw!r}")

        return None

    def _extract_image_url(self, feed: feedparser.FeedParserDict) -> Optional[str]:
        """Extract podcast image URL from feed.

        Args:
            feed: Feed dict from feedparser

        Returns:
            Image URL or None
        """
        # Try itunes:image
        if feed.get("itunes_image"):
            if isinstance(feed.itunes_image, dict):
                return feed.itunes_image.get("href")
            return feed.itunes_image

        # Try image element
        if feed.get("image"):
            if isinstance(feed.image, dict):
                return feed.image.get("href") or feed.image.get("url")
            return feed.image

        # Try media:thumbnail
        if feed.get("media_thumbnail"):
            thumbs = feed.media_thumbnail
            if thumbs and isinstance(thumbs, list) and len(thumbs) > 0:
                return thumbs[0].get("url")

        return None
