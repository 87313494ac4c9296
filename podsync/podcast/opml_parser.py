"""OPML import and export of podcast subscriptions.

Supports various OPML flavors from podcast apps like:
- Apple Podcasts
- Overcast
- Pocket Casts
- AntennaPod
- Generic RSS readers
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import format_datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..db.models import Podcast
from ..errors import ConfigError

logger = logging.getLogger(__name__)

EXPORT_TITLE = "Podsync Podcast Feeds"


@dataclass
class PodcastFeed:
    """A feed to sync: an outline entry or an existing subscription.

    `podcast_id` is set only when the feed is already stored, which is
    what decides between the insert and the reconcile path.
    """

    feed_url: str
    title: Optional[str] = None
    podcast_id: Optional[int] = None
    category: Optional[str] = None

    def __post_init__(self):
        """
        Ensure the feed_url is present and normalized.

        Raises:
            ValueError: If `feed_url` is empty or only whitespace.
        """
        self.feed_url = (self.feed_url or "").strip()
        if not self.feed_url:
            raise ValueError("feed_url is required")


@dataclass
class OPMLImportResult:
    """Result of parsing an OPML document."""

    feeds: List[PodcastFeed]
    total_outlines: int
    skipped_no_url: int
    title: Optional[str] = None
    date_created: Optional[str] = None


class OPMLParser:
    """Parser for OPML files containing podcast subscriptions.

    Example:
        parser = OPMLParser()
        result = parser.parse_file("subscriptions.opml")
        for feed in result.feeds:
            print(f"{feed.title}: {feed.feed_url}")
    """

    # Common attribute names for feed URLs across different OPML flavors
    URL_ATTRIBUTES = ["xmlUrl", "xmlurl", "url", "feedUrl", "feedurl"]

    # Explicit title first, then the outline's plain-text label
    TITLE_ATTRIBUTES = ["title", "text"]

    def parse_file(self, file_path: Union[str, Path]) -> OPMLImportResult:
        """
        Parse an OPML file and extract podcast feeds.

        Raises:
            ConfigError: If the file is missing, unreadable or not valid OPML.
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise ConfigError(f"OPML file not found: {file_path}")

        logger.info(f"Parsing OPML file: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read OPML file {file_path}: {e}") from e

        return self.parse_string(content)

    def parse_string(self, content: str) -> OPMLImportResult:
        """
        Parse an OPML document and extract podcast feeds and head metadata.

        Raises:
            ConfigError: If the XML is not well-formed, the root element is not
                `opml`, or the document has no `body` element.
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            logger.error(f"Failed to parse OPML XML: {e}")
            raise ConfigError(f"Invalid OPML: {e}") from e

        if root.tag.lower() != "opml":
            raise ConfigError(f"Invalid OPML: root element is '{root.tag}', expected 'opml'")

        # Note: Empty Element is falsy, so we can't use `or` here
        head = root.find("head")
        if head is None:
            head = root.find("HEAD")
        title = None
        date_created = None
        if head is not None:
            title = self._get_element_text(head, ["title", "Title"])
            date_created = self._get_element_text(head, ["dateCreated", "datecreated"])

        body = root.find("body")
        if body is None:
            body = root.find("BODY")
        if body is None:
            raise ConfigError("Invalid OPML: missing body element")

        feeds = []
        total_outlines = 0
        skipped_no_url = 0

        def process_outlines(parent, category=None):
            """Walk outline elements under `parent`; folders become categories."""
            nonlocal total_outlines, skipped_no_url

            for outline in parent.findall("outline") + parent.findall("OUTLINE"):
                total_outlines += 1

                if self._get_attribute(outline, self.URL_ATTRIBUTES):
                    feed = self._extract_feed(outline, category)
                    if feed:
                        feeds.append(feed)
                        logger.debug(f"Found feed: {feed.title or feed.feed_url}")
                    continue

                nested = outline.findall("outline") + outline.findall("OUTLINE")
                if nested:
                    cat_name = self._get_attribute(outline, self.TITLE_ATTRIBUTES)
                    process_outlines(outline, cat_name or category)
                else:
                    skipped_no_url += 1
                    logger.debug(
                        f"Skipped outline without URL: "
                        f"{self._get_attribute(outline, self.TITLE_ATTRIBUTES)}"
                    )

        process_outlines(body)

        logger.info(
            f"Parsed OPML: {len(feeds)} feeds found, "
            f"{skipped_no_url} outlines skipped (no URL), "
            f"{total_outlines} total outlines"
        )

        return OPMLImportResult(
            feeds=feeds,
            total_outlines=total_outlines,
            skipped_no_url=skipped_no_url,
            title=title,
            date_created=date_created,
        )

    def _extract_feed(self, outline: ET.Element, category: Optional[str] = None) -> Optional[PodcastFeed]:
        """
        Create a PodcastFeed from an outline element, or None when the URL is unusable.

        Only http, https and feed URLs are accepted; `feed://` is rewritten to `https://`.
        """
        feed_url = self._get_attribute(outline, self.URL_ATTRIBUTES)
        if not feed_url:
            return None

        if not feed_url.startswith(("http://", "https://", "feed://")):
            logger.warning(f"Skipping invalid feed URL: {feed_url}")
            return None

        if feed_url.startswith("feed://"):
            feed_url = "https://" + feed_url[7:]

        return PodcastFeed(
            feed_url=feed_url,
            title=self._get_attribute(outline, self.TITLE_ATTRIBUTES),
            category=category,
        )

    def _get_attribute(self, element: ET.Element, attr_names: List[str]) -> Optional[str]:
        """Get the first non-blank attribute value among `attr_names`."""
        for name in attr_names:
            value = element.get(name)
            if value and value.strip():
                return value.strip()
        return None

    def _get_element_text(self, parent: ET.Element, tag_names: List[str]) -> Optional[str]:
        for name in tag_names:
            element = parent.find(name)
            if element is not None and element.text:
                return element.text.strip()
        return None


def build_opml(podcasts: Iterable[Podcast], created: Optional[datetime] = None) -> str:
    """
    Serialize podcasts into an OPML 2.0 document.

    Parameters:
        podcasts: Stored podcasts; each becomes one `rss` outline.
        created: Timestamp for `dateCreated`; defaults to now.

    Returns:
        str: The document, including the XML declaration.
    """
    created = created or datetime.now(UTC)
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)

    root = ET.Element("opml", version="2.0")
    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = EXPORT_TITLE
    ET.SubElement(head, "dateCreated").text = format_datetime(created)

    body = ET.SubElement(root, "body")
    for podcast in podcasts:
        ET.SubElement(
            body,
            "outline",
            type="rss",
            text=podcast.title or "",
            title=podcast.title or "",
            xmlUrl=podcast.url,
        )

    ET.indent(root)
    return '<?xml version="1.0" encoding="utf-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def export_opml(podcasts: Iterable[Podcast], file_path: Union[str, Path]) -> int:
    """
    Write podcasts to an OPML file.

    Returns:
        int: Number of podcasts written.

    Raises:
        ConfigError: If the file cannot be written.
    """
    podcasts = list(podcasts)
    file_path = Path(file_path)
    try:
        file_path.write_text(build_opml(podcasts), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write OPML file {file_path}: {e}") from e

    logger.info(f"Exported {len(podcasts)} podcasts to {file_path}")
    return len(podcasts)
