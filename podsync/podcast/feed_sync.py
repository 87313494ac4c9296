"""Feed synchronization service for podcast updates.

Fetches and parses feeds concurrently on a worker pool, then writes each
result to the database from the calling thread. Each feed is committed
in its own transaction, so one bad feed never affects the others.
"""

import logging
import queue
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ..db.repository import NewEpisode, PodcastRepositoryInterface, SyncResult
from ..errors import ConfigError, StorageError
from ..workflow.config import SyncConfig
from ..workflow.pool import WorkerPool
from .feed_client import FeedClient
from .feed_parser import FeedParser, ParsedPodcast
from .opml_parser import OPMLParser, PodcastFeed, export_opml

logger = logging.getLogger(__name__)


@dataclass
class NewData:
    """A parsed feed with no stored podcast yet."""

    feed: PodcastFeed
    podcast: ParsedPodcast


@dataclass
class SyncData:
    """A parsed feed for an existing subscription."""

    feed: PodcastFeed
    podcast_id: int
    podcast: ParsedPodcast


@dataclass
class FeedFailed:
    """A feed that could not be fetched or parsed."""

    feed: PodcastFeed
    error: Exception


FeedMessage = Union[NewData, SyncData, FeedFailed]


@dataclass
class FeedOutcome:
    """What happened to one feed of a batch."""

    feed: PodcastFeed
    podcast_id: Optional[int] = None
    result: Optional[SyncResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class SyncSummary:
    """Aggregated result of a batch sync.

    Attributes:
        outcomes: One entry per feed, in completion order.
        skipped: Feeds left out before fetching (already subscribed or duplicated).
    """

    outcomes: List[FeedOutcome] = field(default_factory=list)
    skipped: int = 0

    @property
    def added_episodes(self) -> List[NewEpisode]:
        return [
            episode
            for outcome in self.outcomes
            if outcome.result is not None
            for episode in outcome.result.added
        ]

    @property
    def added_count(self) -> int:
        return len(self.added_episodes)

    @property
    def updated_count(self) -> int:
        return sum(len(o.result.updated) for o in self.outcomes if o.result is not None)

    @property
    def failed_feeds(self) -> List[FeedOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def succeeded_count(self) -> int:
        return len(self.outcomes) - len(self.failed_feeds)

    @property
    def success(self) -> bool:
        """True only if no feed failed."""
        return not self.failed_feeds


ProgressCallback = Callable[[FeedOutcome], None]


class FeedSyncService:
    """Service for synchronizing podcast feeds with the database.

    Example:
        sync_service = FeedSyncService(repository)
        summary = sync_service.sync_all_podcasts()
        print(f"{summary.succeeded_count} succeeded, {len(summary.failed_feeds)} failed")
    """

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        feed_client: Optional[FeedClient] = None,
        feed_parser: Optional[FeedParser] = None,
        sync_config: Optional[SyncConfig] = None,
    ):
        """
        Create a FeedSyncService that synchronizes podcast feeds with the given repository.

        Parameters:
            repository: Storage the results are committed to.
            feed_client: HTTP client; built from `sync_config` when omitted.
            feed_parser: Feed parser; a default `FeedParser` when omitted.
            sync_config: Pool sizes, retry limit and timeouts.
        """
        self.repository = repository
        self.config = sync_config or SyncConfig()
        self.feed_client = feed_client or FeedClient(
            max_retries=self.config.max_retries,
            connect_timeout=self.config.connect_timeout_seconds,
            read_timeout=self.config.read_timeout_seconds,
        )
        self.feed_parser = feed_parser or FeedParser()

    def sync_feeds(
        self,
        feeds: Sequence[PodcastFeed],
        workers: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncSummary:
        """
        Fetch, parse and commit a batch of feeds.

        Feeds with a `podcast_id` are reconciled against stored episodes;
        the rest are inserted as new podcasts. Failures are recorded per
        feed and never stop the rest of the batch.

        Parameters:
            feeds: Feeds to sync.
            workers: Worker pool size; defaults to the refresh pool size.
            progress_callback: Called with each FeedOutcome as it is committed.

        Returns:
            SyncSummary: One outcome per feed.

        Raises:
            ConfigError: If `workers` is less than 1.
        """
        if workers is not None and workers < 1:
            raise ConfigError(f"Worker count must be >= 1, got {workers}")

        summary = SyncSummary()
        if not feeds:
            return summary

        size = min(workers or self.config.refresh_workers, len(feeds))
        completions: "queue.Queue[FeedMessage]" = queue.Queue()

        logger.info(f"Syncing {len(feeds)} feeds with {size} workers")

        with WorkerPool(size) as pool:
            for feed in feeds:
                pool.submit(partial(self._check_feed, feed, completions))

            for _ in range(len(feeds)):
                outcome = self._commit(completions.get())
                summary.outcomes.append(outcome)
                if progress_callback:
                    progress_callback(outcome)

        logger.info(
            f"Sync complete: {summary.succeeded_count} succeeded, "
            f"{len(summary.failed_feeds)} failed, "
            f"{summary.added_count} new episodes, {summary.updated_count} updated"
        )
        return summary

    def _check_feed(self, feed: PodcastFeed, completions: "queue.Queue[FeedMessage]") -> None:
        """Fetch and parse one feed on a worker thread and report exactly one message."""
        try:
            content = self.feed_client.fetch(feed.feed_url)
            parsed = self.feed_parser.parse(content, feed.feed_url)
            if not parsed.title and feed.title:
                parsed.title = feed.title

            if feed.podcast_id is None:
                message: FeedMessage = NewData(feed=feed, podcast=parsed)
            else:
                message = SyncData(feed=feed, podcast_id=feed.podcast_id, podcast=parsed)
        except Exception as e:
            logger.error(f"Failed to check feed {feed.feed_url}: {e}")
            message = FeedFailed(feed=feed, error=e)

        completions.put(message)

    def _commit(self, message: FeedMessage) -> FeedOutcome:
        """Write one worker message to storage."""
        feed = message.feed

        if isinstance(message, FeedFailed):
            return FeedOutcome(feed=feed, podcast_id=feed.podcast_id, error=str(message.error))

        try:
            if isinstance(message, SyncData):
                result = self.repository.update_podcast(message.podcast_id, message.podcast)
                podcast_id = message.podcast_id
            else:
                result = self.repository.insert_podcast(message.podcast)
                stored = self.repository.get_podcast_by_feed_url(message.podcast.feed_url)
                podcast_id = stored.id if stored else None
        except StorageError as e:
            logger.error(f"Failed to store feed {feed.feed_url}: {e}")
            return FeedOutcome(feed=feed, podcast_id=feed.podcast_id, error=str(e))

        return FeedOutcome(feed=feed, podcast_id=podcast_id, result=result)

    def sync_podcast(self, podcast_id: int) -> SyncSummary:
        """
        Sync a single stored podcast.

        Raises:
            StorageError: If no podcast with that id exists.
        """
        podcast = self.repository.get_podcast(podcast_id)
        if podcast is None:
            raise StorageError(f"Podcast not found: {podcast_id}")

        logger.info(f"Syncing podcast: {podcast.title}")
        feed = PodcastFeed(feed_url=podcast.url, title=podcast.title, podcast_id=podcast.id)
        return self.sync_feeds([feed], workers=1)

    def sync_all_podcasts(
        self,
        workers: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncSummary:
        """Refresh every stored podcast using the refresh pool size."""
        feeds = [
            PodcastFeed(feed_url=podcast.url, title=podcast.title, podcast_id=podcast.id)
            for podcast in self.repository.get_podcasts()
        ]
        return self.sync_feeds(
            feeds,
            workers=workers or self.config.refresh_workers,
            progress_callback=progress_callback,
        )

    def add_podcast_from_url(self, feed_url: str) -> SyncSummary:
        """
        Subscribe to a new feed.

        A URL that is already stored is reported as a failed outcome
        without fetching anything.
        """
        if not feed_url or not feed_url.strip():
            raise ConfigError("Feed URL is required")
        feed = PodcastFeed(feed_url=feed_url)

        existing = self.repository.get_podcast_by_feed_url(feed.feed_url)
        if existing:
            logger.warning(f"Podcast already exists: {existing.title}")
            return SyncSummary(
                outcomes=[
                    FeedOutcome(
                        feed=feed,
                        podcast_id=existing.id,
                        error=f"Podcast already exists: {existing.title}",
                    )
                ]
            )

        return self.sync_feeds([feed], workers=1)

    def feeds_to_import(self, opml_path: Union[str, Path]) -> Tuple[List[PodcastFeed], int]:
        """
        Parse an OPML file and drop feeds that should not be imported.

        Returns:
            (feeds, skipped): Feeds not yet stored, first occurrence only, and
            the number of outline feeds left out.

        Raises:
            ConfigError: If the file is missing or not valid OPML.
        """
        parsed = OPMLParser().parse_file(opml_path)

        feeds = []
        seen = set()
        skipped = 0
        for feed in parsed.feeds:
            if feed.feed_url in seen:
                skipped += 1
                continue
            seen.add(feed.feed_url)

            if self.repository.get_podcast_by_feed_url(feed.feed_url):
                logger.debug(f"Skipping existing podcast: {feed.title or feed.feed_url}")
                skipped += 1
                continue

            feeds.append(feed)

        return feeds, skipped

    def import_opml(
        self,
        opml_path: Union[str, Path],
        workers: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncSummary:
        """
        Subscribe to every new feed in an OPML file using the import pool size.

        Raises:
            ConfigError: If the file is missing or not valid OPML.
        """
        feeds, skipped = self.feeds_to_import(opml_path)
        logger.info(f"Importing {len(feeds)} feeds from {opml_path} ({skipped} skipped)")

        summary = self.sync_feeds(
            feeds,
            workers=workers or self.config.import_workers,
            progress_callback=progress_callback,
        )
        summary.skipped = skipped
        return summary

    def export_opml(self, opml_path: Union[str, Path]) -> int:
        """Write all stored podcasts to an OPML file and return how many were written."""
        return export_opml(self.repository.get_podcasts(), opml_path)
