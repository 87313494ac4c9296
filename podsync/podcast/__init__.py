"""Podcast management module.

Provides functionality for:
- OPML import/export
- RSS feed fetching and parsing
- Feed synchronization
"""

from .feed_client import FeedClient
from .feed_parser import FeedParser, ParsedEpisode, ParsedPodcast
from .feed_sync import FeedOutcome, FeedSyncService, SyncSummary
from .opml_parser import OPMLParser, PodcastFeed

__all__ = [
    "FeedClient",
    "FeedParser",
    "ParsedPodcast",
    "ParsedEpisode",
    "FeedSyncService",
    "FeedOutcome",
    "SyncSummary",
    "OPMLParser",
    "PodcastFeed",
]
