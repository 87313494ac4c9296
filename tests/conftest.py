"""
Pytest configuration and fixtures for podsync tests.

Sync tuning variables are cleared so tests behave the same regardless of
the developer's shell environment.
"""

import os
from datetime import datetime
from typing import List, Optional

import pytest

from podsync.db.factory import create_repository
from podsync.podcast.feed_parser import ParsedEpisode, ParsedPodcast

for _name in (
    "SYNC_REFRESH_WORKERS",
    "SYNC_IMPORT_WORKERS",
    "SYNC_MAX_RETRIES",
    "SYNC_CONNECT_TIMEOUT",
    "SYNC_READ_TIMEOUT",
):
    os.environ.pop(_name, None)


def _episode(number: int, **overrides) -> ParsedEpisode:
    values = dict(
        title=f"Episode {number}",
        url=f"https://example.com/ep{number}.mp3",
        guid=f"guid-{number}",
        description=f"Description of episode {number}",
        pubdate=datetime(2024, 1, number, 12, 0, 0),
        duration=1800,
    )
    values.update(overrides)
    return ParsedEpisode(**values)


def _rss_item(episode: ParsedEpisode) -> str:
    parts = [f"<title>{episode.title}</title>"]
    if episode.guid:
        parts.append(f'<guid isPermaLink="false">{episode.guid}</guid>')
    if episode.description:
        parts.append(f"<description>{episode.description}</description>")
    if episode.pubdate:
        parts.append(f"<pubDate>{episode.pubdate.strftime('%a, %d %b %Y %H:%M:%S')} +0000</pubDate>")
    if episode.duration is not None:
        parts.append(f"<itunes:duration>{episode.duration}</itunes:duration>")
    if episode.url:
        parts.append(f'<enclosure url="{episode.url}" length="1000" type="audio/mpeg"/>')
    return "<item>" + "".join(parts) + "</item>"


@pytest.fixture
def repository(tmp_path):
    """
    Create a temporary SQLite-backed repository for tests.

    Yields a repository using a SQLite file under the temporary path and closes it on teardown.
    """
    db_path = tmp_path / "test.db"
    repo = create_repository(f"sqlite:///{db_path}", create_tables=True)
    yield repo
    repo.close()


@pytest.fixture
def make_episode():
    """Factory for ParsedEpisode values numbered by publish day in January 2024."""
    return _episode


@pytest.fixture
def make_podcast():
    """
    Factory for ParsedPodcast values.

    Without explicit episodes the podcast carries episodes 3, 2 and 1 in feed
    order (newest first).
    """

    def factory(
        feed_url: str = "https://example.com/feed.xml",
        title: str = "Test Podcast",
        episodes: Optional[List[ParsedEpisode]] = None,
        **kwargs,
    ) -> ParsedPodcast:
        if episodes is None:
            episodes = [_episode(3), _episode(2), _episode(1)]
        return ParsedPodcast(
            feed_url=feed_url,
            title=title,
            description=kwargs.pop("description", "A podcast for testing"),
            episodes=list(episodes),
            **kwargs,
        )

    return factory


@pytest.fixture
def build_rss():
    """Factory producing RSS 2.0 feed bytes from a title and ParsedEpisodes."""

    def factory(title: str = "Test Podcast", episodes: Optional[List[ParsedEpisode]] = None) -> bytes:
        if episodes is None:
            episodes = [_episode(3), _episode(2), _episode(1)]
        items = "".join(_rss_item(episode) for episode in episodes)
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">'
            f"<channel><title>{title}</title>"
            "<description>A podcast for testing</description>"
            f"{items}</channel></rss>"
        ).encode("utf-8")

    return factory
