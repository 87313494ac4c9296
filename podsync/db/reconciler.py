"""Episode reconciliation: match incoming feed episodes against stored ones.

Matching runs in two tiers:

1. GUID: an incoming episode with a non-empty guid matches the stored
   episode with the same guid.
2. Fallback: otherwise each stored episode (newest first) is scored on
   title equality, url equality and, when both sides have one, publish
   date equality. The first episode scoring 2 or more is the match.

Matched episodes whose feed metadata changed become updates; unmatched
ones become inserts. Hidden episodes are part of the match pool so that
removing an episode locally never brings it back as "new".
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from ..podcast.feed_parser import ParsedEpisode

logger = logging.getLogger(__name__)

# Minimum number of agreeing fields (title, url, pubdate) for a fallback match
FALLBACK_MATCH_THRESHOLD = 2


class StoredEpisode(Protocol):
    """Read-only view of a persisted episode used for matching."""

    id: int
    title: str
    url: str
    guid: str
    description: str
    pubdate: Optional[datetime]
    duration: Optional[int]


@dataclass(frozen=True)
class EpisodeUpdate:
    """An existing episode whose feed metadata must be rewritten."""

    episode_id: int
    episode: "ParsedEpisode"


@dataclass
class ReconciliationPlan:
    """Inserts and updates needed to bring storage in line with a feed.

    Inserts are listed oldest first, the order they should be written in.
    """

    inserts: List["ParsedEpisode"] = field(default_factory=list)
    updates: List[EpisodeUpdate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.inserts and not self.updates


class EpisodeIndex:
    """Immutable lookup structure over one snapshot of stored episodes.

    Built fresh for every reconciliation so it can never go stale.
    """

    def __init__(self, existing: Sequence[StoredEpisode]):
        self._episodes = tuple(existing)
        by_guid: Dict[str, StoredEpisode] = {}
        for episode in self._episodes:
            if episode.guid:
                by_guid.setdefault(episode.guid, episode)
        self._by_guid = by_guid

    def __len__(self) -> int:
        return len(self._episodes)

    def find(self, incoming: "ParsedEpisode") -> Optional[StoredEpisode]:
        """Return the stored episode matching `incoming`, or None."""
        if incoming.guid:
            match = self._by_guid.get(incoming.guid)
            if match is not None:
                return match

        for stored in self._episodes:
            if match_score(stored, incoming) >= FALLBACK_MATCH_THRESHOLD:
                return stored

        return None


def match_score(stored: StoredEpisode, incoming: "ParsedEpisode") -> int:
    """Count agreeing fields among title, url and (if both present) pubdate."""
    score = int(stored.title == incoming.title) + int(stored.url == incoming.url)
    if stored.pubdate is not None and incoming.pubdate is not None:
        score += int(stored.pubdate == incoming.pubdate)
    return score


def needs_update(stored: StoredEpisode, incoming: "ParsedEpisode") -> bool:
    """Check whether any sync-managed field differs between the two."""
    return (
        stored.title != incoming.title
        or stored.url != incoming.url
        or stored.guid != incoming.guid
        or stored.description != incoming.description
        or stored.duration != incoming.duration
        or stored.pubdate != incoming.pubdate
    )


def reconcile_episodes(
    existing: Sequence[StoredEpisode],
    incoming: Sequence["ParsedEpisode"],
) -> ReconciliationPlan:
    """Decide insert, update or no-op for every incoming episode.

    Args:
        existing: Stored episodes for the podcast, newest first, hidden included
        incoming: Episodes in feed order (newest first)

    Returns:
        ReconciliationPlan with inserts in oldest-first order
    """
    index = EpisodeIndex(existing)
    plan = ReconciliationPlan()

    for episode in reversed(incoming):
        stored = index.find(episode)
        if stored is None:
            plan.inserts.append(episode)
            logger.debug(f"New episode: {episode.title!r}")
        elif needs_update(stored, episode):
            plan.updates.append(EpisodeUpdate(episode_id=stored.id, episode=episode))
            logger.debug(f"Changed episode {stored.id}: {episode.title!r}")

    return plan
