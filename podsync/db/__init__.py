"""Database module for podcast data persistence.

Provides:
- SQLAlchemy ORM models (Podcast, Episode, EpisodeFile)
- Episode reconciliation against freshly parsed feeds
- Repository interface and implementation
- Factory functions that open repositories and create the schema
"""

from .factory import create_repository, repository_from_config
from .models import Base, Episode, EpisodeFile, Podcast
from .reconciler import ReconciliationPlan, reconcile_episodes
from .repository import (
    NewEpisode,
    PodcastRepositoryInterface,
    SQLAlchemyPodcastRepository,
    SyncResult,
)

__all__ = [
    "Base",
    "Podcast",
    "Episode",
    "EpisodeFile",
    "NewEpisode",
    "SyncResult",
    "ReconciliationPlan",
    "reconcile_episodes",
    "PodcastRepositoryInterface",
    "SQLAlchemyPodcastRepository",
    "create_repository",
    "repository_from_config",
]
