"""Repository construction from application configuration.

Builds the SQLAlchemy repository for a database URL and makes sure the
schema exists before any sync touches it.
"""

import logging

from ..config import DEFAULT_DATABASE_URL, Config
from .repository import SQLAlchemyPodcastRepository

logger = logging.getLogger(__name__)


def _display_url(database_url: str) -> str:
    """Return the URL with any credentials replaced by '...'."""
    scheme, sep, rest = database_url.partition("://")
    if sep and "@" in rest:
        return f"{scheme}://...@{rest.rsplit('@', 1)[-1]}"
    return database_url


def create_repository(
    database_url: str = DEFAULT_DATABASE_URL,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    create_tables: bool = True,
) -> SQLAlchemyPodcastRepository:
    """Open a repository for `database_url`.

    Pool settings apply to server databases and are ignored for SQLite.
    With `create_tables`, any missing podcast, episode and file tables are
    created before the repository is returned.
    """
    logger.info(f"Opening podcast repository: {_display_url(database_url)}")

    repository = SQLAlchemyPodcastRepository(
        database_url=database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
    )

    if create_tables:
        repository.create_tables()

    return repository


def repository_from_config(config: Config, create_tables: bool = True) -> SQLAlchemyPodcastRepository:
    """Open the repository described by a loaded `Config`."""
    return create_repository(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        echo=config.DB_ECHO,
        create_tables=create_tables,
    )
