"""Repository pattern implementation for podcast data persistence.

Provides an abstract interface and SQLAlchemy implementation for database operations.
Every public write runs inside a single transaction and either applies fully
or not at all.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence

from sqlalchemy import create_engine, delete, event, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..errors import StorageError
from .models import Base, Episode, EpisodeFile, Podcast
from .reconciler import reconcile_episodes

if TYPE_CHECKING:
    from ..podcast.feed_parser import ParsedEpisode, ParsedPodcast

logger = logging.getLogger(__name__)


@dataclass
class NewEpisode:
    """An episode inserted by a sync, annotated for "new episode" notifications."""

    id: int
    podcast_id: int
    title: str
    podcast_title: str


@dataclass
class SyncResult:
    """Outcome of writing one feed to storage.

    Attributes:
        added: Episodes inserted, oldest first.
        updated: Ids of existing episodes whose metadata was rewritten.
    """

    added: List[NewEpisode] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)

    def __add__(self, other: "SyncResult") -> "SyncResult":
        """Combine two SyncResults."""
        return SyncResult(
            added=self.added + other.added,
            updated=self.updated + other.updated,
        )


class PodcastRepositoryInterface(ABC):
    """Abstract interface for podcast data persistence."""

    # --- Sync Operations ---

    @abstractmethod
    def insert_podcast(self, podcast: "ParsedPodcast") -> SyncResult:
        """
        Insert a newly subscribed podcast and all of its episodes.

        Episodes are written oldest first so storage order follows publication order.

        Returns:
            SyncResult: Every inserted episode in `added`; `updated` is empty.

        Raises:
            StorageError: If the feed URL already exists or the write fails.
        """
        pass

    @abstractmethod
    def update_podcast(self, podcast_id: int, podcast: "ParsedPodcast") -> SyncResult:
        """
        Refresh podcast metadata and reconcile its episodes against a freshly parsed feed.

        Returns:
            SyncResult: Newly inserted episodes and ids of episodes updated in place.

        Raises:
            StorageError: If the podcast does not exist or the write fails.
        """
        pass

    # --- Podcast Operations ---

    @abstractmethod
    def get_podcast(self, podcast_id: int) -> Optional[Podcast]:
        """
        Retrieve a podcast by its identifier.

        Returns:
            Podcast if a podcast with the given ID exists, `None` otherwise.
        """
        pass

    @abstractmethod
    def get_podcast_by_feed_url(self, feed_url: str) -> Optional[Podcast]:
        """
        Retrieve a podcast matching the given feed URL.

        Returns:
            The matching `Podcast` if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def get_podcasts(self) -> List[Podcast]:
        """
        Return every podcast with its visible episodes attached, ordered by sort title.
        """
        pass

    @abstractmethod
    def remove_podcast(self, podcast_id: int) -> bool:
        """
        Delete a podcast together with its episodes and their file associations.

        Returns:
            bool: `True` if a podcast was found and deleted, `False` otherwise.
        """
        pass

    # --- Episode Operations ---

    @abstractmethod
    def get_episode(self, episode_id: int) -> Optional[Episode]:
        """Retrieve an episode by its primary key."""
        pass

    @abstractmethod
    def get_episodes(self, podcast_id: int, include_hidden: bool = False) -> List[Episode]:
        """
        List a podcast's episodes, newest first, with file associations joined.

        Parameters:
            podcast_id (int): Owning podcast.
            include_hidden (bool): Include episodes the user has hidden.
        """
        pass

    @abstractmethod
    def set_played_status(self, episode_id: int, played: bool) -> bool:
        """Mark one episode played or unplayed. Returns `False` if it does not exist."""
        pass

    @abstractmethod
    def set_all_played_status(self, episode_ids: Sequence[int], played: bool) -> None:
        """Mark several episodes played or unplayed in one transaction."""
        pass

    @abstractmethod
    def hide_episode(self, episode_id: int, hide: bool = True) -> bool:
        """Hide (or unhide) an episode. Returns `False` if it does not exist."""
        pass

    @abstractmethod
    def set_last_position(self, episode_id: int, seconds: int) -> bool:
        """Store the playback position. Returns `False` if the episode does not exist."""
        pass

    @abstractmethod
    def get_last_position(self, episode_id: int) -> int:
        """Return the stored playback position in seconds (0 if unknown)."""
        pass

    # --- File Operations ---

    @abstractmethod
    def insert_file(self, episode_id: int, path: str) -> None:
        """Record the local path of a downloaded episode."""
        pass

    @abstractmethod
    def remove_file(self, episode_id: int) -> None:
        """Forget the downloaded copy of one episode."""
        pass

    @abstractmethod
    def remove_files(self, episode_ids: Sequence[int]) -> None:
        """Forget the downloaded copies of several episodes."""
        pass

    # --- Maintenance ---

    @abstractmethod
    def clear_db(self) -> None:
        """Delete all rows from all tables."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release database connections and resources."""
        pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ships with foreign key enforcement off; cascades need it on."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLAlchemyPodcastRepository(PodcastRepositoryInterface):
    """SQLAlchemy-based implementation of the podcast repository.

    Supports SQLite for local use and PostgreSQL. Writers are serialized
    with a lock because SQLite allows a single writer at a time.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
        """
        self.database_url = database_url

        # SQLite doesn't support connection pooling
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._write_lock = threading.Lock()

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def create_tables(self) -> None:
        """Create any missing tables for the ORM models."""
        Base.metadata.create_all(self.engine)

    def _get_session(self) -> Session:
        """Obtain a new SQLAlchemy session from the repository's session factory."""
        return self.SessionLocal()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        """
        Run a block of writes in one transaction.

        Commits when the block finishes; on any database error rolls back and
        raises `StorageError` naming `action`.
        """
        with self._write_lock, self._get_session() as session:
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to {action}: {e}")
                raise StorageError(f"Failed to {action}: {e}") from e

    @contextmanager
    def _read(self, action: str) -> Iterator[Session]:
        with self._get_session() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                logger.error(f"Failed to {action}: {e}")
                raise StorageError(f"Failed to {action}: {e}") from e

    # --- Sync Operations ---

    def insert_podcast(self, podcast: "ParsedPodcast") -> SyncResult:
        """
        Insert a podcast row followed by all episodes, oldest first, in one transaction.

        Parameters:
            podcast (ParsedPodcast): Identity-free podcast produced by the feed parser.

        Returns:
            SyncResult: Every inserted episode, annotated with the podcast title.
        """
        with self._transaction(f"insert podcast {podcast.feed_url}") as session:
            row = Podcast(
                title=podcast.title,
                url=podcast.feed_url,
                description=podcast.description,
                author=podcast.author,
                explicit=podcast.explicit,
                last_checked=podcast.last_checked,
                image_url=podcast.image_url,
            )
            session.add(row)
            session.flush()

            episodes = [
                self._new_episode_row(row.id, episode)
                for episode in reversed(podcast.episodes)
            ]
            session.add_all(episodes)
            session.flush()

            result = SyncResult(
                added=[
                    NewEpisode(
                        id=episode.id,
                        podcast_id=row.id,
                        title=episode.title,
                        podcast_title=row.title,
                    )
                    for episode in episodes
                ]
            )

        logger.info(f"Inserted podcast '{podcast.title}' ({row.id}) with {len(result.added)} episodes")
        return result

    def update_podcast(self, podcast_id: int, podcast: "ParsedPodcast") -> SyncResult:
        """
        Update podcast metadata and reconcile episodes in one transaction.

        Matched episodes have only their feed metadata rewritten; played, hidden,
        last position and file association are left untouched. A failure at
        any point rolls back the whole podcast.

        Parameters:
            podcast_id (int): Id of the stored podcast.
            podcast (ParsedPodcast): Freshly parsed feed for that podcast.

        Returns:
            SyncResult: Inserted episodes and ids of updated episodes.
        """
        with self._transaction(f"update podcast {podcast_id}") as session:
            row = session.get(Podcast, podcast_id)
            if row is None:
                raise StorageError(f"Podcast not found: {podcast_id}")

            row.title = podcast.title
            row.description = podcast.description
            row.author = podcast.author
            row.explicit = podcast.explicit
            row.image_url = podcast.image_url
            row.last_checked = podcast.last_checked

            existing = list(
                session.scalars(self._episodes_stmt(podcast_id, include_hidden=True)).unique()
            )
            plan = reconcile_episodes(existing, podcast.episodes)

            by_id = {episode.id: episode for episode in existing}
            result = SyncResult()

            for change in plan.updates:
                self._apply_feed_metadata(by_id[change.episode_id], change.episode)
                result.updated.append(change.episode_id)

            inserted = [self._new_episode_row(podcast_id, episode) for episode in plan.inserts]
            session.add_all(inserted)
            session.flush()

            result.added = [
                NewEpisode(
                    id=episode.id,
                    podcast_id=podcast_id,
                    title=episode.title,
                    podcast_title=podcast.title,
                )
                for episode in inserted
            ]

        logger.info(
            f"Synced podcast '{podcast.title}' ({podcast_id}): "
            f"{len(result.added)} new, {len(result.updated)} updated"
        )
        return result

    @staticmethod
    def _new_episode_row(podcast_id: int, episode: "ParsedEpisode") -> Episode:
        return Episode(
            podcast_id=podcast_id,
            title=episode.title,
            url=episode.url,
            guid=episode.guid,
            description=episode.description,
            pubdate=episode.pubdate,
            duration=episode.duration,
            played=False,
            hidden=False,
            last_position=0,
            image_url=episode.image_url,
        )

    @staticmethod
    def _apply_feed_metadata(row: Episode, episode: "ParsedEpisode") -> None:
        row.title = episode.title
        row.url = episode.url
        row.guid = episode.guid
        row.description = episode.description
        row.pubdate = episode.pubdate
        row.duration = episode.duration

    # --- Podcast Operations ---

    def get_podcast(self, podcast_id: int) -> Optional[Podcast]:
        """
        Retrieve a podcast by its primary key.

        Returns:
            Podcast | None: The matching Podcast instance if found, `None` otherwise.
        """
        with self._read(f"get podcast {podcast_id}") as session:
            return session.get(Podcast, podcast_id)

    def get_podcast_by_feed_url(self, feed_url: str) -> Optional[Podcast]:
        """
        Finds the podcast record that matches the given RSS/Atom feed URL.

        Returns:
            Podcast or None: The `Podcast` instance with `url`, or `None` if no match is found.
        """
        with self._read(f"get podcast {feed_url}") as session:
            stmt = select(Podcast).where(Podcast.url == feed_url)
            return session.scalar(stmt)

    def get_podcasts(self) -> List[Podcast]:
        """
        List every podcast with its non-hidden episodes loaded newest first.

        Returns:
            List[Podcast]: Podcasts ordered by `sort_title`.
        """
        with self._read("list podcasts") as session:
            stmt = select(Podcast).options(
                selectinload(Podcast.episodes.and_(Episode.hidden.is_(False)))
            )
            podcasts = list(session.scalars(stmt).all())
        podcasts.sort(key=lambda podcast: podcast.sort_title)
        return podcasts

    def remove_podcast(self, podcast_id: int) -> bool:
        """
        Remove a podcast, its episodes and their file associations.

        Returns:
            bool: `True` if a podcast was found and deleted, `False` if no podcast with the given ID exists.
        """
        with self._transaction(f"remove podcast {podcast_id}") as session:
            podcast = session.get(Podcast, podcast_id)
            if not podcast:
                return False
            title = podcast.title
            session.delete(podcast)

        logger.info(f"Removed podcast: {title} ({podcast_id})")
        return True

    # --- Episode Operations ---

    @staticmethod
    def _episodes_stmt(podcast_id: int, include_hidden: bool):
        stmt = select(Episode).where(Episode.podcast_id == podcast_id)
        if not include_hidden:
            stmt = stmt.where(Episode.hidden.is_(False))
        return stmt.order_by(Episode.pubdate.desc(), Episode.id.desc())

    def get_episode(self, episode_id: int) -> Optional[Episode]:
        """
        Retrieve an episode by its ID.

        Returns:
            The Episode with the given ID, or `None` if no matching episode exists.
        """
        with self._read(f"get episode {episode_id}") as session:
            return session.get(Episode, episode_id)

    def get_episodes(self, podcast_id: int, include_hidden: bool = False) -> List[Episode]:
        """
        Retrieve a podcast's episodes ordered by publish date (newest first).

        Parameters:
            podcast_id (int): Owning podcast.
            include_hidden (bool): If True, include episodes the user has hidden.

        Returns:
            List[Episode]: Episodes with their `path` resolved from the files table.
        """
        with self._read(f"list episodes of podcast {podcast_id}") as session:
            stmt = self._episodes_stmt(podcast_id, include_hidden)
            return list(session.scalars(stmt).unique().all())

    def _set_episode_column(self, episode_id: int, action: str, **values) -> bool:
        with self._transaction(f"{action} episode {episode_id}") as session:
            result = session.execute(
                update(Episode).where(Episode.id == episode_id).values(**values)
            )
            found = result.rowcount > 0
        logger.debug(f"{action} episode {episode_id}: {values}")
        return found

    def set_played_status(self, episode_id: int, played: bool) -> bool:
        return self._set_episode_column(episode_id, "set played status of", played=played)

    def set_all_played_status(self, episode_ids: Sequence[int], played: bool) -> None:
        """
        Mark every listed episode played or unplayed in a single transaction.
        """
        ids = list(episode_ids)
        if not ids:
            return
        with self._transaction(f"set played status of {len(ids)} episodes") as session:
            session.execute(
                update(Episode).where(Episode.id.in_(ids)).values(played=played)
            )
        logger.debug(f"Set played={played} on {len(ids)} episodes")

    def hide_episode(self, episode_id: int, hide: bool = True) -> bool:
        """
        Hide an episode from default listings.

        Hidden episodes stay in the database so that they are recognized,
        not re-added, when the podcast is synced again.
        """
        return self._set_episode_column(episode_id, "hide", hidden=hide)

    def set_last_position(self, episode_id: int, seconds: int) -> bool:
        return self._set_episode_column(
            episode_id, "set playback position of", last_position=max(0, int(seconds))
        )

    def get_last_position(self, episode_id: int) -> int:
        with self._read(f"get playback position of episode {episode_id}") as session:
            position = session.scalar(
                select(Episode.last_position).where(Episode.id == episode_id)
            )
        return position or 0

    # --- File Operations ---

    def insert_file(self, episode_id: int, path: str) -> None:
        """
        Record that an episode has been downloaded to `path`.

        Raises:
            StorageError: If the episode does not exist or already has a file.
        """
        with self._transaction(f"record file for episode {episode_id}") as session:
            session.add(EpisodeFile(episode_id=episode_id, path=str(path)))
        logger.debug(f"Recorded file for episode {episode_id}: {path}")

    def remove_file(self, episode_id: int) -> None:
        self.remove_files([episode_id])

    def remove_files(self, episode_ids: Sequence[int]) -> None:
        """
        Delete the file associations of all listed episodes in one transaction.
        """
        ids = list(episode_ids)
        if not ids:
            return
        with self._transaction(f"remove files of {len(ids)} episodes") as session:
            session.execute(delete(EpisodeFile).where(EpisodeFile.episode_id.in_(ids)))
        logger.debug(f"Removed file records for episodes: {ids}")

    # --- Maintenance ---

    def clear_db(self) -> None:
        with self._transaction("clear database") as session:
            session.execute(delete(EpisodeFile))
            session.execute(delete(Episode))
            session.execute(delete(Podcast))
        logger.info("Cleared all podcasts, episodes and files")

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
        logger.info("Database connection closed")
