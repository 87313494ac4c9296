"""SQLAlchemy ORM models for podcast, episode and downloaded-file data."""

import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Leading article stripped from lower-cased titles for display ordering
_ARTICLE_RE = re.compile(r"^(a|an|the) ")


def make_sort_title(title: str) -> str:
    """Lower-case a title and drop a single leading "a ", "an " or "the "."""
    return _ARTICLE_RE.sub("", (title or "").lower(), count=1)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Podcast(Base):
    """Podcast subscription model.

    Stores podcast-level metadata from RSS feeds. The feed URL is the
    natural key; the integer id is assigned on insert.
    """

    __tablename__ = "podcasts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    url: Mapped[str] = mapped_column(String(2048), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(String(512))
    explicit: Mapped[Optional[bool]] = mapped_column(Boolean)
    last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime)
    image_url: Mapped[Optional[str]] = mapped_column(String(2048))

    episodes: Mapped[List["Episode"]] = relationship(
        "Episode",
        back_populates="podcast",
        cascade="all, delete-orphan",
        order_by="Episode.pubdate.desc()",
    )

    @property
    def sort_title(self) -> str:
        """Title used for display ordering, computed on every read."""
        return make_sort_title(self.title)

    def __repr__(self) -> str:
        return f"<Podcast(id={self.id}, title={self.title!r})>"


class Episode(Base):
    """Episode model.

    Feed metadata (title, url, guid, description, pubdate, duration) is
    rewritten by sync; playback state (played, hidden, last_position) is
    only ever changed by playback operations. Hidden episodes stay in the
    table so a later sync recognizes them instead of re-adding them.
    """

    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    podcast_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    guid: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    pubdate: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration: Mapped[Optional[int]] = mapped_column(Integer)

    # Playback state
    played: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    image_url: Mapped[Optional[str]] = mapped_column(String(2048))

    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="episodes")
    file: Mapped[Optional["EpisodeFile"]] = relationship(
        "EpisodeFile",
        back_populates="episode",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="joined",
    )

    __table_args__ = (
        Index("ix_episodes_podcast_id", "podcast_id"),
        Index("ix_episodes_pubdate", "pubdate"),
    )

    @property
    def path(self) -> Optional[str]:
        """Local path of the downloaded copy, if there is one."""
        return self.file.path if self.file is not None else None

    def __repr__(self) -> str:
        return f"<Episode(id={self.id}, title={self.title!r})>"


class EpisodeFile(Base):
    """Local file association for a downloaded episode (at most one per episode)."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    episode_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("episodes.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    path: Mapped[str] = mapped_column(String(4096), nullable=False)

    episode: Mapped["Episode"] = relationship("Episode", back_populates="file")

    def __repr__(self) -> str:
        return f"<EpisodeFile(episode_id={self.episode_id}, path={self.path!r})>"
