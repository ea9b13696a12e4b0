"""SQLAlchemy models and shared data classes for content_search."""

from __future__ import annotations

import datetime as dt
import enum
import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from dateutil.parser import isoparse
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class ContentType(str, enum.Enum):
    VIDEO = "video"
    ARTICLE = "article"


class SortBy(str, enum.Enum):
    POPULARITY = "popularity"
    RELEVANCE = "relevance"
    RECENCY = "recency"


def content_id(provider_name: str, external_id: str) -> str:
    """Stable surrogate id for one external item of one provider."""
    digest = hashlib.md5(f"{provider_name}:{external_id}".encode("utf-8")).digest()
    # little-endian field layout; existing ids depend on it
    return str(uuid.UUID(bytes_le=digest))


def as_utc(value: dt.datetime) -> dt.datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


# ── ORM base ────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


class ContentRow(Base):
    """Persisted content item (one row per external item per provider)."""

    __tablename__ = "contents"

    id = Column(String(36), primary_key=True)
    external_id = Column(String(256), nullable=False)
    source_provider = Column(String(128), nullable=False)
    title = Column(Text, nullable=False)
    content_type = Column(String(16), nullable=False)  # "video" | "article"

    views = Column(Integer, nullable=True)
    likes = Column(Integer, nullable=True)
    duration = Column(String(32), nullable=True)
    reading_time = Column(Integer, nullable=True)
    reactions = Column(Integer, nullable=True)
    comments = Column(Integer, nullable=True)

    published_at = Column(DateTime(timezone=True), nullable=False)
    tag_rows = relationship(
        "ContentTagRow",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContentTagRow.tag",
    )
    final_score = Column(Float, nullable=False, default=0.0)
    last_synced_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("external_id", "source_provider", name="uq_contents_external"),
    )

    def __repr__(self) -> str:
        return f"<ContentRow id={self.id} title={self.title!r:.40}>"


class ContentTagRow(Base):
    """One tag of one content item; matched one by one in keyword search."""

    __tablename__ = "content_tags"

    content_id = Column(String(36), ForeignKey("contents.id", ondelete="CASCADE"), primary_key=True)
    tag = Column(String(256), primary_key=True)


# ── Plain data class used throughout the pipeline ────────────────────
@dataclass
class Content:
    id: str
    external_id: str
    source_provider: str
    title: str
    content_type: ContentType
    published_at: dt.datetime
    tags: list[str] = field(default_factory=list)

    # Video only
    views: Optional[int] = None
    likes: Optional[int] = None
    duration: Optional[str] = None

    # Article only
    reading_time: Optional[int] = None
    reactions: Optional[int] = None
    comments: Optional[int] = None

    final_score: float = 0.0
    last_synced_at: Optional[dt.datetime] = None

    @property
    def is_video(self) -> bool:
        return self.content_type is ContentType.VIDEO

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "source_provider": self.source_provider,
            "title": self.title,
            "content_type": self.content_type.value,
            "published_at": self.published_at.isoformat(),
            "tags": list(self.tags),
            "views": self.views,
            "likes": self.likes,
            "duration": self.duration,
            "reading_time": self.reading_time,
            "reactions": self.reactions,
            "comments": self.comments,
            "final_score": self.final_score,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Content":
        synced = data.get("last_synced_at")
        return cls(
            id=data["id"],
            external_id=data["external_id"],
            source_provider=data["source_provider"],
            title=data["title"],
            content_type=ContentType(data["content_type"]),
            published_at=as_utc(isoparse(data["published_at"])),
            tags=list(data.get("tags") or []),
            views=data.get("views"),
            likes=data.get("likes"),
            duration=data.get("duration"),
            reading_time=data.get("reading_time"),
            reactions=data.get("reactions"),
            comments=data.get("comments"),
            final_score=float(data.get("final_score") or 0.0),
            last_synced_at=as_utc(isoparse(synced)) if synced else None,
        )
