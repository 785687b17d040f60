# questcraft_cms/models/tag.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Table, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from questcraft_cms.models.base import Base

DEFAULT_TAG_COLOR = "#3B82F6"

# Join-Tabelle: viele-zu-vielen zwischen Reward und Tag
reward_tags = Table(
    "reward_tags",
    Base.metadata,
    Column("reward_id", ForeignKey("rewards.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id",    ForeignKey("tags.id",    ondelete="CASCADE"), primary_key=True),
)


class RewardTag(Base):
    """ORM-Sicht auf reward_tags (für delete/insert beim Ersetzen der Tag-Liste)."""
    __table__ = reward_tags


class Tag(Base):
    __tablename__ = "tags"

    id:         Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Name nicht unique
    name:       Mapped[str]      = mapped_column(String(64), index=True)
    color:      Mapped[str]      = mapped_column(String(16), default=DEFAULT_TAG_COLOR)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<Tag {self.name}>"
