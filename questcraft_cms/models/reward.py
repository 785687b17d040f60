# questcraft_cms/models/reward.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from questcraft_cms.models.base import Base
from questcraft_cms.models.collection import Collection
from questcraft_cms.models.tag import Tag, reward_tags

VALID_RARITIES = ("common", "rare", "epic", "legendary", "mythic")
VALID_MEDIA_TYPES = ("image", "video")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_clause(col: str, values: tuple[str, ...]) -> str:
    return f"{col} IN ({', '.join(repr(v) for v in values)})"


class Reward(Base):
    __tablename__ = "rewards"

    id:                        Mapped[int]        = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:                      Mapped[str]        = mapped_column(String(255), nullable=False)
    description:               Mapped[str | None] = mapped_column(Text, nullable=True)
    rarity:                    Mapped[str]        = mapped_column(String(16), nullable=False)
    media_type:                Mapped[str]        = mapped_column(String(16), nullable=False)
    google_drive_file_id:      Mapped[str]        = mapped_column(String(128), nullable=False)
    google_drive_thumbnail_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active:                 Mapped[bool]       = mapped_column(Boolean, default=True)
    sort_order:                Mapped[int]        = mapped_column(Integer, default=0)
    created_at:                Mapped[datetime]   = mapped_column(DateTime, default=_utcnow, index=True)
    updated_at:                Mapped[datetime]   = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # genau eine Collection pro Reward
    collection_id: Mapped[int]        = mapped_column(ForeignKey("collections.id"), nullable=False, index=True)
    collection:    Mapped[Collection] = relationship(Collection, back_populates="rewards")

    # Tags (viele-zu-vielen), nach Name sortiert
    tags: Mapped[list[Tag]] = relationship(
        Tag,
        secondary=reward_tags,
        lazy="selectin",
        order_by=Tag.name,
        backref="rewards",
    )

    __table_args__ = (
        CheckConstraint(_in_clause("rarity", VALID_RARITIES), name="ck_reward_rarity"),
        CheckConstraint(_in_clause("media_type", VALID_MEDIA_TYPES), name="ck_reward_media_type"),
    )

    def __repr__(self) -> str:
        return f"<Reward {self.id}:{self.name}>"
