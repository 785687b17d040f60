# questcraft_cms/models/collection.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from questcraft_cms.models.base import Base

DEFAULT_COLLECTION_EMOJI = "📦"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collection(Base):
    __tablename__ = "collections"

    id:          Mapped[int]        = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:        Mapped[str]        = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon_emoji:  Mapped[str]        = mapped_column(String(16), default=DEFAULT_COLLECTION_EMOJI)
    icon_name:   Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active:   Mapped[bool]       = mapped_column(Boolean, default=True)
    sort_order:  Mapped[int]        = mapped_column(Integer, default=0)
    created_at:  Mapped[datetime]   = mapped_column(DateTime, default=_utcnow)
    updated_at:  Mapped[datetime]   = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # kein delete-orphan: Löschen mit Rewards wird im Service abgelehnt
    rewards: Mapped[list["Reward"]] = relationship(
        "Reward",
        back_populates="collection",
        order_by="desc(Reward.created_at)",
    )

    def __repr__(self) -> str:
        return f"<Collection {self.id}:{self.name}>"
