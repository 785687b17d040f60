# questcraft_cms/services/collection_service.py
from __future__ import annotations
from typing import Optional, List, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload
from questcraft_cms.errors import ValidationError, NotFoundError, ConflictError
from questcraft_cms.models.collection import Collection, DEFAULT_COLLECTION_EMOJI
from questcraft_cms.models.reward import Reward

# Feste Icon-Auswahl (Name -> Glyph für die Templates). Keine freie Suche nach Namen.
ICON_REGISTRY: Dict[str, str] = {
    "Package":  "📦",
    "Star":     "⭐",
    "Trophy":   "🏆",
    "Crown":    "👑",
    "Heart":    "❤️",
    "Zap":      "⚡",
    "Gift":     "🎁",
    "Award":    "🏅",
    "Target":   "🎯",
    "Flame":    "🔥",
    "Sparkles": "✨",
    "Medal":    "🎖️",
    "Gem":      "💎",
    "Rocket":   "🚀",
    "Shield":   "🛡️",
}

_ORDERINGS = {
    "name":       (Collection.name.asc(), Collection.id.asc()),
    "sort_order": (Collection.sort_order.asc(), Collection.id.asc()),
}


def _clean_icon_name(icon_name: Optional[str]) -> Optional[str]:
    icon_name = (icon_name or "").strip()
    if not icon_name:
        return None
    if icon_name not in ICON_REGISTRY:
        raise ValidationError(f"Unknown iconName '{icon_name}'")
    return icon_name


def list_collections(db: Session, order: str = "sort_order", active_only: bool = False) -> List[Collection]:
    if order not in _ORDERINGS:
        raise ValueError(f"unknown ordering: {order}")
    stmt = select(Collection).order_by(*_ORDERINGS[order])
    if active_only:
        stmt = stmt.where(Collection.is_active == True)  # noqa: E712
    return list(db.execute(stmt).scalars().all())


def get_collection(db: Session, collection_id: int) -> Collection:
    """Collection inkl. Rewards (neueste zuerst) und deren Tags."""
    c = db.execute(
        select(Collection)
        .options(selectinload(Collection.rewards).selectinload(Reward.tags))
        .where(Collection.id == collection_id)
    ).scalar_one_or_none()
    if not c:
        raise NotFoundError("Collection not found")
    return c


def count_rewards_by_collection(db: Session) -> Dict[int, int]:
    rows = db.execute(
        select(Reward.collection_id, func.count(Reward.id)).group_by(Reward.collection_id)
    ).all()
    return {cid: n for cid, n in rows}


def create_collection(
    db: Session,
    name: str,
    description: Optional[str] = None,
    icon_emoji: Optional[str] = None,
    icon_name: Optional[str] = None,
) -> Collection:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    c = Collection(
        name=name,
        description=(description or "").strip() or None,
        icon_emoji=(icon_emoji or "").strip() or DEFAULT_COLLECTION_EMOJI,
        icon_name=_clean_icon_name(icon_name),
        is_active=True,
        sort_order=0,
    )
    db.add(c); db.commit(); db.refresh(c)
    return c


def update_collection(db: Session, collection_id: int, changes: Dict[str, Any]) -> Collection:
    c = db.get(Collection, collection_id)
    if not c:
        raise NotFoundError("Collection not found")

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required")
        c.name = name
    if "description" in changes:
        c.description = (changes["description"] or "").strip() or None
    if "icon_emoji" in changes:
        c.icon_emoji = (changes["icon_emoji"] or "").strip() or DEFAULT_COLLECTION_EMOJI
    if "icon_name" in changes:
        c.icon_name = _clean_icon_name(changes["icon_name"])
    if "is_active" in changes:
        if not isinstance(changes["is_active"], bool):
            raise ValidationError("isActive must be a boolean")
        c.is_active = changes["is_active"]
    if "sort_order" in changes:
        so = changes["sort_order"]
        if not isinstance(so, int) or isinstance(so, bool):
            raise ValidationError("sortOrder must be an integer")
        c.sort_order = so

    db.commit(); db.refresh(c)
    return c


def delete_collection(db: Session, collection_id: int) -> None:
    """Nur leere Collections dürfen weg – Rewards hängen hart an ihrer Collection."""
    c = db.get(Collection, collection_id)
    if not c:
        raise NotFoundError("Collection not found")
    n = db.scalar(select(func.count(Reward.id)).where(Reward.collection_id == collection_id)) or 0
    if n:
        raise ConflictError(f"Collection still contains {n} reward(s)")
    db.delete(c)
    db.commit()


def serialize_collection(c: Collection, reward_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "iconEmoji": c.icon_emoji,
        "iconName": c.icon_name,
        "isActive": c.is_active,
        "sortOrder": c.sort_order,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
        "updatedAt": c.updated_at.isoformat() if c.updated_at else None,
    }
    if reward_count is not None:
        data["rewardCount"] = reward_count
    return data
