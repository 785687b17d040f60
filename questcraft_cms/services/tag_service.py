# questcraft_cms/services/tag_service.py
from __future__ import annotations
import re
from typing import Iterable, List, Tuple, Dict, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, delete, insert, func
from questcraft_cms.errors import ValidationError, NotFoundError
from questcraft_cms.models.tag import Tag, RewardTag, reward_tags, DEFAULT_TAG_COLOR
from questcraft_cms.models.reward import Reward

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def list_tags(db: Session) -> List[Tag]:
    return list(db.execute(select(Tag).order_by(Tag.name.asc(), Tag.id.asc())).scalars().all())


def list_tags_with_counts(db: Session) -> List[Tuple[Tag, int]]:
    """Tags mit Anzahl zugeordneter Rewards (für die Tag-Übersicht)."""
    stmt = (
        select(Tag, func.count(reward_tags.c.reward_id))
        .outerjoin(reward_tags, reward_tags.c.tag_id == Tag.id)
        .group_by(Tag.id)
        .order_by(Tag.name.asc(), Tag.id.asc())
    )
    return [(t, n) for t, n in db.execute(stmt).all()]


def create_tag(db: Session, name: str, color: Optional[str] = None) -> Tag:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    color = (color or "").strip() or DEFAULT_TAG_COLOR
    if not _HEX_COLOR.match(color):
        raise ValidationError("Invalid color. Expected a hex value like #3B82F6")
    t = Tag(name=name, color=color)
    db.add(t); db.commit(); db.refresh(t)
    return t


def delete_tag(db: Session, tag_id: int) -> None:
    """Löscht den Tag samt seiner Zuordnungen in reward_tags; Rewards bleiben unberührt."""
    t = db.get(Tag, tag_id)
    if not t:
        raise NotFoundError("Tag not found")
    db.execute(delete(RewardTag).where(reward_tags.c.tag_id == tag_id))
    db.delete(t)
    db.commit()


def _normalize_tag_ids(db: Session, tag_ids: Iterable[Any]) -> List[int]:
    ids: List[int] = []
    for raw in tag_ids:
        try:
            tid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid tag id: {raw!r}")
        if tid not in ids:
            ids.append(tid)
    if not ids:
        return ids
    known = set(db.execute(select(Tag.id).where(Tag.id.in_(ids))).scalars().all())
    missing = [t for t in ids if t not in known]
    if missing:
        raise ValidationError(f"Unknown tag id(s): {', '.join(str(m) for m in missing)}")
    return ids


def set_reward_tags(db: Session, reward_id: int, tag_ids: Iterable[Any], commit: bool = True) -> List[int]:
    """
    Ersetzt die komplette Tag-Liste eines Rewards (kein Diff):
    erst alle Zuordnungen löschen, dann die übergebenen neu einfügen.
    """
    if db.get(Reward, reward_id) is None:
        raise NotFoundError("Reward not found")
    ids = _normalize_tag_ids(db, tag_ids)

    db.execute(delete(RewardTag).where(reward_tags.c.reward_id == reward_id))
    if ids:
        db.execute(insert(reward_tags), [{"reward_id": reward_id, "tag_id": tid} for tid in ids])
    if commit:
        db.commit()
    # Relationship-Cache des Rewards verwerfen
    r = db.get(Reward, reward_id)
    if r is not None:
        db.expire(r, ["tags"])
    return ids


def serialize_tag(t: Tag, reward_count: Optional[int] = None) -> Dict[str, Any]:
    data = {"id": t.id, "name": t.name, "color": t.color}
    if reward_count is not None:
        data["rewardCount"] = reward_count
    return data
