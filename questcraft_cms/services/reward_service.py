# questcraft_cms/services/reward_service.py
from __future__ import annotations
import logging
from typing import Optional, List, Dict, Any, Callable
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload
from questcraft_cms.errors import ValidationError, NotFoundError
from questcraft_cms.models.collection import Collection
from questcraft_cms.models.reward import Reward, VALID_RARITIES, VALID_MEDIA_TYPES
from questcraft_cms.models.tag import Tag
from questcraft_cms.services.tag_service import set_reward_tags

logger = logging.getLogger(__name__)

# ===== Validierung =====

def validate_rarity(rarity: Any) -> str:
    if rarity not in VALID_RARITIES:
        raise ValidationError("Invalid rarity. Must be: common, rare, epic, legendary, or mythic")
    return rarity


def validate_media_type(media_type: Any) -> str:
    if media_type not in VALID_MEDIA_TYPES:
        raise ValidationError("Invalid mediaType. Must be: image or video")
    return media_type


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _require_collection(db: Session, collection_id: Any) -> Collection:
    c = db.get(Collection, _as_int(collection_id, "collectionId"))
    if not c:
        raise NotFoundError("Collection not found")
    return c

# ===== Lesen =====

def list_rewards(
    db: Session,
    active_only: bool = False,
    collection_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Reward]:
    """Rewards neueste zuerst, Collection und Tags vorgeladen."""
    stmt = (
        select(Reward)
        .options(selectinload(Reward.collection), selectinload(Reward.tags))
        .order_by(Reward.created_at.desc(), Reward.id.desc())
    )
    if active_only:
        stmt = stmt.where(Reward.is_active == True)  # noqa: E712
    if collection_id is not None:
        stmt = stmt.where(Reward.collection_id == collection_id)
    if limit:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())


def get_reward(db: Session, reward_id: int) -> Reward:
    r = db.execute(
        select(Reward)
        .options(selectinload(Reward.collection), selectinload(Reward.tags))
        .where(Reward.id == reward_id)
    ).scalar_one_or_none()
    if not r:
        raise NotFoundError("Reward not found")
    return r


def get_dashboard_stats(db: Session) -> Dict[str, int]:
    return {
        "rewards":       db.scalar(select(func.count(Reward.id))) or 0,
        "collections":   db.scalar(select(func.count(Collection.id))) or 0,
        "tags":          db.scalar(select(func.count(Tag.id))) or 0,
        "activeRewards": db.scalar(select(func.count(Reward.id)).where(Reward.is_active == True)) or 0,  # noqa: E712
    }

# ===== Schreiben =====

def create_reward(
    db: Session,
    name: str,
    rarity: str,
    media_type: str,
    google_drive_file_id: str,
    collection_id: Any,
    description: Optional[str] = None,
    google_drive_thumbnail_id: Optional[str] = None,
    tag_ids: Optional[List[Any]] = None,
) -> Reward:
    name = (name or "").strip() if isinstance(name, str) else ""
    file_id = (google_drive_file_id or "").strip() if isinstance(google_drive_file_id, str) else ""
    if not name or not rarity or not media_type or not file_id or collection_id in (None, ""):
        raise ValidationError(
            "Name, rarity, mediaType, googleDriveFileId, and collectionId are required"
        )
    validate_rarity(rarity)
    validate_media_type(media_type)
    collection = _require_collection(db, collection_id)

    r = Reward(
        name=name,
        description=(description or "").strip() or None,
        rarity=rarity,
        media_type=media_type,
        google_drive_file_id=file_id,
        google_drive_thumbnail_id=(google_drive_thumbnail_id or "").strip() or None,
        collection_id=collection.id,
        is_active=True,
        sort_order=0,
    )
    db.add(r)
    db.flush()
    if tag_ids:
        set_reward_tags(db, r.id, tag_ids, commit=False)
    db.commit()
    return get_reward(db, r.id)


def update_reward(db: Session, reward_id: int, changes: Dict[str, Any]) -> Reward:
    """
    Teil-Update der Stammdaten. Ist 'tag_ids' enthalten, wird die Tag-Liste
    komplett ersetzt (siehe set_reward_tags).
    """
    r = db.get(Reward, reward_id)
    if not r:
        raise NotFoundError("Reward not found")

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required")
        r.name = name
    if "description" in changes:
        r.description = (changes["description"] or "").strip() or None
    if "rarity" in changes:
        r.rarity = validate_rarity(changes["rarity"])
    if "media_type" in changes:
        r.media_type = validate_media_type(changes["media_type"])
    if "collection_id" in changes:
        r.collection_id = _require_collection(db, changes["collection_id"]).id
    if "is_active" in changes:
        if not isinstance(changes["is_active"], bool):
            raise ValidationError("isActive must be a boolean")
        r.is_active = changes["is_active"]
    if "sort_order" in changes:
        so = changes["sort_order"]
        if not isinstance(so, int) or isinstance(so, bool):
            raise ValidationError("sortOrder must be an integer")
        r.sort_order = so

    db.flush()
    if "tag_ids" in changes:
        tag_ids = changes["tag_ids"]
        if not isinstance(tag_ids, list):
            raise ValidationError("tagIds must be a list")
        set_reward_tags(db, r.id, tag_ids, commit=False)
    db.commit()
    return get_reward(db, reward_id)


def delete_reward(db: Session, reward_id: int) -> None:
    """Löscht nur den DB-Eintrag; die Datei in Drive bleibt liegen."""
    r = db.get(Reward, reward_id)
    if not r:
        raise NotFoundError("Reward not found")
    db.delete(r)
    db.commit()


def create_reward_with_upload(
    db: Session,
    gateway,
    upload_kwargs: Dict[str, Any],
    reward_kwargs: Dict[str, Any],
    resolve_folder: Optional[Callable[[], str]] = None,
) -> Reward:
    """
    Zweiphasig: erst die Datei nach Drive, dann die Zeile in der DB.
    Scheitert Phase 2, wird die frisch hochgeladene Datei wieder gelöscht.
    resolve_folder liefert die Ordner-ID und läuft erst nach der Vorprüfung.
    """
    # Fachliche Prüfung vorab, damit bei offensichtlichen Fehlern nichts hochgeladen wird
    validate_rarity(reward_kwargs.get("rarity"))
    validate_media_type(reward_kwargs.get("media_type"))
    _require_collection(db, reward_kwargs.get("collection_id"))

    if resolve_folder is not None:
        upload_kwargs = {**upload_kwargs, "folder_id": resolve_folder()}
    result = gateway.upload(**upload_kwargs)
    try:
        return create_reward(db, google_drive_file_id=result.file_id, **reward_kwargs)
    except Exception:
        db.rollback()
        logger.warning("Reward-Anlage fehlgeschlagen, entferne verwaiste Drive-Datei %s", result.file_id)
        try:
            gateway.delete(result.file_id, access_token=upload_kwargs.get("access_token"))
        except Exception:
            logger.exception("Kompensation fehlgeschlagen: Drive-Datei %s bleibt verwaist", result.file_id)
        raise

# ===== Serialisierung =====

def serialize_reward(r: Reward) -> Dict[str, Any]:
    return {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "rarity": r.rarity,
        "mediaType": r.media_type,
        "googleDriveFileId": r.google_drive_file_id,
        "googleDriveThumbnailId": r.google_drive_thumbnail_id,
        "collectionId": r.collection_id,
        "collection": (
            {"id": r.collection.id, "name": r.collection.name, "iconEmoji": r.collection.icon_emoji}
            if r.collection else None
        ),
        "tags": [{"id": t.id, "name": t.name, "color": t.color} for t in r.tags],
        "isActive": r.is_active,
        "sortOrder": r.sort_order,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
        "updatedAt": r.updated_at.isoformat() if r.updated_at else None,
    }
