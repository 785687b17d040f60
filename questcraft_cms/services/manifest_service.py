# questcraft_cms/services/manifest_service.py
"""
Manifest für die Mobile-App.

Kanonisch ist Version 2.0 (flache rewards-Liste). Version 1.0 (Rewards mit
eingebetteter Collection) wird nur noch für alte App-Stände ausgeliefert und
ist als deprecated markiert. Beide Formen werden getrennt erzeugt.
"""
from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from questcraft_cms.models.collection import Collection
from questcraft_cms.models.reward import Reward
from questcraft_cms.services.collection_service import count_rewards_by_collection
from questcraft_cms.services.reward_service import list_rewards
from questcraft_cms.services.tag_service import list_tags

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "2.0"
LEGACY_MANIFEST_VERSION = "1.0"


def _timestamp(now: Optional[datetime]) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat().replace("+00:00", "Z")


def _active_collections(db: Session) -> List[Collection]:
    return list(
        db.execute(
            select(Collection)
            .where(Collection.is_active == True)  # noqa: E712
            .order_by(Collection.sort_order.asc(), Collection.id.asc())
        ).scalars().all()
    )


def _active_rewards_by_collection(db: Session, collection_ids: List[int]) -> Dict[int, List[Reward]]:
    grouped: Dict[int, List[Reward]] = {cid: [] for cid in collection_ids}
    if not collection_ids:
        return grouped
    rows = db.execute(
        select(Reward)
        .options(selectinload(Reward.tags))
        .where(Reward.is_active == True, Reward.collection_id.in_(collection_ids))  # noqa: E712
        .order_by(Reward.created_at.desc(), Reward.id.desc())
    ).scalars().all()
    for r in rows:
        grouped[r.collection_id].append(r)
    return grouped


def build_manifest(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Manifest 2.0 – reiner Lesezugriff, jederzeit aus der DB neu ableitbar."""
    collections = _active_collections(db)
    grouped = _active_rewards_by_collection(db, [c.id for c in collections])

    manifest_collections = []
    manifest_rewards = []
    for c in collections:
        rewards = grouped[c.id]
        manifest_collections.append({
            "id": c.id,
            "name": c.name,
            "description": c.description,
            "emoji": c.icon_emoji,
            "iconName": c.icon_name,
            "rewards": [r.id for r in rewards],
        })
        for r in rewards:
            manifest_rewards.append({
                "id": r.id,
                "name": r.name,
                "description": r.description,
                "rarity": r.rarity,
                "mediaType": r.media_type,
                "googleDriveFileId": r.google_drive_file_id,
                "googleDriveThumbnailId": r.google_drive_thumbnail_id,
                "collectionId": r.collection_id,
                "tags": [t.name for t in r.tags],
            })

    tags = [{"id": t.id, "name": t.name, "color": t.color} for t in list_tags(db)]

    logger.debug(
        "Manifest erzeugt: %d Collections, %d Rewards, %d Tags",
        len(manifest_collections), len(manifest_rewards), len(tags),
    )
    return {
        "version": MANIFEST_VERSION,
        "lastUpdated": _timestamp(now),
        "collections": manifest_collections,
        "rewards": manifest_rewards,
        "tags": tags,
    }


def build_legacy_manifest(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Manifest 1.0 (deprecated): alle aktiven Rewards, neueste zuerst, Collection eingebettet."""
    rewards = list_rewards(db, active_only=True)
    counts = count_rewards_by_collection(db)

    items = []
    for r in rewards:
        item = {
            "id": r.id,
            "name": r.name,
            "rarity": r.rarity,
            "type": r.media_type,
            "fileID": r.google_drive_file_id,
            "collection": {
                "id": r.collection.id,
                "name": r.collection.name,
                "emoji": r.collection.icon_emoji,
                "iconName": r.collection.icon_name,
            },
            "tags": [t.name for t in r.tags],
            "createdAt": r.created_at.isoformat() if r.created_at else None,
        }
        # 1.0 lässt leere optionale Felder weg
        if r.description:
            item["description"] = r.description
        if r.google_drive_thumbnail_id:
            item["thumbnailID"] = r.google_drive_thumbnail_id
        items.append(item)

    summary = []
    for c in _active_collections(db):
        entry = {
            "id": c.id,
            "name": c.name,
            "emoji": c.icon_emoji,
            "iconName": c.icon_name,
            "rewardCount": counts.get(c.id, 0),
        }
        if c.description:
            entry["description"] = c.description
        summary.append(entry)

    return {
        "version": LEGACY_MANIFEST_VERSION,
        "lastUpdated": _timestamp(now),
        "totalRewards": len(items),
        "rewards": items,
        "collections": summary,
    }


def serialize_manifest(manifest: Dict[str, Any]) -> str:
    """Deterministisches JSON (sortierte Keys) für Download und Export."""
    return json.dumps(manifest, indent=2, sort_keys=True, ensure_ascii=False)
