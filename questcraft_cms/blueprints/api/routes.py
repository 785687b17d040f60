# questcraft_cms/blueprints/api/routes.py
from __future__ import annotations
import logging
from typing import Dict, Any
from flask import Blueprint, jsonify, request, make_response, current_app
from werkzeug.exceptions import HTTPException

from questcraft_cms.db import get_session
from questcraft_cms.errors import ServiceError, ValidationError
from questcraft_cms.blueprints.auth.routes import api_login_required, drive_token_required, get_drive_token
from questcraft_cms.services.collection_service import (
    list_collections,
    get_collection,
    create_collection,
    update_collection,
    delete_collection,
    count_rewards_by_collection,
    serialize_collection,
)
from questcraft_cms.services.reward_service import (
    list_rewards,
    get_reward,
    create_reward,
    update_reward,
    delete_reward,
    create_reward_with_upload,
    get_dashboard_stats,
    serialize_reward,
)
from questcraft_cms.services.tag_service import (
    list_tags_with_counts,
    create_tag,
    delete_tag,
    set_reward_tags,
    serialize_tag,
)
from questcraft_cms.services.media_service import prepare_upload
from questcraft_cms.services.drive_service import (
    DriveError,
    InvalidDriveIdError,
    resolve_upload_folder,
    thumbnail_url,
    validate_drive_id,
)
from questcraft_cms.services.manifest_service import build_manifest, build_legacy_manifest

api_bp = Blueprint("api", __name__)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

# camelCase (JSON) -> snake_case (Service)
COLLECTION_FIELDS = {
    "name": "name",
    "description": "description",
    "iconEmoji": "icon_emoji",
    "iconName": "icon_name",
    "isActive": "is_active",
    "sortOrder": "sort_order",
}
REWARD_FIELDS = {
    "name": "name",
    "description": "description",
    "rarity": "rarity",
    "mediaType": "media_type",
    "collectionId": "collection_id",
    "isActive": "is_active",
    "sortOrder": "sort_order",
    "tagIds": "tag_ids",
}

# -----------------------
# Helpers
# -----------------------
def _gateway():
    return current_app.extensions["drive_gateway"]


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _pick(data: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    return {mapping[k]: v for k, v in data.items() if k in mapping}


def _with_cors(resp):
    for k, v in CORS_HEADERS.items():
        resp.headers[k] = v
    return resp

# -----------------------
# Fehlerbehandlung
# -----------------------
@api_bp.errorhandler(ServiceError)
def _service_error(e: ServiceError):
    return jsonify({"error": e.message}), e.status_code


@api_bp.errorhandler(InvalidDriveIdError)
def _invalid_drive_id(e: InvalidDriveIdError):
    return jsonify({"error": str(e)}), 400


@api_bp.errorhandler(DriveError)
def _drive_error(e: DriveError):
    return jsonify({"error": str(e)}), 500


@api_bp.errorhandler(Exception)
def _unexpected(e: Exception):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    logger.exception("Unerwarteter Fehler in %s", request.path)
    return jsonify({"error": "Failed to process request"}), 500

# -----------------------
# Collections
# -----------------------
@api_bp.get("/collections")
@api_login_required
def api_list_collections():
    db = get_session()
    try:
        cols = list_collections(db, order="name")
        return jsonify([
            {"id": c.id, "name": c.name, "iconEmoji": c.icon_emoji, "iconName": c.icon_name}
            for c in cols
        ])
    finally:
        db.close()


@api_bp.post("/collections")
@api_login_required
def api_create_collection():
    data = _json_body()
    db = get_session()
    try:
        c = create_collection(
            db,
            name=data.get("name") if isinstance(data.get("name"), str) else "",
            description=data.get("description"),
            icon_emoji=data.get("iconEmoji"),
            icon_name=data.get("iconName"),
        )
        return jsonify(serialize_collection(c)), 201
    finally:
        db.close()


@api_bp.get("/collections/<int:collection_id>")
@api_login_required
def api_get_collection(collection_id: int):
    db = get_session()
    try:
        c = get_collection(db, collection_id)
        data = serialize_collection(c, reward_count=len(c.rewards))
        data["rewards"] = [serialize_reward(r) for r in c.rewards]
        return jsonify(data)
    finally:
        db.close()


@api_bp.patch("/collections/<int:collection_id>")
@api_login_required
def api_update_collection(collection_id: int):
    changes = _pick(_json_body(), COLLECTION_FIELDS)
    db = get_session()
    try:
        c = update_collection(db, collection_id, changes)
        return jsonify(serialize_collection(c))
    finally:
        db.close()


@api_bp.delete("/collections/<int:collection_id>")
@api_login_required
def api_delete_collection(collection_id: int):
    db = get_session()
    try:
        delete_collection(db, collection_id)
        return "", 204
    finally:
        db.close()

# -----------------------
# Rewards
# -----------------------
@api_bp.get("/rewards")
@api_login_required
def api_list_rewards():
    collection_id = request.args.get("collectionId", type=int)
    active = (request.args.get("active") or "").lower() in ("1", "true", "yes")
    db = get_session()
    try:
        rows = list_rewards(db, active_only=active, collection_id=collection_id)
        return jsonify([serialize_reward(r) for r in rows])
    finally:
        db.close()


@api_bp.post("/rewards")
@api_login_required
def api_create_reward():
    data = _json_body()
    tag_ids = data.get("tagIds") or []
    if not isinstance(tag_ids, list):
        raise ValidationError("tagIds must be a list")
    db = get_session()
    try:
        r = create_reward(
            db,
            name=data.get("name"),
            rarity=data.get("rarity"),
            media_type=data.get("mediaType"),
            google_drive_file_id=data.get("googleDriveFileId") or data.get("primaryFileId"),
            google_drive_thumbnail_id=data.get("googleDriveThumbnailId") or data.get("thumbnailFileId"),
            collection_id=data.get("collectionId"),
            description=data.get("description"),
            tag_ids=tag_ids,
        )
        return jsonify(serialize_reward(r)), 201
    finally:
        db.close()


@api_bp.get("/rewards/<int:reward_id>")
@api_login_required
def api_get_reward(reward_id: int):
    db = get_session()
    try:
        return jsonify(serialize_reward(get_reward(db, reward_id)))
    finally:
        db.close()


@api_bp.patch("/rewards/<int:reward_id>")
@api_login_required
def api_update_reward(reward_id: int):
    changes = _pick(_json_body(), REWARD_FIELDS)
    db = get_session()
    try:
        return jsonify(serialize_reward(update_reward(db, reward_id, changes)))
    finally:
        db.close()


@api_bp.delete("/rewards/<int:reward_id>")
@api_login_required
def api_delete_reward(reward_id: int):
    db = get_session()
    try:
        delete_reward(db, reward_id)
        return "", 204
    finally:
        db.close()


@api_bp.put("/rewards/<int:reward_id>/tags")
@api_login_required
def api_set_reward_tags(reward_id: int):
    """Ersetzt die Tag-Liste komplett – [] entfernt alle Tags."""
    tag_ids = _json_body().get("tagIds")
    if not isinstance(tag_ids, list):
        raise ValidationError("payload 'tagIds' must be a list")
    db = get_session()
    try:
        set_reward_tags(db, reward_id, tag_ids)
        return jsonify(serialize_reward(get_reward(db, reward_id)))
    finally:
        db.close()


@api_bp.post("/rewards/upload")
@drive_token_required
def api_upload_reward():
    """Datei + Metadaten in einem Schritt: Upload nach Drive, dann DB-Eintrag (mit Kompensation)."""
    cfg = current_app.config["APP_CONFIG"]
    upload = prepare_upload(request.files.get("file"), cfg.upload_max_bytes)
    form = request.form
    tag_ids = form.getlist("tagIds")
    token = get_drive_token()
    gw = _gateway()

    db = get_session()
    try:
        r = create_reward_with_upload(
            db,
            gw,
            upload_kwargs={
                "data": upload.data,
                "filename": upload.filename,
                "mime_type": upload.mime_type,
                "access_token": token,
            },
            reward_kwargs={
                "name": form.get("name") or upload.filename,
                "rarity": form.get("rarity"),
                "media_type": form.get("mediaType") or upload.media_type,
                "collection_id": form.get("collectionId"),
                "description": form.get("description"),
                "google_drive_thumbnail_id": form.get("googleDriveThumbnailId"),
                "tag_ids": tag_ids,
            },
            resolve_folder=lambda: resolve_upload_folder(gw, cfg.drive, form.get("folderName"), token),
        )
        return jsonify(serialize_reward(r)), 201
    finally:
        db.close()

# -----------------------
# Tags
# -----------------------
@api_bp.get("/tags")
@api_login_required
def api_list_tags():
    db = get_session()
    try:
        return jsonify([serialize_tag(t, n) for t, n in list_tags_with_counts(db)])
    finally:
        db.close()


@api_bp.post("/tags")
@api_login_required
def api_create_tag():
    data = _json_body()
    db = get_session()
    try:
        name = data.get("name") if isinstance(data.get("name"), str) else ""
        t = create_tag(db, name, data.get("color"))
        return jsonify(serialize_tag(t)), 201
    finally:
        db.close()


@api_bp.delete("/tags/<int:tag_id>")
@api_login_required
def api_delete_tag(tag_id: int):
    db = get_session()
    try:
        delete_tag(db, tag_id)
        return "", 204
    finally:
        db.close()

# -----------------------
# Dashboard-Statistik
# -----------------------
@api_bp.get("/stats")
@api_login_required
def api_stats():
    db = get_session()
    try:
        return jsonify(get_dashboard_stats(db))
    finally:
        db.close()

# -----------------------
# Upload (nur Drive, ohne DB)
# -----------------------
@api_bp.post("/upload")
@drive_token_required
def api_upload():
    cfg = current_app.config["APP_CONFIG"]
    # Typ und Größe werden geprüft, bevor irgendetwas zu Drive geht
    upload = prepare_upload(request.files.get("file"), cfg.upload_max_bytes)
    token = get_drive_token()
    gw = _gateway()

    folder_id = resolve_upload_folder(gw, cfg.drive, request.form.get("folderName"), token)

    result = gw.upload(
        upload.data,
        upload.filename,
        upload.mime_type,
        folder_id=folder_id,
        access_token=token,
    )
    return jsonify({
        "success": True,
        "fileId": result.file_id,
        "filename": result.filename,
        "webViewLink": result.view_url,
        "mimeType": upload.mime_type,
        # Videos: Drive erzeugt das Vorschaubild selbst
        "thumbnailUrl": thumbnail_url(result.file_id) if upload.media_type == "video" else None,
    })

# -----------------------
# Google Drive Browser
# -----------------------
@api_bp.get("/google-drive/files")
@drive_token_required
def api_drive_files():
    folder_id = request.args.get("folderId") or None
    if folder_id:
        validate_drive_id(folder_id, "folderId")
    listing = _gateway().list_files(
        get_drive_token(),
        folder_id=folder_id,
        media_only=True,
        page_token=request.args.get("pageToken") or None,
    )
    payload: Dict[str, Any] = {"files": listing.files}
    if listing.next_page_token:
        payload["nextPageToken"] = listing.next_page_token
    return jsonify(payload)


@api_bp.get("/google-drive/folders")
@drive_token_required
def api_drive_folders():
    parent_id = request.args.get("parentId") or None
    if parent_id:
        validate_drive_id(parent_id, "parentId")
    listing = _gateway().list_folders(
        get_drive_token(),
        parent_id=parent_id,
        page_token=request.args.get("pageToken") or None,
    )
    payload: Dict[str, Any] = {"folders": listing.folders}
    if listing.next_page_token:
        payload["nextPageToken"] = listing.next_page_token
    return jsonify(payload)

# -----------------------
# Manifest (öffentlich, CORS offen)
# -----------------------
@api_bp.route("/manifest", methods=["GET", "OPTIONS"])
def api_manifest():
    if request.method == "OPTIONS":
        return _with_cors(make_response("", 204))
    db = get_session()
    try:
        resp = jsonify(build_manifest(db))
    finally:
        db.close()
    resp.headers["Cache-Control"] = "no-store"
    return _with_cors(resp)


@api_bp.route("/manifest/legacy", methods=["GET", "OPTIONS"])
def api_manifest_legacy():
    """Altes 1.0-Format – nur für ältere App-Versionen."""
    if request.method == "OPTIONS":
        return _with_cors(make_response("", 204))
    db = get_session()
    try:
        resp = jsonify(build_legacy_manifest(db))
    finally:
        db.close()
    resp.headers["Deprecation"] = "true"
    resp.headers["Cache-Control"] = "no-store"
    return _with_cors(resp)
