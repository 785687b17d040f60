# questcraft_cms/blueprints/dashboard/routes.py
import logging
from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, make_response

from questcraft_cms.db import get_session
from questcraft_cms.errors import ServiceError, NotFoundError
from questcraft_cms.blueprints.auth.routes import login_required, get_drive_token
from questcraft_cms.models.reward import VALID_RARITIES
from questcraft_cms.services.collection_service import (
    ICON_REGISTRY,
    list_collections,
    get_collection,
    create_collection,
    update_collection,
    delete_collection,
    count_rewards_by_collection,
)
from questcraft_cms.services.reward_service import (
    list_rewards,
    get_reward,
    create_reward,
    update_reward,
    delete_reward,
    create_reward_with_upload,
    get_dashboard_stats,
)
from questcraft_cms.services.tag_service import list_tags, list_tags_with_counts, create_tag, delete_tag
from questcraft_cms.services.media_service import prepare_upload, guess_kind
from questcraft_cms.services.drive_service import DriveError, InvalidDriveIdError, resolve_upload_folder, validate_drive_id
from questcraft_cms.services.manifest_service import build_manifest, serialize_manifest

dashboard_bp = Blueprint("dashboard", __name__)
logger = logging.getLogger(__name__)


def _not_found():
    return render_template("404.html"), 404


@dashboard_bp.route("/")
@login_required
def index():
    db = get_session()
    try:
        return render_template(
            "dashboard.html",
            stats=get_dashboard_stats(db),
            recent=list_rewards(db, limit=5),
        )
    finally:
        db.close()

# ---------------------- COLLECTIONS ----------------------
@dashboard_bp.route("/collections", methods=["GET", "POST"])
@login_required
def collections():
    db = get_session()
    try:
        if request.method == "POST":
            try:
                c = create_collection(
                    db,
                    name=request.form.get("name", ""),
                    description=request.form.get("description"),
                    icon_emoji=request.form.get("icon_emoji"),
                    icon_name=request.form.get("icon_name"),
                )
                flash(f"Collection „{c.name}“ angelegt.", "success")
            except ServiceError as e:
                flash(e.message, "error")
            return redirect(url_for("dashboard.collections"))

        return render_template(
            "collections.html",
            collections=list_collections(db),
            counts=count_rewards_by_collection(db),
            icons=ICON_REGISTRY,
        )
    finally:
        db.close()


@dashboard_bp.route("/collections/<int:collection_id>", methods=["GET", "POST"])
@login_required
def collection_detail(collection_id: int):
    db = get_session()
    try:
        try:
            c = get_collection(db, collection_id)
        except NotFoundError:
            return _not_found()

        if request.method == "POST":
            action = request.form.get("action")
            try:
                if action == "toggle":
                    update_collection(db, collection_id, {"is_active": not c.is_active})
                    flash("Status geändert.", "success")
                elif action == "delete":
                    delete_collection(db, collection_id)
                    flash("Collection gelöscht.", "success")
                    return redirect(url_for("dashboard.collections"))
            except ServiceError as e:
                flash(e.message, "error")
            return redirect(url_for("dashboard.collection_detail", collection_id=collection_id))

        return render_template("collection_detail.html", collection=c)
    finally:
        db.close()

# ---------------------- REWARDS ----------------------
@dashboard_bp.route("/rewards", methods=["GET"])
@login_required
def rewards():
    db = get_session()
    try:
        cols = list_collections(db)
        grouped = {c.id: [] for c in cols}
        for r in list_rewards(db):
            grouped.setdefault(r.collection_id, []).append(r)
        return render_template(
            "rewards.html",
            collections=cols,
            grouped=grouped,
            tags=list_tags(db),
            rarities=VALID_RARITIES,
            has_drive=bool(get_drive_token()),
        )
    finally:
        db.close()


@dashboard_bp.route("/rewards/upload", methods=["POST"])
@login_required
def rewards_upload():
    token = get_drive_token()
    if not token:
        flash("Kein Google-Drive-Zugriff. Bitte ab- und wieder anmelden.", "error")
        return redirect(url_for("dashboard.rewards"))

    cfg = current_app.config["APP_CONFIG"]
    db = get_session()
    try:
        upload = prepare_upload(request.files.get("file"), cfg.upload_max_bytes)
        gw = current_app.extensions["drive_gateway"]
        folder_name = request.form.get("folder_name")
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
                "name": request.form.get("name") or upload.filename,
                "rarity": request.form.get("rarity"),
                "media_type": upload.media_type,
                "collection_id": request.form.get("collection_id"),
                "description": request.form.get("description"),
                "tag_ids": request.form.getlist("tag_ids"),
            },
            resolve_folder=lambda: resolve_upload_folder(gw, cfg.drive, folder_name, token),
        )
        flash(f"Reward „{r.name}“ hochgeladen.", "success")
    except ServiceError as e:
        flash(e.message, "error")
    except DriveError:
        flash("Upload zu Google Drive fehlgeschlagen.", "error")
    finally:
        db.close()
    return redirect(url_for("dashboard.rewards"))


@dashboard_bp.route("/rewards/drive", methods=["GET"])
@login_required
def rewards_from_drive():
    """Ordner/Dateien aus Drive durchblättern und eine vorhandene Datei als Reward übernehmen."""
    token = get_drive_token()
    if not token:
        flash("Kein Google-Drive-Zugriff. Bitte ab- und wieder anmelden.", "error")
        return redirect(url_for("dashboard.rewards"))

    folder_id = request.args.get("folderId") or None
    page_token = request.args.get("pageToken") or None
    gw = current_app.extensions["drive_gateway"]
    try:
        if folder_id:
            validate_drive_id(folder_id, "folderId")
        folders = gw.list_folders(token, parent_id=folder_id)
        files = gw.list_files(token, folder_id=folder_id, media_only=True, page_token=page_token)
    except InvalidDriveIdError as e:
        flash(str(e), "error")
        return redirect(url_for("dashboard.rewards_from_drive"))
    except DriveError:
        flash("Google Drive konnte nicht gelesen werden.", "error")
        return redirect(url_for("dashboard.rewards"))

    db = get_session()
    try:
        return render_template(
            "drive_picker.html",
            folder_id=folder_id,
            folders=folders.folders,
            files=files.files,
            next_page_token=files.next_page_token,
            collections=list_collections(db, order="name"),
            tags=list_tags(db),
            rarities=VALID_RARITIES,
        )
    finally:
        db.close()


@dashboard_bp.route("/rewards/drive", methods=["POST"])
@login_required
def rewards_from_drive_create():
    form = request.form
    back = url_for("dashboard.rewards_from_drive", folderId=form.get("folder_id") or None)
    db = get_session()
    try:
        file_id = validate_drive_id(form.get("google_drive_file_id") or "", "googleDriveFileId")
        r = create_reward(
            db,
            name=form.get("name", ""),
            rarity=form.get("rarity"),
            media_type=guess_kind((form.get("mime_type") or "").lower()),
            google_drive_file_id=file_id,
            collection_id=form.get("collection_id"),
            description=form.get("description"),
            tag_ids=form.getlist("tag_ids"),
        )
        flash(f"Reward „{r.name}“ aus Drive übernommen.", "success")
        return redirect(url_for("dashboard.reward_edit", reward_id=r.id))
    except InvalidDriveIdError as e:
        flash(str(e), "error")
    except ServiceError as e:
        db.rollback()
        flash(e.message, "error")
    finally:
        db.close()
    return redirect(back)


@dashboard_bp.route("/rewards/<int:reward_id>/edit", methods=["GET", "POST"])
@login_required
def reward_edit(reward_id: int):
    db = get_session()
    try:
        try:
            r = get_reward(db, reward_id)
        except NotFoundError:
            return _not_found()

        if request.method == "POST":
            if request.form.get("action") == "delete":
                delete_reward(db, reward_id)
                flash("Reward gelöscht (Datei bleibt in Drive).", "success")
                return redirect(url_for("dashboard.rewards"))
            try:
                update_reward(db, reward_id, {
                    "name": request.form.get("name", ""),
                    "description": request.form.get("description"),
                    "rarity": request.form.get("rarity"),
                    "collection_id": request.form.get("collection_id"),
                    "is_active": request.form.get("is_active") == "on",
                    "tag_ids": request.form.getlist("tag_ids"),
                })
                flash("Gespeichert.", "success")
            except ServiceError as e:
                db.rollback()
                flash(e.message, "error")
            return redirect(url_for("dashboard.reward_edit", reward_id=reward_id))

        return render_template(
            "reward_edit.html",
            reward=r,
            collections=list_collections(db, order="name"),
            tags=list_tags(db),
            selected={t.id for t in r.tags},
            rarities=VALID_RARITIES,
        )
    finally:
        db.close()

# ---------------------- TAGS ----------------------
@dashboard_bp.route("/tags", methods=["GET", "POST"])
@login_required
def tags():
    db = get_session()
    try:
        if request.method == "POST":
            try:
                if request.form.get("action") == "delete":
                    delete_tag(db, request.form.get("tag_id", type=int))
                    flash("Tag gelöscht.", "success")
                else:
                    t = create_tag(db, request.form.get("name", ""), request.form.get("color"))
                    flash(f"Tag „{t.name}“ angelegt.", "success")
            except ServiceError as e:
                flash(e.message, "error")
            return redirect(url_for("dashboard.tags"))

        return render_template("tags.html", tags=list_tags_with_counts(db))
    finally:
        db.close()

# ---------------------- MANIFEST ----------------------
@dashboard_bp.route("/manifest")
@login_required
def manifest():
    db = get_session()
    try:
        m = build_manifest(db)
        return render_template(
            "manifest.html",
            manifest=m,
            manifest_json=serialize_manifest(m),
            stats=get_dashboard_stats(db),
        )
    finally:
        db.close()


@dashboard_bp.route("/manifest/download")
@login_required
def manifest_download():
    db = get_session()
    try:
        body = serialize_manifest(build_manifest(db))
    finally:
        db.close()
    resp = make_response(body)
    resp.headers["Content-Type"] = "application/json; charset=utf-8"
    resp.headers["Content-Disposition"] = "attachment; filename=manifest.json"
    return resp
