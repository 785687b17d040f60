# questcraft_cms/__init__.py
from __future__ import annotations
import logging
import os
from datetime import timedelta
from pathlib import Path

import click
from flask import Flask, request, session, flash, redirect, url_for, jsonify, render_template
from werkzeug.exceptions import RequestEntityTooLarge
from dotenv import load_dotenv

from questcraft_cms.config import AppConfig
from questcraft_cms.db import init_db, session_scope
from questcraft_cms.blueprints import register_blueprints
from questcraft_cms.services.drive_service import DriveGateway, thumbnail_url
from questcraft_cms.services.collection_service import ICON_REGISTRY

logger = logging.getLogger(__name__)

SEED_COLLECTION_NAME = "Default Collection"
SEED_COLLECTION_EMOJI = "🎁"


def _wants_json() -> bool:
    return request.path.startswith("/api/") or request.accept_mimetypes.best == "application/json"


def create_app(overrides: dict | None = None) -> Flask:
    load_dotenv()
    overrides = dict(overrides or {})

    # Overrides (Tests) gehen vor Umgebungsvariablen
    env = dict(os.environ)
    env.update({k: v for k, v in overrides.items() if isinstance(v, str)})
    cfg = AppConfig.from_env(env)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["DATABASE_URL"] = cfg.database_url

    # Sessions härten
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=timedelta(hours=8),
    )

    # Request-Limit knapp über dem Datei-Limit (Multipart-Overhead); die
    # eigentliche Prüfung pro Datei macht media_service.prepare_upload
    app.config["MAX_CONTENT_LENGTH"] = cfg.upload_max_bytes + 1024 * 1024
    app.config.update(overrides)

    init_db(cfg.database_url)

    # Ein Gateway pro App, Credentials kommen ausschließlich aus der AppConfig
    app.extensions["drive_gateway"] = DriveGateway(cfg.drive)

    register_blueprints(app)
    app.jinja_env.globals.update(APP_NAME="QuestCraft CMS")

    @app.context_processor
    def inject_globals():
        return {
            "ICONS": ICON_REGISTRY,
            "thumbnail_url": thumbnail_url,
            "CURRENT_USER": session.get("user"),
        }

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(_e):
        msg = f"File too large. Maximum size: {cfg.upload_max_mb}MB"
        if _wants_json():
            return jsonify({"error": msg}), 413
        flash(f"Upload zu groß. Maximal erlaubt: {cfg.upload_max_mb} MB.", "error")
        return redirect(url_for("dashboard.rewards"))

    @app.errorhandler(404)
    def not_found(_e):
        if _wants_json():
            return jsonify({"error": "Not found"}), 404
        return render_template("404.html"), 404

    _register_cli(app)
    logger.debug("App erstellt (DB: %s)", cfg.database_url)
    return app

# =====================================================================
# CLI
# =====================================================================
def _register_cli(app: Flask) -> None:
    from questcraft_cms.models.collection import Collection
    from questcraft_cms.services.collection_service import create_collection
    from questcraft_cms.services.manifest_service import build_manifest, serialize_manifest
    from sqlalchemy import select

    @app.cli.command("seed")
    def seed():
        """Legt die Default-Collection an, falls sie fehlt."""
        with session_scope() as db:
            existing = db.execute(
                select(Collection).where(Collection.name == SEED_COLLECTION_NAME)
            ).scalar_one_or_none()
            if existing:
                click.echo(f"'{SEED_COLLECTION_NAME}' existiert bereits (id={existing.id}).")
                return
            c = create_collection(
                db,
                name=SEED_COLLECTION_NAME,
                description="Standard-Collection für neue Rewards",
                icon_emoji=SEED_COLLECTION_EMOJI,
                icon_name="Gift",
            )
            click.echo(f"'{c.name}' angelegt (id={c.id}).")

    @app.cli.command("export-manifest")
    @click.argument("path", default="manifest.json", type=click.Path(dir_okay=False))
    def export_manifest(path):
        """Schreibt das aktuelle Manifest (2.0) als JSON-Datei."""
        with session_scope() as db:
            body = serialize_manifest(build_manifest(db))
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(body + "\n", encoding="utf-8")
        click.echo(f"Manifest geschrieben: {target}")
