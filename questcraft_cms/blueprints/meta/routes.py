# questcraft_cms/blueprints/meta/routes.py
import logging
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from questcraft_cms.db import get_session

meta_bp = Blueprint("meta", __name__, url_prefix="")
logger = logging.getLogger(__name__)


@meta_bp.get("/health")
def health():
    """Öffentlicher Schnellcheck inkl. DB-Ping."""
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Healthcheck: Datenbank nicht erreichbar")
        return jsonify({"status": "error", "database": "unreachable"}), 503
    finally:
        db.close()
    return jsonify({"status": "ok"}), 200
