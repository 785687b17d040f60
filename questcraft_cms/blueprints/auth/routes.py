import logging
from functools import wraps
from flask import Blueprint, render_template, request, redirect, url_for, session, flash, jsonify, current_app

from questcraft_cms.services.oauth_service import (
    authorization_url,
    exchange_code,
    fetch_userinfo,
    refresh_session_token,
)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
logger = logging.getLogger(__name__)

NO_DRIVE_ACCESS = "No Google Drive access. Please sign out and sign in again to grant Drive permissions."


def _config():
    return current_app.config["APP_CONFIG"]

# === Session-Helfer ===
def get_drive_token() -> str | None:
    token = session.get("google") or {}
    return token.get("access_token")


@auth_bp.before_app_request
def refresh_google_token():
    """Pro Request höchstens ein Refresh-Versuch, wenn der Token bald abläuft."""
    token = session.get("google")
    if not token:
        return
    refreshed = refresh_session_token(token, _config().drive)
    if refreshed is not token:
        session["google"] = refreshed

# === Decorators ===
def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            flash("Bitte einloggen.", "error")
            return redirect(url_for("auth.login"))
        return f(*args, **kwargs)
    return decorated


def api_login_required(f):
    """Wie login_required, aber für JSON-Endpunkte (401 statt Redirect)."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated


def drive_token_required(f):
    """Session + Drive-Token nötig; ohne Token 403, damit der Client neu anmelden lässt."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            return jsonify({"error": "Unauthorized"}), 401
        if not get_drive_token():
            return jsonify({"error": NO_DRIVE_ACCESS}), 403
        return f(*args, **kwargs)
    return decorated

# === Login / Logout ===
@auth_bp.get("/login")
def login():
    if session.get("user"):
        return redirect(url_for("dashboard.index"))
    return render_template("login.html")


@auth_bp.get("/google")
def google_login():
    cfg = _config()
    if not cfg.drive.client_id:
        flash("Google-Login ist nicht konfiguriert (GOOGLE_CLIENT_ID fehlt).", "error")
        return redirect(url_for("auth.login"))
    url, state, verifier = authorization_url(cfg.drive, cfg.redirect_uri)
    session["oauth_state"] = state
    session["oauth_code_verifier"] = verifier
    return redirect(url)


@auth_bp.get("/google/callback")
def google_callback():
    cfg = _config()
    if request.args.get("error"):
        flash(f"Google-Login abgebrochen: {request.args.get('error')}", "error")
        return redirect(url_for("auth.login"))

    state = request.args.get("state")
    expected = session.pop("oauth_state", None)
    verifier = session.pop("oauth_code_verifier", None)
    if not state or state != expected:
        flash("Ungültiger Login-Status. Bitte erneut versuchen.", "error")
        return redirect(url_for("auth.login"))

    try:
        token = exchange_code(cfg.drive, cfg.redirect_uri, state, request.url, code_verifier=verifier)
        user = fetch_userinfo(token["access_token"])
    except Exception:
        logger.exception("Google-OAuth-Callback fehlgeschlagen")
        flash("Anmeldung bei Google fehlgeschlagen.", "error")
        return redirect(url_for("auth.login"))

    session.permanent = True  # nutzt PERMANENT_SESSION_LIFETIME
    session["user"] = user
    session["google"] = token
    logger.info("Login: %s", user.get("email"))
    flash("Erfolgreich eingeloggt.", "success")
    return redirect(url_for("dashboard.index"))


@auth_bp.route("/logout", methods=["GET", "POST"])
def logout():
    session.clear()
    flash("Abgemeldet.", "info")
    return redirect(url_for("auth.login"))
