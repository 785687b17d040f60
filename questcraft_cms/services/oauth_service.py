# questcraft_cms/services/oauth_service.py
from __future__ import annotations
import logging
import time
from calendar import timegm
from typing import Optional, Dict, Any

import requests
from google_auth_oauthlib.flow import Flow

from questcraft_cms.config import DriveConfig

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
USERINFO_URI = "https://openidconnect.googleapis.com/v1/userinfo"

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/drive.file",
]

# Token wird erneuert, sobald er in weniger als 5 Minuten abläuft
REFRESH_MARGIN_S = 300


def build_flow(
    config: DriveConfig,
    redirect_uri: str,
    state: Optional[str] = None,
    code_verifier: Optional[str] = None,
) -> Flow:
    flow = Flow.from_client_config(
        {
            "web": {
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [redirect_uri],
            }
        },
        scopes=SCOPES,
        state=state,
        code_verifier=code_verifier,
    )
    flow.redirect_uri = redirect_uri
    return flow


def authorization_url(config: DriveConfig, redirect_uri: str) -> tuple[str, str, Optional[str]]:
    """
    Liefert (url, state, code_verifier) für den Redirect zu Google.
    Der PKCE-Verifier muss bis zum Callback in der Session liegen.
    """
    flow = build_flow(config, redirect_uri)
    url, state = flow.authorization_url(access_type="offline", prompt="consent", include_granted_scopes="true")
    return url, state, flow.code_verifier


def exchange_code(
    config: DriveConfig,
    redirect_uri: str,
    state: str,
    authorization_response: str,
    code_verifier: Optional[str] = None,
) -> Dict[str, Any]:
    """Tauscht den Code (mit dem PKCE-Verifier aus dem Login-Schritt) gegen Tokens."""
    flow = build_flow(config, redirect_uri, state=state, code_verifier=code_verifier)
    flow.fetch_token(authorization_response=authorization_response)
    creds = flow.credentials
    # google-auth liefert expiry als naive UTC
    expires_at = timegm(creds.expiry.utctimetuple()) if creds.expiry else None
    return {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "expires_at": expires_at,
    }


def fetch_userinfo(access_token: str) -> Dict[str, Any]:
    resp = requests.get(USERINFO_URI, headers={"Authorization": f"Bearer {access_token}"}, timeout=15)
    resp.raise_for_status()
    data = resp.json()
    return {"email": data.get("email"), "name": data.get("name"), "picture": data.get("picture")}


def needs_refresh(token: Dict[str, Any], now: Optional[float] = None) -> bool:
    expires_at = token.get("expires_at")
    if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
        return False
    now = time.time() if now is None else now
    return now >= expires_at - REFRESH_MARGIN_S


def refresh_session_token(token: Dict[str, Any], config: DriveConfig, now: Optional[float] = None) -> Dict[str, Any]:
    """
    Erneuert den Access-Token, falls er bald abläuft. Genau ein Versuch;
    bei Fehlern bleibt der alte Token stehen (nächster Drive-Call scheitert dann mit 403/401).
    Gibt das (ggf. aktualisierte) Token-Dict zurück.
    """
    if not token or not needs_refresh(token, now):
        return token
    if not token.get("refresh_token"):
        logger.warning("Access-Token läuft ab, aber kein Refresh-Token in der Session")
        return token

    try:
        resp = requests.post(
            TOKEN_URI,
            data={
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "refresh_token": token["refresh_token"],
                "grant_type": "refresh_token",
            },
            timeout=15,
        )
    except requests.RequestException as e:
        logger.warning("Token-Refresh fehlgeschlagen: %s", e)
        return token

    if not resp.ok:
        logger.warning("Token-Refresh abgelehnt (HTTP %s)", resp.status_code)
        return token

    data = resp.json()
    now = time.time() if now is None else now
    refreshed = dict(token)
    refreshed["access_token"] = data.get("access_token", token.get("access_token"))
    refreshed["expires_at"] = int(now) + int(data.get("expires_in", 3600))
    logger.debug("Access-Token erneuert, gültig bis %s", refreshed["expires_at"])
    return refreshed
