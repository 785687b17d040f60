# questcraft_cms/config.py
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Mapping, Any

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "questcraft.db"


def _env(env: Mapping[str, Any], key: str, default: str = "") -> str:
    v = env.get(key)
    if v is None:
        return default
    return str(v).strip()


@dataclass(frozen=True)
class DriveConfig:
    """Zugangsdaten für Google Drive – einmal beim Start gebaut und an den Gateway übergeben."""
    client_id: str = ""
    client_secret: str = ""
    service_account_email: str = ""
    service_account_private_key: str = ""
    default_folder_id: Optional[str] = None
    default_folder_name: str = "QuestCraft Rewards"

    @property
    def has_service_account(self) -> bool:
        return bool(self.service_account_email and self.service_account_private_key)


@dataclass(frozen=True)
class AppConfig:
    secret_key: str = "dev-secret-change-me"
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    redirect_uri: str = "http://localhost:8000/auth/google/callback"
    upload_max_mb: int = 50
    log_level: str = "INFO"
    drive: DriveConfig = field(default_factory=DriveConfig)

    @property
    def upload_max_bytes(self) -> int:
        return self.upload_max_mb * 1024 * 1024

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, Any]] = None) -> "AppConfig":
        env = os.environ if env is None else env

        # Private Key kommt aus .env meist mit literalen "\n"
        private_key = _env(env, "GOOGLE_DRIVE_PRIVATE_KEY").replace("\\n", "\n")

        try:
            max_mb = int(_env(env, "UPLOAD_MAX_MB", "50"))
        except ValueError:
            max_mb = 50

        drive = DriveConfig(
            client_id=_env(env, "GOOGLE_CLIENT_ID"),
            client_secret=_env(env, "GOOGLE_CLIENT_SECRET"),
            service_account_email=_env(env, "GOOGLE_DRIVE_CLIENT_EMAIL"),
            service_account_private_key=private_key,
            default_folder_id=_env(env, "GOOGLE_DRIVE_FOLDER_ID") or None,
            default_folder_name=_env(env, "GOOGLE_DRIVE_DEFAULT_FOLDER_NAME", "QuestCraft Rewards"),
        )
        return cls(
            secret_key=_env(env, "SECRET_KEY", "dev-secret-change-me"),
            database_url=_env(env, "DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
            redirect_uri=_env(env, "GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/google/callback"),
            upload_max_mb=max_mb,
            log_level=_env(env, "LOG_LEVEL", "INFO").upper(),
            drive=drive,
        )
