# questcraft_cms/services/drive_service.py
"""
Google-Drive-Gateway.

Dünne Hülle um google-api-python-client. Aufrufe laufen entweder mit dem
OAuth-Token des eingeloggten Nutzers oder – ohne Token – mit dem
Service-Account aus der DriveConfig.
"""
from __future__ import annotations
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from questcraft_cms.config import DriveConfig

logger = logging.getLogger(__name__)

DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.file"
FOLDER_MIME = "application/vnd.google-apps.folder"
PAGE_SIZE = 100

_DRIVE_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# ===== Fehler =====

class DriveError(Exception):
    """Generischer Fehler an der Drive-Grenze; die Ursache steht nur im Log (und __cause__)."""


class InvalidDriveIdError(ValueError):
    pass

# ===== IDs / URLs =====

def is_valid_drive_id(value: Optional[str]) -> bool:
    """Drive-IDs bestehen nur aus Buchstaben, Ziffern, '_' und '-'."""
    return bool(value) and _DRIVE_ID.match(value) is not None


def validate_drive_id(value: str, label: str = "id") -> str:
    if not is_valid_drive_id(value):
        raise InvalidDriveIdError(f"Invalid {label}")
    return value


def thumbnail_url(file_id: str, size: int = 800) -> str:
    """Reines String-Template auf den öffentlichen Thumbnail-Endpunkt – kein Netzwerkaufruf."""
    return f"https://drive.google.com/thumbnail?id={file_id}&sz=w{size}"


def _quote(value: str) -> str:
    # Literal für die Drive-Query (q=...)
    return value.replace("\\", "\\\\").replace("'", "\\'")

# ===== Ergebnis-Typen =====

@dataclass
class UploadResult:
    file_id: str
    filename: str
    view_url: Optional[str] = None
    content_url: Optional[str] = None


@dataclass
class FileListing:
    files: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass
class FolderListing:
    folders: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None

# ===== Gateway =====

class DriveGateway:
    def __init__(self, config: DriveConfig):
        self.config = config

    # --- Credentials / Client ---
    def _credentials(self, access_token: Optional[str]):
        if access_token:
            return UserCredentials(
                token=access_token,
                client_id=self.config.client_id or None,
                client_secret=self.config.client_secret or None,
            )
        if not self.config.has_service_account:
            raise DriveError("No Google Drive credentials configured")
        return service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": self.config.service_account_email,
                "private_key": self.config.service_account_private_key,
                "token_uri": "https://oauth2.googleapis.com/token",
            },
            scopes=[DRIVE_SCOPE],
        )

    def _service(self, access_token: Optional[str] = None):
        return build("drive", "v3", credentials=self._credentials(access_token), cache_discovery=False)

    # --- Upload ---
    def upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        folder_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> UploadResult:
        """
        Lädt die Bytes hoch und gibt die Datei danach für "anyone with link" frei.
        Ohne Token (Service-Account) werden Shared Drives mit unterstützt.
        """
        if folder_id:
            validate_drive_id(folder_id, "folderId")
        metadata: Dict[str, Any] = {"name": filename}
        if folder_id:
            metadata["parents"] = [folder_id]
        shared = access_token is None

        try:
            drive = self._service(access_token)
            media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
            created = drive.files().create(
                body=metadata,
                media_body=media,
                fields="id, name, webViewLink, webContentLink",
                supportsAllDrives=shared,
            ).execute()

            file_id = created.get("id")
            if file_id:
                drive.permissions().create(
                    fileId=file_id,
                    body={"role": "reader", "type": "anyone"},
                    supportsAllDrives=shared,
                ).execute()
        except Exception as e:
            logger.exception("Upload nach Google Drive fehlgeschlagen (%s)", filename)
            raise DriveError("Failed to upload file to Google Drive") from e

        logger.info("Drive-Upload ok: %s -> %s", filename, file_id)
        return UploadResult(
            file_id=file_id,
            filename=created.get("name") or filename,
            view_url=created.get("webViewLink"),
            content_url=created.get("webContentLink"),
        )

    # --- Löschen ---
    def delete(self, file_id: str, access_token: Optional[str] = None) -> bool:
        validate_drive_id(file_id, "fileId")
        try:
            self._service(access_token).files().delete(fileId=file_id).execute()
        except Exception as e:
            # "nicht gefunden" wird nicht gesondert behandelt
            logger.exception("Löschen in Google Drive fehlgeschlagen (%s)", file_id)
            raise DriveError("Failed to delete file from Google Drive") from e
        return True

    # --- Dateien auflisten ---
    def list_files(
        self,
        access_token: Optional[str],
        folder_id: Optional[str] = None,
        media_only: bool = False,
        page_token: Optional[str] = None,
    ) -> FileListing:
        query = "trashed=false"
        if folder_id:
            validate_drive_id(folder_id, "folderId")
            query = f"'{folder_id}' in parents and {query}"
        if media_only:
            query = f"{query} and (mimeType contains 'image/' or mimeType contains 'video/')"

        params: Dict[str, Any] = {
            "q": query,
            "fields": "nextPageToken, files(id, name, mimeType, thumbnailLink, size, createdTime, webViewLink)",
            "orderBy": "createdTime desc",
            "pageSize": PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token

        try:
            resp = self._service(access_token).files().list(**params).execute()
        except Exception as e:
            logger.exception("Dateiliste aus Google Drive fehlgeschlagen")
            raise DriveError("Failed to list files from Google Drive") from e

        files = []
        for f in resp.get("files", []):
            item = {
                "id": f.get("id"),
                "name": f.get("name"),
                "mimeType": f.get("mimeType"),
                "createdTime": f.get("createdTime"),
                "webViewLink": f.get("webViewLink"),
            }
            # optionale Felder nur wenn vorhanden
            if f.get("thumbnailLink"):
                item["thumbnailLink"] = f["thumbnailLink"]
            if f.get("size"):
                item["size"] = f["size"]
            files.append(item)
        return FileListing(files=files, next_page_token=resp.get("nextPageToken"))

    # --- Ordner auflisten ---
    def list_folders(
        self,
        access_token: Optional[str],
        parent_id: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> FolderListing:
        query = f"trashed=false and mimeType='{FOLDER_MIME}'"
        if parent_id:
            validate_drive_id(parent_id, "parentId")
            query = f"'{parent_id}' in parents and {query}"

        params: Dict[str, Any] = {
            "q": query,
            "fields": "nextPageToken, files(id, name, createdTime)",
            "orderBy": "name",
            "pageSize": PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token

        try:
            resp = self._service(access_token).files().list(**params).execute()
        except Exception as e:
            logger.exception("Ordnerliste aus Google Drive fehlgeschlagen")
            raise DriveError("Failed to list folders from Google Drive") from e

        folders = [
            {"id": f.get("id"), "name": f.get("name"), "createdTime": f.get("createdTime")}
            for f in resp.get("files", [])
        ]
        return FolderListing(folders=folders, next_page_token=resp.get("nextPageToken"))

    # --- Ordner finden/anlegen ---
    def get_or_create_folder(self, name: str, access_token: Optional[str] = None) -> str:
        """Sucht einen Ordner per exaktem Namen; legt ihn sonst an und gibt ihn öffentlich frei."""
        name = (name or "").strip()
        if not name:
            raise ValueError("folder name required")
        query = f"name='{_quote(name)}' and mimeType='{FOLDER_MIME}' and trashed=false"

        try:
            drive = self._service(access_token)
            found = drive.files().list(q=query, fields="files(id, name)", spaces="drive").execute()
            hits = found.get("files") or []
            if hits:
                return hits[0]["id"]

            folder = drive.files().create(
                body={"name": name, "mimeType": FOLDER_MIME},
                fields="id",
            ).execute()
            folder_id = folder["id"]
            drive.permissions().create(
                fileId=folder_id,
                body={"role": "reader", "type": "anyone"},
            ).execute()
        except Exception as e:
            logger.exception("Ordner '%s' in Google Drive nicht gefunden/angelegt", name)
            raise DriveError("Failed to get or create folder") from e

        logger.info("Drive-Ordner angelegt: %s -> %s", name, folder_id)
        return folder_id


def resolve_upload_folder(
    gateway,
    config: DriveConfig,
    folder_name: Optional[str] = None,
    access_token: Optional[str] = None,
) -> str:
    """
    Zielordner für Uploads: feste GOOGLE_DRIVE_FOLDER_ID, sonst Ordner nach Namen
    (folderName aus dem Request oder der konfigurierte Standardname) suchen/anlegen.
    """
    if config.default_folder_id:
        return config.default_folder_id
    name = (folder_name or "").strip() or config.default_folder_name
    return gateway.get_or_create_folder(name, access_token=access_token)
