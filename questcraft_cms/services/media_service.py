# questcraft_cms/services/media_service.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename
from questcraft_cms.errors import ValidationError

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/quicktime",
)


@dataclass
class PreparedUpload:
    data: bytes
    filename: str
    mime_type: str

    @property
    def media_type(self) -> str:
        return guess_kind(self.mime_type)

# ===== Hilfsfunktionen =====

def guess_kind(mime: str) -> str:
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("image/"):
        return "image"
    return "file"


def is_allowed_mime(mime: str, allowed: tuple[str, ...] = ALLOWED_MIME_TYPES) -> bool:
    """Nur exakt gelistete MIME-Typen (JPEG, PNG, GIF, WebP, MP4, MOV)."""
    if not mime:
        return False
    return mime in allowed


def check_upload(mime: str, size: Optional[int], max_bytes: int) -> None:
    """Prüft Typ und deklarierte Größe – läuft vor jedem Drive-Aufruf."""
    if not is_allowed_mime(mime):
        raise ValidationError("Invalid file type. Allowed: JPEG, PNG, GIF, WebP, MP4, MOV")
    if size is not None and size > max_bytes:
        raise ValidationError(f"File too large. Maximum size: {max_bytes // (1024 * 1024)}MB")


def prepare_upload(f: Optional[FileStorage], max_bytes: int) -> PreparedUpload:
    """
    Liest die hochgeladene Datei ein. Größe wird zweimal geprüft:
    erst die deklarierte (Content-Length des Parts), dann die tatsächlich gelesene.
    """
    if not f or not f.filename:
        raise ValidationError("No file provided")

    mime = (f.mimetype or "").lower()
    declared = f.content_length or None
    check_upload(mime, declared, max_bytes)

    data = f.stream.read(max_bytes + 1)
    check_upload(mime, len(data), max_bytes)

    name = secure_filename(f.filename) or "upload"
    return PreparedUpload(data=data, filename=name, mime_type=mime)
