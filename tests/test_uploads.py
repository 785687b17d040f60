# tests/test_uploads.py
import io
import pytest

from questcraft_cms.errors import ValidationError
from questcraft_cms.services import reward_service
from questcraft_cms.services.media_service import check_upload

MB = 1024 * 1024


def _file(data=b"\x89PNG fake", name="cat.png", mime="image/png"):
    return (io.BytesIO(data), name, mime)


def test_upload_ok(auth_client, gateway):
    resp = auth_client.post("/api/upload", data={"file": _file()}, content_type="multipart/form-data")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["fileId"] == "fake1"
    assert data["mimeType"] == "image/png"
    assert data["thumbnailUrl"] is None
    # ohne konfigurierte Folder-ID wird der Standardordner gesucht/angelegt
    assert gateway.calls[0] == ("folder", "QuestCraft Rewards", "tok")
    assert gateway.calls[1][3] == "folder123"


def test_upload_video_has_thumbnail(auth_client):
    resp = auth_client.post(
        "/api/upload",
        data={"file": _file(b"....", "clip.mp4", "video/mp4"), "folderName": "Clips"},
        content_type="multipart/form-data",
    )
    data = resp.get_json()
    assert data["thumbnailUrl"] == "https://drive.google.com/thumbnail?id=fake1&sz=w800"


def test_upload_rejects_mime_before_drive(auth_client, gateway):
    resp = auth_client.post(
        "/api/upload",
        data={"file": _file(b"%PDF", "doc.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert "Invalid file type" in resp.get_json()["error"]
    assert gateway.calls == []


def test_upload_without_file(auth_client, gateway):
    resp = auth_client.post("/api/upload", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "No file provided"
    assert gateway.calls == []


def test_upload_rejects_oversized_before_drive(tmp_path):
    from questcraft_cms import create_app
    from tests.conftest import FakeGateway, _login

    app = create_app({
        "DATABASE_URL": f"sqlite:///{tmp_path}/big.db",
        "UPLOAD_MAX_MB": "1",
        "GOOGLE_DRIVE_FOLDER_ID": "",
        "TESTING": True,
    })
    gw = FakeGateway()
    app.extensions["drive_gateway"] = gw
    client = app.test_client()
    _login(client)

    resp = client.post(
        "/api/upload",
        data={"file": _file(b"x" * (MB + 10))},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "File too large. Maximum size: 1MB"
    assert gw.calls == []


def test_check_upload_limits():
    check_upload("image/webp", 50 * MB, 50 * MB)
    with pytest.raises(ValidationError):
        check_upload("image/webp", 50 * MB + 1, 50 * MB)
    with pytest.raises(ValidationError):
        check_upload("image/svg+xml", 10, 50 * MB)


def test_upload_requires_drive_token(auth_client_no_drive, gateway):
    resp = auth_client_no_drive.post("/api/upload", data={"file": _file()}, content_type="multipart/form-data")
    assert resp.status_code == 403
    assert "No Google Drive access" in resp.get_json()["error"]
    assert gateway.calls == []

# ---------- Upload + Reward in einem Schritt ----------

def test_reward_upload_creates_row(auth_client, collection, gateway):
    resp = auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "epic", "collectionId": str(collection["id"]), "name": "Upload"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["googleDriveFileId"] == "fake1"
    assert data["mediaType"] == "image"
    assert gateway.deleted == []


def test_reward_upload_prevalidation_skips_drive(auth_client, collection, gateway):
    resp = auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "ultra", "collectionId": str(collection["id"])},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert gateway.calls == []


def test_reward_upload_compensates_on_db_failure(auth_client, collection, gateway):
    resp = auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "rare", "collectionId": str(collection["id"]), "tagIds": "77"},
        content_type="multipart/form-data",
    )
    # unbekannte Tag-ID scheitert erst beim Anlegen, also nach dem Upload
    assert resp.status_code == 400
    assert gateway.deleted == ["fake1"]
    assert auth_client.get("/api/rewards").get_json() == []


def test_reward_upload_compensates_on_unexpected_error(auth_client, collection, gateway, monkeypatch):
    def boom(*_a, **_kw):
        raise RuntimeError("db down")

    monkeypatch.setattr(reward_service, "create_reward", boom)
    resp = auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "rare", "collectionId": str(collection["id"])},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 500
    assert gateway.deleted == ["fake1"]


def test_reward_upload_resolves_folder_first(auth_client, collection, gateway):
    resp = auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "rare", "collectionId": str(collection["id"]), "folderName": "Clips"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    assert gateway.calls[0] == ("folder", "Clips", "tok")
    assert gateway.calls[1][0] == "upload"
    assert gateway.calls[1][3] == "folder123"


def test_reward_upload_uses_default_folder_name(auth_client, collection, gateway):
    auth_client.post(
        "/api/rewards/upload",
        data={"file": _file(), "rarity": "rare", "collectionId": str(collection["id"])},
        content_type="multipart/form-data",
    )
    assert gateway.calls[0] == ("folder", "QuestCraft Rewards", "tok")


def test_dashboard_upload_resolves_folder(auth_client, collection, gateway):
    resp = auth_client.post(
        "/rewards/upload",
        data={
            "file": _file(),
            "rarity": "common",
            "collection_id": str(collection["id"]),
            "folder_name": "Katzen",
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 302
    assert gateway.calls[0] == ("folder", "Katzen", "tok")
    assert gateway.calls[1][3] == "folder123"
    assert auth_client.get("/api/rewards").get_json()[0]["googleDriveFileId"] == "fake1"
