# tests/conftest.py
import time
import pytest

from questcraft_cms import create_app
from questcraft_cms.services.drive_service import UploadResult


class FakeGateway:
    """Ersetzt den DriveGateway; merkt sich alle Aufrufe."""

    def __init__(self):
        self.calls = []
        self.deleted = []
        self.next_id = 1

    def upload(self, data, filename, mime_type, folder_id=None, access_token=None):
        self.calls.append(("upload", filename, mime_type, folder_id, access_token))
        file_id = f"fake{self.next_id}"
        self.next_id += 1
        return UploadResult(file_id=file_id, filename=filename, view_url=f"https://drive.test/{file_id}")

    def delete(self, file_id, access_token=None):
        self.calls.append(("delete", file_id, access_token))
        self.deleted.append(file_id)
        return True

    def get_or_create_folder(self, name, access_token=None):
        self.calls.append(("folder", name, access_token))
        return "folder123"

    def list_files(self, access_token, folder_id=None, media_only=False, page_token=None):
        from questcraft_cms.services.drive_service import FileListing
        self.calls.append(("list_files", folder_id, page_token))
        return FileListing(files=[{"id": "f1", "name": "a.png", "mimeType": "image/png"}], next_page_token="next")

    def list_folders(self, access_token, parent_id=None, page_token=None):
        from questcraft_cms.services.drive_service import FolderListing
        self.calls.append(("list_folders", parent_id, page_token))
        return FolderListing(folders=[{"id": "d1", "name": "Rewards"}])


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "DATABASE_URL": f"sqlite:///{tmp_path}/test.db",
        "SECRET_KEY": "test",
        "GOOGLE_DRIVE_FOLDER_ID": "",
        "TESTING": True,
    })
    app.extensions["drive_gateway"] = FakeGateway()
    return app


@pytest.fixture
def gateway(app):
    return app.extensions["drive_gateway"]


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, with_drive=True):
    with client.session_transaction() as s:
        s["user"] = {"email": "admin@example.com", "name": "Admin", "picture": None}
        if with_drive:
            s["google"] = {
                "access_token": "tok",
                "refresh_token": "ref",
                "expires_at": int(time.time()) + 3600,
            }


@pytest.fixture
def auth_client(client):
    _login(client)
    return client


@pytest.fixture
def auth_client_no_drive(client):
    _login(client, with_drive=False)
    return client


@pytest.fixture
def collection(auth_client):
    resp = auth_client.post("/api/collections", json={"name": "Cats", "iconEmoji": "🐱"})
    assert resp.status_code == 201
    return resp.get_json()
