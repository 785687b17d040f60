# tests/test_drive_service.py
from unittest import mock
import pytest

from questcraft_cms.config import DriveConfig
from questcraft_cms.services import drive_service
from questcraft_cms.services.drive_service import (
    DriveGateway,
    DriveError,
    InvalidDriveIdError,
    is_valid_drive_id,
    thumbnail_url,
)


@pytest.fixture
def drive():
    """Gemockter Drive-v3-Client; build() liefert immer dieselbe Instanz."""
    client = mock.MagicMock()
    with mock.patch.object(drive_service, "build", return_value=client) as build:
        client.build = build
        yield client


@pytest.mark.parametrize("value,ok", [
    ("1A_b-2", True),
    ("abc123", True),
    ("../etc", False),
    ("abc def", False),
    ("", False),
    (None, False),
    ("a'b", False),
])
def test_drive_id_validation(value, ok):
    assert is_valid_drive_id(value) is ok


def test_thumbnail_url():
    assert thumbnail_url("abc") == "https://drive.google.com/thumbnail?id=abc&sz=w800"
    assert thumbnail_url("abc", 400).endswith("sz=w400")


def test_upload_sets_public_permission(drive):
    drive.files.return_value.create.return_value.execute.return_value = {
        "id": "new1", "name": "cat.png", "webViewLink": "https://view",
    }
    gw = DriveGateway(DriveConfig())
    res = gw.upload(b"data", "cat.png", "image/png", folder_id="fold_1", access_token="tok")

    assert res.file_id == "new1"
    assert res.view_url == "https://view"
    kwargs = drive.files.return_value.create.call_args.kwargs
    assert kwargs["body"] == {"name": "cat.png", "parents": ["fold_1"]}
    drive.permissions.return_value.create.assert_called_once_with(
        fileId="new1", body={"role": "reader", "type": "anyone"}, supportsAllDrives=False,
    )


def test_upload_rejects_bad_folder_before_network(drive):
    gw = DriveGateway(DriveConfig())
    with pytest.raises(InvalidDriveIdError):
        gw.upload(b"data", "cat.png", "image/png", folder_id="../etc", access_token="tok")
    drive.build.assert_not_called()


def test_upstream_errors_become_drive_error(drive):
    drive.files.return_value.create.return_value.execute.side_effect = RuntimeError("quota")
    gw = DriveGateway(DriveConfig())
    with pytest.raises(DriveError) as exc:
        gw.upload(b"data", "cat.png", "image/png", access_token="tok")
    assert str(exc.value) == "Failed to upload file to Google Drive"
    assert isinstance(exc.value.__cause__, RuntimeError)


def test_no_credentials_configured():
    gw = DriveGateway(DriveConfig())
    with pytest.raises(DriveError):
        gw.upload(b"data", "cat.png", "image/png")


def test_list_files_query_and_paging(drive):
    drive.files.return_value.list.return_value.execute.return_value = {
        "files": [{"id": "f1", "name": "a.png", "mimeType": "image/png", "size": "10"}],
        "nextPageToken": "p2",
    }
    listing = DriveGateway(DriveConfig()).list_files("tok", folder_id="fold_1", media_only=True, page_token="p1")
    kwargs = drive.files.return_value.list.call_args.kwargs
    assert kwargs["q"].startswith("'fold_1' in parents and trashed=false")
    assert "mimeType contains 'image/'" in kwargs["q"]
    assert kwargs["orderBy"] == "createdTime desc"
    assert kwargs["pageSize"] == 100
    assert kwargs["pageToken"] == "p1"
    assert listing.next_page_token == "p2"
    assert listing.files[0]["size"] == "10"
    assert "thumbnailLink" not in listing.files[0]


def test_list_folders(drive):
    drive.files.return_value.list.return_value.execute.return_value = {
        "files": [{"id": "d1", "name": "Rewards"}],
    }
    listing = DriveGateway(DriveConfig()).list_folders("tok", parent_id="root_1")
    kwargs = drive.files.return_value.list.call_args.kwargs
    assert "mimeType='application/vnd.google-apps.folder'" in kwargs["q"]
    assert listing.folders[0]["name"] == "Rewards"
    assert listing.next_page_token is None


def test_get_or_create_folder_reuses_existing(drive):
    drive.files.return_value.list.return_value.execute.return_value = {"files": [{"id": "d1", "name": "X"}]}
    assert DriveGateway(DriveConfig()).get_or_create_folder("X", access_token="tok") == "d1"
    drive.files.return_value.create.assert_not_called()


def test_get_or_create_folder_creates(drive):
    drive.files.return_value.list.return_value.execute.return_value = {"files": []}
    drive.files.return_value.create.return_value.execute.return_value = {"id": "d2"}
    assert DriveGateway(DriveConfig()).get_or_create_folder("Rock 'n' Roll", access_token="tok") == "d2"
    q = drive.files.return_value.list.call_args.kwargs["q"]
    assert "name='Rock \\'n\\' Roll'" in q


def test_delete(drive):
    assert DriveGateway(DriveConfig()).delete("abc123", access_token="tok") is True
    drive.files.return_value.delete.assert_called_once_with(fileId="abc123")


def test_drive_routes_validate_ids(auth_client, gateway):
    resp = auth_client.get("/api/google-drive/files?folderId=../etc")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid folderId"
    assert gateway.calls == []


def test_drive_routes_listing(auth_client):
    data = auth_client.get("/api/google-drive/files?pageToken=abc").get_json()
    assert data == {"files": [{"id": "f1", "name": "a.png", "mimeType": "image/png"}], "nextPageToken": "next"}
    data = auth_client.get("/api/google-drive/folders?parentId=root_1").get_json()
    assert data == {"folders": [{"id": "d1", "name": "Rewards"}]}


def test_resolve_upload_folder_prefers_configured_id():
    from tests.conftest import FakeGateway

    gw = FakeGateway()
    cfg = DriveConfig(default_folder_id="fixed_1")
    assert drive_service.resolve_upload_folder(gw, cfg, "Clips", "tok") == "fixed_1"
    assert gw.calls == []


def test_resolve_upload_folder_falls_back_to_default_name():
    from tests.conftest import FakeGateway

    gw = FakeGateway()
    assert drive_service.resolve_upload_folder(gw, DriveConfig(), "  ", "tok") == "folder123"
    assert gw.calls == [("folder", "QuestCraft Rewards", "tok")]
