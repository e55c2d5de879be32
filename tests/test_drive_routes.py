import io

import pytest


@pytest.fixture
def drive(apps_script, client, login):
    login(client)
    return apps_script


def test_list_files(client, drive):
    drive.reply({"success": True, "files": [{"id": "f1", "name": "a.jpg"}], "folders": []})
    body = client.get("/api/drive/list-files?duid=DU1&folderId=sub").get_json()
    assert body["files"] == [{"id": "f1", "name": "a.jpg"}]
    assert drive.calls[-1][2] == {
        "action": "listFiles", "duid": "DU1", "folderId": "sub", "mainFolderId": "main-folder",
    }


def test_list_files_requires_duid(client, drive):
    resp = client.get("/api/drive/list-files")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "DUID is required"}
    assert drive.calls == []


def test_script_error_becomes_500(client, drive):
    drive.reply({"success": False, "error": "Folder not found"})
    resp = client.get("/api/drive/list-files?duid=DU1")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Folder not found"}


def test_upload_multipart(client, drive):
    drive.reply({"success": True, "file": {"id": "new"}})
    resp = client.post("/api/drive/upload", data={
        "file": (io.BytesIO(b"hello"), "note.txt", "text/plain"),
        "duid": "DU1",
    }, content_type="multipart/form-data")
    assert resp.status_code == 200
    body = drive.calls[-1][2]
    assert body["action"] == "uploadFile"
    assert body["fileName"] == "note.txt"
    assert body["mimeType"] == "text/plain"
    assert body["fileData"] == "aGVsbG8="
    assert body["duid"] == "DU1"


def test_upload_requires_file_and_duid(client, drive):
    resp = client.post("/api/drive/upload", data={"duid": "DU1"}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "File and DUID are required"}


def test_create_folder_and_delete(client, drive):
    resp = client.post("/api/drive/create-folder", json={"duid": "DU1"})
    assert resp.get_json() == {"error": "DUID and folderName are required"}

    drive.reply({"success": True, "folder": {"id": "d1"}})
    client.post("/api/drive/create-folder", json={"duid": "DU1", "folderName": "Photos"})
    assert drive.calls[-1][2]["action"] == "createFolder"
    assert drive.calls[-1][2]["folderName"] == "Photos"

    assert client.post("/api/drive/delete", json={}).get_json() == {"error": "File ID is required"}
    drive.reply({"success": True})
    assert client.post("/api/drive/delete", json={"fileId": "f1"}).get_json() == {"success": True}
    assert drive.calls[-1][2] == {"action": "deleteFile", "fileId": "f1", "mainFolderId": "main-folder"}


def test_delete_needs_main_folder(client, drive, monkeypatch):
    monkeypatch.delenv("GOOGLE_DRIVE_MAIN_FILE_FOLDERID")
    resp = client.post("/api/drive/delete", json={"fileId": "f1"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Main Folder ID not configured"}


def test_drive_unconfigured(client, drive, monkeypatch):
    monkeypatch.delenv("GOOGLE_APPS_SCRIPT_DRIVE_URL")
    resp = client.get("/api/drive/list-files?duid=DU1")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Apps Script URL not configured"}


def test_file_upload_center(client, drive):
    assert client.get("/api/file-upload/list-files").get_json() == {
        "success": False, "error": "Folder ID is required",
    }

    drive.reply({"success": True, "files": [{"id": "f1", "name": "doc.pdf", "webViewLink": "https://x"}]})
    body = client.get("/api/file-upload/list-files?folderId=fold").get_json()
    assert body == {"success": True, "files": [{"id": "f1", "name": "doc.pdf", "webViewLink": "https://x"}]}
    assert drive.calls[-1][2]["action"] == "listFilesInFolder"

    assert client.post("/api/file-upload/upload", json={"fileName": "a.pdf"}).status_code == 400

    drive.reply({"success": True, "file": {"id": "up1"}})
    body = client.post("/api/file-upload/upload", json={
        "fileName": "a.pdf", "mimeType": "application/pdf", "fileData": "JVBERi0=", "folderId": "fold",
    }).get_json()
    assert body == {"success": True, "file": {"id": "up1"}, "message": "File uploaded successfully"}
    sent = drive.calls[-1][2]
    assert sent["fileData"] == "JVBERi0="
    assert sent["folderId"] == "fold"


def test_file_upload_center_unconfigured(client, drive, monkeypatch):
    monkeypatch.delenv("GOOGLE_DRIVE_MAIN_FILE_FOLDERID")
    resp = client.get("/api/file-upload/list-files?folderId=fold")
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Google Apps Script configuration missing"
