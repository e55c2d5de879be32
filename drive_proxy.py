# ─── Apps Script web app in front of Google Drive ──────────────────────────
import os
import base64
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

TIMEOUT = 30

FILE_FIELDS = (
    "id", "name", "mimeType", "size", "createdDate", "modifiedDate",
    "url", "downloadUrl", "thumbnailUrl", "webViewLink",
)


class AppsScriptError(Exception):
    pass


def get_drive_proxy_config():
    return {
        "url": os.environ.get("GOOGLE_APPS_SCRIPT_DRIVE_URL", ""),
        "main_folder_id": os.environ.get("GOOGLE_DRIVE_MAIN_FILE_FOLDERID", ""),
    }


def _retrying_session():
    sess = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        # uploads and deletes are not idempotent, only reads are retried
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    sess.mount("https://", adapter)
    sess.mount("http://", adapter)
    return sess


def _file_view(f):
    return {k: f.get(k) for k in FILE_FIELDS if k in f}


class AppsScriptClient:
    """
    Thin client for the Drive Apps Script. Every call returns the script's
    JSON payload; non-2xx responses and {"success": false} payloads raise
    AppsScriptError.
    """

    def __init__(self, url=None, main_folder_id=None, session=None):
        cfg = get_drive_proxy_config()
        self.url = url if url is not None else cfg["url"]
        self.main_folder_id = main_folder_id if main_folder_id is not None else cfg["main_folder_id"]
        if not self.url:
            raise AppsScriptError("Apps Script URL not configured")
        self.session = session or _retrying_session()

    def _check(self, resp, action):
        if not resp.ok:
            logger.error("Apps Script %s failed: HTTP %s %s", action, resp.status_code, resp.text[:300])
            raise AppsScriptError(f"Apps Script {action} failed with HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            raise AppsScriptError(f"Apps Script {action} returned non-JSON response")
        if isinstance(data, dict) and (data.get("error") and not data.get("success")):
            raise AppsScriptError(str(data.get("error")))
        return data

    def _get(self, action, **params):
        params = {k: v for k, v in params.items() if v}
        params["action"] = action
        resp = self.session.get(self.url, params=params, timeout=TIMEOUT)
        return self._check(resp, action)

    def _post(self, action, body):
        payload = {"action": action}
        payload.update({k: v for k, v in body.items() if v is not None})
        resp = self.session.post(self.url, json=payload, timeout=TIMEOUT)
        return self._check(resp, action)

    # ── reads ──
    def list_files(self, duid, folder_id=None):
        data = self._get("listFiles", duid=duid, folderId=folder_id, mainFolderId=self.main_folder_id)
        return {
            "success": bool(data.get("success", True)),
            "files": [_file_view(f) for f in data.get("files", []) or []],
            "folders": data.get("folders", []) or [],
        }

    def list_files_in_folder(self, folder_id):
        data = self._get("listFilesInFolder", folderId=folder_id, mainFolderId=self.main_folder_id)
        return {
            "success": bool(data.get("success", True)),
            "files": [_file_view(f) for f in data.get("files", []) or []],
        }

    # ── writes ──
    def upload_file(self, file_name, mime_type, data, duid="", folder_id=None):
        """data: raw bytes or an already base64-encoded str."""
        if isinstance(data, (bytes, bytearray)):
            data = base64.b64encode(bytes(data)).decode("ascii")
        logger.info("Uploading %s (%s) for DUID %r", file_name, mime_type, duid)
        return self._post("uploadFile", {
            "duid": duid,
            "fileName": file_name,
            "mimeType": mime_type or "application/octet-stream",
            "fileData": data,
            "folderId": folder_id or None,
            "mainFolderId": self.main_folder_id,
        })

    def create_folder(self, duid, folder_name, parent_folder_id=None):
        return self._post("createFolder", {
            "duid": duid,
            "folderName": folder_name,
            "parentFolderId": parent_folder_id or None,
            "mainFolderId": self.main_folder_id,
        })

    def delete_file(self, file_id):
        return self._post("deleteFile", {"fileId": file_id, "mainFolderId": self.main_folder_id})
