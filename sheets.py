# ─── Google Sheets / Drive helpers ─────────────────────────────────────────
import os
import re
import time
import logging

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
]

TOKEN_URI = "https://oauth2.googleapis.com/token"

# Tabs whose titles contain one of these words hold configuration, not data
NON_DATA_TAB_WORDS = ("setting", "config", "menu")


def get_credentials():
    """
    Service-account credentials from GOOGLE_CLIENT_EMAIL / GOOGLE_PRIVATE_KEY.
    Hosting dashboards store the key on one line, so literal "\\n" is expanded.
    """
    client_email = (os.environ.get("GOOGLE_CLIENT_EMAIL") or "").strip()
    private_key = (os.environ.get("GOOGLE_PRIVATE_KEY") or "").replace("\\n", "\n")
    if not client_email or not private_key:
        raise RuntimeError("Google credentials not configured. Set GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY.")
    info = {
        "type": "service_account",
        "client_email": client_email,
        "private_key": private_key,
        "token_uri": TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


def get_sheets_service():
    return build("sheets", "v4", credentials=get_credentials(), cache_discovery=False)


def get_drive_service():
    return build("drive", "v3", credentials=get_credentials(), cache_discovery=False)


def _is_transient(exc):
    if isinstance(exc, HttpError):
        status = getattr(exc.resp, "status", 0)
        return status in (429, 500, 502, 503, 504)
    msg = str(exc).lower()
    return "timed out" in msg or "transport" in msg or "unavailable" in msg


def fetch_sheet(spreadsheet_id, range_a1, value_render_option=None):
    """
    Read a range and return its rows (list of lists, ragged as Sheets sends them).
    Transient failures are retried twice (1s, 2s) before the error is raised.
    """
    service = get_sheets_service()
    params = dict(
        spreadsheetId=spreadsheet_id,
        range=range_a1,
        majorDimension="ROWS",
    )
    if value_render_option:
        params["valueRenderOption"] = value_render_option

    for attempt in range(1, 4):
        try:
            resp = service.spreadsheets().values().get(**params).execute()
            return resp.get("values", []) or []
        except Exception as e:
            if _is_transient(e) and attempt < 3:
                logger.warning("fetch_sheet %s attempt %s failed: %s", range_a1, attempt, e)
                time.sleep(1 * attempt)
                continue
            raise


def write_sheet(spreadsheet_id, range_a1, values, value_input="USER_ENTERED"):
    service = get_sheets_service()
    body = {
        "range": range_a1,
        "majorDimension": "ROWS",
        "values": values,
    }
    return service.spreadsheets().values().update(
        spreadsheetId=spreadsheet_id,
        range=range_a1,
        valueInputOption=value_input,
        body=body,
    ).execute()


def batch_write(spreadsheet_id, data, value_input="USER_ENTERED"):
    """data: [{"range": "Tab!C5", "values": [[...]]}, ...] sent as one request."""
    service = get_sheets_service()
    body = {"valueInputOption": value_input, "data": data}
    return service.spreadsheets().values().batchUpdate(
        spreadsheetId=spreadsheet_id, body=body
    ).execute()


def append_rows(spreadsheet_id, range_a1, values, value_input="USER_ENTERED", insert_rows=True):
    service = get_sheets_service()
    params = dict(
        spreadsheetId=spreadsheet_id,
        range=range_a1,
        valueInputOption=value_input,
        body={"values": values},
    )
    if insert_rows:
        params["insertDataOption"] = "INSERT_ROWS"
    resp = service.spreadsheets().values().append(**params).execute()
    return resp.get("updates", {}) or {}


def list_tabs(spreadsheet_id):
    service = get_sheets_service()
    meta = service.spreadsheets().get(
        spreadsheetId=spreadsheet_id, fields="sheets.properties.title"
    ).execute()
    return [
        (s.get("properties") or {}).get("title", "")
        for s in meta.get("sheets", []) or []
        if (s.get("properties") or {}).get("title")
    ]


def get_sheet_data(spreadsheet_id, range_a1="A:Z"):
    """Header row + data rows as a list of dicts ("" for missing cells)."""
    return rows_to_dicts(fetch_sheet(spreadsheet_id, range_a1))


def get_file_metadata(file_id):
    drive = get_drive_service()
    return drive.files().get(
        fileId=file_id, fields="id,name,modifiedTime", supportsAllDrives=True
    ).execute()


def list_drive_files(query, fields="files(id, name)", order_by=None, page_size=100):
    """All pages of a Drive files.list query."""
    drive = get_drive_service()
    out, token = [], None
    while True:
        params = dict(q=query, fields=f"nextPageToken, {fields}", pageSize=page_size)
        if order_by:
            params["orderBy"] = order_by
        if token:
            params["pageToken"] = token
        resp = drive.files().list(**params).execute()
        out.extend(resp.get("files", []) or [])
        token = resp.get("nextPageToken")
        if not token:
            return out


# ─── Pure helpers ──────────────────────────────────────────────────────────

def rows_to_dicts(rows):
    """Convert a Sheets A1 range into a list of dicts using row 1 as headers."""
    if not rows:
        return []
    headers = [str(h).strip() for h in rows[0]]
    out = []
    for r in rows[1:]:
        r = list(r or [])
        if len(r) < len(headers):
            r += [""] * (len(headers) - len(r))
        out.append(dict(zip(headers, r)))
    return out


def col_to_a1(idx0):
    """0 -> A, 25 -> Z, 26 -> AA, 701 -> ZZ, 702 -> AAA."""
    if idx0 < 0:
        raise ValueError("column index must be >= 0")
    n = idx0 + 1
    s = ""
    while n:
        n, rem = divmod(n - 1, 26)
        s = chr(65 + rem) + s
    return s


_PLAIN_TITLE = re.compile(r"^[A-Za-z0-9_]+$")


def quote_tab(title):
    title = str(title)
    if _PLAIN_TITLE.match(title):
        return title
    return "'" + title.replace("'", "''") + "'"


def a1(sheet, col_idx0, row1):
    """A1 address of a single cell, e.g. a1("DailyPlan", 27, 5) -> "DailyPlan!AB5"."""
    return f"{quote_tab(sheet)}!{col_to_a1(col_idx0)}{row1}"


def tab_range(sheet, cols="A:Z"):
    return f"{quote_tab(sheet)}!{cols}"


def cell(row, idx):
    """Value at idx of a ragged Sheets row ("" past the end)."""
    if idx is None or idx < 0 or idx >= len(row or []):
        return ""
    v = row[idx]
    return "" if v is None else v


def squash(s):
    """Lowercase with all whitespace removed: 'DU Name ' -> 'duname'."""
    return re.sub(r"\s+", "", str(s or "")).lower()


def find_col(headers, name):
    """Exact header match, then trimmed case-insensitive. None when absent."""
    headers = list(headers or [])
    if name in headers:
        return headers.index(name)
    target = str(name or "").strip().lower()
    for i, h in enumerate(headers):
        if str(h or "").strip().lower() == target:
            return i
    return None


def find_col_flexible(headers, name):
    """
    Header lookup tolerant of the ways column ids reach us from the UI:
    exact, header without spaces, both without spaces, then case-insensitive.
    """
    headers = [str(h or "") for h in (headers or [])]
    name = str(name or "")
    if name in headers:
        return headers.index(name)
    no_ws = re.sub(r"\s+", "", name)
    for i, h in enumerate(headers):
        h_no_ws = re.sub(r"\s+", "", h)
        if h_no_ws == name or h_no_ws == no_ws:
            return i
    for i, h in enumerate(headers):
        if h and (h.lower() == name.lower() or squash(h) == squash(name)):
            return i
    return None


def is_data_tab(title):
    t = str(title or "").lower()
    return bool(t) and not any(w in t for w in NON_DATA_TAB_WORDS)
