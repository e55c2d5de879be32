import re
import time
from datetime import datetime

import pytest

import accounts
import daily_plan
import drive_proxy
import mailer
import permissions
import po_data
import sheets

PASSWORD = "secret123"

USERS_BOOK = "users-book"
PLAN_BOOK = "plan-book"
ITC_BOOK = "itc-book"
RNO_BOOK = "rno-book"
PO_BOOK = "po-book"
SCRIPT_URL = "https://script.example.com/macros/s/abc/exec"

PERMISSION_ROWS = [
    ["Role", "User management", "Home", "Dashboard", "Projects", "Absensi", "Daily Plan", "File Upload Center"],
    ["Admin", "edit", "edit", "edit", "edit", "edit", "edit", "edit"],
    ["User", "no", "read", "read", "read", "no", "edit"],
]


# ─── In-memory Sheets / Drive ──────────────────────────────────────────────

_RANGE = re.compile(r"^([A-Z]*)(\d*)(?::([A-Z]*)(\d*))?$")


def _col(letters):
    n = 0
    for ch in letters:
        n = n * 26 + ord(ch) - 64
    return n - 1


def split_range(range_a1):
    """'Tab X'!B2:C -> ("Tab X", col0, row1, col_end|None, row_end|None)"""
    if range_a1.startswith("'"):
        end = range_a1.index("'!")
        title, rest = range_a1[1:end].replace("''", "'"), range_a1[end + 2:]
    else:
        title, rest = range_a1.split("!", 1)
    m = _RANGE.match(rest)
    if not m:
        raise ValueError(f"Unable to parse range: {range_a1}")
    c0, r0, c1, r1 = m.groups()
    col0 = _col(c0) if c0 else 0
    row0 = int(r0) if r0 else 1
    if ":" not in rest:
        return title, col0, row0, col0, row0
    return title, col0, row0, (_col(c1) if c1 else None), (int(r1) if r1 else None)


class _Req:
    def __init__(self, fn):
        self.fn = fn

    def execute(self):
        return self.fn()


class FakeWorkspace:
    """Spreadsheets keyed by id, each a dict of tab title -> list of rows."""

    def __init__(self):
        self.books = {}
        self.files = []
        self.meta = {}
        self.writes = []
        self.batches = []
        self.appends = []
        self.reads = 0

    def add_tab(self, spreadsheet_id, title, rows):
        self.books.setdefault(spreadsheet_id, {})[title] = [list(r) for r in rows]
        return self.books[spreadsheet_id][title]

    def tab(self, spreadsheet_id, title):
        return self.books[spreadsheet_id][title]

    def _table(self, spreadsheet_id, title, range_a1):
        try:
            return self.books[spreadsheet_id][title]
        except KeyError:
            raise ValueError(f"Unable to parse range: {range_a1}")

    # spreadsheets().values()
    def _get(self, spreadsheetId, range, **kwargs):
        self.reads += 1
        title, c0, r0, c1, r1 = split_range(range)
        table = self._table(spreadsheetId, title, range)
        out = []
        for row in table[r0 - 1:r1]:
            part = list(row[c0:None if c1 is None else c1 + 1])
            while part and part[-1] == "":
                part.pop()
            out.append(part)
        while out and not out[-1]:
            out.pop()
        return {"values": out} if out else {}

    def _put(self, spreadsheet_id, range_a1, values):
        title, c0, r0, _, _ = split_range(range_a1)
        table = self._table(spreadsheet_id, title, range_a1)
        for i, vals in enumerate(values):
            while len(table) < r0 + i:
                table.append([])
            row = table[r0 - 1 + i]
            for j, v in enumerate(vals):
                while len(row) <= c0 + j:
                    row.append("")
                row[c0 + j] = v

    def _update(self, spreadsheetId, range, valueInputOption, body):
        self.writes.append((spreadsheetId, range, body["values"], valueInputOption))
        self._put(spreadsheetId, range, body["values"])
        return {"updatedRange": range}

    def _batch(self, spreadsheetId, body):
        self.batches.append((spreadsheetId, body))
        for item in body["data"]:
            self._put(spreadsheetId, item["range"], item["values"])
        return {"totalUpdatedCells": len(body["data"])}

    def _append(self, spreadsheetId, range, valueInputOption, body, insertDataOption=None):
        self.appends.append((spreadsheetId, range, body["values"], valueInputOption, insertDataOption))
        title, c0, _, _, _ = split_range(range)
        table = self._table(spreadsheetId, title, range)
        first = len(table) + 1
        for vals in body["values"]:
            table.append([""] * c0 + list(vals))
        return {"updates": {
            "updatedRange": f"{title}!{sheets.col_to_a1(c0)}{first}",
            "updatedRows": len(body["values"]),
        }}

    def _meta(self, spreadsheetId, fields=None):
        tabs = self.books.get(spreadsheetId)
        if tabs is None:
            raise ValueError(f"Requested entity was not found: {spreadsheetId}")
        return {"sheets": [{"properties": {"title": t}} for t in tabs]}

    # drive files()
    def _file_get(self, fileId, fields=None, supportsAllDrives=None):
        if fileId not in self.meta:
            raise ValueError(f"File not found: {fileId}")
        return self.meta[fileId]

    def _file_list(self, q, fields=None, pageSize=100, orderBy=None, pageToken=None):
        parent = re.search(r"'([^']+)' in parents", q).group(1)
        mime = re.search(r"mimeType='([^']+)'", q).group(1)
        return {"files": [
            f for f in self.files
            if parent in f.get("parents", []) and f.get("mimeType") == mime
        ]}


class FakeSheetsService:
    def __init__(self, ws):
        self.ws = ws

    def spreadsheets(self):
        return self

    def values(self):
        return self

    def get(self, spreadsheetId, range=None, fields=None, **kwargs):
        if range is None:
            return _Req(lambda: self.ws._meta(spreadsheetId, fields))
        return _Req(lambda: self.ws._get(spreadsheetId, range, **kwargs))

    def update(self, **kwargs):
        return _Req(lambda: self.ws._update(**kwargs))

    def batchUpdate(self, **kwargs):
        return _Req(lambda: self.ws._batch(**kwargs))

    def append(self, **kwargs):
        return _Req(lambda: self.ws._append(**kwargs))


class FakeDriveService:
    def __init__(self, ws):
        self.ws = ws

    def files(self):
        return self

    def get(self, **kwargs):
        return _Req(lambda: self.ws._file_get(**kwargs))

    def list(self, **kwargs):
        return _Req(lambda: self.ws._file_list(**kwargs))


# ─── Apps Script transport ─────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status=200, payload=None, text=""):
        self.status_code = status
        self.payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class FakeAppsScriptSession:
    def __init__(self):
        self.calls = []
        self.responses = []

    def reply(self, payload, status=200):
        self.responses.append(FakeResponse(status, payload))

    def _next(self):
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse(200, {"success": True, "files": [], "folders": []})

    def get(self, url, params=None, timeout=None):
        self.calls.append(("GET", url, params))
        return self._next()

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json))
        return self._next()


# ─── Fixtures ──────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def password_hash():
    return accounts.hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("GOOGLE_SHEET_ID_USER", USERS_BOOK)
    monkeypatch.setenv("GOOGLE_SHEET_ID_DAILYPLAN", PLAN_BOOK)
    monkeypatch.setenv("GOOGLE_SHEET_ID_HWROLLOUTITC", ITC_BOOK)
    monkeypatch.setenv("GOOGLE_SHEET_ID_HWROLLOUTRNO", RNO_BOOK)
    monkeypatch.setenv("GOOGLE_SHEET_ID_POHWITCXLS", PO_BOOK)
    monkeypatch.setenv("GOOGLE_DRIVE_FOLDER_ID_CLOCKREPORT", "clock-root")
    monkeypatch.setenv("GOOGLE_APPS_SCRIPT_DRIVE_URL", SCRIPT_URL)
    monkeypatch.setenv("GOOGLE_DRIVE_MAIN_FILE_FOLDERID", "main-folder")
    monkeypatch.setenv("ALLOWED_EMAIL_DOMAIN", "zmg.co.id")
    for suffix in po_data.PO_ENV_SUFFIXES:
        if suffix != "ITCXLS":
            monkeypatch.delenv(f"GOOGLE_SHEET_ID_POHW{suffix}", raising=False)
    for name in (
        "GOOGLE_SHEET_ID_DAILYPLAN_SHEETMENU",
        "GOOGLE_SHEET_NAME_HWROLLOUTITC",
        "GOOGLE_SHEET_NAME_HWROLLOUTRNO",
        "RATE_LIMIT_MAX_ATTEMPTS",
        "RATE_LIMIT_WINDOW_MINUTES",
        "RATE_LIMIT_BLOCK_MINUTES",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def clean_state():
    permissions.clear_permissions_cache()
    po_data.clear_po_status_cache()
    daily_plan.invalidate_plan_cache()
    accounts.reset_rate_limits()
    yield


@pytest.fixture(autouse=True)
def workspace(monkeypatch, password_hash):
    ws = FakeWorkspace()
    ws.add_tab(USERS_BOOK, "users", [
        accounts.USER_COLUMNS,
        ["usr_1", "admin@zmg.co.id", "Ada Admin", password_hash, "Jakarta", "admin",
         "yes", "yes", "2024-01-15", "0812", "IT", ""],
        ["usr_2", "budi@zmg.co.id", "Budi", password_hash, "", "user",
         "yes", "no", "2024-02-01", "", "", ""],
        ["usr_3", "citra@zmg.co.id", "Citra", password_hash, "Bandung", "user",
         "no", "no", "2024-02-02", "", "", ""],
        ["usr_4", "dewi@zmg.co.id", "Dewi", password_hash, "Surabaya", "user",
         "yes", "yes", "2024-03-01", "", "Ops", ""],
    ])
    ws.add_tab(USERS_BOOK, "verification_codes", [accounts.CODE_COLUMNS])
    ws.add_tab(USERS_BOOK, "rolePermission", PERMISSION_ROWS)

    monkeypatch.setattr(sheets, "get_sheets_service", lambda: FakeSheetsService(ws))
    monkeypatch.setattr(sheets, "get_drive_service", lambda: FakeDriveService(ws))
    monkeypatch.setattr(sheets.time, "sleep", lambda s: None)
    return ws


class Outbox:
    def __init__(self):
        self.codes = []
        self.background = []

    def last_code(self):
        return self.codes[-1]["code"]


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    box = Outbox()

    def fake_verification(email, code, name, purpose="registration"):
        box.codes.append({"email": email, "code": code, "name": name, "purpose": purpose})

    monkeypatch.setattr(mailer, "send_verification_email", fake_verification)
    monkeypatch.setattr(mailer, "send_in_background", lambda fn, *args: box.background.append((fn.__name__, args)))
    return box


@pytest.fixture
def apps_script(monkeypatch):
    sess = FakeAppsScriptSession()
    monkeypatch.setattr(drive_proxy, "_retrying_session", lambda: sess)
    return sess


@pytest.fixture
def app():
    import server
    server.app.config["TESTING"] = True
    return server.app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login():
    def _login(client, role="admin", email="admin@zmg.co.id", name="Ada Admin", region="Jakarta"):
        with client.session_transaction() as s:
            s["user"] = {"name": name, "email": email, "region": region, "usertype": role}
            s["last_activity"] = datetime.utcnow().isoformat()
            s["login_time"] = time.time()
        return client
    return _login
