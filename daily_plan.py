# ─── Daily plan sheet helpers ──────────────────────────────────────────────
import os
import re
import uuid
import logging
from datetime import date, datetime, timedelta

from sheet_cache import TTLCache
from sheets import fetch_sheet, rows_to_dicts, list_tabs, list_drive_files, tab_range, cell

logger = logging.getLogger(__name__)

TRUTHY = ("true", "yes", "1", "ya")
COLUMN_TYPES = ("string", "date", "time", "textarea", "currency", "list")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_DD_MON_YYYY = re.compile(r"(\d{1,2})-(\w{3})-(\d{4})")
_OTHER_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y", "%B %d, %Y", "%b %d, %Y")

FALLBACK_MENU = {
    "Activity": [
        "Survey", "MOS", "Installation", "Integration", "ATP / SIR", "Rectification",
        "Tagging", "Dismantle", "Inbound", "Outbound", "Troubleshoot", "RF Audit",
        "PLN Upgrade", "Others",
    ],
    "Team Category": ["Internal", "External", "B2B", "SP"],
    "SOW": ["TE", "MW", "DISM", "TSS", "PLN"],
    "Vendor": ["HUAWEI", "ZTE"],
    "Status": ["On Plan", "On Going", "Carry Over", "Done", "Failed", "Idle", "Off"],
    "Projects": ["IOH", "XLS", "TSEL"],
}

FOLDER_MIME = "application/vnd.google-apps.folder"
SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"


def get_daily_plan_config():
    return {
        "spreadsheet_id": os.environ.get("GOOGLE_SHEET_ID_DAILYPLAN", ""),
        "sheet": os.environ.get("GOOGLE_SHEET_ID_DAILYPLAN_SHEETNAME", "DailyPlan"),
        "settings": os.environ.get("GOOGLE_SHEET_ID_DAILYPLAN_SHEETSETTING", "setting"),
        "menu": os.environ.get("GOOGLE_SHEET_ID_DAILYPLAN_SHEETMENU", ""),
        "clock_folder": os.environ.get("GOOGLE_DRIVE_FOLDER_ID_CLOCKREPORT", ""),
    }


# ─── Date filtering ────────────────────────────────────────────────────────

def parse_row_date(text):
    """
    Date of a plan row. '04-Jan-2024' is what the sheet renders; a few
    other spellings show up in older rows. None when nothing parses.
    """
    s = str(text or "").strip()
    if not s:
        return None
    m = _DD_MON_YYYY.search(s)
    if m:
        day, mon, year = m.groups()
        month = MONTHS.get(mon.lower())
        if not month:
            return None
        try:
            return date(int(year), month, int(day))
        except ValueError:
            return None
    for fmt in _OTHER_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _as_date(d):
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    return datetime.strptime(str(d).strip()[:10], "%Y-%m-%d").date()


def valid_date_bounds(start, end):
    try:
        _as_date(start)
        _as_date(end)
    except ValueError:
        return False
    return True


def filter_rows_by_date(rows, start, end):
    """Rows whose Date falls in [start, end], whole days inclusive."""
    start, end = _as_date(start), _as_date(end)
    out = []
    for r in rows:
        d = parse_row_date(r.get("Date"))
        if d is not None and start <= d <= end:
            out.append(r)
    return out


def _window(start, end):
    return {"startDate": start.isoformat(), "endDate": end.isoformat()}


def default_date_window(today=None):
    """One week back through tomorrow."""
    today = today or date.today()
    return _window(today - timedelta(days=7), today + timedelta(days=1))


def custom_date_window(today=None, days_back=7, days_forward=1):
    today = today or date.today()
    return _window(today - timedelta(days=days_back), today + timedelta(days=days_forward))


def current_month_window(today=None):
    today = today or date.today()
    first = today.replace(day=1)
    nxt = (first + timedelta(days=32)).replace(day=1)
    return _window(first, nxt - timedelta(days=1))


# ─── Column settings / menu ────────────────────────────────────────────────

def display_name(col):
    s = re.sub(r"([a-z])([A-Z])", r"\1 \2", str(col or ""))
    s = re.sub(r"([A-Z])([A-Z][a-z])", r"\1 \2", s).strip()
    return s[:1].upper() + s[1:] if s else s


def parse_column_settings(records):
    """Settings tab records (Colom, Type, Show, Editable) -> {columns, summary}."""
    columns = []
    for rec in records:
        name = str(rec.get("Colom") or "")
        if not name:
            continue
        kind = str(rec.get("Type") or "string").strip().lower()
        columns.append({
            "name": name,
            "type": kind if kind in COLUMN_TYPES else "string",
            "show": str(rec.get("Show") or "").strip().lower() in TRUTHY,
            "editable": str(rec.get("Editable") or "").strip().lower() in TRUTHY,
            "displayName": display_name(name),
        })

    row_id = next((c for c in columns if c["name"] == "RowId"), None)
    if row_id is None:
        columns.insert(0, {
            "name": "RowId", "type": "string", "show": False,
            "editable": False, "displayName": "Row ID",
        })
    else:
        row_id["show"] = False
        row_id["editable"] = False

    summary = {
        "total": len(columns),
        "visible": sum(1 for c in columns if c["show"]),
        "editable": sum(1 for c in columns if c["editable"]),
        "byType": {t: sum(1 for c in columns if c["type"] == t) for t in COLUMN_TYPES if t != "list"},
    }
    return {"columns": columns, "summary": summary}


def menu_lists(rows):
    """Menu tab: one dropdown list per header, non-empty trimmed values."""
    if not rows:
        return {}
    out = {}
    for idx, header in enumerate(rows[0]):
        name = str(header or "").strip()
        if not name:
            continue
        values = [str(cell(r, idx)).strip() for r in rows[1:]]
        out[name] = [v for v in values if v]
    return out


def menu_summary(menu):
    return {
        "totalColumns": len(menu),
        "columns": list(menu.keys()),
        "sampleCounts": {k: len(v) for k, v in menu.items()},
    }


# ─── Import ────────────────────────────────────────────────────────────────

def build_import_rows(headers, data):
    """Rows in header order; each gets a fresh RowId, other keys mapped by exact header."""
    if "RowId" not in headers:
        raise ValueError("RowId column not found in the sheet")
    rid = headers.index("RowId")
    out = []
    for rec in data:
        row = [""] * len(headers)
        row[rid] = str(uuid.uuid4())
        for i, h in enumerate(headers):
            if h == "RowId":
                continue
            v = rec.get(h)
            if v is not None:
                row[i] = v
        out.append(row)
    return out


# ─── Reads ─────────────────────────────────────────────────────────────────

_plan_cache = TTLCache(ttl=15)


def fetch_plan_rows(force=False):
    """Raw rows of the plan tab (header first); short-lived cache."""
    cfg = get_daily_plan_config()
    return _plan_cache.get_or_load(
        "rows",
        lambda: fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"], "A:Z")),
        force=force,
    )


def fetch_plan_records(force=False):
    return rows_to_dicts(fetch_plan_rows(force=force))


def invalidate_plan_cache():
    _plan_cache.invalidate("rows")


# ─── Clock detail reports (Drive folder tree) ──────────────────────────────

def collect_folder_ids(root_id):
    ids = [root_id]
    subs = list_drive_files(
        f"'{root_id}' in parents and mimeType='{FOLDER_MIME}' and trashed=false",
        fields="files(id, name)",
    )
    for f in subs:
        if f.get("id"):
            ids.extend(collect_folder_ids(f["id"]))
    return ids


def list_clock_reports(root_id):
    folder_ids = collect_folder_ids(root_id)
    files = []
    for fid in folder_ids:
        files.extend(list_drive_files(
            f"'{fid}' in parents and mimeType='{SPREADSHEET_MIME}' and trashed=false",
            fields="files(id, name, createdTime, modifiedTime)",
            order_by="modifiedTime desc",
        ))
    reports = [
        f for f in files
        if "clock" in str(f.get("name", "")).lower() and "detail" in str(f.get("name", "")).lower()
    ]
    return {
        "sheets": [
            {k: f.get(k) for k in ("id", "name", "createdTime", "modifiedTime")}
            for f in reports
        ],
        "debug": {
            "totalFolders": len(folder_ids),
            "totalFiles": len(files),
            "filteredFiles": len(reports),
        },
    }


def clock_report_rows(spreadsheet_id):
    """Every tab's rows as dicts tagged with _sheet. Unreadable tabs are skipped."""
    out = []
    for title in list_tabs(spreadsheet_id):
        try:
            rows = fetch_sheet(spreadsheet_id, tab_range(title, "A:Z"))
        except Exception:
            logger.warning("Clock report tab %r unreadable, skipping", title, exc_info=True)
            continue
        for rec in rows_to_dicts(rows):
            out.append({"_sheet": title, **rec})
    return out
