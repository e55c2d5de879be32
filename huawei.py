"""
Huawei rollout trackers. ITC and RNO are the same sheet layout (one row per
DUID) living in different spreadsheets, so everything here takes a `kind`
("itc" or "rno") or works on plain header/row lists.
"""
import os
import re
import logging

from sheets import find_col_flexible, squash, a1, col_to_a1, cell

logger = logging.getLogger(__name__)

ROLLOUT_ENV = {
    "itc": ("HWROLLOUTITC", "ITCHIOH"),
    "rno": ("HWROLLOUTRNO", "RNOHWIOH"),
}

# Milestone dates on the ITC sheet are written once by the field teams and
# never overwritten by an Excel import.
ITC_DATE_COLUMNS = (
    "Survey", "MOS", "Installation", "Integration", "ATP Approved",
    "ATP CME", "TSSR Closed", "BPUJL", "Inbound",
)

RNO_DEFAULT_SHEETS = [
    {"sheetName": "RNOHWIOH", "title": "RNO Huawei IOH Project"},
    {"sheetName": "RNOHWXL", "title": "RNO Huawei XL Project"},
    {"sheetName": "RNOHWTSEL", "title": "RNO Huawei TSEL Project"},
]

REGISTER_REQUIRED = ("DUID", "DU Name", "Region", "Project Code")
MAX_REGISTER_ROWS = 20

SHEET_KEYS = ("sheet_list", "Sheet", "sheet", "SHEET", "SheetName", "sheetName", "sheetname")
TITLE_KEYS = ("title", "Title", "TITLE", "Description", "description")


def rollout_config(kind):
    suffix, default_sheet = ROLLOUT_ENV[kind]
    return {
        "spreadsheet_id": os.environ.get(f"GOOGLE_SHEET_ID_{suffix}", ""),
        "sheet": os.environ.get(f"GOOGLE_SHEET_NAME_{suffix}") or default_sheet,
        "settings": os.environ.get(f"GOOGLE_SHEET_NAME_{suffix}_SETTING") or "settings",
        "selection": os.environ.get(f"GOOGLE_SHEET_NAME_{suffix}_SHEETSELECTION") or "sheet_list",
    }


def _norm_id(v):
    return re.sub(r"\s+", "", str(v if v is not None else "")).upper()


def find_row(rows, id_idx, row_id):
    """
    Index into rows (header at 0) of the row whose id column equals row_id.
    Exact string match first, then trimmed/upper-cased/whitespace-free.
    None when nothing matches.
    """
    wanted = str(row_id if row_id is not None else "")
    for i in range(1, len(rows)):
        if str(cell(rows[i], id_idx)) == wanted:
            return i
    norm = _norm_id(wanted)
    for i in range(1, len(rows)):
        if _norm_id(cell(rows[i], id_idx)) == norm:
            return i
    return None


# ─── Settings ──────────────────────────────────────────────────────────────

def parse_rollout_settings(records):
    """Settings tab records (Column, Value, Editable, Show) -> {columns, summary}."""
    columns = []
    for rec in records:
        label = str(rec.get("Column") or "")
        name = re.sub(r"\s+", "", label)
        if not name:
            continue
        kind = str(rec.get("Value") or "String").strip().lower()
        columns.append({
            "name": name,
            "type": kind if kind in ("date", "time", "textarea", "currency", "list") else "string",
            "show": str(rec.get("Show") or "yes").strip().lower() == "yes",
            "editable": str(rec.get("Editable") or "yes").strip().lower() == "yes",
            "displayName": label,
        })
    return {
        "columns": columns,
        "summary": {
            "total": len(columns),
            "visible": sum(1 for c in columns if c["show"]),
            "editable": sum(1 for c in columns if c["editable"]),
        },
    }


def date_columns_from_settings(records):
    return [
        str(rec.get("Column") or "").strip()
        for rec in records
        if str(rec.get("Value") or "").strip().lower() == "date" and str(rec.get("Column") or "").strip()
    ]


def itc_is_date_column(header):
    h = str(header or "").lower()
    if not h:
        return False
    return any(h in d.lower() or d.lower() in h for d in ITC_DATE_COLUMNS)


def rno_date_matcher(date_columns):
    names = [str(d) for d in date_columns]

    def is_date(header):
        h = str(header or "")
        return any(h == d or h.lower() == d.lower() or squash(h) == squash(d) for d in names)
    return is_date


# ─── Bulk import from Excel ────────────────────────────────────────────────

def _import_col(headers, key):
    key = str(key)
    key_no_ws = re.sub(r"\s+", "", key)
    for i, h in enumerate(headers):
        h = str(h or "")
        h_no_ws = re.sub(r"\s+", "", h)
        if h == key or h_no_ws == key or h_no_ws == key_no_ws or h.lower() == key.lower():
            return i
    return None


def _is_duid_key(key):
    return squash(key) == "duid"


def _duid_of(record):
    for k, v in record.items():
        if _is_duid_key(k) and v not in (None, ""):
            return str(v).strip()
    return ""


def plan_bulk_import(sheet, headers, data_rows, updates, is_date_column):
    """
    Work out which cells an Excel upload may change.

    data_rows are the sheet rows below the header; updates is a list of
    {column: value} dicts from the upload. Protected date cells that already
    hold a value are kept, as are unchanged or empty values.
    """
    duid_idx = find_col_flexible(headers, "DUID")
    if duid_idx is None:
        raise ValueError("DUID column not found in sheet")

    by_duid = {}
    for i, r in enumerate(data_rows):
        key = str(cell(r, duid_idx)).strip()
        if key and key not in by_duid:
            by_duid[key] = i

    data, imported = [], []
    updated = skipped = 0
    for rec in updates:
        if not isinstance(rec, dict):
            skipped += 1
            continue
        duid = _duid_of(rec)
        if not duid or duid not in by_duid:
            skipped += len(rec)
            continue
        row_pos = by_duid[duid]
        row = data_rows[row_pos]
        sheet_row = row_pos + 2

        for key, value in rec.items():
            if _is_duid_key(key):
                skipped += 1
                continue
            col = _import_col(headers, key)
            if col is None:
                skipped += 1
                continue
            existing = cell(row, col)
            header = headers[col]
            if is_date_column(header) and str(existing).strip():
                skipped += 1
                continue
            if value is None or value == "" or str(value) == str(existing):
                skipped += 1
                continue
            data.append({"range": a1(sheet, col, sheet_row), "values": [[value]]})
            imported.append({"duid": duid, "column": header})
            updated += 1

    return {"data": data, "updated": updated, "skipped": skipped, "importedCells": imported}


# ─── Batch cell updates keyed by identifier ────────────────────────────────

def plan_cell_updates(sheet, rows, id_col, cell_updates):
    """
    cell_updates: [{rowId, columnId, value}]. Returns {data, skipped}.
    Raises LookupError when the identifier column is not in the header.
    """
    headers = [str(h or "") for h in (rows[0] if rows else [])]
    id_idx = next((i for i, h in enumerate(headers) if squash(h) == squash(id_col)), None)
    if id_idx is None:
        raise LookupError(f"Identifier column '{id_col}' not found")

    row_of = {}
    for i in range(1, len(rows)):
        key = str(cell(rows[i], id_idx)).strip()
        if key and key not in row_of:
            row_of[key] = i + 1

    data, skipped = [], 0
    for upd in cell_updates or []:
        if not isinstance(upd, dict):
            skipped += 1
            continue
        sheet_row = row_of.get(str(upd.get("rowId", "")).strip())
        col_id = str(upd.get("columnId", ""))
        col = None
        if col_id in headers:
            col = headers.index(col_id)
        else:
            col = next(
                (i for i, h in enumerate(headers)
                 if squash(h) == squash(col_id) or h.lower() == col_id.lower()),
                None,
            )
        if sheet_row is None or col is None:
            skipped += 1
            continue
        data.append({"range": a1(sheet, col, sheet_row), "values": [[upd.get("value", "")]]})
    return {"data": data, "skipped": skipped}


# ─── Registering new DUIDs ─────────────────────────────────────────────────

def validate_register_rows(rows):
    """User-facing error for a register/import payload, or None."""
    if not isinstance(rows, list) or not rows:
        return "No rows to register"
    if len(rows) > MAX_REGISTER_ROWS:
        return f"Maximum {MAX_REGISTER_ROWS} rows allowed"
    for r in rows:
        if not isinstance(r, dict):
            return f"Missing required field: {REGISTER_REQUIRED[0]}"
        for field in REGISTER_REQUIRED:
            if not str(r.get(field) or "").strip():
                return f"Missing required field: {field}"
    return None


def _register_value(row, header):
    if header in row and row[header] not in (None, ""):
        return row[header]
    target = squash(header)
    for k, v in row.items():
        if squash(k) == target and v not in (None, ""):
            return v
    return ""


def find_duplicates(headers, data_rows, rows):
    idx = find_col_flexible(headers, "DUID")
    if idx is None:
        raise ValueError("DUID column not found in sheet")
    existing = {str(cell(r, idx)).strip() for r in data_rows if str(cell(r, idx)).strip()}
    return [r["DUID"] for r in rows if str(r.get("DUID", "")).strip() in existing]


def build_register_rows(headers, rows):
    """
    Rows in header order, starting at the first non-empty header so that a
    sheet with leading blank columns is appended in place.
    Returns (start_col_letter, values).
    """
    start = next((i for i, h in enumerate(headers) if str(h or "").strip()), 0)
    used = headers[start:]
    values = [[_register_value(r, str(h or "")) if str(h or "").strip() else "" for h in used] for r in rows]
    return col_to_a1(start), values


# ─── Sheet selection lists ─────────────────────────────────────────────────

def parse_sheet_list_rows(rows):
    """ITC: rows of sheet_list!A2:B, both cells required."""
    return [
        {"sheetName": r[0], "title": r[1]}
        for r in rows
        if len(r) >= 2 and r[0] and r[1]
    ]


def parse_sheet_list_records(records):
    out = []
    for rec in records:
        name = next((rec[k] for k in SHEET_KEYS if rec.get(k)), "")
        if not name:
            continue
        title = next((rec[k] for k in TITLE_KEYS if rec.get(k)), "")
        out.append({"sheetName": name, "title": title})
    return out


def filter_by_region(records, region):
    if not region:
        return records
    return [r for r in records if (r.get("Region") or r.get("region") or "") == region]
