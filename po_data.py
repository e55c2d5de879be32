# ─── Huawei purchase-order spreadsheets ────────────────────────────────────
import os
import re
import math
import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sheet_cache import TTLCache
from sheets import fetch_sheet, list_tabs, get_file_metadata, rows_to_dicts, tab_range, is_data_tab, cell

logger = logging.getLogger(__name__)

JAKARTA = ZoneInfo("Asia/Jakarta")

PO_ENV_SUFFIXES = ("ITCXLS", "ITCXL", "ITCIOH", "ITCTSEL", "RNOXLS", "RNOXL", "RNOIOH", "RNOTSEL")

PO_ALIASES = {
    "po status": "PO Status", "postatus": "PO Status", "status po": "PO Status",
    "invoice pending": "Invoice Pending", "invoicepending": "Invoice Pending",
    "pending invoice": "Invoice Pending",
    "invoice amount": "Invoice Amount", "invoiceamount": "Invoice Amount",
    "amount invoice": "Invoice Amount",
}

ID_MONTHS = ("Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des")
ID_DAYS = ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu")

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

_po_cache = TTLCache(ttl=300)


def po_spreadsheet_ids():
    ids = []
    for suffix in PO_ENV_SUFFIXES:
        v = (os.environ.get(f"GOOGLE_SHEET_ID_POHW{suffix}") or "").strip()
        if v:
            ids.append(v)
    return ids


def round_half_up(x, digits=0):
    f = 10 ** digits
    return math.floor(x * f + 0.5) / f


def parse_remaining(value):
    """'35%' -> 35.0, 0.35 -> 0.35, junk -> 0."""
    if isinstance(value, (int, float)):
        return float(value)
    m = _NUMBER.match(str(value or "").replace("%", "").strip())
    return float(m.group(0)) if m else 0.0


# ─── Aggregation ───────────────────────────────────────────────────────────

def aggregate_po_status(tables):
    """
    tables: iterable of row lists (header first), one per PO tab.
    Returns {duid: {totalLines, avgRemaining, percentage, display}} where
    percentage is completion, i.e. 100 minus the average remaining.
    """
    lines = {}
    for rows in tables:
        if not rows:
            continue
        headers = [str(h or "").lower() for h in rows[0]]
        site_idx = next((i for i, h in enumerate(headers) if "site" in h and "id" in h), None)
        remaining_idx = next((i for i, h in enumerate(headers) if h == "remaining"), None)
        status_idx = next((i for i, h in enumerate(headers) if "status" in h), None)
        if site_idx is None or remaining_idx is None:
            continue

        for r in rows[1:]:
            if not r:
                continue
            site = str(cell(r, site_idx)).strip()
            if not site:
                continue
            status = str(cell(r, status_idx)).strip().lower() if status_idx is not None else ""
            if "cancel" in status:
                continue
            lines.setdefault(site, []).append(parse_remaining(cell(r, remaining_idx)))

    out = {}
    for duid, values in lines.items():
        avg = sum(values) / len(values)
        pct = avg * 100 if avg <= 1 else avg
        pct = int(round_half_up(pct))
        out[duid] = {
            "totalLines": len(values),
            "avgRemaining": round_half_up(avg, 2),
            "percentage": 100 - pct,
            "display": f"{100 - pct}%",
        }
    return out


def _load_po_tables():
    for sid in po_spreadsheet_ids():
        for title in list_tabs(sid):
            if not is_data_tab(title):
                continue
            yield fetch_sheet(sid, tab_range(title, "A:Z"))


def get_po_status(force=False):
    return _po_cache.get_or_load("status", lambda: aggregate_po_status(_load_po_tables()), force=force)


def clear_po_status_cache():
    _po_cache.clear()
    logger.info("PO status cache cleared")


def match_duids(data, duids):
    """Requested DUID -> PO entry. Exact key first, then case-insensitive."""
    lowered = {}
    for k, v in data.items():
        lowered.setdefault(k.lower(), v)
    out = {}
    for d in duids:
        key = str(d)
        if key in data:
            out[key] = data[key]
            continue
        hit = lowered.get(key.strip().lower())
        if hit is not None:
            out[key] = hit
    return out


def find_orphans(data, duids):
    """PO entries nobody asked for."""
    requested = {str(d).strip().lower() for d in duids}
    return {k: v for k, v in data.items() if k.lower() not in requested}


# ─── Row views ─────────────────────────────────────────────────────────────

def normalize_po_row(headers, row, sheet, spreadsheet):
    rec = {"_sheet": sheet, "_spreadsheet": spreadsheet}
    for i, h in enumerate(headers):
        h = str(h or "")
        value = cell(row, i)
        alias = PO_ALIASES.get(h.strip().lower())
        rec[alias or h] = value
    return rec


def normalize_xls_row(record, sheet):
    rec = dict(record)
    rec["_sheet"] = sheet
    for src, dst in (("Site ID PO", "Site ID"), ("Site Name PO", "Site Name")):
        if rec.get(src):
            rec[dst] = rec.pop(src)
    status_key = next((k for k in rec if k.lower() == "po status"), None)
    if status_key and status_key != "PO Status":
        rec["PO Status"] = rec.pop(status_key)
    return rec


def load_combined_po():
    """Every data row of every PO spreadsheet plus the newest Drive modifiedTime."""
    ids = po_spreadsheet_ids()
    data, sheet_names, latest = [], [], None
    for sid in ids:
        try:
            meta = get_file_metadata(sid)
            if meta.get("modifiedTime"):
                mt = datetime.fromisoformat(meta["modifiedTime"].replace("Z", "+00:00"))
                if latest is None or mt > latest:
                    latest = mt
        except Exception:
            logger.warning("No Drive metadata for %s", sid, exc_info=True)

        tabs = [t for t in list_tabs(sid) if is_data_tab(t)]
        sheet_names.extend(tabs)
        for title in tabs:
            rows = fetch_sheet(sid, tab_range(title, "A:Z"))
            if not rows:
                continue
            for r in rows[1:]:
                if r:
                    data.append(normalize_po_row(rows[0], r, title, sid))
    return {"data": data, "sheets": sheet_names, "spreadsheets": len(ids), "latest": latest}


def load_xls_po(spreadsheet_id):
    tabs = [t for t in list_tabs(spreadsheet_id) if is_data_tab(t)]
    data = []
    for title in tabs:
        for rec in rows_to_dicts(fetch_sheet(spreadsheet_id, tab_range(title, "A:Z"))):
            data.append(normalize_xls_row(rec, title))
    return {"data": data, "sheets": tabs}


# ─── Weekly refresh schedule ───────────────────────────────────────────────

def next_refresh(now=None):
    """Next Wednesday 08:00 WIB; a full week ahead when today is Wednesday."""
    now = (now or datetime.now(JAKARTA)).astimezone(JAKARTA)
    days = (2 - now.weekday()) % 7 or 7
    return (now + timedelta(days=days)).replace(hour=8, minute=0, second=0, microsecond=0)


def format_id_datetime(dt, weekday=False):
    dt = dt.astimezone(JAKARTA)
    s = f"{dt.day:02d} {ID_MONTHS[dt.month - 1]} {dt.year} {dt.hour:02d}.{dt.minute:02d}"
    return f"{ID_DAYS[dt.weekday()]}, {s}" if weekday else s
