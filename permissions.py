# ─── Role / menu permissions (rolePermission tab of the users spreadsheet) ──
import os
import logging

from sheet_cache import TTLCache
from sheets import fetch_sheet, write_sheet, a1, tab_range, cell

logger = logging.getLogger(__name__)

LEVELS = ("no", "read", "edit")

# sheet column header -> JSON key, in sheet column order (B..H)
MENU_KEYS = {
    "User management": "userManagement",
    "Home": "home",
    "Dashboard": "dashboard",
    "Projects": "projects",
    "Absensi": "absensi",
    "Daily Plan": "dailyPlan",
    "File Upload Center": "fileUploadCenter",
}

_perm_cache = TTLCache(ttl=300)


def role_permission_sheet():
    return {
        "spreadsheet_id": os.environ.get("GOOGLE_SHEET_ID_USER", ""),
        "sheet": os.environ.get("GOOGLE_SHEET_NAME_ROLEPERMISSION", "rolePermission"),
    }


def read_matrix():
    """Raw rolePermission rows (header first), uncached."""
    cfg = role_permission_sheet()
    return fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"], "A:Z"))


def parse_role_rows(rows):
    if not rows:
        raise ValueError("No data found in rolePermission sheet")
    out = []
    for r in rows[1:]:
        role = str(cell(r, 0)).strip()
        if not role:
            continue
        entry = {"role": role.lower()}
        for i, key in enumerate(MENU_KEYS.values(), start=1):
            entry[key] = str(cell(r, i)).strip().lower() or "no"
        out.append(entry)
    return out


def fetch_role_permissions(force=False):
    def load():
        cfg = role_permission_sheet()
        rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"], "A1:I100"))
        return parse_role_rows(rows)

    return _perm_cache.get_or_load("roles", load, force=force)


def clear_permissions_cache():
    _perm_cache.clear()
    logger.info("Role permission cache cleared")


def get_permissions_for_role(role):
    target = str(role or "").strip().lower()
    for p in fetch_role_permissions():
        if p["role"] == target:
            return p
    return None


def get_permission_level(perms, menu):
    key = MENU_KEYS.get(menu, menu)
    level = (perms or {}).get(key) or "no"
    return level if level in LEVELS else "no"


def has_menu_access(perms, menu):
    return get_permission_level(perms, menu) != "no"


def can_edit(perms, menu):
    return get_permission_level(perms, menu) == "edit"


# ─── Matrix editing ────────────────────────────────────────────────────────

def _user_management_col(headers):
    for i, h in enumerate(headers):
        h = str(h or "").lower()
        if "user" in h and "management" in h:
            return i
    return None


def can_manage_users(role, rows=None):
    """True only when role has 'edit' in the User management column."""
    rows = read_matrix() if rows is None else rows
    if not rows:
        return False
    col = _user_management_col(rows[0])
    if col is None:
        return False
    target = str(role or "").strip().lower()
    for r in rows[1:]:
        if str(cell(r, 0)).strip().lower() == target:
            return (str(cell(r, col)).strip().lower() or "no") == "edit"
    return False


def flatten_matrix(rows):
    """[{Role, Menu, Permission}] for every role row x menu column."""
    if not rows:
        return []
    headers = rows[0]
    out = []
    for r in rows[1:]:
        role = cell(r, 0)
        if not role:
            continue
        for j in range(1, len(headers)):
            out.append({
                "Role": role,
                "Menu": headers[j],
                "Permission": (str(cell(r, j)).strip().lower() or "no"),
            })
    return out


class MatrixError(Exception):
    def __init__(self, message, status=404):
        super().__init__(message)
        self.message = message
        self.status = status


def set_role_permission(role, menu, permission, rows=None):
    """Write one matrix cell (RAW). Raises MatrixError when menu/role is unknown."""
    cfg = role_permission_sheet()
    rows = read_matrix() if rows is None else rows
    if not rows:
        raise MatrixError("No data found in sheet")
    headers = rows[0]
    if menu not in headers:
        raise MatrixError(f'Menu column "{menu}" not found')
    col = headers.index(menu)

    target = str(role).lower()
    for i, r in enumerate(rows[1:], start=2):
        if str(cell(r, 0)).lower() == target:
            write_sheet(cfg["spreadsheet_id"], a1(cfg["sheet"], col, i), [[permission]], value_input="RAW")
            clear_permissions_cache()
            return a1(cfg["sheet"], col, i)
    raise MatrixError(f'Role "{role}" not found')
