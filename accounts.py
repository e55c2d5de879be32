"""
User accounts backed by the users spreadsheet.

Covers the users sheet, e-mail verification codes, registration rate limiting,
password rules/hashing and the short-lived password-setup JWT.
"""
import os
import re
import time
import secrets
import logging
import threading
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from sheets import (
    fetch_sheet, write_sheet, append_rows, rows_to_dicts,
    find_col, a1, tab_range, cell,
)

logger = logging.getLogger(__name__)

USER_COLUMNS = [
    "ID", "Email", "Name", "Password", "Region", "Role",
    "IsVerified", "IsActive", "registerDate", "phoneNo", "departement", "Login",
]
CODE_COLUMNS = ["Email", "Code", "Type", "CreatedAt", "ExpiresAt", "UsedAt"]

CODE_TTL_MINUTES = 15
SETUP_TOKEN_MINUTES = 15
BCRYPT_ROUNDS = 10

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CODE_RE = re.compile(r"^\d{6}$")


def users_sheet():
    return {
        "spreadsheet_id": os.environ.get("GOOGLE_SHEET_ID_USER", ""),
        "users": os.environ.get("GOOGLE_SHEET_NAME_USER", "users"),
        "codes": os.environ.get("GOOGLE_SHEET_NAME_VERIFICATION", "verification_codes"),
    }


def _require_spreadsheet():
    sid = users_sheet()["spreadsheet_id"]
    if not sid:
        raise RuntimeError("GOOGLE_SHEET_ID_USER is not configured")
    return sid


def _now():
    return datetime.now(timezone.utc)


def _iso(dt):
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(s):
    try:
        dt = datetime.fromisoformat(str(s or "").strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ─── Users ─────────────────────────────────────────────────────────────────

def _user_rows():
    cfg = users_sheet()
    return fetch_sheet(_require_spreadsheet(), tab_range(cfg["users"]))


def list_users():
    return rows_to_dicts(_user_rows())


def get_user_by_email(email):
    target = str(email or "").strip().lower()
    if not target:
        return None
    for u in list_users():
        if str(u.get("Email", "")).strip().lower() == target:
            return u
    return None


def new_user_id():
    return f"usr_{secrets.token_hex(6)}"


def create_user(email, name, password_hash, region=""):
    """
    Append a user row in sheet column order. New accounts are verified
    (they came through the e-mail code) but stay inactive until an admin
    flips IsActive.
    """
    cfg = users_sheet()
    sid = _require_spreadsheet()
    rows = fetch_sheet(sid, f"{tab_range(cfg['users'], '1:1')}")
    headers = [str(h).strip() for h in (rows[0] if rows else USER_COLUMNS)]
    record = {
        "ID": new_user_id(),
        "Email": email,
        "Name": name,
        "Password": password_hash,
        "Region": region or "",
        "Role": "user",
        "IsVerified": "yes",
        "IsActive": "no",
        "registerDate": _now().date().isoformat(),
        "phoneNo": "",
        "departement": "",
        "Login": "",
    }
    append_rows(sid, tab_range(cfg["users"]), [[record.get(h, "") for h in headers]], value_input="RAW")
    logger.info("Created user %s (%s)", record["ID"], email)
    return record


def update_user_cell(match_col, match_value, field, value):
    """
    Write one cell of the users sheet. The row is located by match_col
    (Email matches case-insensitively). Returns False if header or row is missing.
    """
    cfg = users_sheet()
    sid = _require_spreadsheet()
    rows = _user_rows()
    if not rows:
        return False
    headers = rows[0]
    key_idx = find_col(headers, match_col)
    field_idx = find_col(headers, field)
    if key_idx is None or field_idx is None:
        return False

    wanted = str(match_value or "").strip()
    for i, r in enumerate(rows[1:], start=2):
        have = str(cell(r, key_idx)).strip()
        same = have.lower() == wanted.lower() if match_col == "Email" else have == wanted
        if same:
            write_sheet(sid, a1(cfg["users"], field_idx, i), [[value]], value_input="RAW")
            return True
    return False


def record_login(email):
    return update_user_cell("Email", email, "Login", _iso(_now()))


def public_user(u):
    """Users sheet row without the password hash."""
    return {k: u.get(k, "") for k in USER_COLUMNS if k != "Password"}


def session_user(u):
    return {
        "name": u.get("Name", ""),
        "email": u.get("Email", ""),
        "region": u.get("Region", "") or "",
        "usertype": u.get("Role", "") or "user",
    }


# ─── Verification codes ────────────────────────────────────────────────────

def generate_code():
    """Random 6-digit code, zero padded."""
    return f"{secrets.randbelow(1000000):06d}"


def create_verification_code(email, code, code_type):
    cfg = users_sheet()
    now = _now()
    row = [
        str(email).strip().lower(),
        code,
        code_type,
        _iso(now),
        _iso(now + timedelta(minutes=CODE_TTL_MINUTES)),
        "",
    ]
    append_rows(_require_spreadsheet(), tab_range(cfg["codes"], "A:F"), [row], value_input="RAW")


def _code_rows():
    cfg = users_sheet()
    return fetch_sheet(_require_spreadsheet(), tab_range(cfg["codes"], "A:F"))


def _matching_code_rows(rows, email, code):
    """(sheet_row_number, record) pairs for email+code, newest first."""
    target = str(email or "").strip().lower()
    hits = []
    for i, r in enumerate(rows[1:], start=2):
        rec = dict(zip(CODE_COLUMNS, [str(cell(r, j)) for j in range(len(CODE_COLUMNS))]))
        if rec["Email"].strip().lower() == target and rec["Code"].strip() == str(code).strip():
            hits.append((i, rec))
    hits.reverse()
    return hits


def get_verification_code(email, code):
    """Newest record for this email+code, or None."""
    hits = _matching_code_rows(_code_rows(), email, code)
    return hits[0][1] if hits else None


def code_problem(record, expected_type=None, now=None):
    """Why a verification record can't be used, or None if it can."""
    if not record:
        return "Invalid or expired verification code"
    if expected_type and record.get("Type") != expected_type:
        return "Invalid verification code type"
    if record.get("UsedAt"):
        return "Verification code already used"
    expires = _parse_iso(record.get("ExpiresAt"))
    if expires is None or expires < (now or _now()):
        return "Verification code has expired"
    return None


def mark_code_used(email, code):
    cfg = users_sheet()
    hits = _matching_code_rows(_code_rows(), email, code)
    if not hits:
        return False
    row_num, _ = hits[0]
    write_sheet(
        _require_spreadsheet(),
        a1(cfg["codes"], CODE_COLUMNS.index("UsedAt"), row_num),
        [[_iso(_now())]],
        value_input="RAW",
    )
    return True


# ─── Rate limiting (per email + client IP, in-process) ─────────────────────

def get_rate_limit_config():
    return {
        "max_attempts": int(os.environ.get("RATE_LIMIT_MAX_ATTEMPTS", "5")),
        "window_minutes": int(os.environ.get("RATE_LIMIT_WINDOW_MINUTES", "15")),
        "block_minutes": int(os.environ.get("RATE_LIMIT_BLOCK_MINUTES", "30")),
    }


_rate_lock = threading.Lock()
_rate_state = {}  # "email|ip" -> {"window_start": float, "count": int, "blocked_until": float}


def check_rate_limit(email, ip, now=None):
    """
    Count one attempt for email+ip.
    Returns {"allowed": bool, "remainingAttempts": int, "blockedUntil": iso|None}.
    """
    cfg = get_rate_limit_config()
    now = time.time() if now is None else now
    key = f"{str(email or '').strip().lower()}|{ip or 'unknown'}"
    window = cfg["window_minutes"] * 60

    with _rate_lock:
        stale = [k for k, s in _rate_state.items()
                 if now - s["window_start"] > window and s.get("blocked_until", 0) <= now]
        for k in stale:
            del _rate_state[k]

        st = _rate_state.get(key)
        if st and st.get("blocked_until", 0) > now:
            return {
                "allowed": False,
                "remainingAttempts": 0,
                "blockedUntil": _iso(datetime.fromtimestamp(st["blocked_until"], timezone.utc)),
            }
        if not st or now - st["window_start"] > window or st.get("blocked_until"):
            st = {"window_start": now, "count": 0, "blocked_until": 0}

        if st["count"] >= cfg["max_attempts"]:
            st["blocked_until"] = now + cfg["block_minutes"] * 60
            _rate_state[key] = st
            logger.warning("Rate limit hit for %s", key)
            return {
                "allowed": False,
                "remainingAttempts": 0,
                "blockedUntil": _iso(datetime.fromtimestamp(st["blocked_until"], timezone.utc)),
            }

        st["count"] += 1
        _rate_state[key] = st
        return {
            "allowed": True,
            "remainingAttempts": cfg["max_attempts"] - st["count"],
            "blockedUntil": None,
        }


def reset_rate_limits():
    with _rate_lock:
        _rate_state.clear()


# ─── Passwords & tokens ────────────────────────────────────────────────────

def is_allowed_email(email):
    """(ok, error message) for a registration address."""
    email = str(email or "").strip()
    if not EMAIL_RE.match(email):
        return False, "Invalid email format"
    domain = os.environ.get("ALLOWED_EMAIL_DOMAIN", "zmg.co.id").strip().lower()
    if domain and not email.lower().endswith("@" + domain):
        return False, f"Only @{domain} email addresses are allowed"
    return True, None


def password_problem(password):
    password = password or ""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if not re.search(r"[A-Za-z]", password) or not re.search(r"[0-9]", password):
        return "Password must contain at least one letter and one number"
    return None


def hash_password(password):
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def check_password(password, password_hash):
    try:
        return bcrypt.checkpw((password or "").encode(), (password_hash or "").encode())
    except ValueError:
        # not a bcrypt hash (empty cell, legacy value)
        return False


class WrongTokenType(jwt.InvalidTokenError):
    pass


def get_jwt_secret():
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable not set")
    return secret


def issue_setup_token(email):
    now = _now()
    payload = {
        "email": email,
        "type": "password_setup",
        "iat": now,
        "exp": now + timedelta(minutes=SETUP_TOKEN_MINUTES),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm="HS256")


def read_setup_token(token):
    """
    Decode a password-setup token and return its email.
    Raises jwt.InvalidTokenError (incl. ExpiredSignatureError) when unusable.
    """
    payload = jwt.decode(token, get_jwt_secret(), algorithms=["HS256"])
    if payload.get("type") != "password_setup":
        raise WrongTokenType("Invalid token type")
    email = payload.get("email")
    if not email:
        raise jwt.InvalidTokenError("Token has no email")
    return email
