# ─── Imports & Logger Setup ─────────────────────────────────────────────────
import os
import time
import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from dotenv import load_dotenv
from flask import Flask, jsonify, request, session, redirect, make_response
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import accounts
import daily_plan
import huawei
import mailer
import permissions
import po_data
from drive_proxy import AppsScriptClient, AppsScriptError, get_drive_proxy_config
from sheets import (
    fetch_sheet, write_sheet, batch_write, append_rows, get_sheet_data,
    get_file_metadata, rows_to_dicts, find_col_flexible, a1, tab_range, cell,
)

# ─── Load .env & Logger ─────────────────────────────────────────────────────
load_dotenv()
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ─── Front-end URL & Flask Setup ─────────────────────────────────────────────
raw_frontend = os.environ.get("FRONTEND_URL", "http://localhost:3000")
FRONTEND_URL = raw_frontend.strip().rstrip("/")

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": FRONTEND_URL}}, supports_credentials=True)
app.secret_key = os.environ.get("SECRET_KEY", "dev-fallback-secret")

logout_all_ts = int(os.environ.get("LOGOUT_ALL_TS", "0"))
SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "168"))

app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=os.environ.get("SESSION_COOKIE_SECURE", "false").lower() == "true",
    SESSION_COOKIE_HTTPONLY=True,
    PERMANENT_SESSION_LIFETIME=timedelta(days=7),
)

app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

PUBLIC_PAGES = {"/login", "/register", "/verify", "/set-password", "/pending-activation", "/forgot-password"}
AUTH_PAGES = {"/login", "/register", "/verify", "/set-password"}


def _allowed_origins():
    allowed_env = os.environ.get("ALLOWED_ORIGINS", "")
    allowed = {o.strip().rstrip("/") for o in allowed_env.split(",") if o.strip()}
    allowed.update({
        FRONTEND_URL,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    })
    return allowed


def _now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _body():
    return request.get_json(silent=True) or {}


def _client_ip():
    return request.remote_addr or "unknown"


def _current_user():
    return session.get("user") or {}


def _auth_error(message, status):
    return jsonify({"success": False, "message": message}), status


def _error(message, status):
    return jsonify({"error": message}), status


def login_required_session(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        # 1) OPTIONS are always allowed (CORS preflight)
        if request.method == "OPTIONS":
            return make_response("", 204)

        # 2) Must be logged in at all
        if not session.get("user"):
            if request.path.startswith("/api/"):
                return jsonify({"error": "authentication required"}), 401
            return redirect(f"/login?redirect={request.path}")

        # 3) Idle timeout
        last = session.get("last_activity")
        try:
            last_dt = datetime.fromisoformat(last) if last else None
        except ValueError:
            last_dt = None
        if last_dt is None or datetime.utcnow() - last_dt > timedelta(hours=SESSION_IDLE_HOURS):
            session.clear()
            if request.path.startswith("/api/"):
                return jsonify({"error": "session expired"}), 401
            return redirect(f"/login?redirect={request.path}")

        # 4) Forced-logout check
        if session.get("login_time", 0) < logout_all_ts:
            session.clear()
            if request.path.startswith("/api/"):
                return jsonify({"error": "forced logout"}), 401
            return redirect(f"/login?redirect={request.path}")

        # 5) All good, refresh last_activity and proceed
        session["last_activity"] = datetime.utcnow().isoformat()
        return f(*args, **kwargs)

    return decorated


# --- CORS: handle all OPTIONS preflight early ---
@app.before_request
def handle_preflight():
    if request.method == "OPTIONS":
        origin = (request.headers.get("Origin") or "").strip().rstrip("/")
        resp = make_response("", 204)
        if origin in _allowed_origins():
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization"
            resp.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
        return resp  # short-circuit OPTIONS


@app.before_request
def page_gate():
    path = request.path
    if request.method == "OPTIONS" or path == "/" or path.startswith("/api/") or path.startswith("/static/"):
        return None
    logged_in = bool(session.get("user"))
    if path in PUBLIC_PAGES:
        if logged_in and path in AUTH_PAGES:
            return redirect("/")
        return None
    if not logged_in:
        return redirect(f"/login?redirect={path}")
    return None


@app.after_request
def apply_cors(response):
    origin = (request.headers.get("Origin") or "").strip().rstrip("/")
    if origin in _allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization"
    response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
    return response


@app.errorhandler(Exception)
def handle_exception(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception("Unhandled exception in request:")
    if request.path.startswith("/api/"):
        return jsonify({"error": "Internal server error", "details": str(e)}), 500
    return "Internal Server Error", 500


@app.route("/")
def index():
    return jsonify({"status": "ok", "user": session.get("user")})


# ─── Auth ────────────────────────────────────────────────────────────────────

@app.route("/api/auth/login", methods=["POST"])
def auth_login():
    data = _body()
    email = str(data.get("email") or "").strip()
    password = data.get("password") or ""
    if not email or not password:
        return _auth_error("Email and password are required", 400)

    try:
        user = accounts.get_user_by_email(email)
    except Exception:
        app.logger.exception("Login lookup failed")
        return _auth_error("Internal server error", 500)

    if not user:
        return _auth_error("Invalid email or password", 401)
    if str(user.get("IsVerified", "")).strip().lower() != "yes":
        return _auth_error("Please verify your email first", 403)
    if str(user.get("IsActive", "")).strip().lower() != "yes":
        return _auth_error("Account is not active. Please contact administrator.", 403)
    if not accounts.check_password(password, user.get("Password", "")):
        return _auth_error("Invalid email or password", 401)

    try:
        accounts.record_login(user.get("Email", email))
    except Exception as e:
        logger.warning("Could not record login time for %s: %s", email, e)

    who = accounts.session_user(user)
    session.clear()
    session.permanent = True
    session["user"] = who
    session["last_activity"] = datetime.utcnow().isoformat()
    session["login_time"] = time.time()

    mailer.send_in_background(
        mailer.send_login_alert_email,
        who["email"], who["name"], _client_ip(), request.headers.get("User-Agent", ""),
    )
    logger.info("User %s logged in", who["email"])
    return jsonify({"success": True, "message": "Login successful", "user": who})


@app.route("/api/auth/logout", methods=["POST"])
def auth_logout():
    session.clear()
    return jsonify({"success": True, "message": "Logged out"})


@app.route("/api/auth/session", methods=["GET"])
def auth_session():
    user = session.get("user")
    if not user:
        return _auth_error("Not authenticated", 401)
    return jsonify({"success": True, "user": user})


def _issue_registration_code(email, name):
    """Shared by register and resend-code. Returns a response tuple."""
    ok, err = accounts.is_allowed_email(email)
    if not ok:
        return _error(err, 400)

    rl = accounts.check_rate_limit(email, _client_ip())
    if not rl["allowed"]:
        until = rl["blockedUntil"]
        return jsonify({
            "error": f"Too many attempts. Please try again after {until}",
            "blockedUntil": until,
        }), 429

    if accounts.get_user_by_email(email):
        return _error("Email already registered. Please login instead.", 400)

    code = accounts.generate_code()
    accounts.create_verification_code(email, code, "registration")
    mailer.send_verification_email(email, code, name)
    return jsonify({
        "success": True,
        "message": "Verification code sent to your email",
        "remainingAttempts": rl["remainingAttempts"],
    }), 200


@app.route("/api/auth/register", methods=["POST"])
def auth_register():
    data = _body()
    email = str(data.get("email") or "").strip()
    name = str(data.get("name") or "").strip()
    if not email or not name:
        return _error("Email and name are required", 400)
    try:
        return _issue_registration_code(email, name)
    except Exception as e:
        app.logger.exception("Registration failed for %s", email)
        return jsonify({
            "error": "Failed to process registration. Please try again later.",
            "details": str(e),
        }), 500


@app.route("/api/auth/resend-code", methods=["POST"])
def auth_resend_code():
    data = _body()
    email = str(data.get("email") or "").strip()
    if not email:
        return _error("Email is required", 400)
    name = str(data.get("name") or "").strip() or email.split("@")[0]
    try:
        return _issue_registration_code(email, name)
    except Exception as e:
        app.logger.exception("Resend code failed for %s", email)
        return jsonify({"error": "Failed to resend verification code", "details": str(e)}), 500


@app.route("/api/auth/verify-code", methods=["POST"])
def auth_verify_code():
    data = _body()
    email = str(data.get("email") or "").strip()
    code = str(data.get("code") or "").strip()
    if not email or not code:
        return _error("Email and code are required", 400)
    if not accounts.CODE_RE.match(code):
        return _error("Invalid code format. Code must be 6 digits.", 400)

    try:
        record = accounts.get_verification_code(email, code)
        if accounts.code_problem(record, "registration"):
            return _error("Invalid or expired verification code", 400)
        accounts.mark_code_used(email, code)
        token = accounts.issue_setup_token(email)
    except Exception as e:
        app.logger.exception("Verify code failed for %s", email)
        return jsonify({"error": "Failed to verify code. Please try again.", "details": str(e)}), 500

    return jsonify({"success": True, "message": "Email verified successfully", "token": token})


@app.route("/api/auth/set-password", methods=["POST"])
def auth_set_password():
    data = _body()
    token = data.get("token")
    password = data.get("password")
    name = str(data.get("name") or "").strip()
    region = str(data.get("region") or "").strip()
    if not token or not password or not name:
        return _error("Token, password, and name are required", 400)
    problem = accounts.password_problem(password)
    if problem:
        return _error(problem, 400)

    try:
        email = accounts.read_setup_token(token)
    except accounts.WrongTokenType:
        return _error("Invalid token type", 400)
    except jwt.InvalidTokenError:
        return _error("Invalid or expired token. Please request a new verification code.", 400)

    try:
        if accounts.get_user_by_email(email):
            return _error("User already exists. Please login instead.", 400)
        accounts.create_user(email, name, accounts.hash_password(password), region)
    except Exception as e:
        app.logger.exception("Account creation failed for %s", email)
        return jsonify({"error": "Failed to create account. Please try again.", "details": str(e)}), 500

    mailer.send_in_background(mailer.send_welcome_email, email, name)
    return jsonify({"success": True, "message": "Account created successfully. You can now login."})


@app.route("/api/auth/forgot-password", methods=["POST"])
def auth_forgot_password():
    email = str(_body().get("email") or "").strip()
    if not email:
        return _error("Email is required", 400)
    generic = {"success": True, "message": "If the email exists, a verification code has been sent."}
    try:
        user = accounts.get_user_by_email(email)
        if not user:
            return jsonify(generic)
        code = accounts.generate_code()
        accounts.create_verification_code(email, code, "password_reset")
        mailer.send_verification_email(email, code, user.get("Name") or email, purpose="password_reset")
    except Exception as e:
        app.logger.exception("Forgot password failed for %s", email)
        return jsonify({"error": "Failed to send verification code", "details": str(e)}), 500
    return jsonify(generic)


def _reset_code_problem(email, code):
    record = accounts.get_verification_code(email, code)
    return accounts.code_problem(record, "password_reset")


@app.route("/api/auth/verify-reset-code", methods=["POST"])
def auth_verify_reset_code():
    data = _body()
    email = str(data.get("email") or "").strip()
    code = str(data.get("code") or "").strip()
    if not email or not code:
        return _error("Email and code are required", 400)
    try:
        problem = _reset_code_problem(email, code)
    except Exception as e:
        app.logger.exception("Verify reset code failed")
        return jsonify({"error": "Failed to verify code", "details": str(e)}), 500
    if problem:
        return _error(problem, 400)
    return jsonify({"success": True, "message": "Verification code is valid"})


@app.route("/api/auth/reset-password", methods=["POST"])
def auth_reset_password():
    data = _body()
    email = str(data.get("email") or "").strip()
    code = str(data.get("code") or "").strip()
    new_password = data.get("newPassword") or ""
    if not email or not code or not new_password:
        return _error("Email, code, and new password are required", 400)
    problem = accounts.password_problem(new_password)
    if problem:
        return _error(problem, 400)

    try:
        problem = _reset_code_problem(email, code)
        if problem:
            return _error(problem, 400)
        if not accounts.get_user_by_email(email):
            return _error("User not found", 404)
        if not accounts.update_user_cell("Email", email, "Password", accounts.hash_password(new_password)):
            return _error("User not found", 404)
        accounts.mark_code_used(email, code)
    except Exception as e:
        app.logger.exception("Reset password failed")
        return jsonify({"error": "Failed to reset password", "details": str(e)}), 500

    logger.info("Password reset for %s", email)
    return jsonify({"success": True, "message": "Password reset successfully"})


@app.route("/api/auth/change-password", methods=["POST"])
@login_required_session
def auth_change_password():
    data = _body()
    current = data.get("currentPassword") or ""
    new = data.get("newPassword") or ""
    if not current or not new:
        return _auth_error("Current password and new password are required", 400)
    if len(new) < 8:
        return _auth_error("New password must be at least 8 characters long", 400)
    if accounts.password_problem(new):
        return _auth_error("Password must contain both letters and numbers", 400)

    email = _current_user().get("email")
    if not email:
        return _auth_error("Not authenticated", 401)

    try:
        user = accounts.get_user_by_email(email)
        if not user:
            return _auth_error("User not found", 404)
        if not accounts.check_password(current, user.get("Password", "")):
            return _auth_error("Current password is incorrect", 401)
        if not accounts.update_user_cell("Email", email, "Password", accounts.hash_password(new)):
            return _auth_error("User not found", 404)
    except Exception:
        app.logger.exception("Change password failed for %s", email)
        return _auth_error("Internal server error", 500)

    return jsonify({"success": True, "message": "Password changed successfully"})


def _parse_when(s):
    s = str(s or "").strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        try:
            dt = datetime.strptime(s, "%m/%d/%Y")
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_date(s):
    if not str(s or "").strip():
        return "N/A"
    dt = _parse_when(s)
    if dt is None:
        return s
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"


def _format_datetime(s):
    dt = _parse_when(s)
    if dt is None:
        return "N/A"
    dt = dt.astimezone(mailer.JAKARTA)
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}, {dt.strftime('%I:%M %p')}"


@app.route("/api/auth/profile", methods=["GET"])
@login_required_session
def auth_profile():
    try:
        user = accounts.get_user_by_email(_current_user().get("email"))
    except Exception:
        app.logger.exception("Profile lookup failed")
        return _auth_error("Internal server error", 500)
    if not user:
        return _auth_error("User not found", 404)

    active = str(user.get("IsActive", "")).lower() == "yes"
    return jsonify({
        "success": True,
        "user": {
            "name": user.get("Name", ""),
            "email": user.get("Email", ""),
            "region": user.get("Region") or "Not specified",
            "usertype": user.get("Role") or "user",
            "status": "Active" if active else "Inactive",
            "phone": user.get("phoneNo", ""),
            "department": user.get("departement", ""),
            "joinDate": _format_date(user.get("registerDate")),
            "lastLogin": _format_datetime(user.get("Login")),
            "isVerified": str(user.get("IsVerified", "")).lower() == "yes",
            "isActive": active,
            "loginAlerts": True,
        },
    })


@app.route("/api/auth/preferences", methods=["POST"])
@login_required_session
def auth_preferences():
    prefs = _body()
    logger.info("Preferences for %s: %s", _current_user().get("email"), sorted(prefs.keys()))
    return jsonify({"success": True, "message": "Preferences updated successfully", "preferences": prefs})


# ─── Permissions & users ────────────────────────────────────────────────────

@app.route("/api/permissions", methods=["GET"])
@login_required_session
def get_permissions():
    role = _current_user().get("usertype") or "user"
    try:
        perms = permissions.get_permissions_for_role(role)
    except Exception as e:
        app.logger.exception("Permission lookup failed")
        return jsonify({"error": "Internal server error", "details": str(e)}), 500
    if not perms:
        return _error("Role not found in permissions table", 404)
    keys = ("userManagement", "home", "dashboard", "projects", "absensi", "dailyPlan")
    return jsonify({"success": True, "role": role, "permissions": {k: perms[k] for k in keys}})


@app.route("/api/permissions/clear-cache", methods=["POST"])
@login_required_session
def clear_permissions_cache():
    permissions.clear_permissions_cache()
    return jsonify({"success": True, "message": "Permissions cache cleared successfully"})


@app.route("/api/permissions/roles", methods=["GET"])
@login_required_session
def get_roles():
    try:
        roles = [p["role"] for p in permissions.fetch_role_permissions()]
    except Exception as e:
        app.logger.exception("Fetching roles failed")
        return jsonify({"error": "Failed to fetch roles", "details": str(e)}), 500
    return jsonify({"success": True, "roles": roles})


@app.route("/api/permissions/role-permissions", methods=["GET", "PATCH"])
@login_required_session
def role_permissions():
    role = _current_user().get("usertype") or ""
    try:
        rows = permissions.read_matrix()
        if not permissions.can_manage_users(role, rows):
            return _auth_error("Access denied. You need edit permission for User Management.", 403)

        if request.method == "GET":
            return jsonify({"success": True, "permissions": permissions.flatten_matrix(rows)})

        data = _body()
        target_role, menu, level = data.get("role"), data.get("menu"), data.get("permission")
        if not target_role or not menu or not level:
            return _auth_error("Role, menu, and permission are required", 400)
        if level not in permissions.LEVELS:
            return _auth_error('Permission must be "no", "read", or "edit"', 400)
        try:
            permissions.set_role_permission(target_role, menu, level, rows)
        except permissions.MatrixError as e:
            return _auth_error(e.message, e.status)
    except Exception:
        app.logger.exception("Role permission %s failed", request.method)
        if request.method == "GET":
            return _auth_error("Failed to fetch role permissions", 500)
        return _auth_error("Failed to update role permission", 500)

    logger.info("Role %s set %s=%s on %s", role, target_role, level, menu)
    return jsonify({"success": True, "message": "Permission updated successfully"})


USER_EDITABLE_FIELDS = ("IsActive", "Role", "Region")


@app.route("/api/users", methods=["GET", "PATCH"])
@login_required_session
def users_admin():
    if _current_user().get("usertype") != "admin":
        return _error("Forbidden - Admin only", 403)

    if request.method == "GET":
        try:
            users = [accounts.public_user(u) for u in accounts.list_users()]
        except Exception as e:
            app.logger.exception("Fetching users failed")
            return jsonify({"error": "Failed to fetch users", "details": str(e)}), 500
        return jsonify({"success": True, "data": users})

    data = _body()
    user_id, field, value = data.get("userId"), data.get("field"), data.get("value")
    if not user_id or not field or value is None:
        return _error("Missing required fields", 400)
    if field not in USER_EDITABLE_FIELDS:
        return _error("Invalid field", 400)
    try:
        if not accounts.update_user_cell("ID", user_id, field, value):
            return _error("User not found", 404)
    except Exception as e:
        app.logger.exception("Updating user %s failed", user_id)
        return jsonify({"error": "Failed to update user", "details": str(e)}), 500

    logger.info("Admin %s set %s=%s on %s", _current_user().get("email"), field, value, user_id)
    return jsonify({"success": True, "message": "User updated successfully"})


# ─── Daily plan ─────────────────────────────────────────────────────────────

def _plan_cfg_or_error():
    cfg = daily_plan.get_daily_plan_config()
    if not cfg["spreadsheet_id"]:
        return cfg, _error("Google Sheet ID is not configured", 500)
    return cfg, None


@app.route("/api/sheets", methods=["GET"])
@login_required_session
def get_daily_plan():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err

    start = request.args.get("startDate")
    end = request.args.get("endDate")
    preset = (request.args.get("preset") or "").strip().lower()
    if not (start and end) and preset:
        if preset == "week":
            window = daily_plan.default_date_window()
        elif preset == "month":
            window = daily_plan.current_month_window()
        elif preset == "custom":
            try:
                back = int(request.args.get("daysBack", 7))
                forward = int(request.args.get("daysForward", 1))
            except ValueError:
                return _error("daysBack and daysForward must be integers", 400)
            window = daily_plan.custom_date_window(days_back=back, days_forward=forward)
        else:
            return _error(f"Unknown preset '{preset}'", 400)
        start, end = window["startDate"], window["endDate"]

    if start and end and not daily_plan.valid_date_bounds(start, end):
        return _error("startDate and endDate must be YYYY-MM-DD", 400)

    try:
        data = daily_plan.fetch_plan_records()
        filtered = data
        if start and end and data:
            filtered = daily_plan.filter_rows_by_date(data, start, end)
            logger.info("Daily plan %s..%s: %d of %d rows", start, end, len(filtered), len(data))
    except Exception as e:
        app.logger.exception("Daily plan fetch failed")
        return jsonify({"error": "Failed to fetch data from Google Sheets", "details": str(e)}), 500

    return jsonify({
        "data": filtered,
        "total": len(filtered),
        "originalTotal": len(data),
        "dateFilter": {"startDate": start, "endDate": end} if start and end else None,
        "message": "Data fetched successfully",
    })


@app.route("/api/sheets/settings", methods=["GET"])
@login_required_session
def get_daily_plan_settings():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    try:
        records = get_sheet_data(cfg["spreadsheet_id"], tab_range(cfg["settings"]))
    except Exception as e:
        app.logger.exception("Daily plan settings fetch failed")
        return jsonify({"error": "Failed to fetch column settings", "details": str(e), "timestamp": _now_iso()}), 500
    if not records:
        return _error("No settings data found", 404)
    return jsonify({
        "success": True,
        "message": "Column settings fetched successfully",
        "data": daily_plan.parse_column_settings(records),
        "timestamp": _now_iso(),
    })


@app.route("/api/sheets/menu", methods=["GET"])
@login_required_session
def get_daily_plan_menu():
    cfg = daily_plan.get_daily_plan_config()
    try:
        if not cfg["spreadsheet_id"] or not cfg["menu"]:
            raise RuntimeError("Missing spreadsheet ID or menu sheet name in environment variables")
        rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["menu"]))
    except Exception as e:
        logger.warning("Menu sheet unavailable, serving fallback lists: %s", e)
        menu = daily_plan.FALLBACK_MENU
        return jsonify({"success": True, "data": menu, "fallback": True, "summary": daily_plan.menu_summary(menu)})

    if not rows:
        return jsonify({"success": True, "data": {}, "message": "No menu data found"})
    menu = daily_plan.menu_lists(rows)
    return jsonify({"success": True, "data": menu, "summary": daily_plan.menu_summary(menu)})


@app.route("/api/sheets/debug", methods=["GET"])
@login_required_session
def debug_daily_plan():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    try:
        data = daily_plan.fetch_plan_records(force=True)
    except Exception as e:
        app.logger.exception("Daily plan debug failed")
        return jsonify({"error": "Failed to fetch debug info", "details": str(e)}), 500
    first = data[0] if data else {}
    return jsonify({
        "success": True,
        "debug": {
            "spreadsheetId": cfg["spreadsheet_id"],
            "sheetName": cfg["sheet"],
            "totalRows": len(data),
            "columns": sorted(first.keys()),
            "hasRowId": "RowId" in first,
            "sampleRow": first or None,
            "firstFiveRows": data[:5],
        },
    })


def _locate_plan_cell(cfg, row_index, column_id):
    """(range, col_idx, sheet_row) for a positional plan update, or an error response."""
    if not isinstance(row_index, int) or isinstance(row_index, bool) or row_index < 0:
        return None, _error("rowIndex must be a non-negative integer", 400)
    rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"]))
    if not rows:
        return None, _error("No data found", 404)
    headers = rows[0]
    if column_id not in headers:
        return None, _error("Column not found", 404)
    col = headers.index(column_id)
    sheet_row = row_index + 2
    return (a1(cfg["sheet"], col, sheet_row), col, sheet_row), None


@app.route("/api/sheets/update", methods=["PUT"])
@login_required_session
def update_daily_plan_cell():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    data = _body()
    value = data.get("value")
    try:
        found, err = _locate_plan_cell(cfg, data.get("rowIndex"), data.get("columnId"))
        if err:
            return err
        rng = found[0]
        write_sheet(cfg["spreadsheet_id"], rng, [[value]])
        daily_plan.invalidate_plan_cache()
    except Exception as e:
        app.logger.exception("Daily plan update failed")
        return jsonify({"error": "Failed to update cell in Google Sheets", "details": str(e)}), 500
    return jsonify({"success": True, "message": "Cell updated successfully", "updatedRange": rng, "value": value})


@app.route("/api/sheets/update-tracked", methods=["PUT"])
@login_required_session
def update_daily_plan_cell_tracked():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    data = _body()
    value = data.get("value")
    ts = _now_iso()
    try:
        found, err = _locate_plan_cell(cfg, data.get("rowIndex"), data.get("columnId"))
        if err:
            return err
        rng, col, sheet_row = found
        current = fetch_sheet(cfg["spreadsheet_id"], rng)
        previous = cell(current[0], 0) if current else ""
        write_sheet(cfg["spreadsheet_id"], rng, [[value]])
        daily_plan.invalidate_plan_cache()
    except Exception as e:
        app.logger.exception("Tracked daily plan update failed")
        return jsonify({
            "error": "Failed to update cell in Google Sheets",
            "details": str(e),
            "timestamp": _now_iso(),
        }), 500

    logger.info("Plan cell %s: %r -> %r", rng, previous, value)
    return jsonify({
        "success": True,
        "message": "Cell updated successfully",
        "updatedRange": rng,
        "value": value,
        "oldValue": previous,
        "timestamp": ts,
        "cellInfo": {"row": sheet_row, "column": rng.split("!")[-1].rstrip("0123456789"), "columnIndex": col},
    })


@app.route("/api/sheets/safe-update", methods=["PUT"])
@login_required_session
def safe_update_daily_plan_cell():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    data = _body()
    row_id = data.get("rowId")
    column_id = data.get("columnId")
    value = data.get("value")
    id_col = data.get("rowIdentifierColumn") or "id"

    try:
        rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"]))
        if not rows:
            return _error("No data found", 404)
        headers = rows[0]
        if id_col not in headers:
            return _error(f"Identifier column '{id_col}' not found in headers", 400)
        id_idx = headers.index(id_col)

        wanted = "" if row_id is None else str(row_id)
        pos = next((i for i, r in enumerate(rows[1:]) if str(cell(r, id_idx)) == wanted), None)
        if pos is None:
            return jsonify({
                "error": f"Row with {id_col}='{row_id}' not found",
                "availableIds": [cell(r, id_idx) for r in rows[1:] if cell(r, id_idx)],
            }), 404
        if column_id not in headers:
            return jsonify({"error": f"Column '{column_id}' not found", "availableColumns": headers}), 400
        col = headers.index(column_id)

        current = cell(rows[pos + 1], col)
        if "oldValue" in data and current != data.get("oldValue"):
            logger.warning("safe-update %s=%s %s: expected %r, sheet has %r; writing anyway",
                           id_col, row_id, column_id, data.get("oldValue"), current)

        sheet_row = pos + 2
        rng = a1(cfg["sheet"], col, sheet_row)
        write_sheet(cfg["spreadsheet_id"], rng, [[value]])

        check = fetch_sheet(cfg["spreadsheet_id"], rng)
        confirmed = (cell(check[0], 0) if check else None) == value
        daily_plan.invalidate_plan_cache()
    except Exception as e:
        app.logger.exception("Safe update failed")
        return jsonify({"error": "Failed to safely update cell", "details": str(e), "timestamp": _now_iso()}), 500

    return jsonify({
        "success": True,
        "message": "Cell updated safely using row ID verification",
        "rowId": row_id,
        "updatedRange": rng,
        "value": value,
        "verification": {
            "currentValue": current,
            "rowFound": True,
            "actualRowIndex": pos,
            "sheetRowIndex": sheet_row,
            "range": rng,
        },
        "updateConfirmed": confirmed,
        "cacheInvalidated": True,
        "timestamp": _now_iso(),
    })


@app.route("/api/sheets/import", methods=["POST"])
@login_required_session
def import_daily_plan():
    cfg, err = _plan_cfg_or_error()
    if err:
        return err
    records = _body().get("data")
    if not isinstance(records, list) or not records:
        return _error("No data provided or invalid format", 400)

    try:
        head = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["sheet"], "1:1"))
        headers = head[0] if head else []
        if not headers:
            return _error("No headers found in the sheet", 400)
        if "RowId" not in headers:
            return _error("RowId column not found in the sheet", 400)
        values = daily_plan.build_import_rows(headers, records)
        updates = append_rows(cfg["spreadsheet_id"], tab_range(cfg["sheet"], "A:A"), values)
        daily_plan.invalidate_plan_cache()
    except Exception as e:
        app.logger.exception("Daily plan import failed")
        return jsonify({"error": "Failed to import data", "details": str(e)}), 500

    count = updates.get("updatedRows", 0)
    logger.info("Imported %d daily plan rows", count)
    return jsonify({"success": True, "message": f"Successfully imported {count} rows", "count": count})


@app.route("/api/sheets/clock-report", methods=["GET"])
@login_required_session
def clock_report():
    folder_id = daily_plan.get_daily_plan_config()["clock_folder"]
    if not folder_id:
        return _error("GOOGLE_DRIVE_FOLDER_ID_CLOCKREPORT not configured", 500)

    sheet_id = request.args.get("sheetId")
    if sheet_id:
        try:
            return jsonify({"data": daily_plan.clock_report_rows(sheet_id)})
        except Exception as e:
            app.logger.exception("Clock report %s failed", sheet_id)
            return jsonify({"error": "Failed to fetch clock reports", "details": str(e)}), 500

    try:
        return jsonify(daily_plan.list_clock_reports(folder_id))
    except Exception as e:
        logger.warning("Clock report folder %s not readable: %s", folder_id, e)
        return jsonify({"sheets": [], "error": "Failed to access folder", "details": str(e)})


# ─── Huawei rollout (ITC / RNO) ─────────────────────────────────────────────

def _rollout_cfg_or_error(kind):
    cfg = huawei.rollout_config(kind)
    if not cfg["spreadsheet_id"]:
        return cfg, _error("Google Sheet ID is not configured", 500)
    return cfg, None


def _modified_label(spreadsheet_id):
    try:
        meta = get_file_metadata(spreadsheet_id)
    except Exception as e:
        logger.warning("No Drive metadata for %s: %s", spreadsheet_id, e)
        return None
    if not meta.get("modifiedTime"):
        return None
    mt = datetime.fromisoformat(meta["modifiedTime"].replace("Z", "+00:00"))
    return po_data.format_id_datetime(mt)


def _rollout_data(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    sheet = request.args.get("sheetName") or cfg["sheet"]
    try:
        data = get_sheet_data(cfg["spreadsheet_id"], tab_range(sheet))
    except Exception as e:
        app.logger.exception("%s rollout fetch failed", kind.upper())
        return jsonify({"error": "Failed to fetch sheet data", "details": str(e)}), 500

    if kind == "itc":
        return jsonify({"data": data, "total": len(data), "timestamp": _now_iso()})

    region = request.args.get("region")
    filtered = huawei.filter_by_region(data, region)
    resp = jsonify({
        "data": filtered,
        "total": len(filtered),
        "originalTotal": len(data),
        "regionFilter": {"region": region} if region else None,
        "lastUpdated": _modified_label(cfg["spreadsheet_id"]),
        "timestamp": _now_iso(),
    })
    resp.headers["Cache-Control"] = "public, s-maxage=10800, stale-while-revalidate=30"
    return resp


def _rollout_settings(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    try:
        records = get_sheet_data(cfg["spreadsheet_id"], tab_range(cfg["settings"]))
    except Exception as e:
        app.logger.exception("%s settings fetch failed", kind.upper())
        return jsonify({"error": "Failed to fetch column settings", "details": str(e)}), 500
    if not records:
        return _error("No settings data found", 404)
    return jsonify({
        "success": True,
        "message": "Column settings fetched successfully",
        "data": huawei.parse_rollout_settings(records),
        "timestamp": _now_iso(),
    })


def _rollout_sheet_list(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    if kind == "itc":
        try:
            rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(cfg["selection"], "A2:B100"))
        except Exception as e:
            app.logger.exception("ITC sheet list fetch failed")
            return jsonify({"error": "Failed to fetch sheet list", "details": str(e)}), 500
        return jsonify({"success": True, "data": huawei.parse_sheet_list_rows(rows)})

    try:
        records = get_sheet_data(cfg["spreadsheet_id"], tab_range(cfg["selection"]))
    except Exception as e:
        logger.warning("RNO sheet list unreadable, using defaults: %s", e)
        records = []
    items = huawei.parse_sheet_list_records(records)
    if not items:
        return jsonify({"success": True, "data": huawei.RNO_DEFAULT_SHEETS})
    return jsonify({
        "success": True,
        "message": "Sheet list fetched successfully",
        "data": items,
        "timestamp": _now_iso(),
    })


def _date_matcher(kind, cfg):
    if kind == "itc":
        return huawei.itc_is_date_column
    try:
        records = get_sheet_data(cfg["spreadsheet_id"], tab_range(cfg["settings"]))
    except Exception as e:
        logger.warning("RNO settings unreadable, no date protection: %s", e)
        records = []
    return huawei.rno_date_matcher(huawei.date_columns_from_settings(records))


def _rollout_bulk_import(kind, cfg, data):
    updates = data.get("updates") or []
    if not updates:
        return _error("No data to import", 400)
    sheet = data.get("sheetName") or cfg["sheet"]

    rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(sheet))
    if not rows:
        return _error("No data found in sheet", 404)
    try:
        plan = huawei.plan_bulk_import(sheet, rows[0], rows[1:], updates, _date_matcher(kind, cfg))
    except ValueError as e:
        return _error(str(e), 400)

    if plan["data"]:
        batch_write(cfg["spreadsheet_id"], plan["data"])
    logger.info("%s bulk import on %s: %d updated, %d skipped",
                kind.upper(), sheet, plan["updated"], plan["skipped"])
    return jsonify({
        "success": True,
        "message": "Bulk import completed",
        "updatedCount": plan["updated"],
        "skippedCount": plan["skipped"],
        "totalRows": len(updates),
        "importedCells": plan["importedCells"],
    })


def _rollout_update(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    data = _body()
    try:
        if data.get("bulkImport") and data.get("updates") is not None:
            return _rollout_bulk_import(kind, cfg, data)

        row_id = data.get("rowId")
        column_id = str(data.get("columnId") or "")
        value = data.get("value")
        id_col = data.get("rowIdentifierColumn") or "RowId"
        sheet = data.get("sheetName") or cfg["sheet"]

        rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(sheet))
        if not rows:
            return _error("No data found", 404)
        headers = rows[0]
        if id_col not in headers:
            return _error(f"Identifier column '{id_col}' not found in headers", 400)
        id_idx = headers.index(id_col)

        idx = huawei.find_row(rows, id_idx, row_id)
        if idx is None:
            ids = [str(cell(r, id_idx)) for r in rows[1:] if cell(r, id_idx)]
            probe = str(row_id or "")
            return jsonify({
                "error": f"Row with {id_col}='{row_id}' not found",
                "debug": {
                    "searchedDuid": row_id,
                    "searchedLength": len(probe),
                    "totalRows": len(rows) - 1,
                    "totalDuids": len(ids),
                    "firstThreeDuids": ids[:3],
                    "partialMatches": [d for d in ids if probe[:15] and probe[:15] in d][:5],
                    "startMatches": [d for d in ids if probe[:10] and d.startswith(probe[:10])][:3],
                },
            }), 404

        col = find_col_flexible(headers, column_id)
        if col is None:
            return jsonify({"error": f"Column '{column_id}' not found", "availableColumns": headers}), 400

        current = cell(rows[idx], col)
        if "oldValue" in data and current != data.get("oldValue"):
            logger.warning("%s update %s: expected %r, sheet has %r; proceeding",
                           kind.upper(), row_id, data.get("oldValue"), current)

        rng = a1(sheet, col, idx + 1)
        write_sheet(cfg["spreadsheet_id"], rng, [[value]])
    except Exception as e:
        app.logger.exception("%s update failed", kind.upper())
        return jsonify({"error": "Failed to update cell", "details": str(e)}), 500

    return jsonify({
        "success": True,
        "message": "Cell updated successfully",
        "data": {
            "rowId": row_id,
            "columnId": column_id,
            "cellRange": rng,
            "oldValue": current,
            "newValue": value,
            "sheetRowNumber": idx + 1,
            "timestamp": _now_iso(),
        },
    })


def _rollout_batch_update(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    data = _body()
    cell_updates = data.get("cellUpdates") or []
    id_col = data.get("rowIdentifierColumn") or "DUID"
    sheet = data.get("sheetName") or cfg["sheet"]
    if not cell_updates:
        return _error("No cell updates provided", 400)

    started = time.time()
    try:
        rows = fetch_sheet(cfg["spreadsheet_id"], tab_range(sheet, "A1:ZZ"))
        try:
            plan = huawei.plan_cell_updates(sheet, rows, id_col, cell_updates)
        except LookupError as e:
            return _error(str(e), 404)
        if not plan["data"]:
            return jsonify({"error": "No valid cells to update", "skippedCells": plan["skipped"]}), 400
        batch_write(cfg["spreadsheet_id"], plan["data"])
    except Exception as e:
        app.logger.exception("%s batch update failed", kind.upper())
        return jsonify({"error": "Failed to batch update cells", "details": str(e)}), 500

    return jsonify({
        "success": True,
        "updatedCells": len(plan["data"]),
        "skippedCells": plan["skipped"],
        "updateTime": int((time.time() - started) * 1000),
    })


def _rollout_register(kind):
    cfg, err = _rollout_cfg_or_error(kind)
    if err:
        return err
    data = _body()
    sheet = data.get("sheetName")
    rows = data.get("rows")
    if not sheet:
        return _error("Sheet name is required", 400)
    problem = huawei.validate_register_rows(rows)
    if problem:
        return _error(problem, 400)

    try:
        existing = fetch_sheet(cfg["spreadsheet_id"], tab_range(sheet))
        if not existing:
            return _error("Sheet is empty or headers not found", 400)
        headers = existing[0]
        try:
            dupes = huawei.find_duplicates(headers, existing[1:], rows)
        except ValueError as e:
            return _error(str(e), 400)
        if dupes:
            return jsonify({"error": "Duplicate DUIDs found", "duplicates": dupes}), 400

        start_col, values = huawei.build_register_rows(headers, rows)
        updates = append_rows(
            cfg["spreadsheet_id"], tab_range(sheet, f"{start_col}:Z"), values,
            value_input="RAW", insert_rows=False,
        )
    except Exception as e:
        app.logger.exception("%s register failed", kind.upper())
        return jsonify({"error": "Failed to register DUIDs", "details": str(e)}), 500

    logger.info("Registered %d DUIDs on %s/%s", len(rows), kind.upper(), sheet)
    return jsonify({"success": True, "count": len(rows), "range": updates.get("updatedRange")})


@app.route("/api/sheets/itc-huawei", methods=["GET"])
@login_required_session
def itc_data():
    return _rollout_data("itc")


@app.route("/api/sheets/itc-huawei/settings", methods=["GET"])
@login_required_session
def itc_settings():
    return _rollout_settings("itc")


@app.route("/api/sheets/itc-huawei/sheet-list", methods=["GET"])
@login_required_session
def itc_sheet_list():
    return _rollout_sheet_list("itc")


@app.route("/api/sheets/itc-huawei/update", methods=["PUT"])
@login_required_session
def itc_update():
    return _rollout_update("itc")


@app.route("/api/sheets/itc-huawei/batch-update", methods=["PUT"])
@login_required_session
def itc_batch_update():
    return _rollout_batch_update("itc")


@app.route("/api/sheets/itc-huawei/import", methods=["POST"])
@login_required_session
def itc_import():
    return _rollout_register("itc")


@app.route("/api/sheets/rno-huawei", methods=["GET"])
@login_required_session
def rno_data():
    return _rollout_data("rno")


@app.route("/api/sheets/rno-huawei/settings", methods=["GET"])
@login_required_session
def rno_settings():
    return _rollout_settings("rno")


@app.route("/api/sheets/rno-huawei/sheet-list", methods=["GET"])
@login_required_session
def rno_sheet_list():
    return _rollout_sheet_list("rno")


@app.route("/api/sheets/rno-huawei/update", methods=["PUT"])
@login_required_session
def rno_update():
    return _rollout_update("rno")


@app.route("/api/sheets/rno-huawei/batch-update", methods=["PUT"])
@login_required_session
def rno_batch_update():
    return _rollout_batch_update("rno")


@app.route("/api/sheets/rno-huawei/import", methods=["POST"])
@login_required_session
def rno_import():
    return _rollout_register("rno")


@app.route("/api/sheets/rno-huawei/register", methods=["POST"])
@login_required_session
def rno_register():
    return _rollout_register("rno")


# ─── Purchase orders ────────────────────────────────────────────────────────

def _po_failure(e):
    app.logger.exception("PO status failed")
    return jsonify({"success": False, "message": "Failed to fetch PO status", "error": str(e)}), 500


@app.route("/api/sheets/po-status", methods=["GET", "POST"])
@login_required_session
def po_status():
    if request.method == "GET":
        duids = [d for d in (request.args.get("duids") or "").split(",") if d]
        try:
            data = po_data.get_po_status()
        except Exception as e:
            return _po_failure(e)
        if duids:
            data = po_data.match_duids(data, duids)
        return jsonify({"success": True, "data": data})

    duids = _body().get("duids") or []
    if not isinstance(duids, list) or not duids:
        return jsonify({"success": False, "message": "duids array is required"}), 400
    try:
        data = po_data.get_po_status()
    except Exception as e:
        return _po_failure(e)
    matched = po_data.match_duids(data, duids)
    orphans = po_data.find_orphans(data, duids)
    return jsonify({
        "success": True,
        "data": matched,
        "orphans": orphans,
        "stats": {
            "requested": len(duids),
            "matched": len(matched),
            "orphaned": len(orphans),
            "total": len(data),
        },
    })


@app.route("/api/sheets/po-status/clear-cache", methods=["POST"])
@login_required_session
def po_status_clear_cache():
    po_data.clear_po_status_cache()
    return jsonify({"success": True, "message": "PO status cache cleared"})


@app.route("/api/sheets/po-huawei", methods=["GET"])
@login_required_session
def po_huawei():
    if not po_data.po_spreadsheet_ids():
        return jsonify({"success": False, "message": "No spreadsheet IDs configured"}), 500
    try:
        result = po_data.load_combined_po()
    except Exception as e:
        app.logger.exception("PO Huawei fetch failed")
        return jsonify({"success": False, "message": "Failed to fetch data", "error": str(e)}), 500

    nxt = po_data.next_refresh()
    resp = jsonify({
        "success": True,
        "data": result["data"],
        "sheets": result["sheets"],
        "spreadsheets": result["spreadsheets"],
        "count": len(result["data"]),
        "lastUpdated": po_data.format_id_datetime(result["latest"]) if result["latest"] else None,
        "cacheInfo": {
            "cachedUntil": po_data.format_id_datetime(nxt, weekday=True),
            "nextRefresh": "Rabu pagi (08:00 WIB)",
        },
    })
    resp.headers["Cache-Control"] = "public, s-maxage=604800, stale-while-revalidate=86400"
    resp.headers["X-Cache-Strategy"] = "weekly-wednesday"
    resp.headers["X-Next-Refresh"] = nxt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return resp


@app.route("/api/sheets/po-xls", methods=["GET"])
@login_required_session
def po_xls():
    sid = os.environ.get("GOOGLE_SHEET_ID_POHWITCXLS", "")
    if not sid:
        return jsonify({"success": False, "message": "PO XLS spreadsheet ID not configured"}), 500
    try:
        result = po_data.load_xls_po(sid)
    except Exception as e:
        app.logger.exception("PO XLS fetch failed")
        return jsonify({"success": False, "message": str(e) or "Failed to fetch data"}), 500
    data = result["data"]
    return jsonify({
        "success": True,
        "data": data,
        "metadata": {
            "rowCount": len(data),
            "sheets": result["sheets"],
            "columns": list(data[0].keys()) if data else [],
        },
    })


# ─── Drive (Apps Script proxy) ──────────────────────────────────────────────

@app.route("/api/drive/list-files", methods=["GET"])
@login_required_session
def drive_list_files():
    duid = request.args.get("duid")
    if not duid:
        return _error("DUID is required", 400)
    try:
        return jsonify(AppsScriptClient().list_files(duid, request.args.get("folderId")))
    except AppsScriptError as e:
        app.logger.warning("Drive list failed for %s: %s", duid, e)
        return _error(str(e), 500)


@app.route("/api/drive/upload", methods=["POST"])
@login_required_session
def drive_upload():
    f = request.files.get("file")
    duid = request.form.get("duid")
    if not f or not duid:
        return _error("File and DUID are required", 400)
    try:
        client = AppsScriptClient()
        return jsonify(client.upload_file(
            f.filename, f.mimetype, f.read(), duid=duid, folder_id=request.form.get("folderId"),
        ))
    except AppsScriptError as e:
        app.logger.warning("Drive upload failed for %s: %s", duid, e)
        return _error(str(e), 500)


@app.route("/api/drive/create-folder", methods=["POST"])
@login_required_session
def drive_create_folder():
    data = _body()
    duid, folder_name = data.get("duid"), data.get("folderName")
    if not duid or not folder_name:
        return _error("DUID and folderName are required", 400)
    try:
        return jsonify(AppsScriptClient().create_folder(duid, folder_name, data.get("parentFolderId")))
    except AppsScriptError as e:
        app.logger.warning("Create folder failed for %s: %s", duid, e)
        return _error(str(e), 500)


@app.route("/api/drive/delete", methods=["POST"])
@login_required_session
def drive_delete():
    file_id = _body().get("fileId")
    if not file_id:
        return _error("File ID is required", 400)
    if get_drive_proxy_config()["url"] and not get_drive_proxy_config()["main_folder_id"]:
        return _error("Main Folder ID not configured", 500)
    try:
        return jsonify(AppsScriptClient().delete_file(file_id))
    except AppsScriptError as e:
        app.logger.warning("Delete failed for %s: %s", file_id, e)
        return _error(str(e), 500)


@app.route("/api/file-upload/list-files", methods=["GET"])
@login_required_session
def file_upload_list():
    folder_id = request.args.get("folderId")
    if not folder_id:
        return jsonify({"success": False, "error": "Folder ID is required"}), 400
    cfg = get_drive_proxy_config()
    if not cfg["url"] or not cfg["main_folder_id"]:
        return jsonify({"success": False, "error": "Google Apps Script configuration missing"}), 500
    try:
        result = AppsScriptClient().list_files_in_folder(folder_id)
    except AppsScriptError as e:
        app.logger.warning("Folder listing failed for %s: %s", folder_id, e)
        return jsonify({"success": False, "error": str(e) or "Failed to list files"}), 500
    return jsonify({"success": True, "files": result["files"]})


@app.route("/api/file-upload/upload", methods=["POST"])
@login_required_session
def file_upload_upload():
    data = _body()
    file_name, file_data, folder_id = data.get("fileName"), data.get("fileData"), data.get("folderId")
    if not file_name or not file_data or not folder_id:
        return jsonify({"success": False, "error": "Missing required fields"}), 400
    try:
        result = AppsScriptClient().upload_file(
            file_name, data.get("mimeType"), file_data, duid="", folder_id=folder_id,
        )
    except AppsScriptError as e:
        app.logger.warning("Upload of %s failed: %s", file_name, e)
        return jsonify({"success": False, "error": str(e) or "Failed to upload file"}), 500
    return jsonify({"success": True, "file": result.get("file", result), "message": "File uploaded successfully"})


# ─── Run ────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    # --- Startup banner ---
    print("🚀 ZMG backend server.py loaded and running...")
    print("📡 Available Flask Routes:")
    for rule in app.url_map.iter_rules():
        print("✅", rule)

    port = int(os.environ.get("PORT", 10000))
    logger.info(f"Starting on port {port}")
    app.run(host="0.0.0.0", port=port, debug=False, use_reloader=False)
