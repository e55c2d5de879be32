"""
Transactional e-mail over Gmail SMTP (STARTTLS + app password).

Verification and reset codes must arrive, so their failures raise MailError.
Login alerts and welcome mails are best effort: failures are logged only.
"""
import os
import smtplib
import logging
import threading
from datetime import datetime
from zoneinfo import ZoneInfo
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)

JAKARTA = ZoneInfo("Asia/Jakarta")


class MailError(Exception):
    pass


def get_mail_config():
    return {
        "host": os.environ.get("SMTP_HOST", "smtp.gmail.com"),
        "port": int(os.environ.get("SMTP_PORT", "587")),
        "user": os.environ.get("GMAIL_USER", ""),
        "password": os.environ.get("GMAIL_APP_PASSWORD", ""),
        "support": os.environ.get("SUPPORT_EMAIL", "adminbalom@zmg.co.id"),
        "app_url": os.environ.get("FRONTEND_URL", "http://localhost:3000"),
    }


def _send(to, subject, text, html, sender_name="ZMG Management System"):
    cfg = get_mail_config()
    if not cfg["user"] or not cfg["password"]:
        raise MailError("GMAIL_USER / GMAIL_APP_PASSWORD not configured")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f'"{sender_name}" <{cfg["user"]}>'
    msg["To"] = to
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    try:
        with smtplib.SMTP(cfg["host"], cfg["port"], timeout=20) as server:
            server.starttls()
            server.login(cfg["user"], cfg["password"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise MailError(str(e)) from e


def _footer(support):
    year = datetime.now(JAKARTA).year
    return (
        f'<div style="text-align:center;color:#718096;font-size:12px;margin-top:20px">'
        f"<p>&copy; {year} ZMG Management System. All rights reserved.</p>"
        f'<p>Need help? Contact <a href="mailto:{support}">{support}</a></p></div>'
    )


def _wrap(title, body, support):
    return (
        '<!DOCTYPE html><html><head><meta charset="utf-8"></head>'
        '<body style="font-family:-apple-system,Segoe UI,Roboto,Arial,sans-serif">'
        '<div style="max-width:600px;margin:0 auto;padding:20px">'
        '<div style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);color:#fff;'
        'padding:30px;border-radius:10px 10px 0 0">'
        f'<h1 style="margin:0;font-size:24px">{title}</h1></div>'
        f'<div style="background:#f7fafc;padding:30px;border-radius:0 0 10px 10px">{body}</div>'
        f"{_footer(support)}</div></body></html>"
    )


def send_verification_email(email, code, name, purpose="registration"):
    """Send a 6-digit code. purpose is 'registration' or 'password_reset'."""
    cfg = get_mail_config()
    if purpose == "password_reset":
        intro = "We received a request to reset your ZMG Management System password. Use the code below to continue:"
    else:
        intro = ("Thank you for registering with ZMG Management System. "
                 "To complete your registration, please use the verification code below:")

    body = (
        f'<h2 style="color:#2d3748">Hi {name},</h2>'
        f'<p style="color:#4a5568;line-height:1.6">{intro}</p>'
        '<div style="font-size:36px;font-weight:bold;color:#2563eb;letter-spacing:8px;'
        f'text-align:center;padding:20px;background:#fff;border-radius:8px;margin:20px 0">{code}</div>'
        '<p style="color:#4a5568">This code will expire in <strong>15 minutes</strong>.</p>'
        '<p style="color:#718096;font-size:14px;margin-top:30px">'
        "If you didn't request this code, please ignore this email or contact our support team.</p>"
    )
    text = (
        f"Hi {name},\n\nYour verification code is: {code}\n\n"
        "This code will expire in 15 minutes.\n\n"
        "If you didn't request this, please ignore this email.\n\n---\nZMG Management System\n"
    )
    try:
        _send(email, "ZMG - Email Verification Code", text,
              _wrap("🔐 Email Verification", body, cfg["support"]))
    except MailError:
        logger.exception("Failed to send verification email to %s", email)
        raise MailError("Failed to send verification email")
    logger.info("Verification email sent to %s", email)


def browser_from_user_agent(ua):
    ua = ua or ""
    if "Edg" in ua:
        return "Edge"
    if "Chrome" in ua:
        return "Chrome"
    if "Firefox" in ua:
        return "Firefox"
    if "Safari" in ua:
        return "Safari"
    return "Unknown Browser"


def os_from_user_agent(ua):
    ua = ua or ""
    if "Windows" in ua:
        return "Windows"
    if "Android" in ua:
        return "Android"
    if "iPhone" in ua or "iPad" in ua:
        return "iOS"
    if "Mac" in ua:
        return "macOS"
    if "Linux" in ua:
        return "Linux"
    return "Unknown OS"


def send_login_alert_email(email, name, ip, user_agent):
    cfg = get_mail_config()
    when = datetime.now(JAKARTA).strftime("%A, %B %d, %Y at %H:%M:%S WIB")
    browser = browser_from_user_agent(user_agent)
    os_name = os_from_user_agent(user_agent)

    details = [("Date & Time", when), ("Browser", browser), ("Operating System", os_name), ("IP Address", ip)]
    rows = "".join(
        f'<div style="padding:8px 0;border-bottom:1px solid #e2e8f0">'
        f'<span style="color:#64748b;font-weight:600">{k}:</span> {v}</div>'
        for k, v in details
    )
    body = (
        f'<h2 style="color:#2d3748">Hi {name},</h2>'
        "<p>We detected a new login to your ZMG Management System account.</p>"
        f'<div style="background:#fff;border-left:4px solid #10b981;padding:15px;margin:20px 0">{rows}</div>'
        "<p>If this was you, you can safely ignore this email.</p>"
        '<div style="background:#fef3c7;border-left:4px solid #f59e0b;padding:15px;margin:20px 0">'
        "<strong>⚠️ Wasn't you?</strong><br>If you did not log in, please change your password "
        f'immediately and contact <a href="mailto:{cfg["support"]}">{cfg["support"]}</a></div>'
    )
    text = (
        f"Hi {name},\n\nWe detected a new login to your ZMG Management System account.\n\n"
        "Login Details:\n" + "".join(f"- {k}: {v}\n" for k, v in details) +
        "\nIf this was you, you can safely ignore this email.\n\n"
        f"If you did not log in, please change your password immediately and contact {cfg['support']}\n"
    )
    try:
        _send(email, "🔔 New Login to Your ZMG Account", text,
              _wrap("🔔 New Login Detected", body, cfg["support"]), sender_name="ZMG Security Alert")
        logger.info("Login alert sent to %s", email)
    except MailError as e:
        logger.warning("Login alert to %s failed: %s", email, e)


def send_welcome_email(email, name):
    cfg = get_mail_config()
    login_url = cfg["app_url"].rstrip("/") + "/login"
    body = (
        f'<h2 style="color:#2d3748">Hi {name},</h2>'
        "<p>Your account has been successfully created! An administrator will activate it shortly.</p>"
        "<ul><li>Manage daily plans and rollout schedules</li>"
        "<li>Track PO status and project progress</li>"
        "<li>Upload and manage project files</li></ul>"
        f'<p style="text-align:center"><a href="{login_url}" style="display:inline-block;padding:12px 30px;'
        'background:#2563eb;color:#fff;text-decoration:none;border-radius:8px">Sign In Now</a></p>'
    )
    text = f"Hi {name},\n\nYour ZMG Management System account has been created.\nSign in: {login_url}\n"
    try:
        _send(email, "Welcome to ZMG Management System! 🎉", text,
              _wrap("🎉 Welcome to ZMG!", body, cfg["support"]))
        logger.info("Welcome email sent to %s", email)
    except MailError as e:
        logger.warning("Welcome email to %s failed: %s", email, e)


def send_in_background(fn, *args):
    t = threading.Thread(target=fn, args=args, daemon=True)
    t.start()
    return t
