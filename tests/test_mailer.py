import smtplib

import pytest

import mailer

CHROME_WIN = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
              "(KHTML, like Gecko) Chrome/120.0 Safari/537.36")
EDGE_WIN = CHROME_WIN + " Edg/120.0"
SAFARI_IPHONE = ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
                 "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1")
FIREFOX_ANDROID = "Mozilla/5.0 (Android 14; Mobile; rv:121.0) Gecko/121.0 Firefox/121.0"


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        if FakeSMTP.fail:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setenv("GMAIL_USER", "noreply@zmg.co.id")
    monkeypatch.setenv("GMAIL_APP_PASSWORD", "app-pass")
    return FakeSMTP


def test_user_agent_parsing():
    assert mailer.browser_from_user_agent(CHROME_WIN) == "Chrome"
    assert mailer.browser_from_user_agent(EDGE_WIN) == "Edge"
    assert mailer.browser_from_user_agent(SAFARI_IPHONE) == "Safari"
    assert mailer.browser_from_user_agent(FIREFOX_ANDROID) == "Firefox"
    assert mailer.browser_from_user_agent("") == "Unknown Browser"
    assert mailer.os_from_user_agent(CHROME_WIN) == "Windows"
    assert mailer.os_from_user_agent(SAFARI_IPHONE) == "iOS"
    assert mailer.os_from_user_agent(FIREFOX_ANDROID) == "Android"
    assert mailer.os_from_user_agent(None) == "Unknown OS"


def test_send_builds_text_and_html_parts(smtp):
    mailer._send("ani@zmg.co.id", "ZMG - Email Verification Code", "code 123456", "<p>123456</p>")
    msg = smtp.sent[-1]
    assert msg["Subject"] == "ZMG - Email Verification Code"
    assert msg["From"] == '"ZMG Management System" <noreply@zmg.co.id>'
    assert [p.get_content_type() for p in msg.get_payload()] == ["text/plain", "text/html"]


def test_send_requires_credentials(monkeypatch):
    monkeypatch.delenv("GMAIL_USER", raising=False)
    monkeypatch.delenv("GMAIL_APP_PASSWORD", raising=False)
    with pytest.raises(mailer.MailError):
        mailer._send("a@zmg.co.id", "s", "t", "<p>h</p>")


def test_smtp_failure_raises_mail_error(smtp):
    smtp.fail = True
    with pytest.raises(mailer.MailError):
        mailer._send("a@zmg.co.id", "s", "t", "<p>h</p>")


def test_login_alert_and_welcome_swallow_failures(smtp):
    smtp.fail = True
    mailer.send_login_alert_email("a@zmg.co.id", "Ani", "10.0.0.1", CHROME_WIN)
    mailer.send_welcome_email("a@zmg.co.id", "Ani")
    assert smtp.sent == []


def test_login_alert_content(smtp):
    mailer.send_login_alert_email("a@zmg.co.id", "Ani", "10.0.0.1", EDGE_WIN)
    msg = smtp.sent[-1]
    assert msg["From"] == '"ZMG Security Alert" <noreply@zmg.co.id>'
    text = msg.get_payload()[0].get_payload(decode=True).decode()
    assert "Browser: Edge" in text
    assert "IP Address: 10.0.0.1" in text
    assert "WIB" in text
