"""Tests for failure notifications."""

import smtplib
from unittest.mock import patch

from softpaq_mirror.core.errors import DownloadFailed
from softpaq_mirror.repository.manifest import NotificationConfig
from softpaq_mirror.repository.notifications import (
    PASSWORD_ENV_VAR,
    NotificationDispatcher,
    format_error_html,
)


def configured(**overrides) -> NotificationConfig:
    fields = dict(
        server="smtp.example.com",
        port=587,
        tls=True,
        username="mailer",
        password="stored-secret",
        from_address="softpaq@example.com",
        from_name="SoftPaq Mirror",
        addresses=["ops@example.com", "desk@example.com"],
    )
    fields.update(overrides)
    return NotificationConfig(**fields)


def test_is_configured_requires_server_and_recipients():
    assert not NotificationDispatcher(None).is_configured
    assert not NotificationDispatcher(configured(server=None)).is_configured
    assert not NotificationDispatcher(configured(addresses=[])).is_configured
    assert NotificationDispatcher(configured()).is_configured


def test_not_configured_is_noop():
    with patch("smtplib.SMTP") as smtp:
        assert not NotificationDispatcher(configured(addresses=[])).notify_failure("boom")
    smtp.assert_not_called()


def test_send_uses_tls_and_login(monkeypatch):
    monkeypatch.delenv(PASSWORD_ENV_VAR, raising=False)

    with patch("smtplib.SMTP") as smtp:
        sent = NotificationDispatcher(configured()).send("Subject", "<p>body</p>")

    assert sent
    smtp.assert_called_once_with("smtp.example.com", 587, timeout=60)
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "stored-secret")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "ops@example.com, desk@example.com"
    assert message["Subject"] == "Subject"
    assert "SoftPaq Mirror" in message["From"]


def test_password_from_environment(monkeypatch):
    monkeypatch.setenv(PASSWORD_ENV_VAR, "env-secret")

    with patch("smtplib.SMTP") as smtp:
        NotificationDispatcher(configured()).send("Subject", "<p>body</p>")

    smtp.return_value.__enter__.return_value.login.assert_called_once_with("mailer", "env-secret")


def test_plain_smtp_without_login():
    with patch("smtplib.SMTP") as smtp:
        NotificationDispatcher(configured(tls=False, username=None)).send("Subject", "<p>body</p>")

    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_not_called()
    server.login.assert_not_called()
    server.send_message.assert_called_once()


def test_send_failure_is_swallowed():
    with patch("smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
        assert not NotificationDispatcher(configured()).notify_failure("boom")

    with patch("smtplib.SMTP", side_effect=OSError("unreachable")):
        assert not NotificationDispatcher(configured()).notify_failure("boom")


def test_format_error_html():
    try:
        raise DownloadFailed("https://ftp.hp.com/sp1.exe", "remote file not found", status_code=404)
    except DownloadFailed as e:
        document = format_error_html("Sync <failed>", e, repository="/srv/softpaq")

    assert "Sync &lt;failed&gt;" in document
    assert "DownloadFailed" in document
    assert "https://ftp.hp.com/sp1.exe" in document
    assert "404" in document
    assert "/srv/softpaq" in document
    assert "Traceback" in document


def test_format_error_html_without_exception():
    document = format_error_html("Nothing raised")
    assert "Nothing raised" in document
    assert "Details" not in document
