import logging
import smtplib

import pytest

import mailer
from config import Config
from errors import DeliveryError
from mailer import reset_link, reset_notifier


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = user

    def send_message(self, message):
        FakeSMTP.sent.append((self.host, self.port, self.logged_in, message))


class RefusingSMTP(FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no such user")})


@pytest.fixture()
def smtp(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP.sent


def test_reset_link():
    config = Config(RESET_URL="https://portal.example.in/reset-password")
    assert reset_link(config, "abc") == "https://portal.example.in/reset-password?token=abc"


def test_reset_email_carries_the_link(smtp):
    config = Config(SMTP_HOST="smtp.example.in", SMTP_PORT=2525, SMTP_USER="mailer", MAIL_FROM="office@example.in",
                    RESET_URL="https://portal.example.in/reset-password")
    reset_notifier(config)("asha.r@gmail.com", "tok-123")

    host, port, user, message = smtp[0]
    assert (host, port, user) == ("smtp.example.in", 2525, "mailer")
    assert message["To"] == "asha.r@gmail.com"
    assert message["From"] == "office@example.in"
    body = message.get_payload()[0].get_payload(decode=True).decode()
    assert "https://portal.example.in/reset-password?token=tok-123" in body


def test_without_smtp_host_nothing_is_sent(smtp, caplog):
    with caplog.at_level(logging.WARNING, logger="mailer"):
        reset_notifier(Config(SMTP_HOST=None))("asha.r@gmail.com", "tok-123")
    assert smtp == []
    assert "asha.r@gmail.com" in caplog.text
    assert "tok-123" not in caplog.text


def test_smtp_failure_is_a_delivery_error(monkeypatch):
    monkeypatch.setattr(mailer.smtplib, "SMTP", RefusingSMTP)
    with pytest.raises(DeliveryError) as exc:
        reset_notifier(Config(SMTP_HOST="smtp.example.in"))("asha.r@gmail.com", "tok-123")
    assert exc.value.status_code == 503
    assert exc.value.code == "delivery-failed"
