"""
Owner notification tests.

SMTP is never contacted: SmtpMailer.send is replaced per test.
"""

import smtplib
import threading

import pytest

from clubshop.extensions import notifier, store
from clubshop.services import notification_service
from clubshop.services.notification_service import (
    NotificationError,
    NotificationStatus,
    SmtpMailer,
    build_mailer,
    deliver_with_retry,
)

from conftest import OWNER_EMAIL, register_user


SMTP_SETTINGS = {
    "SMTP_HOST": "smtp.club.test",
    "SMTP_PORT": 2525,
    "SMTP_USER": "mailer@club.test",
    "SMTP_PASS": "pw",
}


class RecordingMailer:
    def __init__(self, failures=0):
        self.failures = failures
        self.sent = []

    def send(self, message):
        if self.failures:
            self.failures -= 1
            raise NotificationError("smtp down")
        self.sent.append(message)


class TestBuildMailer:
    def test_requires_host_credentials_and_owner(self):
        assert build_mailer({**SMTP_SETTINGS, "OWNER_EMAIL": OWNER_EMAIL}) is not None
        for missing in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS"):
            config = {**SMTP_SETTINGS, "OWNER_EMAIL": OWNER_EMAIL, missing: ""}
            assert build_mailer(config) is None
        assert build_mailer({**SMTP_SETTINGS, "OWNER_EMAIL": ""}) is None

    def test_sender_defaults_to_smtp_user(self):
        mailer = build_mailer({**SMTP_SETTINGS, "OWNER_EMAIL": OWNER_EMAIL})
        assert mailer.settings.sender == "mailer@club.test"
        assert mailer.settings.owner_email == OWNER_EMAIL


class TestDeliverWithRetry:
    def test_first_attempt_succeeds(self):
        mailer = RecordingMailer()
        status = deliver_with_retry(mailer, "msg", attempts=2, delay=0)
        assert status.delivered is True
        assert status.attempts == 1

    def test_retry_then_success(self):
        mailer = RecordingMailer(failures=1)
        status = deliver_with_retry(mailer, "msg", attempts=2, delay=0)
        assert status.delivered is True
        assert status.attempts == 2
        assert mailer.sent == ["msg"]

    def test_gives_up_after_two_attempts(self):
        mailer = RecordingMailer(failures=5)
        status = deliver_with_retry(mailer, "msg", attempts=2, delay=0)
        assert status.attempted is True
        assert status.delivered is False
        assert status.attempts == 2
        assert status.error == "smtp down"
        assert mailer.failures == 3

    def test_smtp_errors_are_wrapped(self, monkeypatch):
        class BrokenSMTP:
            def __init__(self, *args, **kwargs):
                raise smtplib.SMTPConnectError(421, "busy")

        monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
        mailer = build_mailer({**SMTP_SETTINGS, "OWNER_EMAIL": OWNER_EMAIL})
        with pytest.raises(NotificationError):
            mailer.send("msg")

    def test_not_configured_status(self):
        status = notification_service.notify_order_placed(None, {}, {}, {})
        assert status == NotificationStatus.not_configured()
        assert status.to_dict()["reason"] == "Email not configured"


class TestOrderNotifications:
    @pytest.fixture
    def smtp_app(self, app):
        app.config.update(SMTP_SETTINGS)
        return app

    def test_order_email_is_sent(self, smtp_app, client, member_headers, hat, monkeypatch):
        sent = []
        monkeypatch.setattr(SmtpMailer, "send", lambda self, message: sent.append(message))

        resp = client.post("/api/orders", json={
            "itemId": hat["id"], "quantity": 2, "venmoAgreed": True,
        }, headers=member_headers)
        assert resp.status_code == 201
        assert resp.json["emailStatus"] == {"queued": True}

        assert notifier.wait_idle(timeout=5)
        assert len(sent) == 1
        assert sent[0]["To"] == OWNER_EMAIL
        body = sent[0].get_content()
        assert "Morgan Lee" in body
        assert "Quantity: 2" in body
        assert "Total: $50.00" in body
        assert list(notifier.dead_letters) == []

    def test_failed_email_never_fails_the_order(self, smtp_app, client, member_headers, hat, monkeypatch):
        calls = []

        def always_fail(self, message):
            calls.append(message)
            raise NotificationError("connection refused")

        monkeypatch.setattr(SmtpMailer, "send", always_fail)

        resp = client.post("/api/orders", json={
            "itemId": hat["id"], "quantity": 1, "venmoAgreed": True,
        }, headers=member_headers)
        assert resp.status_code == 201

        assert notifier.wait_idle(timeout=5)
        assert len(calls) == 2
        with smtp_app.app_context():
            assert len(store.read_collection("orders")) == 1

        failures = list(notifier.dead_letters)
        assert len(failures) == 1
        assert failures[0]["kind"] == "order_placed"
        assert failures[0]["orderId"] == resp.json["order"]["id"]
        assert failures[0]["attempts"] == 2

        health = client.get("/health").json
        assert health["status"] == "degraded"
        assert health["checks"]["notifications"]["details"]["failed"] == 1

    def test_response_does_not_wait_for_smtp(self, smtp_app, client, member_headers, hat, monkeypatch):
        release = threading.Event()
        monkeypatch.setattr(SmtpMailer, "send", lambda self, message: release.wait(5))

        resp = client.post("/api/orders", json={
            "itemId": hat["id"], "quantity": 1, "venmoAgreed": True,
        }, headers=member_headers)
        assert resp.status_code == 201
        assert notifier.pending_count() == 1

        release.set()
        assert notifier.wait_idle(timeout=5)
        assert notifier.pending_count() == 0

    def test_approval_request_email(self, smtp_app, monkeypatch):
        smtp_app.config["APPROVAL_REQUIRED"] = True
        sent = []
        monkeypatch.setattr(SmtpMailer, "send", lambda self, message: sent.append(message))

        register_user(smtp_app, "newbie@club.test", first="Nova", last="Bee", initials="NB")
        assert notifier.wait_idle(timeout=5)
        assert len(sent) == 1
        assert "newbie@club.test" in sent[0].get_content()
