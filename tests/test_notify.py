"""Unit tests for notify/ -- template rendering, senders, and the mailer.

Covers:
- EmailRenderer: reset link, signature, agency branding, autoescaping, previews
- DiskEmailSender writes one JSON file per email
- ResendEmailSender: missing key, HTTP success and failure (session mocked)
- build_email_sender() picks disk in testing/ci and Resend elsewhere
- Mailer: subjects, admin notification gating, failures are swallowed and logged
"""

import json
import logging
from unittest.mock import MagicMock

import requests

from core.config import Settings
from notify.email import DiskEmailSender, ResendEmailSender, build_email_sender
from notify.render import EmailRenderer
from tests.helpers import RecordingSender, make_mailer

# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestEmailRenderer:
    def setup_method(self):
        self.renderer = EmailRenderer("Acme", "https://acme.test/")

    def test_forgot_password_contains_link(self):
        html = self.renderer.forgot_password("abc123")
        assert "https://acme.test/account/password-reset?token=abc123" in html
        assert "This link will only work for a short time" in html
        assert "Best regards," in html

    def test_welcome_mentions_app(self):
        html = self.renderer.welcome()
        assert "Welcome to <strong>Acme</strong>" in html
        assert 'href="https://acme.test"' in html

    def test_admin_notification_escapes_message(self):
        html = self.renderer.admin_notification('A new user "<script>@x.com" has registered')
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_agency_branding(self):
        html = self.renderer.welcome(agency_logo="https://cdn.test/logo.png", agency_name="Agency Co")
        assert 'src="https://cdn.test/logo.png"' in html
        assert 'alt="Agency Co"' in html

    def test_previews(self):
        previews = self.renderer.previews(agency_name="Agency Co")
        assert [p["name"] for p in previews] == ["Forgot password", "User welcome"]
        assert json.loads(previews[0]["params"]) == {"code": "jfdksufgdug3232k32nfds"}
        assert previews[1]["params"] == "{}"
        assert "token=jfdksufgdug3232k32nfds" in previews[0]["html"]
        assert "Agency Co" in previews[1]["html"]


# ---------------------------------------------------------------------------
# Senders
# ---------------------------------------------------------------------------


class TestDiskEmailSender:
    def test_writes_json_file(self, tmp_path):
        sender = DiskEmailSender(tmp_path / "out", from_address="Acme <noreply@acme.test>")
        assert sender.send("a@x.com", "Hello", "<p>hi</p>") is True

        files = list((tmp_path / "out").glob("email-*.json"))
        assert len(files) == 1
        payload = json.loads(files[0].read_text())
        assert payload == {
            "from": "Acme <noreply@acme.test>",
            "to": ["a@x.com"],
            "subject": "Hello",
            "html": "<p>hi</p>",
        }

    def test_unwritable_directory_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        assert DiskEmailSender(blocker / "sub").send("a@x.com", "Hello", "x") is False


class TestResendEmailSender:
    def test_missing_api_key(self):
        sender = ResendEmailSender("", "Acme", "noreply@acme.test")
        sender._session = MagicMock()
        assert sender.send("a@x.com", "Hello", "<p>hi</p>") is False
        sender._session.post.assert_not_called()

    def test_posts_to_resend(self):
        sender = ResendEmailSender("re_key", "Acme", "noreply@acme.test")
        sender._session = MagicMock()
        assert sender.send("a@x.com", "Hello", "<p>hi</p>") is True

        args, kwargs = sender._session.post.call_args
        assert args[0] == "https://api.resend.com/emails"
        assert kwargs["headers"]["Authorization"] == "Bearer re_key"
        assert kwargs["json"]["from"] == "Acme <noreply@acme.test>"
        assert kwargs["json"]["to"] == ["a@x.com"]
        assert kwargs["json"]["html"] == "<p>hi</p>"

    def test_http_error_returns_false(self):
        sender = ResendEmailSender("re_key", "Acme", "noreply@acme.test")
        sender._session = MagicMock()
        sender._session.post.return_value.raise_for_status.side_effect = requests.HTTPError("422")
        assert sender.send("a@x.com", "Hello", "x") is False

    def test_connection_error_returns_false(self):
        sender = ResendEmailSender("re_key", "Acme", "noreply@acme.test")
        sender._session = MagicMock()
        sender._session.post.side_effect = requests.ConnectionError("down")
        assert sender.send("a@x.com", "Hello", "x") is False


def test_build_email_sender_by_environment(tmp_path):
    disk = build_email_sender(Settings(_env_file=None, environment="ci", email_output_dir=str(tmp_path)))
    assert isinstance(disk, DiskEmailSender)
    assert disk.directory == tmp_path

    live = build_email_sender(Settings(_env_file=None, environment="production", email_domain="acme.test"))
    assert isinstance(live, ResendEmailSender)
    assert live.from_address.endswith("<noreply@acme.test>")


# ---------------------------------------------------------------------------
# Mailer
# ---------------------------------------------------------------------------


class TestMailer:
    def test_subjects(self):
        sender = RecordingSender()
        mailer = make_mailer(sender)
        mailer.send_welcome("a@x.com")
        mailer.send_password_reset("a@x.com", "c0de")
        assert [m["subject"] for m in sender.sent] == ["Welcome to Test App", "Password Reset - Test App"]
        assert "token=c0de" in sender.sent[1]["html"]

    def test_admin_notification_needs_flag_and_address(self):
        sender = RecordingSender()
        make_mailer(sender, admin_email="ops@x.com").notify_new_user("a@x.com")
        make_mailer(sender, notify_admins=True).notify_new_user("a@x.com")
        assert sender.sent == []

        make_mailer(sender, admin_email="ops@x.com", environment="staging", notify_admins=True).notify_new_user("a@x.com")
        assert sender.sent[0]["subject"] == "[STAGING] New User Registered"
        assert "A new user &#34;a@x.com&#34; has registered" in sender.sent[0]["html"]

    def test_transport_exception_is_logged_not_raised(self, caplog):
        mailer = make_mailer(RecordingSender(explode=True))
        with caplog.at_level(logging.ERROR, logger="starter.notify"):
            mailer.send_welcome("a@x.com")
        assert "Failed to send welcome email" in caplog.text

    def test_undelivered_is_logged(self, caplog):
        mailer = make_mailer(RecordingSender(fail=True))
        with caplog.at_level(logging.WARNING, logger="starter.notify"):
            mailer.send_welcome("a@x.com")
        assert "was not delivered" in caplog.text
