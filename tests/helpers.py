"""
tests/helpers.py -- Deterministic collaborators shared by the test modules.

Plain classes and functions (not fixtures) so tests can build variants:
a codec with no secret, a mailer whose transport fails, a clock that jumps.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.models import AuthConfig
from notify.email import EmailSender
from notify.mailer import Mailer
from notify.render import EmailRenderer

TEST_SECRET = "unit-test-secret-0123456789abcdef-0123456789"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender(EmailSender):
    """EmailSender that records messages instead of sending them.

    fail=True makes send() report failure; explode=True makes it raise.
    """

    def __init__(self, fail: bool = False, explode: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail
        self.explode = explode

    def send(self, to: str, subject: str, html: str) -> bool:
        if self.explode:
            raise RuntimeError("transport exploded")
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


def make_config(secret: str = TEST_SECRET, clock=None, **kwargs) -> AuthConfig:
    if clock is not None:
        kwargs["clock"] = clock
    return AuthConfig(secret=secret, **kwargs)


def make_mailer(sender: EmailSender | None = None, **kwargs) -> Mailer:
    renderer = EmailRenderer("Test App", "http://app.test")
    return Mailer(sender or RecordingSender(), renderer, **kwargs)


def reset_code_from(mail: dict) -> str:
    """Pull the 64-hex-char reset token out of a recorded password reset email."""
    marker = "password-reset?token="
    start = mail["html"].index(marker) + len(marker)
    return mail["html"][start : start + 64]
