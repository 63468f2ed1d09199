"""
notify/email.py -- Email senders.

Every sender implements send(to, subject, html) -> bool and never raises:
a failed send is logged and reported as False. Callers decide whether a
False matters (for the auth service it never does).

  ResendEmailSender -- production transport, HTTP POST to the Resend API.
  DiskEmailSender   -- testing/ci transport, writes each email as a JSON file
                       so tests and CI jobs can inspect what would have gone out.

build_email_sender() picks one from Settings.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path

import requests

from core.config import Settings

logger = logging.getLogger("starter.notify")

RESEND_API_URL = "https://api.resend.com/emails"

_PLAIN_TEXT_FALLBACK = "This message contains html, please enable it in your mail client, in order to view the message"


class EmailSender:
    """Interface for outbound email transports."""

    def send(self, to: str, subject: str, html: str) -> bool:
        raise NotImplementedError


class ResendEmailSender(EmailSender):
    """Send email through the Resend HTTP API.

    A shared requests.Session gives connection pooling across sends. Redirects
    are capped: this talks to one known API host.
    """

    def __init__(self, api_key: str, from_name: str, from_email: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.from_address = f"{from_name} <{from_email}>"
        self.timeout = timeout
        self._session = requests.Session()
        self._session.max_redirects = 3

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            logger.error("RESEND_API_KEY is not configured; dropping email to %s (%s)", to, subject)
            return False
        try:
            resp = self._session.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.from_address,
                    "to": [to],
                    "subject": subject,
                    "text": _PLAIN_TEXT_FALLBACK,
                    "html": html,
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Email send to %s failed (%s): %s", to, subject, e)
            return False
        logger.info("Email sent to %s (%s)", to, subject)
        return True


class DiskEmailSender(EmailSender):
    """Write each email to <directory>/email-<millis>-<suffix>.json."""

    def __init__(self, directory: str | Path, from_address: str = "") -> None:
        self.directory = Path(directory)
        self.from_address = from_address

    def send(self, to: str, subject: str, html: str) -> bool:
        payload = {"from": self.from_address, "to": [to], "subject": subject, "html": html}
        filename = f"email-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.json"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.directory / filename
            path.write_text(json.dumps(payload, indent=4), encoding="utf-8")
        except OSError as e:
            logger.error("Could not write email to %s: %s", self.directory, e)
            return False
        logger.warning("Testing environment: email to %s written to %s", to, path)
        return True


def build_email_sender(settings: Settings) -> EmailSender:
    """Return the disk sender in testing/ci, the Resend sender everywhere else."""
    from_email = f"noreply@{settings.email_domain}"
    if settings.writes_email_to_disk:
        return DiskEmailSender(settings.email_output_dir, from_address=f"{settings.app_name} <{from_email}>")
    return ResendEmailSender(settings.resend_api_key, settings.app_name, from_email)
