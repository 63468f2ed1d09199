"""
notify/render.py -- Jinja2 rendering for transactional emails.

Every email extends templates/base.html, which carries the brand header and
the "Best regards" signature. Autoescape is on for .html templates, so user
supplied values (emails in admin notifications, agency names in previews)
are escaped.
"""

from __future__ import annotations

import json
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

_TEMPLATE_DIR = Path(__file__).parent / "templates"

# Sample values shown on the admin template preview page.
_PREVIEW_RESET_PARAMS = {"code": "jfdksufgdug3232k32nfds"}
_PREVIEW_WELCOME_PARAMS: dict = {}


class EmailRenderer:
    """Render the welcome, forgot-password and admin notification emails."""

    def __init__(self, app_name: str, app_url: str) -> None:
        self.app_name = app_name
        self.app_url = app_url.rstrip("/")
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _render(self, name: str, *, agency_logo: str | None = None, agency_name: str | None = None, **context) -> str:
        template = self._env.get_template(name)
        return template.render(
            app_name=self.app_name,
            app_url=self.app_url,
            brand_name=agency_name or self.app_name,
            agency_logo=agency_logo,
            title=context.pop("title", self.app_name),
            **context,
        )

    def reset_link(self, code: str) -> str:
        return f"{self.app_url}/account/password-reset?token={code}"

    def welcome(self, **branding) -> str:
        return self._render("welcome.html", title=f"Welcome to {self.app_name}", **branding)

    def forgot_password(self, code: str, **branding) -> str:
        return self._render(
            "forgot_password.html",
            title=f"Password Reset - {self.app_name}",
            reset_link=self.reset_link(code),
            **branding,
        )

    def admin_notification(self, message: str, **branding) -> str:
        return self._render("admin_notification.html", title="Admin Notification", message=message, **branding)

    def previews(self, agency_logo: str | None = None, agency_name: str | None = None) -> list[dict]:
        """Return the user-facing templates rendered with sample data.

        params is the JSON-encoded sample input so the preview page can show
        what the template was rendered with.
        """
        branding = {"agency_logo": agency_logo, "agency_name": agency_name}
        return [
            {
                "name": "Forgot password",
                "params": json.dumps(_PREVIEW_RESET_PARAMS),
                "html": self.forgot_password(_PREVIEW_RESET_PARAMS["code"], **branding),
            },
            {
                "name": "User welcome",
                "params": json.dumps(_PREVIEW_WELCOME_PARAMS),
                "html": self.welcome(**branding),
            },
        ]
