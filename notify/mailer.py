"""
notify/mailer.py -- Best-effort, fire-and-forget notification dispatch.

The auth service calls Mailer methods after its own work has committed. Each
call renders a template and hands it to the sender, either on a thread pool
(production: the request returns without waiting) or inline (tests and CLI:
no executor given). Either way a failure -- a False from the sender or an
exception from rendering -- is logged and goes no further. There is no retry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future

from notify.email import EmailSender
from notify.render import EmailRenderer

logger = logging.getLogger("starter.notify")


class Mailer:
    """Compose and dispatch the auth service's notification emails.

    Args:
        sender:       Transport used for every email.
        renderer:     Template renderer.
        admin_email:  Recipient for new-user notifications. Empty disables them.
        environment:  Environment name, shown in admin notification subjects.
        notify_admins: Whether new-user notifications go out at all (deployed
                      environments only).
        executor:     When set, sends run on it and the caller never waits.
    """

    def __init__(
        self,
        sender: EmailSender,
        renderer: EmailRenderer,
        *,
        admin_email: str = "",
        environment: str = "development",
        notify_admins: bool = False,
        executor: Executor | None = None,
    ) -> None:
        self.sender = sender
        self.renderer = renderer
        self.admin_email = admin_email
        self.environment = environment
        self.notify_admins = notify_admins
        self._executor = executor

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def send_welcome(self, to: str) -> None:
        subject = f"Welcome to {self.renderer.app_name}"
        self._dispatch("welcome", to, subject, self.renderer.welcome)

    def send_password_reset(self, to: str, code: str) -> None:
        subject = f"Password Reset - {self.renderer.app_name}"
        self._dispatch("password_reset", to, subject, lambda: self.renderer.forgot_password(code))

    def notify_new_user(self, email: str) -> None:
        """Tell the admin address about a registration, where enabled."""
        if not (self.notify_admins and self.admin_email):
            return
        subject = f"[{self.environment.upper()}] New User Registered"
        message = f'A new user "{email}" has registered'
        self._dispatch("admin_notification", self.admin_email, subject, lambda: self.renderer.admin_notification(message))

    def shutdown(self) -> None:
        """Wait for queued sends to finish. Call on application shutdown."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, kind: str, to: str, subject: str, render: Callable[[], str]) -> None:
        def job() -> bool:
            return self.sender.send(to, subject, render())

        if self._executor is None:
            try:
                ok = job()
            except Exception:
                logger.exception("Failed to send %s email to %s", kind, to)
                return
            self._log_result(kind, to, ok)
            return

        future = self._executor.submit(job)
        future.add_done_callback(lambda f: self._log_future(kind, to, f))

    def _log_future(self, kind: str, to: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Failed to send %s email to %s", kind, to, exc_info=exc)
            return
        self._log_result(kind, to, future.result())

    @staticmethod
    def _log_result(kind: str, to: str, ok: bool) -> None:
        if ok:
            logger.debug("%s email dispatched to %s", kind, to)
        else:
            logger.warning("%s email to %s was not delivered", kind, to)
