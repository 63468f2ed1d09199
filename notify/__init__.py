"""notify/ -- Outbound email for the auth service.

render.py renders the Jinja2 templates, email.py holds the senders (Resend
over HTTP, or JSON files on disk for testing/ci), mailer.py ties the two
together and dispatches notifications without blocking the caller.

Layer rule: notify/ may import from core/. It does NOT import from api/ or
auth/; auth/ talks to it only through the Mailer methods.
"""
