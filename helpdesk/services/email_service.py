"""
Outbound mail for ticket and password-reset notifications.

build_message() renders a Jinja2 template from templates/emails/ into an
HTML message with a plain-text fallback. send_email() hands it to a daemon
thread that talks SMTP, so the request that triggered it returns before
the mail server answers. Delivery problems are logged, never raised.

MAIL_SUPPRESS_SEND (on in TestConfig) renders and logs without connecting.
"""

import logging
import re
import smtplib
import threading
from email.message import EmailMessage
from html import unescape

from flask import current_app, render_template

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def html_to_text(html_body):
    """Crude plain-text rendering for clients that refuse HTML."""
    text = unescape(_TAG_RE.sub("", html_body))
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def _sender(config):
    name = config.get("MAIL_FROM_NAME", "RUN Support Portal")
    address = config.get("MAIL_FROM_ADDRESS") or config.get("MAIL_USERNAME") or ""
    return f"{name} <{address}>"


def build_message(to, subject, template, context=None, reply_to=None):
    """Render `template` with `context` into an EmailMessage."""
    html_body = render_template(template, **(context or {}))

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = _sender(current_app.config)
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.set_content(html_to_text(html_body))
    msg.add_alternative(html_body, subtype="html")
    return msg


def _deliver(config, msg):
    username = config.get("MAIL_USERNAME")
    password = config.get("MAIL_PASSWORD")
    if not username or not password:
        logger.warning(f"SMTP credentials missing; dropped mail to {msg['To']}")
        return False

    host = config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = config.get("MAIL_SMTP_PORT", 587)
    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            if config.get("MAIL_USE_TLS", True):
                server.starttls()
            server.login(username, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP delivery to {msg['To']} failed: {e}")
        return False

    logger.info(f"Mail delivered to {msg['To']}: {msg['Subject']}")
    return True


def send_email(to, subject, template, context=None, reply_to=None):
    """Render now, deliver in the background.

    Returns the background thread, or None when sending is suppressed.
    """
    msg = build_message(to, subject, template, context=context, reply_to=reply_to)

    config = dict(current_app.config)
    if config.get("MAIL_SUPPRESS_SEND"):
        logger.info(f"Mail suppressed: {msg['Subject']} -> {msg['To']}")
        return None

    thread = threading.Thread(target=_deliver, args=(config, msg), daemon=True)
    thread.start()
    return thread
