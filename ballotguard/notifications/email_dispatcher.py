"""
Out-of-band notification dispatch (MFA codes, voting links, account emails).

Backends:
    SmtpDispatcher     SMTP delivery through aiosmtplib
    LoggingDispatcher  development backend, writes to the log and keeps an outbox

``send`` makes exactly one attempt. Any delivery failure raises
``DispatchFailed`` so the caller can undo whatever credential it issued.
"""

import asyncio
import logging
from collections import deque
from email.message import EmailMessage

import aiosmtplib

from ballotguard.errors import DispatchFailed

logger = logging.getLogger(__name__)


class SmtpDispatcher:
    def __init__(self, host, port, sender, username=None, password=None, use_tls=True, timeout=10):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build(self, recipient, subject, message):
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(message)
        return msg

    def send(self, recipient, subject, message):
        kwargs = {
            "hostname": self.host,
            "port": self.port,
            "start_tls": self.use_tls,
            "timeout": self.timeout,
        }
        if self.username and self.password:
            kwargs["username"] = self.username
            kwargs["password"] = self.password

        try:
            asyncio.run(aiosmtplib.send(self._build(recipient, subject, message), **kwargs))
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {recipient}: {e}")
            raise DispatchFailed() from e
        logger.info(f"Email sent to {recipient}: {subject}")


class LoggingDispatcher:
    def __init__(self, max_outbox=100):
        # Most recent messages only
        self.outbox = deque(maxlen=max_outbox)

    def send(self, recipient, subject, message):
        self.outbox.append({"recipient": recipient, "subject": subject, "message": message})
        logger.info(f"[mail:log] to={recipient} subject={subject!r}")


def create_dispatcher(config):
    backend = config.get("MAIL_BACKEND", "smtp")
    if backend == "log":
        return LoggingDispatcher()
    if backend == "smtp":
        return SmtpDispatcher(
            host=config["SMTP_HOST"],
            port=config["SMTP_PORT"],
            sender=config["SMTP_FROM"],
            username=config.get("SMTP_USER"),
            password=config.get("SMTP_PASSWORD"),
            use_tls=config.get("SMTP_USE_TLS", True),
        )
    raise ValueError(f"Unknown MAIL_BACKEND: {backend}")
