"""Operator notification for completed diagnostics.

The core only relies on ``send(record) -> bool``. Delivery failures are
logged and reported as ``False``; they never fail the submission.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Mapping, Protocol

from .report_html import render_report_html, render_report_text, report_subject
from .types import DiagnosticRecord

log = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, record: DiagnosticRecord) -> bool: ...


class NullNotifier:
    """Used when no operator mailbox or SMTP relay is configured."""

    def send(self, record: DiagnosticRecord) -> bool:
        log.info("notification skipped for diagnostic %s (no operator configured)", record.id)
        return False


class SmtpNotifier:
    def __init__(
        self,
        to_email: str,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str = "sistema@iee.mx",
        from_name: str = "ASH Sistema de Diagnóstico",
        timeout: float = 15.0,
    ):
        self.to_email = to_email
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def build_message(self, record: DiagnosticRecord) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = report_subject(record)
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = self.to_email
        msg["Reply-To"] = self.to_email
        msg.set_content(render_report_text(record))
        msg.add_alternative(render_report_html(record), subtype="html")
        return msg

    def send(self, record: DiagnosticRecord) -> bool:
        try:
            msg = self.build_message(record)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.error("notification for diagnostic %s failed: %s", record.id, exc)
            return False
        except Exception:
            log.exception("notification for diagnostic %s could not be built", record.id)
            return False
        log.info("notification for diagnostic %s sent to %s", record.id, self.to_email)
        return True


def build_notifier(cfg: Mapping[str, Any]) -> Notifier:
    to_email = cfg.get("OPERATOR_EMAIL") or ""
    host = cfg.get("SMTP_HOST") or ""
    if not (to_email and host):
        return NullNotifier()
    return SmtpNotifier(
        to_email=to_email,
        host=host,
        port=int(cfg.get("SMTP_PORT") or 587),
        user=cfg.get("SMTP_USER") or "",
        password=cfg.get("SMTP_PASS") or "",
        use_tls=bool(cfg.get("SMTP_USE_TLS", True)),
        from_email=cfg.get("EMAIL_FROM") or "sistema@iee.mx",
        from_name=cfg.get("EMAIL_FROM_NAME") or "ASH Sistema de Diagnóstico",
    )
