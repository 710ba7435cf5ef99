"""Slack and email notifiers plus their delivery transports.

Notifiers only build payloads; delivery goes through a :class:`Transport`.
Transport failures surface as :class:`NotificationError` and are absorbed
by ``NotificationService``.
"""

from __future__ import annotations

import html
import logging
import smtplib
import time
from email.message import EmailMessage
from typing import Any, Mapping, Sequence

import httpx

from src.android_orchestrator.exceptions import NotificationError
from src.pipeline_shared.constants import DEFAULT_SLACK_CHANNEL
from src.pipeline_shared.models import BuildResult, TestResult
from src.pipeline_shared.protocols import Transport
from src.pipeline_shared.utils import format_duration_ms

logger = logging.getLogger(__name__)

FOOTER = "Android Pipeline"

_SLACK_COLORS = {"error": "danger", "warning": "warning", "success": "good"}
_EMAIL_COLORS = {
    "success": "#28a745",
    "failure": "#dc3545",
    "error": "#dc3545",
    "warning": "#ffc107",
}
_ICONS = {"error": "❌", "warning": "⚠️", "success": "✅"}


def _icon(level: str | None) -> str:
    return _ICONS.get((level or "").lower(), "ℹ️")


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class HttpTransport:
    """POSTs JSON payloads (Slack incoming webhooks)."""

    def __init__(self, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self.timeout = timeout
        self._client = client

    def send(self, endpoint: str, payload: Mapping[str, Any]) -> None:
        try:
            if self._client is not None:
                response = self._client.post(endpoint, json=dict(payload))
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(endpoint, json=dict(payload))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"HTTP delivery failed: {exc}", "http") from exc


class SmtpTransport:
    """Sends HTML email.  *endpoint* is a comma-separated recipient list."""

    def __init__(self, host: str = "localhost", port: int = 25, timeout: float = 30.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    def send(self, endpoint: str, payload: Mapping[str, Any]) -> None:
        message = EmailMessage()
        message["Subject"] = payload.get("subject", "")
        message["From"] = payload.get("from", "")
        message["To"] = ", ".join(
            address.strip() for address in endpoint.split(",") if address.strip()
        )
        if payload.get("reply_to"):
            message["Reply-To"] = payload["reply_to"]
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(payload.get("html", ""), subtype="html")
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.send_message(message)
        except (OSError, smtplib.SMTPException) as exc:
            raise NotificationError(f"SMTP delivery failed: {exc}", "email") from exc


# ---------------------------------------------------------------------------
# Slack
# ---------------------------------------------------------------------------


class SlackNotifier:
    """Posts attachment-style messages to a Slack incoming webhook."""

    channel_name = "Slack"

    def __init__(
        self,
        webhook_url: str | None,
        transport: Transport | None = None,
        channel: str = DEFAULT_SLACK_CHANNEL,
        username: str = "Android Pipeline",
        icon_emoji: str = ":robot_face:",
    ) -> None:
        self.webhook_url = (webhook_url or "").strip()
        self.transport: Transport = transport or HttpTransport()
        self.channel = channel
        self.username = username
        self.icon_emoji = icon_emoji

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def _send(self, attachment: dict[str, Any]) -> None:
        if not self.is_configured():
            logger.warning("Slack webhook URL not configured, skipping notification")
            return
        attachment.setdefault("footer", FOOTER)
        attachment.setdefault("ts", int(time.time()))
        payload = {
            "channel": self.channel,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
            "attachments": [attachment],
        }
        self.transport.send(self.webhook_url, payload)

    @staticmethod
    def _field(title: str, value: Any) -> dict[str, Any]:
        return {"title": title, "value": str(value), "short": True}

    def notify_build_started(
        self, job_name: str, build_number: int, git_branch: str
    ) -> None:
        self._send({
            "color": "#439FE0",
            "title": f"🚀 Build Started: {job_name} #{build_number}",
            "fields": [
                self._field("Branch", git_branch),
                self._field("Build", f"#{build_number}"),
            ],
        })

    def notify_build_success(self, build_result: BuildResult, duration_ms: int) -> None:
        attachment: dict[str, Any] = {
            "color": "good",
            "title": "✅ Build Successful",
            "fields": [
                self._field(
                    "Version",
                    build_result.version.version_name if build_result.version else "N/A",
                ),
                self._field("Duration", format_duration_ms(duration_ms)),
                self._field("Variant", build_result.variant_name or "N/A"),
                self._field("Size", build_result.formatted_file_size),
            ],
        }
        if build_result.artifact_path:
            attachment["text"] = f"Artifact: `{build_result.artifact_file_name}`"
        self._send(attachment)

    def notify_build_failure(
        self,
        job_name: str,
        build_number: int,
        error_message: str,
        stage_name: str | None,
    ) -> None:
        self._send({
            "color": "danger",
            "title": f"❌ Build Failed: {job_name} #{build_number}",
            "text": (error_message or "")[:500],
            "fields": [
                self._field("Failed Stage", stage_name or "Unknown"),
                self._field("Build", f"#{build_number}"),
            ],
        })

    def notify_test_results(self, test_result: TestResult) -> None:
        fields = [
            self._field("Total", test_result.total),
            self._field("Passed", test_result.passed),
            self._field("Failed", test_result.failed),
            self._field("Duration", test_result.formatted_duration),
        ]
        if test_result.coverage_percent is not None:
            fields.append(self._field("Coverage", f"{test_result.coverage_percent:.1f}%"))
        attachment: dict[str, Any] = {
            "color": "good" if test_result.success else "danger",
            "title": f"{'✅' if test_result.success else '❌'} Test Results: {test_result.framework}",
            "fields": fields,
        }
        names = list(test_result.failed_test_names)
        if names:
            text = "\n• ".join(names[:5])
            if len(names) > 5:
                text += f"\n... and {len(names) - 5} more"
            attachment["text"] = f"Failed tests:\n• {text}"
        self._send(attachment)

    def notify_deployment(self, environment: str, version: str, track: str) -> None:
        self._send({
            "color": "#9B59B6",
            "title": "🚀 Deployment Complete",
            "fields": [
                self._field("Environment", environment),
                self._field("Version", version),
                self._field("Track", track),
            ],
        })

    def send_message(self, message: str, level: str = "info") -> None:
        self._send({
            "color": _SLACK_COLORS.get((level or "").lower(), "#439FE0"),
            "text": f"{_icon(level)} {message}",
        })


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


_EMAIL_STYLE = """
body { font-family: -apple-system, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; }
.container { max-width: 600px; margin: 0 auto; padding: 20px; }
.header { color: white; padding: 20px; border-radius: 8px 8px 0 0; }
.content { background-color: #f5f5f5; padding: 20px; border-radius: 0 0 8px 8px; }
.section { margin: 10px 0; padding: 10px; background-color: white; border-radius: 4px; }
.label { font-weight: bold; color: #666; }
.footer { margin-top: 20px; font-size: 12px; color: #999; }
"""


def render_html_email(
    title: str,
    status: str,
    sections: Sequence[tuple[str, Any]] = (),
    message: str | None = None,
    footer: str | None = None,
) -> str:
    """Render the small HTML document used for every email notification."""
    color = _EMAIL_COLORS.get((status or "").lower(), "#007bff")
    parts = [
        "<!DOCTYPE html>",
        f"<html><head><style>{_EMAIL_STYLE}</style></head><body>",
        '<div class="container">',
        f'<div class="header" style="background-color: {color};">'
        f"<h2>{html.escape(title)}</h2></div>",
        '<div class="content">',
    ]
    if message:
        parts.append(f"<p>{html.escape(message)}</p>")
    for label, value in sections:
        parts.append(
            '<div class="section">'
            f'<span class="label">{html.escape(label)}:</span> '
            f'<span class="value">{html.escape(str(value))}</span></div>'
        )
    parts.append(f'<div class="footer">{html.escape(footer or f"Sent by {FOOTER}")}</div>')
    parts.append("</div></div></body></html>")
    return "\n".join(parts)


class EmailNotifier:
    """Sends HTML notification emails to a fixed recipient list."""

    channel_name = "Email"

    def __init__(
        self,
        recipients: Sequence[str] | None,
        transport: Transport | None = None,
        from_address: str = "android-pipeline@localhost",
        reply_to: str | None = None,
    ) -> None:
        self.recipients = [r.strip() for r in (recipients or []) if r and r.strip()]
        self.transport: Transport = transport or SmtpTransport()
        self.from_address = from_address
        self.reply_to = reply_to or from_address

    def is_configured(self) -> bool:
        return bool(self.recipients)

    def _send(self, subject: str, body: str) -> None:
        if not self.is_configured():
            logger.warning("Email recipients not configured, skipping notification")
            return
        self.transport.send(
            ",".join(self.recipients),
            {
                "subject": subject,
                "html": body,
                "from": self.from_address,
                "reply_to": self.reply_to,
            },
        )
        logger.info("Email sent to %d recipients", len(self.recipients))

    def notify_build_started(
        self, job_name: str, build_number: int, git_branch: str
    ) -> None:
        self._send(
            f"🚀 Build Started: {job_name} #{build_number}",
            render_html_email(
                "Build Started",
                "info",
                [("Job", job_name), ("Build Number", f"#{build_number}"), ("Branch", git_branch)],
            ),
        )

    def notify_build_success(self, build_result: BuildResult, duration_ms: int) -> None:
        version = build_result.version.version_name if build_result.version else "N/A"
        self._send(
            f"✅ Build Successful: {build_result.variant_name}",
            render_html_email(
                "Build Successful",
                "success",
                [
                    ("Version", version),
                    ("Variant", build_result.variant_name or "N/A"),
                    ("Duration", format_duration_ms(duration_ms)),
                    ("Artifact Size", build_result.formatted_file_size),
                    ("Artifact", build_result.artifact_file_name or "N/A"),
                ],
            ),
        )

    def notify_build_failure(
        self,
        job_name: str,
        build_number: int,
        error_message: str,
        stage_name: str | None,
    ) -> None:
        self._send(
            f"❌ Build Failed: {job_name} #{build_number}",
            render_html_email(
                "Build Failed",
                "failure",
                [
                    ("Job", job_name),
                    ("Build Number", f"#{build_number}"),
                    ("Failed Stage", stage_name or "Unknown"),
                    ("Error", (error_message or "Unknown error")[:500]),
                ],
                footer="Check the pipeline log for full details.",
            ),
        )

    def notify_test_results(self, test_result: TestResult) -> None:
        sections: list[tuple[str, Any]] = [
            ("Framework", test_result.framework),
            ("Total Tests", test_result.total),
            ("Passed", test_result.passed),
            ("Failed", test_result.failed),
            ("Skipped", test_result.skipped),
            ("Duration", test_result.formatted_duration),
        ]
        if test_result.coverage_percent is not None:
            sections.append(("Coverage", f"{test_result.coverage_percent:.1f}%"))
        icon = "✅" if test_result.success else "❌"
        self._send(
            f"{icon} Test Results: {test_result.framework}",
            render_html_email(
                f"Test Results: {test_result.framework}",
                "success" if test_result.success else "failure",
                sections,
            ),
        )

    def notify_deployment(self, environment: str, version: str, track: str) -> None:
        self._send(
            f"🚀 Deployment Complete: {version} to {environment}",
            render_html_email(
                "Deployment Complete",
                "success",
                [("Environment", environment), ("Version", version), ("Track", track)],
            ),
        )

    def send_message(self, message: str, level: str = "info") -> None:
        self._send(
            f"{_icon(level)} Pipeline Notification",
            render_html_email("Notification", level, message=message),
        )
