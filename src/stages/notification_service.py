"""Best-effort fan-out of pipeline notifications."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from src.pipeline_shared.models import BuildResult, TestResult
from src.pipeline_shared.protocols import Notifier, Transport
from src.stages.notifiers import EmailNotifier, SlackNotifier

logger = logging.getLogger(__name__)


class NotificationService:
    """Delivers every notification to each configured channel.

    A failing channel is logged and skipped; it never blocks the other
    channels and never propagates to the pipeline.  There is no retry.
    """

    def __init__(self) -> None:
        self._notifiers: list[Notifier] = []

    def add_notifier(self, notifier: Notifier | None) -> NotificationService:
        if notifier is not None and notifier.is_configured():
            self._notifiers.append(notifier)
            logger.debug("Added notifier: %s", notifier.channel_name)
        return self

    def with_slack(
        self,
        webhook_url: str | None,
        channel: str = "#builds",
        transport: Transport | None = None,
    ) -> NotificationService:
        if webhook_url:
            self.add_notifier(SlackNotifier(webhook_url, transport, channel=channel))
        return self

    def with_email(
        self,
        recipients: Sequence[str] | None,
        transport: Transport | None = None,
        from_address: str = "android-pipeline@localhost",
    ) -> NotificationService:
        if recipients:
            self.add_notifier(
                EmailNotifier(recipients, transport, from_address=from_address)
            )
        return self

    def has_notifiers(self) -> bool:
        return bool(self._notifiers)

    @property
    def notifier_count(self) -> int:
        return len(self._notifiers)

    @property
    def configured_channels(self) -> list[str]:
        return [n.channel_name for n in self._notifiers]

    def _notify_all(self, action: Callable[[Notifier], None]) -> None:
        for notifier in self._notifiers:
            try:
                action(notifier)
            except Exception as exc:
                logger.warning(
                    "Failed to send notification via %s: %s",
                    notifier.channel_name,
                    exc,
                )

    def notify_build_started(
        self, job_name: str, build_number: int, git_branch: str
    ) -> None:
        self._notify_all(
            lambda n: n.notify_build_started(job_name, build_number, git_branch)
        )

    def notify_build_success(self, build_result: BuildResult, duration_ms: int) -> None:
        self._notify_all(lambda n: n.notify_build_success(build_result, duration_ms))

    def notify_build_failure(
        self,
        job_name: str,
        build_number: int,
        error_message: str,
        stage_name: str | None,
    ) -> None:
        self._notify_all(
            lambda n: n.notify_build_failure(
                job_name, build_number, error_message, stage_name
            )
        )

    def notify_test_results(self, test_result: TestResult) -> None:
        self._notify_all(lambda n: n.notify_test_results(test_result))

    def notify_deployment(self, environment: str, version: str, track: str) -> None:
        self._notify_all(lambda n: n.notify_deployment(environment, version, track))

    def send_message(self, message: str, level: str = "info") -> None:
        self._notify_all(lambda n: n.send_message(message, level))
