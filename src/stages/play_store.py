"""Google Play distribution through Fastlane supply."""

from __future__ import annotations

import logging
from typing import Mapping

from src.android_orchestrator.exceptions import DeployError
from src.pipeline_shared.constants import FASTLANE_DIR
from src.pipeline_shared.models import PlayStoreTrack, StatusInfo, UploadResult
from src.pipeline_shared.protocols import FileSystem
from src.pipeline_shared.utils import tail
from src.stages.fastlane import FastlaneExecutor

logger = logging.getLogger(__name__)

CHANGELOG_PATH = f"{FASTLANE_DIR}/metadata/android/en-US/changelogs/default.txt"


class PlayStoreDistributor:
    """Distributor for the Google Play Store.

    Upload failures reported by Fastlane come back as an unsuccessful
    :class:`UploadResult`; a missing artifact raises :class:`DeployError`.
    Rollback is not supported by the Play Store and always returns False.
    """

    target_name = "Google Play Store"

    def __init__(
        self,
        fastlane: FastlaneExecutor,
        filesystem: FileSystem,
        rollout_percentage: float = 100.0,
    ) -> None:
        self.fastlane = fastlane
        self.fs = filesystem
        self.rollout_percentage = rollout_percentage

    def upload(
        self,
        artifact_path: str,
        track: PlayStoreTrack,
        release_notes: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> UploadResult:
        logger.info("Uploading %s to %s", artifact_path, track.description)
        if not artifact_path or not self.fs.exists(artifact_path):
            raise DeployError(
                f"Artifact not found: {artifact_path}", track, artifact_path
            )

        if release_notes:
            self.fs.write_text(CHANGELOG_PATH, release_notes)

        rollout = self.rollout_percentage if track.supports_rollout else 100.0
        result = self.fastlane.supply(artifact_path, track, rollout, env=env)
        if not result.ok:
            detail = tail(result.stderr or result.stdout, 300)
            message = f"Fastlane supply failed with exit code {result.exit_code}"
            if detail:
                message += f": {detail}"
            logger.error(message)
            return UploadResult(
                success=False,
                track=track,
                artifact_path=artifact_path,
                message=message,
                exit_code=result.exit_code,
                rollout_percentage=rollout,
            )

        logger.info("Upload completed successfully")
        return UploadResult(
            success=True,
            track=track,
            artifact_path=artifact_path,
            message=f"Uploaded to {track.value}",
            rollout_percentage=rollout,
        )

    def promote(
        self,
        from_track: PlayStoreTrack,
        to_track: PlayStoreTrack,
        rollout_percentage: float = 100.0,
    ) -> bool:
        logger.info(
            "Promoting %s -> %s at %s%%",
            from_track.value, to_track.value, rollout_percentage,
        )
        errors = to_track.rollout_errors(rollout_percentage)
        if errors:
            logger.error("Promotion rejected: %s", "; ".join(errors))
            return False
        result = self.fastlane.promote(from_track, to_track, rollout_percentage)
        if not result.ok:
            logger.error("Promotion failed with exit code %d", result.exit_code)
            return False
        logger.info("Promotion completed")
        return True

    def get_status(self, track: PlayStoreTrack) -> StatusInfo:
        logger.info("Getting status for track: %s", track.value)
        try:
            codes = self.fastlane.track_version_codes(track)
        except RuntimeError as exc:
            logger.warning("Failed to get track status: %s", exc)
            return StatusInfo(track=track, error=str(exc))
        return StatusInfo(
            track=track,
            version_codes=tuple(codes),
            release_status="live" if codes else "empty",
        )

    def validate_config(self) -> list[str]:
        errors = self.fastlane.validate()
        errors.extend(PlayStoreTrack.PRODUCTION.rollout_errors(self.rollout_percentage))
        return errors

    def rollback(self, track: PlayStoreTrack, version_code: int) -> bool:
        logger.warning(
            "Play Store rollback of %s version %d requires manual intervention",
            track.value, version_code,
        )
        return False
