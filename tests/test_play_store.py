"""Tests for src.stages.fastlane and src.stages.play_store."""

from __future__ import annotations

import pytest

from src.android_orchestrator.exceptions import DeployError
from src.pipeline_shared.models import PlayStoreTrack
from src.pipeline_shared.protocols import Distributor
from src.stages.fastlane import FastlaneExecutor, rollout_fraction
from src.stages.play_store import CHANGELOG_PATH, PlayStoreDistributor

APK = "android/app/build/outputs/apk/prod/release/app-prod-release.apk"
PACKAGE = "com.example.demo"


@pytest.fixture
def fastlane(runner, fs):
    return FastlaneExecutor(runner, fs, package_name=PACKAGE, timeout=600)


@pytest.fixture
def distributor(fastlane, fs):
    return PlayStoreDistributor(fastlane, fs, rollout_percentage=50)


class TestFastlaneExecutor:
    @pytest.mark.parametrize(
        "percentage, expected", [(50, "0.5"), (10, "0.1"), (100, "1"), (12.5, "0.125")]
    )
    def test_rollout_fraction(self, percentage, expected):
        assert rollout_fraction(percentage) == expected

    def test_command_renders_lane_options(self, fastlane):
        spec = fastlane.command(
            "supply", {"track": "beta", "skip": True, "notes": "two words", "none": None}
        )
        assert spec.render() == "bundle exec fastlane supply track:beta skip:true notes:'two words'"

    def test_json_key_is_passed_through_env(self, fastlane):
        spec = fastlane.command("supply", env={"GOOGLE_PLAY_JSON_KEY": "/tmp/key.json"})
        assert spec.env["SUPPLY_JSON_KEY"] == "/tmp/key.json"
        assert "key.json" not in " ".join(spec.render_argv())

    def test_supply_apk_on_internal_track(self, fastlane, runner):
        fastlane.supply(APK, PlayStoreTrack.INTERNAL, 50)
        assert runner.rendered == [
            f"bundle exec fastlane supply track:internal package_name:{PACKAGE} apk:{APK}"
        ]
        assert runner.timeouts == [600]

    def test_supply_aab_with_production_rollout(self, fastlane, runner):
        fastlane.supply("app.aab", PlayStoreTrack.PRODUCTION, 20)
        assert runner.rendered[0].endswith("aab:app.aab rollout:0.2")

    def test_promote(self, fastlane, runner):
        fastlane.promote(PlayStoreTrack.BETA, PlayStoreTrack.PRODUCTION, 10)
        line = runner.rendered[0]
        assert "track:beta track_promote_to:production" in line
        assert "skip_upload_aab:true" in line
        assert line.endswith("rollout:0.1")

    def test_track_version_codes(self, fastlane, runner):
        runner.on("google_play_track_version_codes", stdout="[12:00] Result: [101, 102]\n")
        assert fastlane.track_version_codes(PlayStoreTrack.BETA) == [101, 102]
        assert runner.ran(f"track:beta package_name:{PACKAGE}")

    def test_track_version_codes_without_result_line(self, fastlane, runner):
        runner.on("google_play_track_version_codes", stdout="nothing here")
        assert fastlane.track_version_codes(PlayStoreTrack.ALPHA) == []

    def test_track_version_codes_failure_raises(self, fastlane, runner):
        runner.on("google_play_track_version_codes", exit_code=1)
        with pytest.raises(RuntimeError, match="exited with code 1"):
            fastlane.track_version_codes(PlayStoreTrack.ALPHA)

    def test_validate(self, runner, fs, tmp_path):
        errors = FastlaneExecutor(runner, fs).validate()
        assert errors == [
            "Package name is required for Play Store deployment",
            "Fastlane directory not found: android/fastlane",
        ]
        (tmp_path / "android" / "fastlane").mkdir(parents=True)
        assert FastlaneExecutor(runner, fs, package_name=PACKAGE).validate() == []


class TestPlayStoreDistributor:
    def test_satisfies_protocol(self, distributor):
        assert isinstance(distributor, Distributor)

    def test_missing_artifact_raises(self, distributor, runner):
        with pytest.raises(DeployError, match="Artifact not found: missing.apk") as exc_info:
            distributor.upload("missing.apk", PlayStoreTrack.INTERNAL)
        assert exc_info.value.context == {"track": "internal", "artifact": "missing.apk"}
        assert runner.calls == []

    def test_successful_upload_writes_changelog(self, distributor, write_artifact, tmp_path, runner):
        write_artifact(APK)
        result = distributor.upload(
            APK, PlayStoreTrack.INTERNAL, "Bug fixes", env={"GOOGLE_PLAY_JSON_KEY": "k.json"}
        )
        assert result.success
        assert result.message == "Uploaded to internal"
        # rollout only applies to the production track
        assert result.rollout_percentage == 100.0
        assert (tmp_path / CHANGELOG_PATH).read_text(encoding="utf-8") == "Bug fixes"
        assert runner.calls[0].env["SUPPLY_JSON_KEY"] == "k.json"

    def test_production_upload_uses_staged_rollout(self, distributor, write_artifact, runner):
        write_artifact(APK)
        result = distributor.upload(APK, PlayStoreTrack.PRODUCTION)
        assert result.rollout_percentage == 50
        assert runner.rendered[0].endswith("rollout:0.5")

    def test_failed_upload(self, distributor, write_artifact, runner):
        write_artifact(APK)
        runner.on("fastlane supply", exit_code=1, stderr="Google Api Error: forbidden")
        result = distributor.upload(APK, PlayStoreTrack.BETA)
        assert not result.success
        assert result.exit_code == 1
        assert result.message == (
            "Fastlane supply failed with exit code 1: Google Api Error: forbidden"
        )

    def test_promote_rejects_invalid_rollout(self, distributor, runner):
        assert not distributor.promote(PlayStoreTrack.BETA, PlayStoreTrack.ALPHA, 50)
        assert runner.calls == []

    def test_promote(self, distributor, runner):
        assert distributor.promote(PlayStoreTrack.ALPHA, PlayStoreTrack.BETA)
        runner.on("track_promote_to", exit_code=1)
        assert not distributor.promote(PlayStoreTrack.ALPHA, PlayStoreTrack.BETA)

    def test_get_status(self, distributor, runner):
        runner.on("google_play_track_version_codes", stdout="Result: [7, 9]")
        status = distributor.get_status(PlayStoreTrack.PRODUCTION)
        assert status.version_codes == (7, 9)
        assert status.latest_version_code == 9
        assert status.release_status == "live"

    def test_get_status_failure(self, distributor, runner):
        runner.on("google_play_track_version_codes", exit_code=2)
        status = distributor.get_status(PlayStoreTrack.BETA)
        assert status.error == "google_play_track_version_codes exited with code 2"
        assert status.latest_version_code is None

    def test_validate_config(self, fastlane, fs):
        errors = PlayStoreDistributor(fastlane, fs, rollout_percentage=120).validate_config()
        assert "Fastlane directory not found: android/fastlane" in errors
        assert "rolloutPercentage must be between 0 and 100, got: 120" in errors

    def test_rollback_is_unsupported(self, distributor):
        assert distributor.rollback(PlayStoreTrack.PRODUCTION, 42) is False
