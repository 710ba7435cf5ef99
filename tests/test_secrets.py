"""Tests for src.commands.secrets."""

from __future__ import annotations

import os
import stat
import tempfile

import pytest

from src.android_orchestrator.exceptions import EnvironmentSetupError
from src.commands.secrets import (
    CredentialKind,
    CredentialRequest,
    EnvironmentCredentialStore,
    SecretsManager,
)


class DictStore:
    def __init__(self, values):
        self.values = values

    def lookup(self, credential_id):
        return self.values.get(credential_id)


@pytest.fixture
def secrets():
    return SecretsManager(DictStore({
        "token": "s3cret",
        "keystore": "KEYSTORE-BYTES",
        "keystore-pass": "hunter2",
        "git": "builder:pa:ss",
        "play": '{"type": "service_account"}',
    }))


class TestEnvironmentCredentialStore:
    def test_variable_name(self):
        assert EnvironmentCredentialStore.variable_for("android-keystore") == (
            "PIPELINE_CREDENTIAL_ANDROID_KEYSTORE"
        )
        assert EnvironmentCredentialStore.variable_for("play.json key") == (
            "PIPELINE_CREDENTIAL_PLAY_JSON_KEY"
        )

    def test_lookup(self):
        store = EnvironmentCredentialStore({"PIPELINE_CREDENTIAL_TOKEN": "abc"})
        assert store.lookup("token") == "abc"
        assert store.lookup("missing") is None


class TestCredentialRequest:
    def test_factories(self):
        assert CredentialRequest.string("a", "A").kind is CredentialKind.STRING
        assert CredentialRequest.file("a", "A").variable == "A"
        request = CredentialRequest.username_password("a", "U", "P")
        assert (request.username_variable, request.password_variable) == ("U", "P")


class TestAcquire:
    def test_string_binding(self, secrets):
        with secrets.acquire(CredentialRequest.string("token", "API_TOKEN")) as env:
            assert env == {"API_TOKEN": "s3cret"}

    def test_file_binding_is_private_and_removed(self, secrets):
        with secrets.acquire(CredentialRequest.file("keystore", "KS")) as env:
            path = env["KS"]
            with open(path, encoding="utf-8") as f:
                assert f.read() == "KEYSTORE-BYTES"
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert not os.path.exists(path)

    def test_file_removed_when_block_raises(self, secrets):
        with pytest.raises(RuntimeError):
            with secrets.acquire(CredentialRequest.file("keystore", "KS")) as env:
                path = env["KS"]
                raise RuntimeError("build exploded")
        assert not os.path.exists(path)

    def test_username_password_splits_on_first_colon(self, secrets):
        request = CredentialRequest.username_password("git", "GIT_USERNAME", "GIT_PASSWORD")
        with secrets.acquire(request) as env:
            assert env == {"GIT_USERNAME": "builder", "GIT_PASSWORD": "pa:ss"}

    def test_missing_credential_raises(self, secrets):
        with pytest.raises(EnvironmentSetupError, match="Credential 'nope' is not available"):
            with secrets.acquire(CredentialRequest.string("nope", "X")):
                pass

    def test_missing_credential_leaves_no_files(self, secrets, monkeypatch):
        created = []
        real_mkstemp = tempfile.mkstemp

        def tracking_mkstemp(*args, **kwargs):
            fd, path = real_mkstemp(*args, **kwargs)
            created.append(path)
            return fd, path

        monkeypatch.setattr(tempfile, "mkstemp", tracking_mkstemp)
        with pytest.raises(EnvironmentSetupError):
            with secrets.acquire(
                CredentialRequest.file("keystore", "KS"),
                CredentialRequest.string("nope", "X"),
            ):
                pass
        assert len(created) == 1
        assert not os.path.exists(created[0])


class TestScopes:
    def test_android_signing(self, secrets):
        with secrets.android_signing("keystore", "keystore-pass", "upload") as env:
            assert env["ANDROID_KEY_ALIAS"] == "upload"
            assert env["ANDROID_KEYSTORE_PASSWORD"] == "hunter2"
            assert env["ANDROID_KEY_PASSWORD"] == "hunter2"
            keystore = env["ANDROID_KEYSTORE_PATH"]
            assert os.path.exists(keystore)
        assert not os.path.exists(keystore)

    def test_play_store(self, secrets):
        with secrets.play_store("play") as env:
            with open(env["GOOGLE_PLAY_JSON_KEY"], encoding="utf-8") as f:
                assert "service_account" in f.read()

    def test_slack_webhook(self, secrets):
        with secrets.slack_webhook("token") as env:
            assert env == {"SLACK_WEBHOOK_URL": "s3cret"}

    def test_default_store_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_CREDENTIAL_HOOK", "https://hooks.example")
        with SecretsManager().slack_webhook("hook") as env:
            assert env["SLACK_WEBHOOK_URL"] == "https://hooks.example"
