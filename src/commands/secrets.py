"""Scoped credential acquisition.

Credentials are referenced by opaque identifiers in configuration and only
resolved inside :meth:`SecretsManager.acquire`.  The bindings it yields are
valid for the ``with`` block; file credentials are materialised as private
temporary files that are removed on exit, including when the block raises.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping

from src.android_orchestrator.exceptions import EnvironmentSetupError
from src.pipeline_shared.protocols import CredentialStore

logger = logging.getLogger(__name__)

CREDENTIAL_ENV_PREFIX = "PIPELINE_CREDENTIAL_"


class CredentialKind(str, Enum):
    STRING = "string"
    FILE = "file"
    USERNAME_PASSWORD = "username_password"


@dataclass(frozen=True)
class CredentialRequest:
    """One credential to bind for the duration of a scope.

    For ``USERNAME_PASSWORD`` the stored secret is ``user:password`` and is
    split into ``username_variable`` and ``password_variable``.
    """

    credential_id: str
    kind: CredentialKind = CredentialKind.STRING
    variable: str = ""
    username_variable: str = ""
    password_variable: str = ""

    @classmethod
    def string(cls, credential_id: str, variable: str) -> CredentialRequest:
        return cls(credential_id, CredentialKind.STRING, variable)

    @classmethod
    def file(cls, credential_id: str, variable: str) -> CredentialRequest:
        return cls(credential_id, CredentialKind.FILE, variable)

    @classmethod
    def username_password(
        cls, credential_id: str, username_variable: str, password_variable: str
    ) -> CredentialRequest:
        return cls(
            credential_id,
            CredentialKind.USERNAME_PASSWORD,
            username_variable=username_variable,
            password_variable=password_variable,
        )


class EnvironmentCredentialStore:
    """Looks up ``PIPELINE_CREDENTIAL_<ID>`` in the process environment.

    The identifier is upper-cased and every non-alphanumeric character is
    replaced by ``_``, so ``android-keystore`` maps to
    ``PIPELINE_CREDENTIAL_ANDROID_KEYSTORE``.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    @staticmethod
    def variable_for(credential_id: str) -> str:
        return CREDENTIAL_ENV_PREFIX + re.sub(r"[^A-Za-z0-9]", "_", credential_id).upper()

    def lookup(self, credential_id: str) -> str | None:
        return self._environ.get(self.variable_for(credential_id))


class SecretsManager:
    """Resolves credential requests into ephemeral environment bindings."""

    def __init__(self, store: CredentialStore | None = None) -> None:
        self.store: CredentialStore = store or EnvironmentCredentialStore()

    def _resolve(self, credential_id: str) -> str:
        value = self.store.lookup(credential_id)
        if value is None:
            raise EnvironmentSetupError(
                f"Credential '{credential_id}' is not available"
            )
        return value

    @contextmanager
    def acquire(self, *requests: CredentialRequest) -> Iterator[dict[str, str]]:
        """Yield environment bindings for *requests*; clean up on exit.

        Raises:
            EnvironmentSetupError: If any credential cannot be resolved.
                Nothing is left on disk in that case.
        """
        bindings: dict[str, str] = {}
        temp_files: list[str] = []
        try:
            for request in requests:
                secret = self._resolve(request.credential_id)
                if request.kind is CredentialKind.STRING:
                    bindings[request.variable] = secret
                elif request.kind is CredentialKind.FILE:
                    fd, path = tempfile.mkstemp(prefix="pipeline-cred-")
                    temp_files.append(path)
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(secret)
                    os.chmod(path, 0o600)
                    bindings[request.variable] = path
                else:
                    username, _, password = secret.partition(":")
                    bindings[request.username_variable] = username
                    bindings[request.password_variable] = password
            logger.debug("Bound %d credential variable(s)", len(bindings))
            yield bindings
        finally:
            for path in temp_files:
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    pass

    @contextmanager
    def android_signing(
        self,
        keystore_credentials_id: str,
        password_credentials_id: str,
        key_alias: str,
    ) -> Iterator[dict[str, str]]:
        """Bind the keystore file, its password, and the key alias."""
        with self.acquire(
            CredentialRequest.file(keystore_credentials_id, "KEYSTORE_FILE"),
            CredentialRequest.string(password_credentials_id, "KEYSTORE_PASSWORD"),
        ) as raw:
            yield {
                "ANDROID_KEY_ALIAS": key_alias,
                "ANDROID_KEYSTORE_PATH": raw["KEYSTORE_FILE"],
                "ANDROID_KEYSTORE_PASSWORD": raw["KEYSTORE_PASSWORD"],
                "ANDROID_KEY_PASSWORD": raw["KEYSTORE_PASSWORD"],
            }

    @contextmanager
    def play_store(self, json_key_credentials_id: str) -> Iterator[dict[str, str]]:
        """Bind the Play Store service-account JSON key file."""
        with self.acquire(
            CredentialRequest.file(json_key_credentials_id, "GOOGLE_PLAY_JSON_KEY")
        ) as bindings:
            yield bindings

    @contextmanager
    def slack_webhook(self, webhook_credentials_id: str) -> Iterator[dict[str, str]]:
        with self.acquire(
            CredentialRequest.string(webhook_credentials_id, "SLACK_WEBHOOK_URL")
        ) as bindings:
            yield bindings
