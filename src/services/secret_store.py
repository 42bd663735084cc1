"""Secret store collaborator for the Oura personal access token.

Two backends:
    KeychainSecretStore — macOS Keychain via the ``security`` CLI
    InMemorySecretStore — process-local, for tests and non-mac hosts

``retrieve()`` raises ``CredentialNotFoundError`` when nothing is stored.
That is the expected first-run state, not a fault.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger("ringpulse.services.secret_store")

# `security` exits with this status when the item does not exist.
_SEC_ITEM_NOT_FOUND = 44


class SecretStoreError(RuntimeError):
    """The backing store failed for a reason other than a missing item."""


class CredentialNotFoundError(LookupError):
    """No credential is stored."""


class SecretStore(ABC):
    """Key-value store holding exactly one bearer credential."""

    @abstractmethod
    def save(self, token: str) -> None:
        """Create or overwrite the stored credential."""

    @abstractmethod
    def retrieve(self) -> str:
        """Return the stored credential.

        Raises:
            CredentialNotFoundError: If nothing is stored.
            SecretStoreError:        If the backend failed.
        """

    @abstractmethod
    def delete(self) -> None:
        """Remove the credential.  Deleting a missing item is not an error."""

    def has_credential(self) -> bool:
        try:
            self.retrieve()
        except (CredentialNotFoundError, SecretStoreError):
            return False
        return True


class InMemorySecretStore(SecretStore):
    def __init__(self, token: str | None = None) -> None:
        self._token = token or None
        self._lock = threading.Lock()

    def save(self, token: str) -> None:
        if not token:
            raise SecretStoreError("Refusing to store an empty token")
        with self._lock:
            self._token = token

    def retrieve(self) -> str:
        with self._lock:
            if self._token is None:
                raise CredentialNotFoundError("No token stored")
            return self._token

    def delete(self) -> None:
        with self._lock:
            self._token = None


class KeychainSecretStore(SecretStore):
    """macOS Keychain generic-password item addressed by service + account.

    Usage::

        store = KeychainSecretStore(service="com.ringpulse.oura", account="oura-pat")
        store.save("PAT...")
        token = store.retrieve()
    """

    def __init__(self, service: str, account: str, security_bin: str = "security") -> None:
        self._service = service
        self._account = account
        self._security = security_bin

    def _run(
        self, command: str, *options: str, stdin: str | None = None
    ) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                [self._security, command, "-a", self._account, "-s", self._service, *options],
                input=stdin,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise SecretStoreError(f"Could not run {self._security!r}: {exc}") from exc

    def save(self, token: str) -> None:
        if not token:
            raise SecretStoreError("Refusing to store an empty token")
        # -U updates in place.  A trailing bare -w reads the password (twice)
        # from stdin, keeping the token off argv.
        result = self._run("add-generic-password", "-U", "-w", stdin=f"{token}\n{token}\n")
        if result.returncode != 0:
            raise SecretStoreError(
                f"Failed to save token (status {result.returncode}): {result.stderr.strip()}"
            )
        logger.info("Saved Oura token to Keychain service %s", self._service)

    def retrieve(self) -> str:
        result = self._run("find-generic-password", "-w")
        if result.returncode == _SEC_ITEM_NOT_FOUND:
            raise CredentialNotFoundError("Token not found in Keychain")
        if result.returncode != 0:
            raise SecretStoreError(
                f"Keychain lookup failed (status {result.returncode}): {result.stderr.strip()}"
            )
        token = result.stdout.strip()
        if not token:
            raise CredentialNotFoundError("Keychain item is empty")
        return token

    def delete(self) -> None:
        result = self._run("delete-generic-password")
        if result.returncode not in (0, _SEC_ITEM_NOT_FOUND):
            raise SecretStoreError(
                f"Failed to delete token (status {result.returncode}): {result.stderr.strip()}"
            )
        logger.info("Removed Oura token from Keychain service %s", self._service)
