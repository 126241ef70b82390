"""Credentials service for secure password storage.

The default implementation uses the OS keyring (macOS Keychain, Windows
Credential Locker, Linux Secret Service). An in-memory fallback is used
when no keyring backend is available, and for testing.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

# Service name used for keyring storage
KEYRING_SERVICE_NAME = "sqldialog"


def is_keyring_usable() -> bool:
    """Return True if a usable keyring backend appears to be available."""
    try:
        import keyring
        from keyring.errors import KeyringError
    except ImportError:
        return False

    backend = keyring.get_keyring()
    module_name = getattr(backend, "__module__", "") or ""
    priority = getattr(backend, "priority", None)
    if "keyring.backends.fail" in module_name:
        return False
    if isinstance(priority, (int, float)) and priority <= 0:
        return False

    # Minimal probe: read-only call to surface obvious misconfiguration.
    try:
        keyring.get_password(KEYRING_SERVICE_NAME, f"probe:{secrets.token_hex(8)}")
    except (KeyringError, RuntimeError) as exc:
        logger.debug("Keyring probe failed: %s", exc)
        return False
    return True


class CredentialsService(ABC):
    """Abstract base class for credential storage services."""

    @abstractmethod
    def get_password(self, key: str) -> str | None:
        """Retrieve the secret stored for a connection key.

        Returns:
            The secret, or None if not found.
        """
        ...

    @abstractmethod
    def set_password(self, key: str, password: str | None) -> None:
        """Store a secret; None deletes it."""
        ...

    @abstractmethod
    def delete_password(self, key: str) -> None: ...


class KeyringCredentialsService(CredentialsService):
    """Credentials service using the OS keyring.

    The keyring module is lazy-loaded to avoid import overhead when
    not needed.
    """

    def __init__(self) -> None:
        self._keyring: Any | None = None

    def _get_keyring(self) -> Any:
        if self._keyring is None:
            import keyring

            self._keyring = keyring
        return self._keyring

    def get_password(self, key: str) -> str | None:
        from keyring.errors import KeyringError

        try:
            value = self._get_keyring().get_password(KEYRING_SERVICE_NAME, key)
        except KeyringError as exc:
            logger.warning("Could not read credentials from keyring: %s", exc)
            return None
        return value if isinstance(value, str) else None

    def set_password(self, key: str, password: str | None) -> None:
        if password is None:
            self.delete_password(key)
            return
        from keyring.errors import KeyringError

        try:
            self._get_keyring().set_password(KEYRING_SERVICE_NAME, key, password)
        except KeyringError as exc:
            logger.warning("Could not save credentials to keyring: %s", exc)

    def delete_password(self, key: str) -> None:
        from keyring.errors import KeyringError, PasswordDeleteError

        try:
            self._get_keyring().delete_password(KEYRING_SERVICE_NAME, key)
        except PasswordDeleteError:
            pass
        except KeyringError as exc:
            logger.warning("Could not delete credentials from keyring: %s", exc)


class InMemoryCredentialsService(CredentialsService):
    """Credentials service storing secrets in memory only.

    WARNING: secrets are not persisted. Use only for testing or when no
    keyring backend is available.
    """

    def __init__(self) -> None:
        self._passwords: dict[str, str] = {}

    def get_password(self, key: str) -> str | None:
        return self._passwords.get(key)

    def set_password(self, key: str, password: str | None) -> None:
        if password is not None:
            self._passwords[key] = password
        else:
            self.delete_password(key)

    def delete_password(self, key: str) -> None:
        self._passwords.pop(key, None)


_credentials_service: CredentialsService | None = None


def get_credentials_service() -> CredentialsService:
    """Get the global credentials service instance.

    Returns the keyring-based service when a backend is usable, otherwise
    an in-memory store.
    """
    global _credentials_service
    if _credentials_service is None:
        if is_keyring_usable():
            _credentials_service = KeyringCredentialsService()
        else:
            logger.warning("No usable keyring backend; saved passwords will not persist")
            _credentials_service = InMemoryCredentialsService()
    return _credentials_service


def set_credentials_service(service: CredentialsService | None) -> None:
    """Set the global credentials service instance (useful for testing)."""
    global _credentials_service
    _credentials_service = service


def reset_credentials_service() -> None:
    global _credentials_service
    _credentials_service = None
