"""Base class for secret store clients.

The agent only reads from the store; writing key records is left to
the usual Vault tooling.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseSecretStore(ABC):
    """Abstract base class for path-addressed, versioned secret stores.

    Implementations must be safe to call concurrently from several
    threads, one per served agent connection.
    """

    @abstractmethod
    def list_secrets(self, mount_point: str, path: str = "") -> list[str]:
        """List child names under a path.

        Args:
            mount_point: Secrets engine mount (e.g., "kv")
            path: Path under the mount. Empty string for the mount root.

        Returns:
            Child names, not full paths. Sub-folders end with "/".

        Raises:
            SecretsManagerError: If there's an error listing secrets.
        """
        pass

    @abstractmethod
    def get_secret(self, mount_point: str, path: str) -> dict[str, Any]:
        """Retrieve the latest version of a secret.

        Args:
            mount_point: Secrets engine mount (e.g., "kv")
            path: Path of the secret under the mount

        Returns:
            Dictionary containing the secret data.

        Raises:
            SecretNotFoundError: If the secret doesn't exist.
            SecretsManagerError: If there's an error accessing the backend.
        """
        pass


class SecretsManagerError(Exception):
    """Base exception for secret store errors."""

    pass


class SecretNotFoundError(SecretsManagerError):
    """Raised when a secret is not found."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Secret not found: {path}")


class SecretAccessError(SecretsManagerError):
    """Raised when access to a secret is denied."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        msg = f"Access denied to secret: {path}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg)
