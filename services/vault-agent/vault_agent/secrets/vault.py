"""HashiCorp Vault secret store.

Reads SSH key records from a KV v2 secrets engine.
Supports both token and AppRole authentication.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import hvac
import requests

from .base import (
    BaseSecretStore,
    SecretAccessError,
    SecretNotFoundError,
    SecretsManagerError,
)

log = logging.getLogger(__name__)


class VaultSecretStore(BaseSecretStore):
    """Secret store using HashiCorp Vault KV v2.

    Authentication happens lazily on first use. AppRole is preferred
    when both role id and secret id are given, otherwise the token is used.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        role_id: str | None = None,
        secret_id: str | None = None,
        namespace: str | None = None,
        verify: bool = True,
        timeout: int = 30,
    ) -> None:
        self.url = url
        self._token = token
        self._role_id = role_id
        self._secret_id = secret_id
        self._namespace = namespace
        self._verify = verify
        self._timeout = timeout
        self._client: hvac.Client | None = None
        self._authenticated = False
        self._lock = threading.Lock()

    @property
    def client(self) -> hvac.Client:
        """Get authenticated Vault client."""
        with self._lock:
            if self._client is None:
                self._client = hvac.Client(
                    url=self.url,
                    namespace=self._namespace,
                    verify=self._verify,
                    timeout=self._timeout,
                )

            if not self._authenticated:
                self._authenticate()

        return self._client

    def _authenticate(self) -> None:
        """Authenticate with Vault using configured method."""
        try:
            if self._role_id and self._secret_id:
                self._client.auth.approle.login(
                    role_id=self._role_id,
                    secret_id=self._secret_id,
                )
                log.info("Authenticated with Vault using AppRole")
            elif self._token:
                self._client.token = self._token
                log.info("Authenticated with Vault using token")
            else:
                raise SecretsManagerError(
                    "No Vault credentials configured. "
                    "Set VAULT_TOKEN or VAULT_ROLE_ID/VAULT_SECRET_ID"
                )

            if not self._client.is_authenticated():
                raise SecretsManagerError("Vault authentication failed")
        except hvac.exceptions.VaultDown as e:
            raise SecretsManagerError("Vault server is sealed or unavailable") from e
        except hvac.exceptions.VaultError as e:
            raise SecretsManagerError(f"Vault authentication failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SecretsManagerError(f"Unable to reach Vault at {self.url}: {e}") from e

        self._authenticated = True

    def list_secrets(self, mount_point: str, path: str = "") -> list[str]:
        """List key names under a KV v2 path."""
        try:
            result = self.client.secrets.kv.v2.list_secrets(
                path=path,
                mount_point=mount_point,
            )
        except hvac.exceptions.InvalidPath:
            return []
        except hvac.exceptions.Forbidden as e:
            raise SecretAccessError(f"{mount_point}/{path}", "Insufficient permissions to list") from e
        except hvac.exceptions.VaultError as e:
            raise SecretsManagerError(f"Vault error listing secrets: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SecretsManagerError(f"Unable to reach Vault at {self.url}: {e}") from e

        keys = (result or {}).get("data", {}).get("keys")
        if not isinstance(keys, list):
            raise SecretsManagerError(
                f"Unexpected list response for {mount_point}/{path}"
            )
        return keys

    def get_secret(self, mount_point: str, path: str) -> dict[str, Any]:
        """Retrieve the latest secret version from Vault KV v2."""
        try:
            result = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=mount_point,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.InvalidPath as e:
            raise SecretNotFoundError(f"{mount_point}/{path}") from e
        except hvac.exceptions.Forbidden as e:
            raise SecretAccessError(f"{mount_point}/{path}", "Insufficient permissions") from e
        except hvac.exceptions.VaultError as e:
            raise SecretsManagerError(f"Vault error reading secret: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SecretsManagerError(f"Unable to reach Vault at {self.url}: {e}") from e

        data = (result or {}).get("data", {}).get("data")
        if data is None:
            raise SecretNotFoundError(f"{mount_point}/{path}")
        return data
