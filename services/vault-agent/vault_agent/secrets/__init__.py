"""Secret store clients for Vault Agent.

Usage:
    from vault_agent.secrets import VaultSecretStore

    store = VaultSecretStore(url="https://vault:8200", token="...")
    names = store.list_secrets("kv", "ssh_keys")
    record = store.get_secret("kv", "ssh_keys/deploy")
"""

from .base import (
    BaseSecretStore,
    SecretAccessError,
    SecretNotFoundError,
    SecretsManagerError,
)
from .vault import VaultSecretStore

__all__ = [
    "BaseSecretStore",
    "SecretAccessError",
    "SecretNotFoundError",
    "SecretsManagerError",
    "VaultSecretStore",
]
