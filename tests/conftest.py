#!/usr/bin/env python3
"""
Vault Agent Testing Framework - Global Test Configuration
Pytest fixtures: generated SSH keys and an in-memory secret store.
"""

import io
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from paramiko import ECDSAKey, RSAKey

from vault_agent.agent import VaultAgent
from vault_agent.config import SecretPath
from vault_agent.secrets.base import (
    BaseSecretStore,
    SecretNotFoundError,
    SecretsManagerError,
)

TEST_MOUNT = "kv"
TEST_PREFIX = "ssh_keys"


class FakeSecretStore(BaseSecretStore):
    """In-memory KV store keyed by path under a single mount."""

    def __init__(self, mount_point: str = TEST_MOUNT):
        self.mount_point = mount_point
        self.records: Dict[str, Dict[str, Any]] = {}
        self.list_error: Optional[Exception] = None
        self.get_errors: Dict[str, Exception] = {}
        self.list_calls = 0
        self.get_calls = 0

    def put(self, path: str, data: Dict[str, Any]) -> None:
        self.records[path] = data

    def list_secrets(self, mount_point: str, path: str = "") -> List[str]:
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        if mount_point != self.mount_point:
            raise SecretsManagerError(f"No secrets engine mounted at {mount_point}")

        prefix = f"{path}/" if path else ""
        names: List[str] = []
        for key in sorted(self.records):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            child = rest.split("/", 1)[0] + ("/" if "/" in rest else "")
            if child not in names:
                names.append(child)
        return names

    def get_secret(self, mount_point: str, path: str) -> Dict[str, Any]:
        self.get_calls += 1
        if path in self.get_errors:
            raise self.get_errors[path]
        if mount_point != self.mount_point or path not in self.records:
            raise SecretNotFoundError(f"{mount_point}/{path}")
        return dict(self.records[path])


def _pem(key) -> str:
    buf = io.StringIO()
    key.write_private_key(buf)
    return buf.getvalue()


@pytest.fixture(scope='session')
def rsa_key_pem():
    """PEM encoded RSA private key."""
    return _pem(RSAKey.generate(2048))


@pytest.fixture(scope='session')
def ecdsa_key_pem():
    """PEM encoded ECDSA P-256 private key."""
    return _pem(ECDSAKey.generate())


@pytest.fixture(scope='session')
def ed25519_key_pem():
    """OpenSSH encoded Ed25519 private key."""
    key = ed25519.Ed25519PrivateKey.generate()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def _pkcs8(key) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope='session')
def pkcs8_rsa_key_pem():
    """PKCS#8 RSA private key, as written by openssl genpkey."""
    return _pkcs8(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope='session')
def pkcs8_ecdsa_key_pem():
    """PKCS#8 ECDSA P-256 private key."""
    return _pkcs8(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(scope='session')
def secp256k1_key_pem():
    """EC private key on a curve with no SSH key type."""
    key = ec.generate_private_key(ec.SECP256K1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope='session')
def encrypted_rsa_key_pem():
    """Passphrase protected RSA private key."""
    buf = io.StringIO()
    RSAKey.generate(2048).write_private_key(buf, password="hunter2")
    return buf.getvalue()


@pytest.fixture(scope='function')
def temp_dir():
    """Create a short temporary directory (UNIX socket paths are length limited)."""
    with tempfile.TemporaryDirectory(dir="/tmp") as temp_path:
        yield Path(temp_path)


@pytest.fixture(scope='function')
def secret_path():
    """Key records live under kv/ssh_keys."""
    return SecretPath.parse(f"{TEST_MOUNT}/{TEST_PREFIX}")


@pytest.fixture(scope='function')
def fake_store():
    """Empty in-memory secret store."""
    return FakeSecretStore()


@pytest.fixture(scope='function')
def populated_store(fake_store, rsa_key_pem, ed25519_key_pem):
    """Store with one signing key and one list-only key.

    - ssh_keys/deploy: Ed25519, no sign field
    - ssh_keys/readonly: RSA, sign = "false"
    """
    fake_store.put(f"{TEST_PREFIX}/deploy", {"private": ed25519_key_pem})
    fake_store.put(
        f"{TEST_PREFIX}/readonly", {"private": rsa_key_pem, "sign": "false"}
    )
    return fake_store


@pytest.fixture(scope='function')
def agent(populated_store, secret_path):
    """Agent over the populated store."""
    return VaultAgent(populated_store, secret_path)
