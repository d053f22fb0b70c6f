"""Key resolution for Vault Agent.

Turns a key record stored in Vault into a paramiko signer. A record is a
mapping with a ``private`` field holding the private key text and an
optional ``sign`` field that can withdraw the key from signing.
"""

import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from paramiko import ECDSAKey, Ed25519Key, PKey, RSAKey
from paramiko.ssh_exception import PasswordRequiredException, SSHException

from .config import SecretPath
from .errors import BackendUnavailableError, MalformedKeyRecordError
from .secrets.base import BaseSecretStore, SecretsManagerError

log = logging.getLogger(__name__)

PRIVATE_KEY_FIELD = "private"
SIGN_FIELD = "sign"

NEGATIVE_SIGN_TOKENS = frozenset({"0", "false"})


@dataclass(frozen=True, slots=True)
class ResolvedSigner:
    """Signer loaded from one key record."""

    name: str
    signer: PKey
    for_sign: bool

    @property
    def public_blob(self) -> bytes:
        """Wire-format public key."""
        return self.signer.asbytes()

    @property
    def key_type(self) -> str:
        """Public key format name, e.g. ``ssh-ed25519``."""
        return self.signer.get_name()


def is_sign_eligible(value: Any) -> bool:
    """Interpret the ``sign`` field of a key record.

    Only the strings "0" and "false" (ignoring case and surrounding
    whitespace) disable signing. A missing field or any other value
    leaves the key eligible.
    """
    if not isinstance(value, str):
        return True
    return value.strip().lower() not in NEGATIVE_SIGN_TOKENS


def _key_class(loaded) -> type:
    if isinstance(loaded, rsa.RSAPrivateKey):
        return RSAKey
    if isinstance(loaded, ec.EllipticCurvePrivateKey):
        return ECDSAKey
    if isinstance(loaded, ed25519.Ed25519PrivateKey):
        return Ed25519Key
    raise SSHException(f"unsupported private key type {type(loaded).__name__}")


def parse_private_key(data: str) -> PKey:
    """Parse private key text in OpenSSH, traditional PEM or PKCS#8 format.

    The key type is detected with cryptography the same way
    ``PKey.from_path`` does. The loaded key is written back out in
    OpenSSH format, which paramiko reads for every key class and which
    refuses curves SSH has no name for.

    Raises:
        SSHException: If the text is not an unencrypted RSA, ECDSA or
            Ed25519 private key usable for SSH
    """
    raw = data.encode()
    try:
        try:
            loaded = serialization.load_ssh_private_key(raw, password=None)
        except ValueError:
            loaded = serialization.load_pem_private_key(raw, password=None)
    except TypeError as e:
        raise SSHException("private key is encrypted") from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SSHException(f"invalid private key: {e}") from e

    key_class = _key_class(loaded)
    try:
        openssh = loaded.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SSHException(f"unsupported {key_class.__name__} private key: {e}") from e

    try:
        key = key_class.from_private_key(io.StringIO(openssh))
        # Fails for keys paramiko loads but cannot encode
        key.asbytes()
    except PasswordRequiredException as e:
        raise SSHException("private key is encrypted") from e
    except (ValueError, TypeError, AttributeError) as e:
        raise SSHException(f"invalid {key_class.__name__} private key: {e}") from e
    return key


class KeyResolver:
    """Loads signers from key records under a secret path."""

    def __init__(self, store: BaseSecretStore, path: SecretPath):
        """Initialize resolver.

        Args:
            store: Secret store client
            path: Mount point and prefix holding key records
        """
        self.store = store
        self.path = path

    def list_names(self) -> List[str]:
        """List key record names under the configured prefix.

        Raises:
            BackendUnavailableError: If the list call fails
        """
        try:
            return self.store.list_secrets(self.path.mount_point, self.path.key_prefix)
        except SecretsManagerError as e:
            raise BackendUnavailableError(f"Unable to list keys at {self.path}: {e}") from e

    def resolve(self, name: str) -> ResolvedSigner:
        """Fetch and parse one key record.

        Raises:
            BackendUnavailableError: If the record cannot be fetched
            MalformedKeyRecordError: If the record holds no usable private key
        """
        key_path = self.path.key_path(name)
        try:
            record: Dict[str, Any] = self.store.get_secret(self.path.mount_point, key_path)
        except SecretsManagerError as e:
            raise BackendUnavailableError(f"Unable to read key {name}: {e}") from e

        private_data = record.get(PRIVATE_KEY_FIELD)
        if not isinstance(private_data, str):
            raise MalformedKeyRecordError(name, f"missing or invalid '{PRIVATE_KEY_FIELD}' field")

        try:
            signer = parse_private_key(private_data)
        except SSHException as e:
            raise MalformedKeyRecordError(name, str(e)) from e

        return ResolvedSigner(
            name=name,
            signer=signer,
            for_sign=is_sign_eligible(record.get(SIGN_FIELD)),
        )

    def resolve_all(self) -> Iterator[ResolvedSigner]:
        """Resolve every record under the prefix, skipping bad ones.

        Only the list call itself can fail the whole enumeration.
        """
        for name in self.list_names():
            if not isinstance(name, str) or not name:
                log.debug(f"Skipping non-string key name {name!r}")
                continue
            if name.endswith("/"):
                log.debug(f"Skipping folder {name} under {self.path}")
                continue
            try:
                yield self.resolve(name)
            except (BackendUnavailableError, MalformedKeyRecordError) as e:
                log.warning(f"Unable to get ssh key `{name}`: {e}")
