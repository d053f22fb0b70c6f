"""SSH agent backed by key records in Vault.

Every request re-reads the key records, so rotating or revoking a key
in Vault takes effect on the next list or sign request.
"""

import logging
from typing import List

from paramiko import PKey, RSAKey
from paramiko.util import asbytes

from .config import SecretPath
from .errors import NoMatchingKeyError, OperationUnsupportedError
from .keys import KeyResolver, ResolvedSigner
from .protocol import AgentBackend, AgentKey, rsa_algorithm_for_flags, serve_agent
from .secrets.base import BaseSecretStore

log = logging.getLogger(__name__)


class VaultAgent(AgentBackend):
    """Read-only SSH agent over a Vault key prefix.

    Holds no key material between requests and no per-connection state,
    so one instance is shared by all served connections.
    """

    def __init__(self, store: BaseSecretStore, path: SecretPath):
        """Initialize agent.

        Args:
            store: Secret store client
            path: Mount point and prefix holding key records
        """
        self.store = store
        self.path = path
        self._resolver = KeyResolver(store, path)

    @classmethod
    def from_path(cls, store: BaseSecretStore, path: str) -> "VaultAgent":
        """Create agent from a slash-delimited key path like ``kv/ssh_keys``.

        Raises:
            ConfigInvalidError: If the path has no segments
        """
        return cls(store, SecretPath.parse(path))

    def serve(self, conn) -> None:
        """Serve agent protocol on one accepted connection.

        Returns when the client disconnects. Closing the connection is
        left to the caller.
        """
        serve_agent(self, conn)

    def _signing_keys(self) -> List[ResolvedSigner]:
        return [key for key in self._resolver.resolve_all() if key.for_sign]

    def list_keys(self) -> List[AgentKey]:
        """List public keys of every resolvable record.

        Records with signing disabled are listed too.

        Raises:
            BackendUnavailableError: If the key records cannot be listed
        """
        return [
            AgentKey(format=key.key_type, blob=key.public_blob, comment=key.name)
            for key in self._resolver.resolve_all()
        ]

    def sign(self, key_blob: bytes, data: bytes, flags: int = 0) -> bytes:
        """Sign data with the signing-eligible key whose public blob matches.

        Raises:
            BackendUnavailableError: If the key records cannot be listed
            NoMatchingKeyError: If no eligible key matches key_blob
        """
        for key in self._signing_keys():
            if key.public_blob != key_blob:
                continue
            algorithm = None
            if isinstance(key.signer, RSAKey):
                algorithm = rsa_algorithm_for_flags(flags)
            log.info(f"Signing {len(data)} bytes with key `{key.name}`")
            return asbytes(key.signer.sign_ssh_data(data, algorithm))

        raise NoMatchingKeyError()

    def signers(self) -> List[PKey]:
        """Return signers for every signing-eligible record."""
        return [key.signer for key in self._signing_keys()]

    def add_key(self, key_data: bytes) -> None:
        raise OperationUnsupportedError("add identity")

    def remove_key(self, key_blob: bytes) -> None:
        raise OperationUnsupportedError("remove identity")

    def remove_all_keys(self) -> None:
        raise OperationUnsupportedError("remove all identities")

    def lock(self, passphrase: bytes) -> None:
        raise OperationUnsupportedError("lock")

    def unlock(self, passphrase: bytes) -> None:
        raise OperationUnsupportedError("unlock")
