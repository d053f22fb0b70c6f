"""Vault Agent - SSH agent backed by HashiCorp Vault.

Serves SSH private keys stored in a Vault KV v2 secrets engine over the
standard SSH agent protocol, so that key material never touches local disk.
"""

__version__ = "1.0.0"
