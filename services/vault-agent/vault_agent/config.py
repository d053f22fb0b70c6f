"""Configuration management for Vault Agent."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .errors import ConfigInvalidError

DEFAULT_KEY_PATH = "kv/ssh_keys"
TOKEN_FILE_NAME = ".vault-token"

TRUE_VALUES = frozenset({"1", "t", "true"})


@dataclass(frozen=True, slots=True)
class SecretPath:
    """Location of SSH key records in the secret store.

    The first segment names the KV mount, the remaining segments form
    the prefix that key names are listed under.
    """

    segments: tuple

    def __post_init__(self) -> None:
        if not self.segments:
            raise ConfigInvalidError("Invalid secret path: no path segments")

    @classmethod
    def parse(cls, path: str) -> "SecretPath":
        """Parse a slash-delimited path such as ``kv/ssh_keys``.

        Args:
            path: Configured secret path

        Returns:
            SecretPath with empty segments dropped

        Raises:
            ConfigInvalidError: If the path has no segments
        """
        segments = tuple(part for part in (path or "").strip("/").split("/") if part)
        return cls(segments=segments)

    @property
    def mount_point(self) -> str:
        """KV secrets engine mount point."""
        return self.segments[0]

    @property
    def key_prefix(self) -> str:
        """Path under the mount that holds key records."""
        return "/".join(self.segments[1:])

    def key_path(self, name: str) -> str:
        """Full path (relative to the mount) of a named key record."""
        if not self.key_prefix:
            return name
        return f"{self.key_prefix}/{name}"

    def __str__(self) -> str:
        return "/".join(self.segments)


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in TRUE_VALUES


def _timeout(value) -> int:
    try:
        timeout = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigInvalidError(f"Invalid vault_timeout {value!r}") from e
    if timeout <= 0:
        raise ConfigInvalidError(f"Invalid vault_timeout {value!r}")
    return timeout


def user_config_dir() -> Path:
    """Return the per-user configuration directory."""
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def read_token_file(path: Optional[Path] = None) -> Optional[str]:
    """Read a Vault token saved by ``vault login``.

    Returns:
        Token text, or None if the file is missing or empty
    """
    token_path = path or Path.home() / TOKEN_FILE_NAME
    try:
        token = token_path.read_text().strip()
    except OSError:
        return None
    return token or None


@dataclass(slots=True)
class AgentConfig:
    """Vault Agent configuration."""

    # Agent socket
    socket_path: Optional[str] = None

    # Vault connection
    vault_addr: Optional[str] = None
    vault_token: Optional[str] = None
    vault_role_id: Optional[str] = None
    vault_secret_id: Optional[str] = None
    vault_namespace: Optional[str] = None
    verify_ssl: bool = True
    vault_timeout: int = 30  # seconds

    # Key records
    key_path: str = DEFAULT_KEY_PATH

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load configuration from environment variables."""
        return cls(
            socket_path=os.getenv("VAULT_AGENT_SOCK"),
            vault_addr=os.getenv("VAULT_ADDR"),
            vault_token=os.getenv("VAULT_TOKEN"),
            vault_role_id=os.getenv("VAULT_ROLE_ID"),
            vault_secret_id=os.getenv("VAULT_SECRET_ID"),
            vault_namespace=os.getenv("VAULT_NAMESPACE"),
            verify_ssl=not _env_bool("VAULT_SKIP_VERIFY"),
            key_path=os.getenv("VAULT_AGENT_KEY_PATH", DEFAULT_KEY_PATH),
            log_level=os.getenv("VAULT_AGENT_LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_file(cls, config_file: str) -> "AgentConfig":
        """Load configuration from YAML file.

        Values missing from the file fall back to the environment.
        """
        path = Path(config_file)
        if not path.exists():
            return cls.from_env()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigInvalidError(f"Config file {config_file} is not a mapping")

        env = cls.from_env()
        return cls(
            socket_path=data.get("socket_path", env.socket_path),
            vault_addr=data.get("vault_addr", env.vault_addr),
            vault_token=data.get("vault_token", env.vault_token),
            vault_role_id=data.get("vault_role_id", env.vault_role_id),
            vault_secret_id=data.get("vault_secret_id", env.vault_secret_id),
            vault_namespace=data.get("vault_namespace", env.vault_namespace),
            verify_ssl=data.get("verify_ssl", env.verify_ssl),
            vault_timeout=_timeout(data.get("vault_timeout", env.vault_timeout)),
            key_path=data.get("key_path", env.key_path),
            log_level=data.get("log_level", env.log_level),
        )

    def update(self, overrides: Dict[str, Optional[str]]) -> None:
        """Apply non-empty overrides, e.g. from command-line flags."""
        for name, value in overrides.items():
            if value:
                setattr(self, name, value)

    def apply_defaults(self) -> None:
        """Fill in the socket path and token when not configured."""
        if not self.socket_path:
            self.socket_path = str(user_config_dir() / "vault-agent" / "agent.sock")
        if not self.vault_token:
            self.vault_token = read_token_file()

    def validate(self) -> None:
        """Check that the agent can start with this configuration.

        Raises:
            ConfigInvalidError: Listing every problem found
        """
        problems: List[str] = []
        if not self.socket_path:
            problems.append("invalid socket path")
        if not self.vault_addr:
            problems.append("invalid vault address")
        if not self.vault_token and not (self.vault_role_id and self.vault_secret_id):
            problems.append("no vault token or AppRole credentials")
        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            problems.append(f"invalid log level {self.log_level}")
        try:
            self.secret_path
        except ConfigInvalidError as e:
            problems.append(str(e).lower())

        if problems:
            raise ConfigInvalidError("; ".join(problems))

    @property
    def secret_path(self) -> SecretPath:
        """Parsed key path."""
        return SecretPath.parse(self.key_path)
