"""Error taxonomy for Vault Agent."""


class VaultAgentError(Exception):
    """Base exception for agent errors."""

    pass


class ConfigInvalidError(VaultAgentError):
    """Raised when startup configuration is malformed or incomplete."""

    pass


class BackendUnavailableError(VaultAgentError):
    """Raised when a secret store list or get call fails."""

    pass


class MalformedKeyRecordError(VaultAgentError):
    """Raised when a stored key record is missing fields or unparsable."""

    def __init__(self, name: str, reason: str = "") -> None:
        self.name = name
        self.reason = reason
        msg = f"Malformed key record: {name}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg)


class NoMatchingKeyError(VaultAgentError):
    """Raised when no signing-eligible key matches the requested public key."""

    def __init__(self) -> None:
        super().__init__("No private key matches the requested public key")


class OperationUnsupportedError(VaultAgentError):
    """Raised for agent operations that would mutate the key set."""

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        msg = "Operation unsupported"
        if operation:
            msg += f": {operation}"
        super().__init__(msg)


class AgentProtocolError(VaultAgentError):
    """Raised when a client violates SSH agent wire framing."""

    pass
