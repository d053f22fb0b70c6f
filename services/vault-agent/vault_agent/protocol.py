"""SSH agent wire protocol.

Implements the request/response framing from draft-miller-ssh-agent on
top of paramiko's Message codec. ``serve_agent`` reads requests from a
connected socket and dispatches them to an ``AgentBackend``.
"""

import logging
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from paramiko.message import Message

from .errors import AgentProtocolError, VaultAgentError

log = logging.getLogger(__name__)

# Client requests
SSH_AGENTC_REQUEST_IDENTITIES = 11
SSH_AGENTC_SIGN_REQUEST = 13
SSH_AGENTC_ADD_IDENTITY = 17
SSH_AGENTC_REMOVE_IDENTITY = 18
SSH_AGENTC_REMOVE_ALL_IDENTITIES = 19
SSH_AGENTC_LOCK = 22
SSH_AGENTC_UNLOCK = 23
SSH_AGENTC_ADD_ID_CONSTRAINED = 25

# Agent replies
SSH_AGENT_FAILURE = 5
SSH_AGENT_SUCCESS = 6
SSH_AGENT_IDENTITIES_ANSWER = 12
SSH_AGENT_SIGN_RESPONSE = 14

# Sign request flags
SSH_AGENT_RSA_SHA2_256 = 2
SSH_AGENT_RSA_SHA2_512 = 4

MAX_MESSAGE_SIZE = 256 * 1024


@dataclass(slots=True)
class AgentKey:
    """Public key as advertised to agent clients."""

    format: str
    blob: bytes
    comment: str = ""


class AgentBackend(ABC):
    """Operations an SSH agent must answer.

    Mutating operations are part of the protocol and must be answered
    even by read-only agents, typically by raising an error.
    """

    @abstractmethod
    def list_keys(self) -> List[AgentKey]:
        """Return the public keys the agent offers."""

    @abstractmethod
    def sign(self, key_blob: bytes, data: bytes, flags: int = 0) -> bytes:
        """Sign data with the private key matching key_blob.

        Returns:
            Wire-format signature blob
        """

    @abstractmethod
    def add_key(self, key_data: bytes) -> None:
        """Add a private key."""

    @abstractmethod
    def remove_key(self, key_blob: bytes) -> None:
        """Remove the key matching key_blob."""

    @abstractmethod
    def remove_all_keys(self) -> None:
        """Remove every key."""

    @abstractmethod
    def lock(self, passphrase: bytes) -> None:
        """Lock the agent."""

    @abstractmethod
    def unlock(self, passphrase: bytes) -> None:
        """Unlock the agent."""


def rsa_algorithm_for_flags(flags: int) -> Optional[str]:
    """Map sign request flags to an RSA signature algorithm name."""
    if flags & SSH_AGENT_RSA_SHA2_512:
        return "rsa-sha2-512"
    if flags & SSH_AGENT_RSA_SHA2_256:
        return "rsa-sha2-256"
    return None


def _recv_exact(conn, size: int) -> bytes:
    """Read exactly size bytes, or fewer if the peer closed the connection."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = conn.recv(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_message(conn) -> Optional[bytes]:
    """Read one framed message.

    Returns:
        Message payload, or None on EOF at a message boundary

    Raises:
        AgentProtocolError: On truncated or oversized messages
    """
    header = _recv_exact(conn, 4)
    if not header:
        return None
    if len(header) < 4:
        raise AgentProtocolError("Connection closed inside message header")

    (length,) = struct.unpack(">I", header)
    if length == 0:
        raise AgentProtocolError("Empty agent message")
    if length > MAX_MESSAGE_SIZE:
        raise AgentProtocolError(f"Agent message too large: {length} bytes")

    payload = _recv_exact(conn, length)
    if len(payload) < length:
        raise AgentProtocolError("Connection closed inside message body")
    return payload


def write_message(conn, payload: bytes) -> None:
    """Write one framed message."""
    conn.sendall(struct.pack(">I", len(payload)) + payload)


def _failure() -> bytes:
    return bytes([SSH_AGENT_FAILURE])


def _success() -> bytes:
    return bytes([SSH_AGENT_SUCCESS])


def handle_message(backend: AgentBackend, payload: bytes) -> bytes:
    """Dispatch one request payload and build the reply payload."""
    msg = Message(payload)
    msg_type = msg.get_byte()[0]

    try:
        if msg_type == SSH_AGENTC_REQUEST_IDENTITIES:
            keys = backend.list_keys()
            resp = Message()
            resp.add_byte(bytes([SSH_AGENT_IDENTITIES_ANSWER]))
            resp.add_int(len(keys))
            for key in keys:
                resp.add_string(key.blob)
                resp.add_string(key.comment)
            return resp.asbytes()

        if msg_type == SSH_AGENTC_SIGN_REQUEST:
            key_blob = msg.get_binary()
            data = msg.get_binary()
            flags = msg.get_int()
            signature = backend.sign(key_blob, data, flags)
            resp = Message()
            resp.add_byte(bytes([SSH_AGENT_SIGN_RESPONSE]))
            resp.add_string(signature)
            return resp.asbytes()

        if msg_type in (SSH_AGENTC_ADD_IDENTITY, SSH_AGENTC_ADD_ID_CONSTRAINED):
            backend.add_key(payload[1:])
            return _success()

        if msg_type == SSH_AGENTC_REMOVE_IDENTITY:
            backend.remove_key(msg.get_binary())
            return _success()

        if msg_type == SSH_AGENTC_REMOVE_ALL_IDENTITIES:
            backend.remove_all_keys()
            return _success()

        if msg_type == SSH_AGENTC_LOCK:
            backend.lock(msg.get_binary())
            return _success()

        if msg_type == SSH_AGENTC_UNLOCK:
            backend.unlock(msg.get_binary())
            return _success()

    except VaultAgentError as e:
        log.info(f"Agent request {msg_type} failed: {e}")
        return _failure()

    log.debug(f"Unsupported agent request type {msg_type}")
    return _failure()


def serve_agent(backend: AgentBackend, conn) -> None:
    """Serve agent requests on conn until the client disconnects.

    Args:
        backend: Agent operations
        conn: Connected stream socket (anything with recv and sendall)

    Raises:
        AgentProtocolError: If the client breaks message framing
        OSError: On socket errors
    """
    while True:
        payload = read_message(conn)
        if payload is None:
            return
        write_message(conn, handle_message(backend, payload))
