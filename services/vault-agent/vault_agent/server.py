"""UNIX socket server for Vault Agent.

Accepts SSH agent connections on a local socket and serves each one
on its own thread.
"""

import errno
import logging
import os
import socket
import threading
import time
from pathlib import Path
from typing import Optional, Set

from .agent import VaultAgent

log = logging.getLogger(__name__)

# Accept errors worth retrying after a short pause
TEMPORARY_ACCEPT_ERRORS = frozenset({
    errno.EMFILE,
    errno.ENFILE,
    errno.ENOBUFS,
    errno.ENOMEM,
    errno.ECONNABORTED,
    errno.EINTR,
})


class AgentServer:
    """Serves a VaultAgent on a UNIX domain socket."""

    def __init__(
        self,
        agent: VaultAgent,
        socket_path: str,
        accept_backoff: float = 1.0,
    ):
        """Initialize server.

        Args:
            agent: Agent shared by all connections
            socket_path: Filesystem path of the listening socket
            accept_backoff: Seconds to wait after a temporary accept error
        """
        self.agent = agent
        self.socket_path = Path(socket_path)
        self.accept_backoff = accept_backoff

        self._running = False
        self._server_socket: Optional[socket.socket] = None
        self._connections: Set[socket.socket] = set()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Create and bind the listening socket."""
        if self._running:
            return

        # Stale socket from a previous run
        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise RuntimeError(f"Failed to remove stale socket: {e}") from e

        try:
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Failed to create socket directory: {e}") from e

        self._server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            self._server_socket.bind(str(self.socket_path))
            os.chmod(self.socket_path, 0o600)
            self._server_socket.listen(16)
            self._server_socket.settimeout(1.0)
        except OSError as e:
            self._server_socket.close()
            self._server_socket = None
            raise RuntimeError(f"Failed to listen on UNIX socket: {e}") from e

        self._running = True
        log.info(f"Listening on socket {self.socket_path}")

    def serve_forever(self) -> None:
        """Accept connections until stop() is called.

        Raises:
            OSError: On a permanent accept error
        """
        self.start()
        try:
            self._accept_loop()
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop accepting and close open connections."""
        if not self._running and self._server_socket is None:
            return
        self._running = False

        if self._server_socket:
            self._server_socket.close()
            self._server_socket = None

        with self._lock:
            for conn in list(self._connections):
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass

        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass

        log.info("Agent server stopped")

    def get_active_connection_count(self) -> int:
        """Get number of connections being served."""
        with self._lock:
            return len(self._connections)

    def _accept_loop(self) -> None:
        """Accept incoming connections."""
        server_socket = self._server_socket
        while self._running:
            try:
                conn, _ = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                if e.errno in TEMPORARY_ACCEPT_ERRORS:
                    log.warning(f"Temporary accept error: {e}")
                    time.sleep(self.accept_backoff)
                    continue
                log.error(f"Failed to accept connection: {e}")
                raise

            conn.settimeout(None)
            thread = threading.Thread(
                target=self._handle_client,
                args=(conn,),
                daemon=True,
            )
            thread.start()

    def _handle_client(self, conn: socket.socket) -> None:
        """Serve one agent connection.

        Args:
            conn: Accepted client socket
        """
        with self._lock:
            self._connections.add(conn)

        try:
            self.agent.serve(conn)
        except Exception as e:
            log.error(f"Agent handle connection failed: {e}")
        finally:
            with self._lock:
                self._connections.discard(conn)
            conn.close()
