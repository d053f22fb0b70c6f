"""Main entry point for Vault Agent.

Loads configuration, connects to Vault and serves the SSH agent socket.
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from .agent import VaultAgent
from .config import AgentConfig
from .errors import ConfigInvalidError
from .secrets import VaultSecretStore
from .server import AgentServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

log = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(
        prog="vault-agent",
        description="SSH agent serving private keys stored in HashiCorp Vault",
    )
    parser.add_argument("--sock", dest="socket_path", help="Socket path")
    parser.add_argument("--vault", dest="vault_addr", help="Vault address")
    parser.add_argument("--token", dest="vault_token", help="Vault token")
    parser.add_argument("--path", dest="key_path", help="Vault secret key path")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--log-level", dest="log_level", help="Logging level")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> AgentConfig:
    """Build validated configuration from file, environment and flags.

    Raises:
        ConfigInvalidError: If required settings are missing or invalid
    """
    if args.config:
        config = AgentConfig.from_file(args.config)
    else:
        config = AgentConfig.from_env()

    config.update({
        "socket_path": args.socket_path,
        "vault_addr": args.vault_addr,
        "vault_token": args.vault_token,
        "key_path": args.key_path,
        "log_level": args.log_level,
    })
    config.apply_defaults()
    config.validate()
    return config


def create_server(config: AgentConfig) -> AgentServer:
    """Wire the Vault client, agent and socket server together."""
    store = VaultSecretStore(
        url=config.vault_addr,
        token=config.vault_token,
        role_id=config.vault_role_id,
        secret_id=config.vault_secret_id,
        namespace=config.vault_namespace,
        verify=config.verify_ssl,
        timeout=config.vault_timeout,
    )
    agent = VaultAgent(store, config.secret_path)
    return AgentServer(agent, config.socket_path)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except ConfigInvalidError as e:
        log.critical(f"Invalid configuration: {e}")
        return 1

    # Set log level
    logging.getLogger().setLevel(str(config.log_level).upper())

    server = create_server(config)

    def signal_handler(signum, frame):
        log.info("Received shutdown signal")
        server.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, signal_handler)

    log.info(f"Serving keys from {config.secret_path} at {config.vault_addr}")
    try:
        server.serve_forever()
    except (OSError, RuntimeError) as e:
        log.critical(f"Failed to run agent: {e}")
        return 1

    return 0


def run() -> None:
    """Entry point for console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()
