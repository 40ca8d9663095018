"""Configuration management for the Foresight Relayer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables; the node RPC endpoint and
the bundler private key are mandatory and their absence stops the process
before it starts serving.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

# Get logger for this module
logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the node the relayer submits to.

    Attributes:
        rpc_url: HTTP(S) or WS(S) RPC endpoint
        private_key: Hex private key of the bundler account paying for gas
        request_timeout: Timeout for individual RPC calls in seconds
    """

    rpc_url: str
    private_key: str = field(repr=False)
    request_timeout: int = 30

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ("http", "https", "ws", "wss"):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if not self.private_key:
            raise ValueError("Bundler private key is required (BUNDLER_PRIVATE_KEY)")

        # Basic private key validation (64 hex chars, optionally with 0x prefix)
        key = self.private_key.removeprefix("0x")
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError("Invalid private key format. Must be hexadecimal") from None

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Configuration for the HTTP listener."""

    host: str = "0.0.0.0"
    port: int = 3000

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Configuration for request handling.

    Attributes:
        receipt_timeout: Seconds to wait for a receipt before reporting the
            transaction as pending
        strict_jsonrpc_errors: Use -32603 for internal errors instead of the
            -32602 existing clients expect
    """

    receipt_timeout: int = 120
    strict_jsonrpc_errors: bool = False

    def __post_init__(self) -> None:
        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")
        if self.receipt_timeout > 3600:
            raise ValueError(f"Receipt timeout too long (max 3600s), got {self.receipt_timeout}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the Foresight Relayer.

    Attributes:
        chain: Node endpoint and signing key
        server: HTTP listener settings
        relay: Per-request behaviour
    """

    chain: ChainConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """Load configuration from environment variables.

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_url = os.environ.get("RPC_URL", "")
        if not rpc_url:
            raise ValueError(
                "RPC_URL environment variable is required. "
                "Example: http://127.0.0.1:8545"
            )

        private_key = os.environ.get("BUNDLER_PRIVATE_KEY", "")
        if not private_key:
            raise ValueError(
                "BUNDLER_PRIVATE_KEY environment variable is required. "
                "This account pays gas for every relayed operation."
            )

        chain_config = ChainConfig(
            rpc_url=rpc_url,
            private_key=private_key,
            request_timeout=_int_env("REQUEST_TIMEOUT", 30),
        )

        server_config = ServerConfig(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_int_env("PORT", 3000),
        )

        relay_config = RelayConfig(
            receipt_timeout=_int_env("RECEIPT_TIMEOUT", 120),
            strict_jsonrpc_errors=os.environ.get("STRICT_JSONRPC_ERRORS", "").lower() in _TRUTHY,
        )

        return cls(chain=chain_config, server=server_config, relay=relay_config)

    def with_server(self, host: str | None = None, port: int | None = None) -> "RelayerConfig":
        """Return a copy with command-line overrides applied to the listener."""
        server_config = ServerConfig(
            host=host if host is not None else self.server.host,
            port=port if port is not None else self.server.port,
        )
        return RelayerConfig(chain=self.chain, server=server_config, relay=self.relay)

    def log_config(self) -> None:
        """Log the configuration, hiding the private key."""
        logger.info("=" * 60)
        logger.info("Foresight Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  Private Key: {'[SET]' if self.chain.private_key else '[NOT SET]'}")
        logger.info(f"  Request Timeout: {self.chain.request_timeout} seconds")

        logger.info("Server:")
        logger.info(f"  Listen: {self.server.host}:{self.server.port}")

        logger.info("Relay Settings:")
        logger.info(f"  Receipt Timeout: {self.relay.receipt_timeout} seconds")
        logger.info(f"  Strict JSON-RPC Errors: {self.relay.strict_jsonrpc_errors}")

        logger.info("=" * 60)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
