#!/usr/bin/env python3
"""Entry point for the Foresight Relayer service.

Loads configuration from the environment, builds the relay handler and
serves it over HTTP with uvicorn.
"""

import argparse
import asyncio
import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from foresight_relayer.config import RelayerConfig
from foresight_relayer.relayer import RelayHandler
from foresight_relayer.server import create_app


async def main() -> None:
    """Main entry point for the Foresight Relayer.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Foresight Relayer - pays gas for ERC-4337 user operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_URL                - RPC endpoint of the node (required)
  BUNDLER_PRIVATE_KEY    - Private key of the gas-paying account (required)
  PORT                   - Listen port (default: 3000)
  HOST                   - Listen address (default: 0.0.0.0)
  RECEIPT_TIMEOUT        - Seconds to wait for a receipt (default: 120)
  REQUEST_TIMEOUT        - Seconds per node RPC call (default: 30)
  STRICT_JSONRPC_ERRORS  - Report internal errors as -32603 (default: false)
  LOG_LEVEL              - Logging level (can be overridden with --log-level)

Variables may also be placed in a .env file in the working directory.
        """
    )
    parser.add_argument("--host", default=None, help="Listen address (overrides HOST)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (overrides PORT)")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== Foresight Relayer Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: RelayerConfig = RelayerConfig.from_env().with_server(args.host, args.port)
        config.log_config()
        relayer: RelayHandler = RelayHandler.from_config(config)
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RPC_URL: RPC endpoint of the node")
        logger.error("  - BUNDLER_PRIVATE_KEY: Private key of the gas-paying account")
        sys.exit(1)

    try:
        server_config = uvicorn.Config(
            create_app(relayer),
            host=config.server.host,
            port=config.server.port,
            log_level=args.log_level.lower(),
        )
        server = uvicorn.Server(server_config)
        logger.info(f"Relayer server listening on port {config.server.port}")
        await server.serve()

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
