"""
Main entry point for the WMS Print Bridge.
Starts the WebSocket server and serves print requests until interrupted.
"""
import sys
import asyncio
import logging
from typing import Optional

from print_bridge.config.manager import ConfigManager
from print_bridge.logging import setup_logging
from print_bridge.server.app import run_server
from print_bridge.server.context import ServerContext


async def start_server(config: ConfigManager, host: Optional[str] = None,
                       port: Optional[int] = None):
    """Start the print bridge."""
    logger = logging.getLogger(__name__)

    if config.exists():
        logger.info(f"Using configuration: {config.config_file}")
    else:
        logger.info("No configuration file found - using built-in defaults")

    context = ServerContext.from_config(config)
    await run_server(
        context,
        host=host or config.get('server.host'),
        port=int(port or config.get('server.port')),
    )


def main(config_file: Optional[str] = None, host: Optional[str] = None,
         port: Optional[int] = None):
    """Main entry point."""
    config = ConfigManager(config_file)
    setup_logging(config.get('logging.level'), config.get('logging.file'))
    logger = logging.getLogger(__name__)

    try:
        asyncio.run(start_server(config, host, port))
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)
    except RuntimeError as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
