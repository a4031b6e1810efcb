#!/usr/bin/env python3
"""Keyboard coordinator entry point

Starts the coordinator server that browser frames connect to.

Usage:
    python main.py                          # config/host.yaml server, no browser
    python main.py --browser                # also drive a Playwright browser
    python main.py --config my_options.yaml --port 9000
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from core.host_config import HostConfig
from core.coordinator_hub import CoordinatorHub
from core.options_config import OptionsConfig
from host.playwright_host import PlaywrightTabHost
from messaging.server import CoordinatorServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keyboard coordinator server")
    parser.add_argument("--host", help="Host to bind to (default from host.yaml)")
    parser.add_argument("--port", type=int, help="Port to listen on (default from host.yaml)")
    parser.add_argument("--config", type=Path, help="options.yaml to load")
    parser.add_argument("--browser", action="store_true", help="Launch a Playwright browser as the tab host")
    parser.add_argument("--headless", action="store_true", help="Run the Playwright browser headless")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Start the coordinator server."""
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.config is not None:
        OptionsConfig.config_path = args.config

    settings = HostConfig.get().settings
    host = None
    if args.browser or settings.browser_enabled:
        if args.headless:
            settings = dataclasses.replace(settings, headless=True)
        host = PlaywrightTabHost(settings=settings)

    hub = CoordinatorHub(OptionsConfig.get().options, host=host)
    try:
        CoordinatorServer(
            hub,
            host=args.host or settings.server_host,
            port=args.port or settings.server_port,
        ).run()
        return 0
    except KeyboardInterrupt:
        logging.info("Server stopped")
        return 0
    except OSError as e:
        logging.error(f"Server error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
