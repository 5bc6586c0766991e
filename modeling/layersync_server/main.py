"""
LayerSync Server - Main entry point.

This module starts the HTTP API served by uvicorn. All state lives in the
SQLite database under DATA_DIR; there are no background loops.

Usage:
    python -m modeling.layersync_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Logging is configured before the app is created
    - The store schema is created during app startup, before serving

How to change safely:
    - Keep uvicorn's own logging config disabled so one formatter applies
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    Path(config.storage.data_dir).mkdir(parents=True, exist_ok=True)
    app = create_app(config=config)

    logger.info(f"Starting LayerSync server on {config.http.host}:{config.http.port}")
    uvicorn.run(app, host=config.http.host, port=config.http.port, log_config=None)


if __name__ == "__main__":
    main()
