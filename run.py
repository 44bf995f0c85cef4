#!/usr/bin/env python3
"""
Agro Financing Entry Point

Starts the FastAPI server with the settings from ``AGRO_*`` environment
variables (see ``agro_financing.config``).
"""

import sys

import uvicorn

from agro_financing.config import get_config
from agro_financing.logging_config import setup_logging


def main() -> int:
    config = get_config()
    logger = setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )
    logger.info("starting agro financing API on %s:%s", config.api_host, config.api_port)

    try:
        uvicorn.run(
            "agro_financing.api:create_app",
            factory=True,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
