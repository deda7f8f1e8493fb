#!/usr/bin/env python3
"""
Custody Ledger Entry Point

Starts the FastAPI server with the custodial ledger.
"""

import sys

from custody_ledger.api import run_server
from custody_ledger.config import get_config
from custody_ledger.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format)
    logger.info(
        f"Starting Custody Ledger (capacity {config.capacity_limit}, "
        f"withdraw limit {config.withdraw_limit}) on {config.api_host}:{config.api_port}"
    )

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Custody Ledger")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
