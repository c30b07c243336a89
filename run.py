#!/usr/bin/env python3
"""
SecureBank Entry Point

Starts the FastAPI server with the configured storage and secrets.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from securebank.api import run_server
from securebank.api.dependencies import BankingSystem
from securebank.config import get_config
from securebank.errors import ConfigurationError
from securebank.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)

    try:
        system = BankingSystem(config)
    except ConfigurationError as e:
        logger.critical(f"Refusing to start: {e}")
        sys.exit(1)

    logger.info(f"Starting SecureBank API on {config.api_host}:{config.api_port}")

    try:
        run_server(host=config.api_host, port=config.api_port, system=system)
    except KeyboardInterrupt:
        logger.info("Shutting down SecureBank")
    finally:
        system.close()
