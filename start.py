#!/usr/bin/env python3
"""
Donation Hub - Production Startup Script
Configures logging and serves the FastAPI app with uvicorn
"""

import logging
import os
import sys
from pathlib import Path

import uvicorn

from config import Config


def configure_logging():
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def main():
    """Start the Donation Hub application."""
    configure_logging()
    logger = logging.getLogger("start")

    backend_dir = Path(__file__).parent
    os.chdir(backend_dir)

    logger.info(f"Host: {Config.HOST}")
    logger.info(f"Port: {Config.PORT}")
    logger.info(f"Working directory: {backend_dir}")

    env_file = backend_dir / ".env"
    if not env_file.exists():
        logger.warning(".env file not found. Using environment and default configuration.")

    uvicorn.run(
        "main:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=False,
        access_log=True,
        log_level=Config.LOG_LEVEL.lower(),
        workers=1,
        server_header=False,
        timeout_keep_alive=30,
        log_config=None,      # Keep the logging configured above
    )


if __name__ == "__main__":
    main()
