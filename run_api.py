#!/usr/bin/env python
"""
Ledger API Server Runner.

Usage:
    python run_api.py

Or with PM2:
    pm2 start run_api.py --interpreter python
"""

import os
import sys
import uvicorn

from core.config import ApiConfig
from core.log_config import setup_logging


def main():
    """Run the ledger API server."""
    config = ApiConfig.from_env()
    logger = setup_logging(config.log_level, config.log_format)
    reload = os.getenv("ENVIRONMENT", "production") == "development"

    logger.info(f"Starting Ledger API on {config.host}:{config.port}")

    try:
        uvicorn.run(
            "app:create_app",
            factory=True,
            host=config.host,
            port=config.port,
            reload=reload,
            log_level=config.log_level.lower(),
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start ledger API: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
