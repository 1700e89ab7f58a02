#!/usr/bin/env python3
"""
main.py - Main application entry point
"""

import os
import sys
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from metalledger import create_app
from metalledger.db import DatabaseManager
from config.settings import get_config


def setup_logging():
    """Setup application logging"""
    os.makedirs("logs", exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/metalledger.log", mode="a"),
        ],
    )

    return logging.getLogger(__name__)


def check_environment(config) -> bool:
    """Create working directories and report configuration issues"""
    logger = logging.getLogger(__name__)

    os.makedirs("data", exist_ok=True)

    config_issues = config.validate_config()
    if config_issues:
        logger.error("Configuration issues found:")
        for issue in config_issues:
            logger.error(f"  - {issue}")
        return False

    logger.info("Environment check passed")
    return True


def initialize_database(config) -> DatabaseManager | None:
    """Create missing tables and verify connectivity"""
    logger = logging.getLogger(__name__)

    db_manager = DatabaseManager.from_config(config)
    db_manager.init_db()
    if not db_manager.test_connection():
        logger.error("Database connection test failed")
        db_manager.close()
        return None

    logger.info("Database initialized successfully")
    return db_manager


def print_startup_info(config):
    startup_info = f"""
{'=' * 60}
>> MetalLedger Order Service Starting
{'=' * 60}
Configuration: {config.__name__}
Database: {config.DATABASE_URL or config.DATABASE_PATH()}
Default Currency: {config.DEFAULT_CURRENCY()}
Lock Timeout: {config.DB_LOCK_TIMEOUT_MS} ms
Host: {config.API_HOST()}:{config.API_PORT()}
{'=' * 60}
    """
    print(startup_info)


def main():
    """Main application function"""
    logger = setup_logging()
    env = os.getenv("FLASK_ENV", "production")
    config = get_config(env)

    print_startup_info(config)

    if not check_environment(config):
        logger.error("Environment check failed, aborting startup")
        return 1

    db_manager = initialize_database(config)
    if db_manager is None:
        logger.error("Database initialization failed, aborting startup")
        return 1

    app = create_app(env, db_manager)

    try:
        if env == "development":
            # Werkzeug debugger must not be reachable remotely
            logger.info(f"Starting Flask development server on 127.0.0.1:{config.API_PORT()}")
            app.run(host="127.0.0.1", port=config.API_PORT(), debug=True, use_reloader=False)
        else:
            logger.info(f"Starting Flask application on {config.API_HOST()}:{config.API_PORT()}")
            app.run(host=config.API_HOST(), port=config.API_PORT(), debug=False)
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    finally:
        db_manager.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
