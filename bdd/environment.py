"""
BDD Test Environment Setup and Teardown

This module provides configuration and fixtures for Behave BDD tests.
Each scenario runs against its own temporary SQLite database.
"""

import os
import sys
import logging
import tempfile
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def before_all(context):
    """
    Setup before running any scenarios.

    This is called once before running all features.
    """
    # Setup logging for BDD tests
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    context.logger = logging.getLogger("bdd.tests")
    context.logger.info("BDD test suite starting...")

    context.project_root = project_root
    os.environ["FLASK_ENV"] = "testing"


def before_scenario(context, scenario):
    """
    Setup before each scenario.

    Builds a fresh database and service graph, and records audit events.
    """
    from config.settings import TestingConfig
    from metalledger.core.workflow import build_services
    from metalledger.db import DatabaseManager

    context.logger.info(f"Running scenario: {scenario.name}")

    context.tmpdir = tempfile.TemporaryDirectory()
    os.environ["CONFIG_PATH"] = os.path.join(context.tmpdir.name, "config.json")
    TestingConfig.reload()

    db_path = os.path.join(context.tmpdir.name, "bdd.db")
    context.db = DatabaseManager(f"sqlite:///{db_path}", lock_timeout_ms=2000)
    context.db.init_db()
    context.services = build_services(context.db, TestingConfig)

    context.audit_events = []
    context.services.audit.subscribe(context.audit_events.append)

    # Names used in steps mapped to database ids
    context.users = {}
    context.products = {}
    context.orders = {}
    context.last_error = None


def after_scenario(context, scenario):
    """
    Cleanup after each scenario.

    This is called after each feature scenario completes.
    """
    status = "PASSED" if scenario.status == "passed" else "FAILED"
    context.logger.info(f"Scenario '{scenario.name}' {status}")

    context.db.close()
    context.tmpdir.cleanup()
    os.environ.pop("CONFIG_PATH", None)


def after_all(context):
    """
    Cleanup after all scenarios.

    This is called after all features have been run.
    """
    context.logger.info("BDD test suite completed")
