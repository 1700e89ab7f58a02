"""
HTTP API blueprints
"""

from flask import current_app

from metalledger.core.workflow import Services


def get_services() -> Services:
    return current_app.extensions["metalledger"]
