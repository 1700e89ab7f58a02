"""
metalledger/__init__.py
Flask application factory with Flasgger OpenAPI support
"""

from flask import Flask
from flask_cors import CORS
from flasgger import Flasgger
import logging

from config.settings import get_config


def create_app(config_name: str = "production", db_manager=None) -> Flask:
    """
    Application factory pattern

    Creates and configures Flask app with:
    - CORS support
    - Flasgger for OpenAPI/Swagger at /api/docs
    - JWT authentication
    - Ledger error handlers
    - API blueprints for routes

    Args:
        config_name: development, production or testing
        db_manager: DatabaseManager to use; built from configuration if omitted
    """
    from metalledger.api.errors import register_error_handlers
    from metalledger.auth import init_jwt
    from metalledger.core.workflow import build_services
    from metalledger.db import DatabaseManager

    config = get_config(config_name)
    app = Flask(__name__)
    app.config["DEBUG"] = config.DEBUG
    app.config["TESTING"] = config.TESTING

    if config.get("api.cors_enabled", True):
        CORS(app, resources={r"/api/*": {"origins": "*"}})

    app.json.sort_keys = False

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    init_jwt(app, config.JWT_SECRET_KEY)

    db_manager = db_manager or DatabaseManager.from_config(config)
    app.extensions["metalledger"] = build_services(db_manager, config)

    swagger_config = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec",
                "route": "/apispec.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/api/docs",
        "uiversion": 3,
        "info": {
            "title": "MetalLedger Order Fulfillment API",
            "version": "1.0.0",
            "description": (
                "Order placement and fulfillment for precious metals. Delivered "
                "orders are consolidated into one position per product, "
                "portfolio and custody service. "
                "All endpoints except health require a JWT Bearer token."
            ),
        },
        "schemes": ["http", "https"],
        "securityDefinitions": {
            "Bearer": {
                "type": "apiKey",
                "name": "Authorization",
                "in": "header",
                "description": "Enter your token as: Bearer YOUR_TOKEN",
            }
        },
        "security": [{"Bearer": []}],
    }

    Flasgger(app, config=swagger_config)

    register_error_handlers(app, retry_after_seconds=config.RETRY_AFTER_SECONDS())

    from metalledger.api.routes import api_bp
    from metalledger.api.admin_routes import admin_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(admin_bp)  # Already has /api/admin prefix

    return app
