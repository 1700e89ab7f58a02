"""
config/settings.py - Configuration management
"""

import os
import json
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, cast


class Config:
    """Application configuration

    Values come from a JSON file (CONFIG_PATH, default config.json) layered
    over built-in defaults. Database and secrets come from the environment:
    - DATABASE_TYPE: sqlite (default), postgresql, or mysql
    - DATABASE_URL: full connection string (optional)
    - DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME: individual params
    - DB_LOCK_TIMEOUT_MS: lock wait before a retryable error is raised
    - JWT_SECRET_KEY: signing key for bearer tokens
    """

    _config_data = None

    # Database configuration
    DATABASE_TYPE: str = os.getenv("DATABASE_TYPE", "sqlite")
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")

    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "20"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "40"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "3600"))
    DB_LOCK_TIMEOUT_MS: int = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))

    DB_USER: str = os.getenv("DB_USER", "postgres")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "password")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
    DB_NAME: str = os.getenv("DB_NAME", "metalledger")

    SQL_ECHO: bool = os.getenv("SQL_ECHO", "False").lower() == "true"

    JWT_SECRET_KEY: str = os.getenv(
        "JWT_SECRET_KEY", "change-me-metalledger-secret-key-0000"
    )

    DEBUG = False
    TESTING = False

    @classmethod
    def _load_config(cls) -> Dict:
        """Load configuration from file, falling back to defaults"""
        if cls._config_data is None:
            config_path = os.getenv("CONFIG_PATH", "config.json")
            data = cls._get_default_config()
            try:
                with open(config_path, "r") as f:
                    overrides = json.load(f)
                for section, values in overrides.items():
                    if isinstance(values, dict) and isinstance(data.get(section), dict):
                        data[section].update(values)
                    else:
                        data[section] = values
            except FileNotFoundError:
                pass
            cls._config_data = data
        return cls._config_data

    @classmethod
    def _get_default_config(cls) -> Dict:
        """Default configuration"""
        return {
            "orders": {
                "default_currency": "CHF",
                "page_size": 20,
                "max_page_size": 100,
            },
            "pricing": {
                # Minimum price increment per currency; consolidated cost
                # basis is rounded half-up to this value.
                "price_increments": {
                    "CHF": "0.01",
                    "USD": "0.01",
                    "EUR": "0.01",
                    "GBP": "0.01",
                    "CAD": "0.01",
                    "AUD": "0.01",
                    "JPY": "1",
                },
                "default_increment": "0.01",
            },
            "fees": {
                # *_rate values are fractions, *_fee values flat amounts per
                # order. Taxes apply to the subtotal plus every fee.
                "processing_fee_rate": "0.05",
                "tax_rate": "0.0825",
                "shipping_fee": "0",
                "insurance_fee": "0",
            },
            "fulfillment": {
                "portfolio_name_template": "{owner} Portfolio",
                "portfolio_description": "Auto-created for order fulfillment",
            },
            "data": {
                "database_path": "data/metalledger.db",
            },
            "api": {
                # Development mode overrides host to 127.0.0.1
                "host": "0.0.0.0",
                "port": 5000,
                "debug": False,
                "cors_enabled": True,
                "retry_after_seconds": 2,
            },
        }

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return os.getenv("DATABASE_PATH", cls._load_config()["data"]["database_path"])

    @classmethod
    def DEFAULT_CURRENCY(cls) -> str:
        return cast(str, cls._load_config()["orders"]["default_currency"]).upper()

    @classmethod
    def PAGE_SIZE(cls) -> int:
        return int(cls._load_config()["orders"]["page_size"])

    @classmethod
    def MAX_PAGE_SIZE(cls) -> int:
        return int(cls._load_config()["orders"]["max_page_size"])

    @classmethod
    def PRICE_INCREMENTS(cls) -> Dict[str, Decimal]:
        increments = cls._load_config()["pricing"]["price_increments"]
        return {code.upper(): Decimal(str(value)) for code, value in increments.items()}

    @classmethod
    def DEFAULT_PRICE_INCREMENT(cls) -> Decimal:
        return Decimal(str(cls._load_config()["pricing"]["default_increment"]))

    @classmethod
    def ORDER_FEES(cls) -> Dict[str, Decimal]:
        fees = cls._load_config()["fees"]
        return {key: Decimal(str(value)) for key, value in fees.items()}

    @classmethod
    def PORTFOLIO_NAME_TEMPLATE(cls) -> str:
        return cast(str, cls._load_config()["fulfillment"]["portfolio_name_template"])

    @classmethod
    def PORTFOLIO_DESCRIPTION(cls) -> str:
        return cast(str, cls._load_config()["fulfillment"]["portfolio_description"])

    @classmethod
    def API_HOST(cls) -> str:
        return os.getenv("HOST", cls._load_config()["api"]["host"])

    @classmethod
    def API_PORT(cls) -> int:
        return int(os.getenv("PORT", cls._load_config()["api"]["port"]))

    @classmethod
    def RETRY_AFTER_SECONDS(cls) -> int:
        return int(cls._load_config()["api"]["retry_after_seconds"])

    @classmethod
    def get(cls, path: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated path"""
        keys = path.split(".")
        value = cls._load_config()

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @classmethod
    def validate_config(cls) -> list[str]:
        """Validate configuration and return list of issues"""
        issues = []
        config = cls._load_config()

        increments = config.get("pricing", {}).get("price_increments", {})
        for code, value in increments.items():
            try:
                if Decimal(str(value)) <= 0:
                    issues.append(f"Price increment for {code} must be positive")
            except InvalidOperation:
                issues.append(f"Price increment for {code} is not a number: {value!r}")

        for key, value in config.get("fees", {}).items():
            try:
                if Decimal(str(value)) < 0:
                    issues.append(f"Fee setting {key} cannot be negative")
            except InvalidOperation:
                issues.append(f"Fee setting {key} is not a number: {value!r}")

        orders = config.get("orders", {})
        page_size = orders.get("page_size", 20)
        max_page_size = orders.get("max_page_size", 100)
        if page_size <= 0 or max_page_size <= 0:
            issues.append("Page sizes must be positive")
        elif page_size > max_page_size:
            issues.append("page_size exceeds max_page_size")

        if len(str(orders.get("default_currency", ""))) != 3:
            issues.append("default_currency must be an ISO 4217 code")

        template = config.get("fulfillment", {}).get("portfolio_name_template", "")
        if "{owner}" not in template:
            issues.append("portfolio_name_template must contain {owner}")

        if cls.DB_LOCK_TIMEOUT_MS <= 0:
            issues.append("DB_LOCK_TIMEOUT_MS must be positive")

        return issues

    @classmethod
    def save_config(cls, config_data: Dict) -> bool:
        """Save configuration to file"""
        try:
            config_path = os.getenv("CONFIG_PATH", "config.json")
            with open(config_path, "w") as f:
                json.dump(config_data, f, indent=2)
            # Clear cached config so next access reloads from file
            cls._config_data = None
            return True
        except OSError:
            return False

    @classmethod
    def reload(cls) -> None:
        """Drop the cached file contents"""
        cls._config_data = None


# Environment-specific configurations
class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    TESTING = False

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return "data/dev_metalledger.db"

    @classmethod
    def API_HOST(cls) -> str:
        return "127.0.0.1"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    TESTING = False

    @classmethod
    def API_PORT(cls) -> int:
        return int(os.getenv("PORT", 8080))


class TestingConfig(Config):
    """Testing configuration"""

    DEBUG = True
    TESTING = True
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-0001"

    @classmethod
    def DATABASE_PATH(cls) -> str:
        return "data/test_metalledger.db"

    @classmethod
    def RETRY_AFTER_SECONDS(cls) -> int:
        return 1


def get_config(env: str | None = None) -> type[Config]:
    """Get configuration based on environment"""
    env = env or os.getenv("FLASK_ENV", "production")

    if env == "development":
        return DevelopmentConfig
    elif env == "testing":
        return TestingConfig
    else:
        return ProductionConfig
