"""
tests/test_config.py
Test cases for configuration settings
"""

import json
import os
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import patch

from config.settings import (
    Config,
    get_config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
)


class TestConfigClass(unittest.TestCase):
    """Test Config class and settings"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.tmpdir.name, "config.json")
        self._env = patch.dict(os.environ, {"CONFIG_PATH": self.config_path})
        self._env.start()
        Config.reload()
        TestingConfig.reload()

    def tearDown(self):
        self._env.stop()
        Config.reload()
        TestingConfig.reload()
        self.tmpdir.cleanup()

    def test_defaults_without_file(self):
        self.assertEqual(Config.DEFAULT_CURRENCY(), "CHF")
        self.assertEqual(Config.PAGE_SIZE(), 20)
        self.assertEqual(Config.MAX_PAGE_SIZE(), 100)
        self.assertEqual(Config.DEFAULT_PRICE_INCREMENT(), Decimal("0.01"))
        self.assertIn("{owner}", Config.PORTFOLIO_NAME_TEMPLATE())
        self.assertEqual(Config.ORDER_FEES()["processing_fee_rate"], Decimal("0.05"))
        self.assertEqual(Config.ORDER_FEES()["tax_rate"], Decimal("0.0825"))

    def test_price_increments_are_decimals(self):
        increments = Config.PRICE_INCREMENTS()
        self.assertIsInstance(increments, dict)
        for code, value in increments.items():
            self.assertEqual(code, code.upper())
            self.assertIsInstance(value, Decimal)
            self.assertGreater(value, 0)
        self.assertEqual(increments["JPY"], Decimal("1"))

    def test_file_overrides_merge_over_defaults(self):
        with open(self.config_path, "w") as f:
            json.dump({"orders": {"default_currency": "eur"}}, f)
        Config.reload()

        self.assertEqual(Config.DEFAULT_CURRENCY(), "EUR")
        # Untouched keys of the same section keep their defaults
        self.assertEqual(Config.PAGE_SIZE(), 20)

    def test_get_dotted_path(self):
        self.assertEqual(Config.get("orders.page_size"), 20)
        self.assertIsNone(Config.get("orders.nonexistent"))
        self.assertEqual(Config.get("missing.key", "fallback"), "fallback")

    def test_validate_config_defaults_clean(self):
        self.assertEqual(Config.validate_config(), [])

    def test_validate_config_reports_issues(self):
        with open(self.config_path, "w") as f:
            json.dump(
                {
                    "orders": {"default_currency": "EURO", "page_size": 500, "max_page_size": 100},
                    "pricing": {"price_increments": {"CHF": "0"}},
                    "fulfillment": {"portfolio_name_template": "Portfolio"},
                    "fees": {"tax_rate": "-0.1", "shipping_fee": "free"},
                },
                f,
            )
        Config.reload()

        issues = Config.validate_config()
        self.assertTrue(any("CHF" in i for i in issues))
        self.assertTrue(any("page_size" in i for i in issues))
        self.assertTrue(any("default_currency" in i for i in issues))
        self.assertTrue(any("{owner}" in i for i in issues))
        self.assertTrue(any("tax_rate" in i for i in issues))
        self.assertTrue(any("shipping_fee" in i for i in issues))

    def test_save_config_round_trip(self):
        data = Config._get_default_config()
        data["orders"]["page_size"] = 5
        self.assertTrue(Config.save_config(data))
        self.assertEqual(Config.PAGE_SIZE(), 5)


class TestEnvironmentConfigs(unittest.TestCase):
    def test_get_config_selects_by_name(self):
        self.assertIs(get_config("development"), DevelopmentConfig)
        self.assertIs(get_config("testing"), TestingConfig)
        self.assertIs(get_config("production"), ProductionConfig)
        self.assertIs(get_config("anything-else"), ProductionConfig)

    def test_get_config_reads_flask_env(self):
        with patch.dict(os.environ, {"FLASK_ENV": "testing"}):
            self.assertIs(get_config(), TestingConfig)

    def test_testing_config(self):
        self.assertTrue(TestingConfig.TESTING)
        self.assertEqual(TestingConfig.RETRY_AFTER_SECONDS(), 1)
        self.assertGreaterEqual(len(TestingConfig.JWT_SECRET_KEY), 32)

    def test_development_config_binds_localhost(self):
        self.assertTrue(DevelopmentConfig.DEBUG)
        self.assertEqual(DevelopmentConfig.API_HOST(), "127.0.0.1")


if __name__ == "__main__":
    unittest.main()
