"""
tests/conftest.py
Pytest configuration and fixtures
"""

import warnings
import sys


def pytest_configure(config):
    """Configure pytest with custom settings"""
    # Decimal on SQLite goes through float storage; SQLAlchemy warns once per type
    warnings.filterwarnings("ignore", message=".*does \\*not\\* support Decimal objects natively.*")
    warnings.filterwarnings("ignore", category=ResourceWarning)
    warnings.filterwarnings("ignore", category=DeprecationWarning)

    config.addinivalue_line(
        "filterwarnings", "ignore:.*does \\*not\\* support Decimal objects natively.*"
    )
    config.addinivalue_line("filterwarnings", "ignore::ResourceWarning")
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")


# Override Python's default unraisable exception hook to ignore unclosed sqlite handles
_original_hook = sys.unraisablehook


def custom_unraisable_hook(unraisable_msg):
    """Custom hook that ignores ResourceWarning unraisable exceptions"""
    if "unclosed database" not in str(unraisable_msg.exc_value):
        _original_hook(unraisable_msg)


sys.unraisablehook = custom_unraisable_hook
