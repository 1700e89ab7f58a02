"""
config/__init__.py
Configuration package
"""

from .settings import Config, DevelopmentConfig, ProductionConfig, TestingConfig, get_config

__all__ = ['Config', 'DevelopmentConfig', 'ProductionConfig', 'TestingConfig', 'get_config']
