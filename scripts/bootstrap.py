#!/usr/bin/env python3
"""
scripts/bootstrap.py - Quick setup for local development
"""

import json
import os
import sys

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


def setup_environment():
    """Setup local development environment"""
    print("Setting up metalledger...")

    for directory in ["data", "logs"]:
        os.makedirs(directory, exist_ok=True)
        print(f"✓ Created directory: {directory}")

    from config.settings import DevelopmentConfig
    from metalledger.db import DatabaseManager

    if not os.path.exists("config.json"):
        with open("config.json", "w") as f:
            json.dump(DevelopmentConfig._get_default_config(), f, indent=2)
        print("✓ Configuration created")

    db_manager = DatabaseManager.from_config(DevelopmentConfig)
    db_manager.init_db()
    db_manager.close()
    print("✓ Database initialized")

    print("\nSetup complete!")
    print("Next steps:")
    print("1. Seed the catalog: metalledger --env development seed-catalog")
    print("2. Create an admin: metalledger --env development create-user --email you@example.com --role admin")
    print("3. Run tests: python -m pytest tests/")
    print("4. Start application: FLASK_ENV=development python main.py")


if __name__ == "__main__":
    setup_environment()
