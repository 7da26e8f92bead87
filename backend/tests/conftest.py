"""
Pytest configuration and shared setup for the backend tests.

This module provides:
1. Automatic loading of .env.test configuration
2. Custom marker registration
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv, dotenv_values

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

# Load test environment configuration
# Priority: environment variables > .env > .env.test
_project_root = Path(__file__).parent.parent.parent
_env_test_path = _project_root / ".env.test"
_env_path = _project_root / ".env"

# Load .env.test first (lowest priority) - don't override existing env vars
if _env_test_path.exists():
    load_dotenv(_env_test_path, override=False)

# Load .env if it exists (higher priority) - overrides .env.test but not env vars
if _env_path.exists():
    env_values = dotenv_values(_env_path)
    for key, value in env_values.items():
        if key not in os.environ and value is not None:
            os.environ[key] = value

# Never write the application log file from tests
os.environ["LOG_FILE"] = ""


def pytest_configure(config):
    """
    Pytest hook called after command line options have been parsed.
    """
    config.addinivalue_line(
        "markers",
        "concurrency: marks tests that race several writers against one database"
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
