"""
Root conftest.py for the token manager repository.

Puts the service directory on sys.path so tests run from the repository
root can import the ``app`` package.
"""

import sys
from pathlib import Path


def pytest_configure(config):
    """Add the token-manager service directory to sys.path."""
    root_dir = Path(__file__).parent
    sys.path.insert(0, str(root_dir / "services" / "token-manager"))
