"""
Repository-level pytest configuration.

Tests run from the repository root with ``app/`` on the path (see
pyproject.toml). Environment defaults here keep the suite on SQLite and
in-process caches unless the caller points it elsewhere.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
