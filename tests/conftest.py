"""
Shared test configuration.

The engine is created when rnds_portal.database is imported, so the test
database and auth settings are set before any rnds_portal import.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/test_rnds_portal.db")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-portal-tests")
os.environ.setdefault("ENABLE_MOCK_AUTH", "false")
