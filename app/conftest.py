"""
Project-wide pytest hooks.

Settlement fixtures (users, factories, the in-memory engine) live in
settlement/tests/conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Test module -> marker. Anything not listed touches the database through
# the engine and counts as integration.
TEST_LEVELS = {
    "test_integration.py": "e2e",
    "test_models.py": "unit",
    "test_commission.py": "unit",
    "test_state_transitions.py": "unit",
    "test_locks.py": "unit",
    "test_exceptions.py": "unit",
}
LEVEL_MARKERS = {"unit", "integration", "e2e"}


def pytest_configure():
    django.setup()

    from django.conf import settings

    # Throttling would make request-heavy view tests flaky
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def pytest_collection_modifyitems(items):
    """Mark each test unit, integration or e2e by its module unless already marked."""
    for item in items:
        if LEVEL_MARKERS & {marker.name for marker in item.iter_markers()}:
            continue

        level = TEST_LEVELS.get(item.path.name, "integration")
        item.add_marker(getattr(pytest.mark, level))
