"""
Root pytest configuration for the casetree server.

This file provides pytest-xdist parallel testing support and ensures proper
worker isolation for tests.
"""

import os

import pytest


def pytest_configure(config):
    """Configure pytest settings, including xdist worker handling."""
    # Set a marker for tests that cannot run in parallel
    config.addinivalue_line(
        "markers",
        "serial: mark test to run serially (not in parallel with other tests)",
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to handle serial tests when running with xdist."""
    # If not running with xdist, no special handling needed
    if not hasattr(config, "workerinput"):
        return

    # When running with xdist, mark serial tests to run on the same worker
    for item in items:
        if item.get_closest_marker("serial"):
            item.add_marker(pytest.mark.xdist_group(name="serial"))


@pytest.fixture(scope="session")
def django_db_modify_db_settings(django_db_modify_db_settings_parallel_suffix):
    """
    Each xdist worker gets its own database. pytest-django handles the
    suffix; the fixture is requested here so the dependency is explicit.
    """
    pass


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_setup(item):
    """Expose the xdist worker id to tests that need to know it."""
    worker_id = os.environ.get("PYTEST_XDIST_WORKER", "")
    if worker_id:
        os.environ["TEST_WORKER_ID"] = worker_id
