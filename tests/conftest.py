"""Pytest configuration for squadron tests."""

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _quiet_logging():
    """Keep loguru output out of test reports."""
    logger.remove()
    yield


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=1s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))
