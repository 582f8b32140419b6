"""Pytest configuration and shared fixtures."""

import pytest
from prometheus_client import CollectorRegistry

from rowmover.metrics import MoverMetrics


@pytest.fixture
def metrics() -> MoverMetrics:
    """Metrics bound to a private registry so tests do not collide."""
    return MoverMetrics(registry=CollectorRegistry())
