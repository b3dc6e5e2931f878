"""Fixtures for API tests."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from autopilot.admission import AdmissionQueue
from autopilot.api import create_app
from autopilot.config import TenantRegistry
from autopilot.orchestrator import Orchestrator
from autopilot.services import Services
from autopilot.tracking import TrackingStore


@pytest.fixture
def tracking():
    store = TrackingStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def services(settings, make_tenant, tracking) -> Services:
    """Services with a real queue, orchestrator and store, and a mocked tracker."""
    queue = AdmissionQueue(max_retries=settings.max_retries)
    registry = TenantRegistry([make_tenant("acme"), make_tenant("globex")])
    return Services(
        settings=settings,
        registry=registry,
        queue=queue,
        orchestrator=Orchestrator(queue, MagicMock(), settings, MagicMock()),
        tracker=MagicMock(),
        tracking=tracking,
    )


@pytest.fixture
def client(services) -> TestClient:
    """Test client; the lifespan does not run, so the orchestrator stays stopped."""
    return TestClient(create_app(services=services))
