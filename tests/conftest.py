"""
Test configuration and fixtures for the EO Layers API.
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to the path so we can import the app
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eo_layers.gee_client import get_session
from eo_layers.main import AnalysisServices, app, get_services
from tests.fakes import FakeSession, StubAnalysis, StubResolver, StubViewport


@pytest.fixture
def client():
    """Create a test client for the FastAPI application."""
    return TestClient(app)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def services():
    return AnalysisServices(
        resolver=StubResolver(),
        viewport=StubViewport(),
        ndvi=StubAnalysis(),
        lulc=StubAnalysis(),
        flood=StubAnalysis(),
    )


@pytest.fixture
def api(client, fake_session, services):
    """Test client with Earth Engine and the analyses replaced by stubs."""
    app.dependency_overrides[get_session] = lambda: fake_session
    app.dependency_overrides[get_services] = lambda: services
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def ulysses_flood_query():
    """Typhoon Ulysses (Vamco) before/after windows."""
    return {
        "beforeStart": "2020-10-01",
        "beforeEnd": "2020-11-01",
        "afterStart": "2020-11-02",
        "afterEnd": "2020-11-25",
    }


@pytest.fixture
def municipality_query():
    """Two-year NDVI window over a single municipality."""
    return {
        "startDate": "2021-01-01",
        "endDate": "2023-01-01",
        "region": "PH130000000",
        "province": "PH137400000",
        "municipality": "PH137404000",
        "includeTimeSeries": "true",
    }
