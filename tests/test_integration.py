"""
Integration tests against live Earth Engine.

Skipped unless service account credentials are configured.
"""

import os

import pytest
from fastapi.testclient import TestClient

from eo_layers.config import config

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not (config.GEE_SERVICE_ACCOUNT_KEY_JSON or os.path.exists(config.GEE_SERVICE_ACCOUNT_KEY_PATH)),
        reason="Earth Engine service account not configured"
    ),
]


class TestLiveLayers:
    """Integration tests for the map layer endpoints."""

    def test_ulysses_flood_over_whole_country(self, client: TestClient, ulysses_flood_query):
        response = client.get("/flood", params=ulysses_flood_query)

        assert response.status_code in [200, 404]
        data = response.json()
        if response.status_code == 200:
            assert data["statistics"]["floodedAreaHa"] >= 0
            assert set(data["maps"]) == {"before", "after", "difference", "flooded"}
            for url in data["maps"].values():
                assert url.startswith("https://")
            assert data["metadata"]["location"]["resolvedLevel"] == "country"

    def test_municipality_ndvi_time_series(self, client: TestClient, municipality_query):
        response = client.get("/ndvi", params=municipality_query)

        if response.status_code == 200:
            series = response.json()["timeSeries"]
            assert len(series["maps"]) <= 15
            assert len(series["calendarDayAverages"]) <= 365
            assert series["processedMaps"] == len(series["maps"])
            for point in series["data"]:
                assert -1 <= point["ndviMean"] <= 1
                assert 1 <= point["calendarDay"] <= 365

    def test_lulc_region(self, client: TestClient):
        response = client.get("/lulc", params={"region": "PH130000000"})

        assert response.status_code in [200, 404]
        if response.status_code == 200:
            data = response.json()
            assert data["mapUrl"].startswith("https://")
            assert 5 <= data["zoom"] <= 13
