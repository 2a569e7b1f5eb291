"""
Tests for the SAR change detection flood pipeline.
"""

import asyncio
from unittest.mock import Mock, call, patch

import pytest

from eo_layers.dates import validate_window
from eo_layers.errors import InsufficientData, UpstreamError
from eo_layers.flood import (
    DEM_IMAGE, SURFACE_WATER_IMAGE, FloodChangeDetectionPipeline, FloodParams, FloodResult,
    _FloodState
)
from eo_layers.geometry import RegionGeometry
from tests.fakes import FakeEarthEngineClient

REGION = RegionGeometry(geometry="country-geometry", level="country")
BEFORE = validate_window("2020-10-01", "2020-11-01")
AFTER = validate_window("2020-11-02", "2020-11-25")

# 2020-10-04 and 2020-10-28 UTC
BEFORE_RANGE = {"min": 1601769600000, "max": 1603843200000}
# 2020-11-09 and 2020-11-21 UTC
AFTER_RANGE = {"min": 1604880000000, "max": 1605916800000}


@pytest.fixture
def mock_ee():
    with patch("eo_layers.flood.ee") as mocked:
        yield mocked


def detect(client, params=FloodParams()):
    pipeline = FloodChangeDetectionPipeline(client)
    return asyncio.run(pipeline.detect(REGION, BEFORE, AFTER, params))


class TestFloodParams:

    def test_defaults(self):
        params = FloodParams()
        assert params.polarization == "VH"
        assert params.pass_direction == "DESCENDING"
        assert params.difference_threshold == 1.25
        assert params.smoothing_radius_m == 50
        assert params.slope_threshold_deg == 5
        assert params.connected_pixel_threshold == 8

    def test_rejects_unknown_polarization(self):
        with pytest.raises(ValueError):
            FloodParams(polarization="HH")

    def test_rejects_unknown_pass_direction(self):
        with pytest.raises(ValueError):
            FloodParams(pass_direction="NORTHBOUND")


def test_stage_order():
    assert FloodChangeDetectionPipeline.STAGES == (
        "mosaics",
        "availability",
        "speckle_filter",
        "change_detection",
        "permanent_water",
        "connectivity",
        "slope",
        "flood_area",
    )


class TestFloodChangeDetectionPipeline:

    def test_full_run(self, mock_ee):
        # before count, after count, area, before range, after range
        client = FakeEarthEngineClient(results=[5, 4, 1234, BEFORE_RANGE, AFTER_RANGE])
        result = detect(client)

        assert isinstance(result, FloodResult)
        assert result.flooded_area_hectares == 1234
        assert result.flooded_area_km2 == 12.34
        assert (result.before_images, result.after_images) == (5, 4)
        assert result.before_period == {"start": "2020-10-04", "end": "2020-10-28"}
        assert result.after_period == {"start": "2020-11-09", "end": "2020-11-21"}
        urls = [result.before_url, result.after_url, result.difference_url, result.flooded_url]
        assert len(set(urls)) == 4
        assert len(client.rendered) == 4

    def test_source_filters(self, mock_ee):
        client = FakeEarthEngineClient(results=[2, 2, 0, BEFORE_RANGE, AFTER_RANGE])
        detect(client, FloodParams(polarization="VV", pass_direction="ASCENDING"))

        assert call("instrumentMode", "IW") in mock_ee.Filter.eq.call_args_list
        assert call("orbitProperties_pass", "ASCENDING") in mock_ee.Filter.eq.call_args_list
        assert call("resolution_meters", 10) in mock_ee.Filter.eq.call_args_list
        mock_ee.Filter.listContains.assert_called_once_with("transmitterReceiverPolarisation", "VV")
        mock_ee.Image.assert_any_call(SURFACE_WATER_IMAGE)
        mock_ee.Image.assert_any_call(DEM_IMAGE)

    @pytest.mark.parametrize("counts", [(0, 3), (3, 0), (0, 0)])
    def test_empty_collection_is_insufficient_data(self, mock_ee, counts):
        client = FakeEarthEngineClient(results=list(counts))
        with pytest.raises(InsufficientData) as exc_info:
            detect(client)

        error = exc_info.value
        assert error.status_code == 404
        assert error.metadata["beforeImages"] == counts[0]
        assert error.metadata["afterImages"] == counts[1]
        assert "pass direction" in error.metadata["suggestion"]
        # Refinement stages never ran
        mock_ee.Image.assert_not_called()
        assert client.rendered == []

    def test_missing_area_and_ranges_degrade(self, mock_ee):
        client = FakeEarthEngineClient(results=[
            1, 1, None,
            UpstreamError("Earth Engine evaluation failed: no images"),
            UpstreamError("Earth Engine evaluation failed: no images"),
        ])
        result = detect(client)
        assert result.flooded_area_hectares == 0
        assert result.before_period == {"start": "2020-10-01", "end": "2020-11-01"}
        assert result.after_period == {"start": "2020-11-02", "end": "2020-11-25"}

    def test_area_failure_is_not_swallowed(self, mock_ee):
        client = FakeEarthEngineClient(results=[1, 1, UpstreamError("Earth Engine evaluation failed: memory")])
        with pytest.raises(UpstreamError):
            detect(client)


CUSTOM_PARAMS = FloodParams(difference_threshold=1.5, smoothing_radius_m=30,
                            slope_threshold_deg=8, connected_pixel_threshold=12)


@pytest.mark.parametrize("params", [FloodParams(), CUSTOM_PARAMS], ids=["defaults", "custom"])
class TestRefinementStages:
    """Each stage is run on its own against distinct image mocks."""

    def run_stage(self, stage, state):
        pipeline = FloodChangeDetectionPipeline(FakeEarthEngineClient())
        asyncio.run(getattr(pipeline, f"_stage_{stage}")(state))

    def make_state(self, params, **images):
        state = _FloodState(REGION, BEFORE, AFTER, params)
        state.images.update(images)
        return state

    def test_speckle_filter(self, mock_ee, params):
        before, after = Mock(name="before"), Mock(name="after")
        state = self.make_state(params, before=before, after=after)
        self.run_stage("speckle_filter", state)

        radius = params.smoothing_radius_m
        before.focal_mean.assert_called_once_with(radius, "circle", "meters")
        after.focal_mean.assert_called_once_with(radius, "circle", "meters")
        assert state.images["before_filtered"] is before.focal_mean.return_value
        assert state.images["after_filtered"] is after.focal_mean.return_value

    def test_change_detection_is_after_over_before(self, mock_ee, params):
        before_filtered, after_filtered = Mock(name="before_filtered"), Mock(name="after_filtered")
        state = self.make_state(params, before_filtered=before_filtered, after_filtered=after_filtered)
        self.run_stage("change_detection", state)

        after_filtered.divide.assert_called_once_with(before_filtered)
        before_filtered.divide.assert_not_called()
        difference = after_filtered.divide.return_value
        difference.gt.assert_called_once_with(params.difference_threshold)
        difference.lt.assert_not_called()
        assert state.images["difference"] is difference
        assert state.images["flooded"] is difference.gt.return_value

    def test_permanent_water_is_zeroed(self, mock_ee, params):
        flooded = Mock(name="flooded")
        state = self.make_state(params, flooded=flooded)
        self.run_stage("permanent_water", state)

        mock_ee.Image.assert_called_once_with(SURFACE_WATER_IMAGE)
        mock_ee.Image.return_value.select.assert_called_once_with("seasonality")
        seasonality = mock_ee.Image.return_value.select.return_value
        seasonality.gte.assert_called_once_with(10)
        seasonality.lt.assert_not_called()
        permanent = seasonality.gte.return_value
        permanent.updateMask.assert_called_once_with(permanent)
        flooded.where.assert_called_once_with(permanent.updateMask.return_value, 0)
        refined = flooded.where.return_value
        refined.updateMask.assert_called_once_with(refined)
        assert state.images["flooded"] is refined.updateMask.return_value

    def test_connectivity_keeps_large_patches(self, mock_ee, params):
        flooded = Mock(name="flooded")
        state = self.make_state(params, flooded=flooded)
        self.run_stage("connectivity", state)

        flooded.connectedPixelCount.assert_called_once_with(eightConnected=True)
        connections = flooded.connectedPixelCount.return_value
        connections.gte.assert_called_once_with(params.connected_pixel_threshold)
        connections.lt.assert_not_called()
        flooded.updateMask.assert_called_once_with(connections.gte.return_value)
        assert state.images["flooded"] is flooded.updateMask.return_value

    def test_slope_keeps_flat_terrain(self, mock_ee, params):
        flooded = Mock(name="flooded")
        state = self.make_state(params, flooded=flooded)
        self.run_stage("slope", state)

        mock_ee.Image.assert_called_once_with(DEM_IMAGE)
        mock_ee.Algorithms.Terrain.assert_called_once_with(mock_ee.Image.return_value)
        mock_ee.Algorithms.Terrain.return_value.select.assert_called_once_with("slope")
        slope = mock_ee.Algorithms.Terrain.return_value.select.return_value
        slope.lt.assert_called_once_with(params.slope_threshold_deg)
        slope.gte.assert_not_called()
        flooded.updateMask.assert_called_once_with(slope.lt.return_value)
        assert state.images["flooded"] is flooded.updateMask.return_value


def test_custom_params_reach_every_stage(mock_ee):
    client = FakeEarthEngineClient(results=[2, 2, 10, BEFORE_RANGE, AFTER_RANGE])
    detect(client, CUSTOM_PARAMS)

    collection = mock_ee.ImageCollection.return_value
    for _ in range(4):
        collection = collection.filter.return_value
    mosaic = collection.filterBounds.return_value.select.return_value.filterDate.return_value \
        .mosaic.return_value.clip.return_value

    mosaic.focal_mean.assert_called_with(30, "circle", "meters")
    difference = mosaic.focal_mean.return_value.divide.return_value
    difference.gt.assert_called_once_with(1.5)

    flooded = difference.gt.return_value.where.return_value.updateMask.return_value
    flooded.connectedPixelCount.return_value.gte.assert_called_once_with(12)
    mock_ee.Algorithms.Terrain.return_value.select.return_value.lt.assert_called_once_with(8)
