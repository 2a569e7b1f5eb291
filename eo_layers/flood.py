"""
SAR change detection flood mapping (Sentinel-1 GRD).

Adapted from the UN-SPIDER recommended practice: before/after backscatter
ratio, refined with permanent water, connectivity and slope masks.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import ee

from .config import config
from .dates import TimeWindow
from .errors import InsufficientData
from .gee_client import EarthEngineClient, get_visualization_parameters
from .geometry import RegionGeometry

logger = logging.getLogger(__name__)

S1_COLLECTION = 'COPERNICUS/S1_GRD'
SURFACE_WATER_IMAGE = 'JRC/GSW1_0/GlobalSurfaceWater'
DEM_IMAGE = 'WWF/HydroSHEDS/03VFDEM'
PERMANENT_WATER_MONTHS = 10

POLARIZATIONS = ('VH', 'VV')
PASS_DIRECTIONS = ('ASCENDING', 'DESCENDING')


@dataclass(frozen=True)
class FloodParams:
    polarization: str = 'VH'
    pass_direction: str = 'DESCENDING'
    difference_threshold: float = 1.25
    smoothing_radius_m: float = 50
    slope_threshold_deg: float = 5
    connected_pixel_threshold: int = 8

    def __post_init__(self):
        if self.polarization not in POLARIZATIONS:
            raise ValueError(f"Unsupported polarization: {self.polarization}. Supported: {POLARIZATIONS}")
        if self.pass_direction not in PASS_DIRECTIONS:
            raise ValueError(f"Unsupported pass direction: {self.pass_direction}. Supported: {PASS_DIRECTIONS}")


@dataclass
class FloodResult:
    """Rendered layers are tile URL templates, not local rasters."""
    before_url: str
    after_url: str
    difference_url: str
    flooded_url: str
    flooded_area_hectares: int
    before_images: int
    after_images: int
    before_period: Dict[str, str]
    after_period: Dict[str, str]

    @property
    def flooded_area_km2(self) -> float:
        return round(self.flooded_area_hectares / 100, 2)


@dataclass
class _FloodState:
    region: RegionGeometry
    before_window: TimeWindow
    after_window: TimeWindow
    params: FloodParams
    images: Dict[str, Any] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    area_hectares: int = 0


class FloodChangeDetectionPipeline:
    """Each stage consumes what the previous one left on the state."""

    STAGES = (
        'mosaics',
        'availability',
        'speckle_filter',
        'change_detection',
        'permanent_water',
        'connectivity',
        'slope',
        'flood_area',
    )

    def __init__(self, client: EarthEngineClient, settings=config):
        self.client = client
        self.settings = settings

    async def detect(self, region: RegionGeometry, before_window: TimeWindow,
                     after_window: TimeWindow, params: FloodParams = FloodParams()) -> FloodResult:
        state = _FloodState(region, before_window, after_window, params)
        for stage in self.STAGES:
            logger.info(f"🌊 Flood stage: {stage}")
            await getattr(self, f"_stage_{stage}")(state)
        return await self._assemble(state)

    def _source_collection(self, state: _FloodState):
        params = state.params
        return (ee.ImageCollection(S1_COLLECTION)
                .filter(ee.Filter.eq('instrumentMode', 'IW'))
                .filter(ee.Filter.listContains('transmitterReceiverPolarisation', params.polarization))
                .filter(ee.Filter.eq('orbitProperties_pass', params.pass_direction))
                .filter(ee.Filter.eq('resolution_meters', 10))
                .filterBounds(state.region.geometry)
                .select(params.polarization))

    async def _stage_mosaics(self, state: _FloodState) -> None:
        collection = self._source_collection(state)
        roi = state.region.geometry
        for key, window in (('before', state.before_window), ('after', state.after_window)):
            subset = collection.filterDate(window.start_str, window.end_str)
            state.images[f'{key}_collection'] = subset
            state.images[key] = subset.mosaic().clip(roi)

    async def _stage_availability(self, state: _FloodState) -> None:
        before_count, after_count = await asyncio.gather(
            self.client.evaluate(state.images['before_collection'].size()),
            self.client.evaluate(state.images['after_collection'].size()),
        )
        state.counts = {'before': before_count or 0, 'after': after_count or 0}
        logger.info(f"Before collection size: {before_count}, After collection size: {after_count}")

        if not before_count or not after_count:
            raise InsufficientData(
                "Insufficient Sentinel-1 data for the specified dates and region",
                metadata={
                    'beforePeriod': state.before_window.describe(),
                    'afterPeriod': state.after_window.describe(),
                    'beforeImages': state.counts['before'],
                    'afterImages': state.counts['after'],
                    'suggestion': 'Try adjusting date ranges or using a different pass direction (ASCENDING/DESCENDING)',
                },
            )

    async def _stage_speckle_filter(self, state: _FloodState) -> None:
        radius = state.params.smoothing_radius_m
        state.images['before_filtered'] = state.images['before'].focal_mean(radius, 'circle', 'meters')
        state.images['after_filtered'] = state.images['after'].focal_mean(radius, 'circle', 'meters')

    async def _stage_change_detection(self, state: _FloodState) -> None:
        difference = state.images['after_filtered'].divide(state.images['before_filtered'])
        state.images['difference'] = difference
        state.images['flooded'] = difference.gt(state.params.difference_threshold)

    async def _stage_permanent_water(self, state: _FloodState) -> None:
        seasonality = ee.Image(SURFACE_WATER_IMAGE).select('seasonality')
        permanent = seasonality.gte(PERMANENT_WATER_MONTHS)
        permanent_mask = permanent.updateMask(permanent)
        flooded = state.images['flooded'].where(permanent_mask, 0)
        state.images['flooded'] = flooded.updateMask(flooded)

    async def _stage_connectivity(self, state: _FloodState) -> None:
        flooded = state.images['flooded']
        # 8-connected neighbourhood
        connections = flooded.connectedPixelCount(eightConnected=True)
        state.images['flooded'] = flooded.updateMask(
            connections.gte(state.params.connected_pixel_threshold))

    async def _stage_slope(self, state: _FloodState) -> None:
        slope = ee.Algorithms.Terrain(ee.Image(DEM_IMAGE)).select('slope')
        state.images['flooded'] = state.images['flooded'].updateMask(
            slope.lt(state.params.slope_threshold_deg))

    async def _stage_flood_area(self, state: _FloodState) -> None:
        polarization = state.params.polarization
        pixel_area = state.images['flooded'].select(polarization).multiply(ee.Image.pixelArea())
        stats = pixel_area.reduceRegion(
            reducer=ee.Reducer.sum(),
            geometry=state.region.geometry,
            scale=self.settings.FLOOD_SCALE_M,
            maxPixels=1e9,
            bestEffort=True
        )
        hectares = await self.client.evaluate(
            ee.Number(stats.get(polarization)).divide(10000).round())
        state.area_hectares = max(0, int(hectares or 0))
        logger.info(f"Calculated flood area: {state.area_hectares} hectares")

    async def _acquisition_range(self, collection, window: TimeWindow) -> Dict[str, str]:
        """Actual first/last acquisition dates, or the requested window if unknown."""
        try:
            extent = await self.client.evaluate(
                collection.reduceColumns(ee.Reducer.minMax(), ['system:time_start']))
            return {'start': _millis_to_date(extent['min']), 'end': _millis_to_date(extent['max'])}
        except Exception as e:
            logger.warning(f"Could not compute acquisition range: {e}")
            return {'start': window.start_str, 'end': window.end_str}

    async def _assemble(self, state: _FloodState) -> FloodResult:
        vis = get_visualization_parameters()
        images = state.images
        before_url, after_url, difference_url, flooded_url = await asyncio.gather(
            self.client.tile_url(images['before_filtered'], vis['sar']),
            self.client.tile_url(images['after_filtered'], vis['sar']),
            self.client.tile_url(images['difference'], vis['difference']),
            self.client.tile_url(images['flooded'], vis['flood']),
        )
        before_period, after_period = await asyncio.gather(
            self._acquisition_range(images['before_collection'], state.before_window),
            self._acquisition_range(images['after_collection'], state.after_window),
        )
        return FloodResult(
            before_url=before_url,
            after_url=after_url,
            difference_url=difference_url,
            flooded_url=flooded_url,
            flooded_area_hectares=state.area_hectares,
            before_images=state.counts['before'],
            after_images=state.counts['after'],
            before_period=before_period,
            after_period=after_period,
        )


def _millis_to_date(millis: Optional[float]) -> str:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime('%Y-%m-%d')
