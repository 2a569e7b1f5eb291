"""
Map framing (center, bounds, zoom) for a resolved region geometry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from .config import config
from .gee_client import EarthEngineClient

logger = logging.getLogger(__name__)

# (minimum span in degrees, zoom), lower bound inclusive
ZOOM_STEPS = (
    (10.0, 5),
    (5.0, 6),
    (2.0, 7),
    (1.0, 8),
    (0.5, 9),
    (0.2, 10),
    (0.1, 11),
    (0.05, 12),
)
MAX_ZOOM = 13


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    @property
    def max_span(self) -> float:
        return max(self.north - self.south, self.east - self.west)

    @property
    def midpoint(self) -> Tuple[float, float]:
        return (self.north + self.south) / 2, (self.east + self.west) / 2


@dataclass(frozen=True)
class Viewport:
    latitude: float
    longitude: float
    bounds: Bounds
    zoom: int

    def center(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


def zoom_for_span(span: float) -> int:
    """Web map zoom level for the larger of the latitude/longitude spans."""
    for min_span, zoom in ZOOM_STEPS:
        if span >= min_span:
            return zoom
    return MAX_ZOOM


def bounds_from_geojson(polygon: Dict) -> Bounds:
    """Extent of the outer ring of a GeoJSON polygon returned by bounds()."""
    ring = polygon["coordinates"][0]
    lons = [c[0] for c in ring]
    lats = [c[1] for c in ring]
    return Bounds(north=max(lats), south=min(lats), east=max(lons), west=min(lons))


def default_viewport(settings=config) -> Viewport:
    fallback = settings.DEFAULT_VIEWPORT
    return Viewport(
        latitude=fallback["center"]["latitude"],
        longitude=fallback["center"]["longitude"],
        bounds=Bounds(**fallback["bounds"]),
        zoom=fallback["zoom"],
    )


class ViewportEstimator:
    """
    Estimate a viewport, degrading precision tier by tier.

    Tiers: centroid at 1 m error, centroid at 10 m error, bounds midpoint
    at 100 m error, then the configured default viewport.
    """

    CENTROID_ERROR_MARGINS: Sequence[float] = (1, 10)
    MIDPOINT_ERROR_MARGIN: float = 100

    def __init__(self, client: EarthEngineClient, settings=config):
        self.client = client
        self.settings = settings

    def strategies(self, geometry) -> List[Tuple[str, Callable]]:
        ladder = [
            (f"centroid@{margin}m", lambda margin=margin: self._from_centroid(geometry, margin))
            for margin in self.CENTROID_ERROR_MARGINS
        ]
        ladder.append((
            f"midpoint@{self.MIDPOINT_ERROR_MARGIN}m",
            lambda: self._from_midpoint(geometry, self.MIDPOINT_ERROR_MARGIN),
        ))
        return ladder

    async def _from_centroid(self, geometry, max_error: float) -> Viewport:
        centroid, polygon = await asyncio.gather(
            self.client.evaluate(geometry.centroid(maxError=max_error).coordinates()),
            self.client.evaluate(geometry.bounds(maxError=max_error)),
        )
        bounds = bounds_from_geojson(polygon)
        return Viewport(
            latitude=centroid[1],
            longitude=centroid[0],
            bounds=bounds,
            zoom=zoom_for_span(bounds.max_span),
        )

    async def _from_midpoint(self, geometry, max_error: float) -> Viewport:
        bounds = bounds_from_geojson(await self.client.evaluate(geometry.bounds(maxError=max_error)))
        lat, lon = bounds.midpoint
        return Viewport(latitude=lat, longitude=lon, bounds=bounds, zoom=zoom_for_span(bounds.max_span))

    async def estimate(self, geometry) -> Viewport:
        for name, strategy in self.strategies(geometry):
            try:
                return await strategy()
            except Exception as e:
                logger.warning(f"⚠️  Viewport tier '{name}' failed: {e}")
        logger.warning("All viewport tiers failed, using default viewport")
        return default_viewport(self.settings)
