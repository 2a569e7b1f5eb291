"""
Resolution of administrative selectors into Earth Engine geometries.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import ee

from .config import config
from .gee_client import EarthEngineClient

logger = logging.getLogger(__name__)

# Finest first
ADMIN_LEVELS = ("municipality", "province", "region")


@dataclass(frozen=True)
class AdminSelector:
    """Optional PSGC-style codes, each unique within its parent."""
    region: Optional[str] = None
    province: Optional[str] = None
    municipality: Optional[str] = None

    def codes(self) -> List[Tuple[str, str]]:
        """(level, code) pairs present in the selector, finest first."""
        return [(level, getattr(self, level)) for level in ADMIN_LEVELS if getattr(self, level)]

    @property
    def is_empty(self) -> bool:
        return not self.codes()


@dataclass
class RegionGeometry:
    """An ee.Geometry handle tagged with the level it was resolved at."""
    geometry: object
    level: str


class GeometryResolver:
    """
    Turn an AdminSelector into a single region geometry.

    Strategies are tried in order until one yields a feature:
    the finest level filtered together with every supplied ancestor code,
    the finest level on its own (ancestor codes that disagree are ignored),
    then the whole-country boundary. Resolution never raises.
    """

    def __init__(self, client: EarthEngineClient, settings=config):
        self.client = client
        self.settings = settings

    def strategies(self, selector: AdminSelector) -> List[Tuple[str, Callable]]:
        codes = selector.codes()
        if not codes:
            return []
        level = codes[0][0]
        ladder = [("admin_filter", lambda: self._query(level, codes))]
        if len(codes) > 1:
            ladder.append(("finest_level_only", lambda: self._query(level, codes[:1])))
        return ladder

    def _filter_for(self, codes: List[Tuple[str, str]]):
        filters = [
            ee.Filter.eq(self.settings.ADMIN_CODE_FIELDS[level], code)
            for level, code in codes
        ]
        return filters[0] if len(filters) == 1 else ee.Filter.And(*filters)

    async def _query(self, level: str, codes: List[Tuple[str, str]]) -> Optional[RegionGeometry]:
        boundaries = ee.FeatureCollection(self.settings.ADMIN_COLLECTIONS[level])
        filtered = boundaries.filter(self._filter_for(codes))
        size = await self.client.evaluate(filtered.size())
        logger.info(f"Filtered {level} collection size: {size}")
        if not size:
            return None
        return RegionGeometry(geometry=filtered.first().geometry(), level=level)

    def country_geometry(self) -> RegionGeometry:
        country = (ee.FeatureCollection(self.settings.COUNTRY_COLLECTION)
                   .filter(ee.Filter.eq(self.settings.COUNTRY_NAME_FIELD, self.settings.COUNTRY_NAME))
                   .first()
                   .geometry())
        return RegionGeometry(geometry=country, level="country")

    async def resolve(self, selector: AdminSelector) -> RegionGeometry:
        for name, strategy in self.strategies(selector):
            try:
                region = await strategy()
            except Exception as e:
                logger.warning(f"⚠️  Geometry strategy '{name}' failed for {selector}: {e}")
                continue
            if region is not None:
                return region
            logger.info(f"Geometry strategy '{name}' matched no features for {selector}")

        logger.info(f"Using {self.settings.COUNTRY_NAME} boundary for {selector}")
        return self.country_geometry()
