"""
ESRI 10 m land use / land cover layer.
"""

import logging
from dataclasses import dataclass

import ee

from .dates import TimeWindow
from .errors import NoData
from .gee_client import EarthEngineClient, get_visualization_parameters
from .geometry import RegionGeometry

logger = logging.getLogger(__name__)

LULC_COLLECTION = 'projects/sat-io/open-datasets/landcover/ESRI_Global-LULC_10m_TS'

# ESRI class values -> contiguous 1..9 legend classes
SOURCE_CLASSES = [1, 2, 4, 5, 7, 8, 9, 10, 11]
LEGEND_CLASSES = [1, 2, 3, 4, 5, 6, 7, 8, 9]


@dataclass
class LULCResult:
    map_url: str
    collection_size: int


class LandCoverAnalyzer:

    def __init__(self, client: EarthEngineClient):
        self.client = client

    async def analyze(self, region: RegionGeometry, window: TimeWindow) -> LULCResult:
        collection = (ee.ImageCollection(LULC_COLLECTION)
                      .filterDate(window.start_str, window.end_str)
                      .filterBounds(region.geometry))

        size = await self.client.evaluate(collection.size())
        logger.info(f"LULC Collection Size: {size}")
        if not size:
            raise NoData(
                "No LULC data found for the specified date range and region",
                metadata={
                    'startDate': window.start_str,
                    'endDate': window.end_str,
                    'collectionSize': 0,
                },
            )

        image = (collection
                 .mosaic()
                 .remap(SOURCE_CLASSES, LEGEND_CLASSES)
                 .clip(region.geometry))
        map_url = await self.client.tile_url(image, get_visualization_parameters()['lulc'])
        return LULCResult(map_url=map_url, collection_size=size)
