"""
MODIS NDVI composite, time series and multi-year calendar-day pattern.
"""

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

import ee
import numpy as np

from .config import config
from .dates import TimeWindow
from .errors import NoData
from .gee_client import EarthEngineClient, get_visualization_parameters
from .geometry import RegionGeometry

logger = logging.getLogger(__name__)

NDVI_COLLECTION = 'MODIS/061/MOD13Q1'
NDVI_BAND = 'NDVI'
DAYS_IN_NORMALIZED_YEAR = 365
LAST_DAY_OF_FEBRUARY = 59


@dataclass
class NDVISample:
    date: str
    timestamp: int
    year: int
    calendar_day: int
    ndvi_mean: float
    ndvi_median: Optional[float]
    ndvi_stddev: Optional[float]
    ndvi_raw: Optional[float] = None


@dataclass
class CalendarDayAverage:
    calendar_day: int
    ndvi_mean: float
    ndvi_median: Optional[float]
    sample_count: int
    years: List[int]


@dataclass
class TimeSeriesMapSample:
    date: str
    timestamp: int
    tile_url: str


@dataclass
class NDVIResult:
    map_url: str
    collection_size: int
    samples: List[NDVISample] = field(default_factory=list)
    calendar_averages: List[CalendarDayAverage] = field(default_factory=list)
    map_samples: List[TimeSeriesMapSample] = field(default_factory=list)


def calendar_day(day: date) -> int:
    """Day of year counted from January 0, i.e. January 1 is day 1."""
    return (day - date(day.year, 1, 1)).days + 1


def normalize_calendar_day(day_of_year: int, is_leap_year: bool) -> int:
    """
    Collapse leap years onto a 365-day axis.

    Every leap-year day after February 28 moves one day earlier, so
    February 29 shares a bucket with February 28 and day 366 never occurs.
    """
    if is_leap_year and day_of_year > LAST_DAY_OF_FEBRUARY:
        return day_of_year - 1
    return day_of_year


def normalized_calendar_day(day: date) -> int:
    return normalize_calendar_day(calendar_day(day), calendar.isleap(day.year))


def _descale(value: Optional[float], scale: float) -> Optional[float]:
    return None if value is None else value / scale


def build_samples(features: List[Dict], scale: float = config.NDVI_SCALE_FACTOR) -> List[NDVISample]:
    """Convert evaluated per-image statistic features into samples, dropping null means."""
    samples = []
    for feature in features:
        props = feature.get('properties', {})
        if props.get('ndvi_mean') is None:
            continue
        day = datetime.strptime(props['date'], '%Y-%m-%d').date()
        samples.append(NDVISample(
            date=props['date'],
            timestamp=props.get('timestamp'),
            year=day.year,
            calendar_day=normalized_calendar_day(day),
            ndvi_mean=_descale(props['ndvi_mean'], scale),
            ndvi_median=_descale(props.get('ndvi_median'), scale),
            ndvi_stddev=_descale(props.get('ndvi_stddev'), scale),
            ndvi_raw=props.get('ndvi_median'),
        ))
    return samples


def calendar_day_averages(samples: List[NDVISample]) -> List[CalendarDayAverage]:
    """Average samples from every year that fall on the same normalized day."""
    by_day: Dict[int, List[NDVISample]] = {}
    for sample in samples:
        by_day.setdefault(sample.calendar_day, []).append(sample)

    averages = []
    for day in range(1, DAYS_IN_NORMALIZED_YEAR + 1):
        day_samples = by_day.get(day)
        if not day_samples:
            continue
        medians = [s.ndvi_median for s in day_samples if s.ndvi_median is not None]
        averages.append(CalendarDayAverage(
            calendar_day=day,
            ndvi_mean=float(np.mean([s.ndvi_mean for s in day_samples])),
            ndvi_median=float(np.mean(medians)) if medians else None,
            sample_count=len(day_samples),
            years=sorted({s.year for s in day_samples}),
        ))
    return averages


def sample_indices(count: int, limit: int = config.MAX_TIME_SERIES_MAPS) -> List[int]:
    """Evenly strided indices into an ordered series, at most `limit` of them."""
    if count <= 0:
        return []
    step = max(1, count // limit)
    return list(range(0, count, step))[:limit]


class NDVITimeSeriesAggregator:

    def __init__(self, client: EarthEngineClient, settings=config):
        self.client = client
        self.settings = settings

    def _collection(self, region: RegionGeometry, window: TimeWindow):
        return (ee.ImageCollection(NDVI_COLLECTION)
                .select(NDVI_BAND)
                .filterDate(window.start_str, window.end_str)
                .filterBounds(region.geometry)
                .sort('system:time_start'))

    async def aggregate(self, region: RegionGeometry, window: TimeWindow,
                        include_time_series: bool = True) -> NDVIResult:
        collection = self._collection(region, window)
        size = await self.client.evaluate(collection.size())
        if not size:
            raise NoData("No NDVI data found for the specified date range and region")
        logger.info(f"Found {size} NDVI images")

        vis = get_visualization_parameters()['ndvi']
        composite = collection.median().clip(region.geometry)
        result = NDVIResult(
            map_url=await self.client.tile_url(composite, vis),
            collection_size=size,
        )
        if not include_time_series:
            return result

        try:
            result.samples = await self._time_series(collection, region, size)
            logger.info(f"Processed {len(result.samples)} time series data points")
            result.map_samples = await self._map_samples(collection, region, result.samples, vis)
        except Exception as e:
            logger.warning(f"⚠️  Time series generation failed, continuing with median composite only: {e}")
            result.samples = []
            result.map_samples = []

        result.calendar_averages = calendar_day_averages(result.samples)
        return result

    async def _time_series(self, collection, region: RegionGeometry, size: int) -> List[NDVISample]:
        roi = region.geometry
        scale = self.settings.NDVI_STATS_SCALE_M

        def image_stats(image):
            acquired = ee.Date(image.get('system:time_start'))
            stats = image.reduceRegion(
                reducer=ee.Reducer.mean()
                .combine(reducer2=ee.Reducer.median(), sharedInputs=True)
                .combine(reducer2=ee.Reducer.stdDev(), sharedInputs=True),
                geometry=roi,
                scale=scale,
                maxPixels=1e9
            )
            return ee.Feature(None, {
                'date': acquired.format('YYYY-MM-dd'),
                'timestamp': acquired.millis(),
                'ndvi_mean': stats.get('NDVI_mean'),
                'ndvi_median': stats.get('NDVI_median'),
                'ndvi_stddev': stats.get('NDVI_stdDev'),
            })

        features = await self.client.evaluate(collection.map(image_stats).toList(size))
        return build_samples(features, self.settings.NDVI_SCALE_FACTOR)

    async def _map_samples(self, collection, region: RegionGeometry,
                           samples: List[NDVISample], vis: Dict) -> List[TimeSeriesMapSample]:
        indices = sample_indices(len(samples), self.settings.MAX_TIME_SERIES_MAPS)
        logger.info(f"Generating {len(indices)} sample maps from {len(samples)} time points")

        async def render(sample: NDVISample) -> Optional[TimeSeriesMapSample]:
            try:
                start = datetime.strptime(sample.date, '%Y-%m-%d').date()
                end = start + timedelta(days=self.settings.NDVI_COMPOSITE_DAYS)
                image = (collection
                         .filterDate(start.isoformat(), end.isoformat())
                         .sort('system:time_start')
                         .first()
                         .select(NDVI_BAND)
                         .clip(region.geometry))
                tile_url = await self.client.tile_url(image, vis)
            except Exception as e:
                logger.warning(f"⚠️  Failed to generate map for date {sample.date}: {e}")
                return None
            return TimeSeriesMapSample(date=sample.date, timestamp=sample.timestamp, tile_url=tile_url)

        rendered = await asyncio.gather(*(render(samples[index]) for index in indices))
        return [sample for sample in rendered if sample is not None]
