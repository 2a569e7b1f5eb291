"""
Google Earth Engine session and request helpers.

Earth Engine client calls block on HTTP round-trips, so every call that
materializes a value (getInfo, getMapId) is pushed to a worker thread and
awaited. Building ee objects is lazy and stays on the event loop.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Optional

import ee

from .config import config, get_gee_credentials
from .errors import UpstreamError

logger = logging.getLogger(__name__)


class EarthEngineSession:
    """
    Process-wide, initialize-once Earth Engine session.

    The double-checked flag is guarded by a thread lock that is only ever
    taken inside a worker thread, so concurrent first requests initialize
    exactly once and the event loop never blocks on it.
    """

    def __init__(self, initializer=None):
        self._initializer = initializer or initialize_earth_engine
        self._lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _initialize_once(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            self._initializer()
            self._initialized = True

    async def ensure_initialized(self) -> None:
        """Initialize Earth Engine if it has not been initialized yet."""
        if self._initialized:
            return
        try:
            await asyncio.to_thread(self._initialize_once)
        except Exception as e:
            raise UpstreamError(f"Failed to initialize Google Earth Engine: {e}")


def initialize_earth_engine() -> None:
    """
    Initialize Google Earth Engine with service account credentials.

    Raises:
        Exception: If credentials cannot be loaded or initialization fails
    """
    try:
        credentials = get_gee_credentials()
        ee.Initialize(credentials, project=config.GEE_PROJECT)
        logger.info("✅ Google Earth Engine initialized successfully")
    except Exception as e:
        error_msg = str(e)
        logger.error(f"❌ Failed to initialize Google Earth Engine: {error_msg}")
        if "not registered to use Earth Engine" in error_msg:
            logger.error("🔧 Register the project at https://code.earthengine.google.com/register")
        raise


class EarthEngineClient:
    """Async facade over the blocking Earth Engine calls used by the analyses."""

    async def evaluate(self, ee_object: Any) -> Any:
        """Compute an ee object server-side and return its client-side value."""
        try:
            return await asyncio.to_thread(ee_object.getInfo)
        except Exception as e:
            raise UpstreamError(f"Earth Engine evaluation failed: {e}")

    async def tile_url(self, image: Any, vis_params: Dict) -> str:
        """Render an image and return its XYZ tile URL template."""
        try:
            map_id = await asyncio.to_thread(image.getMapId, vis_params)
        except Exception as e:
            raise UpstreamError(f"Earth Engine map rendering failed: {e}")
        return map_id['tile_fetcher'].url_format


def get_visualization_parameters() -> Dict[str, Dict]:
    """Get standard visualization parameters for the rendered layers."""
    return {
        'ndvi': {
            'min': 0, 'max': 8000,
            'palette': [
                'FFFFFF', 'CE7E45', 'DF923D', 'F1B555', 'FCD163', '99B718', '74A901',
                '66A000', '529400', '3E8601', '207401', '056201', '004C00', '023B01',
                '012E01', '011D01', '011301'
            ]
        },
        'lulc': {
            'min': 1, 'max': 9,
            'palette': [
                '1A5BAB', '358221', '87D19E', 'FFDB5C', 'ED022A',
                'EDE9E4', 'F2FAFF', 'C8C8C8', 'C6AD8D'
            ]
        },
        'sar': {'min': -25, 'max': 0, 'palette': ['000000', 'FFFFFF']},
        'difference': {'min': 0, 'max': 2, 'palette': ['0000FF', 'FFFFFF', 'FF0000']},
        'flood': {'min': 0, 'max': 1, 'palette': ['0000FF']},
    }


_session: Optional[EarthEngineSession] = None
_session_guard = threading.Lock()


def get_session() -> EarthEngineSession:
    """Return the process-wide Earth Engine session."""
    global _session
    with _session_guard:
        if _session is None:
            _session = EarthEngineSession()
        return _session
