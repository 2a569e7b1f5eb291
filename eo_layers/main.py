"""
FastAPI application serving Earth observation map layers
(NDVI, land cover, flood extent) over administrative regions.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional

import ee
import uvicorn
from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import config
from .dates import validate_window
from .errors import AnalysisError
from .flood import FloodChangeDetectionPipeline, FloodParams
from .gee_client import EarthEngineClient, EarthEngineSession, get_session
from .geometry import AdminSelector, GeometryResolver, RegionGeometry
from .legends import (
    FLOOD_DISCLAIMER, NDVI_INTERPRETATION, flood_interpretation,
    lulc_class_mapping, lulc_colors, ndvi_scale, supported_layers
)
from .lulc import LandCoverAnalyzer
from .models import (
    Bounds, Center, DateRange, ErrorResponse, FloodMaps, FloodResponse,
    FloodStatistics, LULCResponse, NDVIResponse, TimeSeries
)
from .ndvi import NDVITimeSeriesAggregator
from .viewport import Viewport, ViewportEstimator

logger = logging.getLogger(__name__)


@dataclass
class AnalysisServices:
    """Analyses sharing one Earth Engine client."""
    resolver: GeometryResolver
    viewport: ViewportEstimator
    ndvi: NDVITimeSeriesAggregator
    lulc: LandCoverAnalyzer
    flood: FloodChangeDetectionPipeline


def get_services() -> AnalysisServices:
    client = EarthEngineClient()
    return AnalysisServices(
        resolver=GeometryResolver(client),
        viewport=ViewportEstimator(client),
        ndvi=NDVITimeSeriesAggregator(client),
        lulc=LandCoverAnalyzer(client),
        flood=FloodChangeDetectionPipeline(client),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for the FastAPI application."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger.info("🚀 Starting EO Layers API...")
    try:
        await get_session().ensure_initialized()
    except AnalysisError as e:
        # Requests retry initialization lazily
        logger.warning(f"⚠️  Earth Engine not initialized at startup: {e.message}")

    yield

    logger.info("🛑 Shutting down EO Layers API...")


# Create FastAPI application
app = FastAPI(
    title=config.PROJECT_NAME,
    version=config.VERSION,
    description=config.DESCRIPTION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)


def _location_metadata(selector: AdminSelector, region: RegionGeometry) -> dict:
    return {
        "region": selector.region or config.COUNTRY_NAME,
        "province": selector.province,
        "municipality": selector.municipality,
        "resolvedLevel": region.level,
    }


def _framing(viewport: Viewport) -> dict:
    return {
        "center": Center(**viewport.center()),
        "bounds": Bounds(
            north=viewport.bounds.north,
            south=viewport.bounds.south,
            east=viewport.bounds.east,
            west=viewport.bounds.west,
        ),
        "zoom": viewport.zoom,
    }


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint returning basic API information."""
    return {
        "message": config.PROJECT_NAME,
        "version": config.VERSION,
        "description": config.DESCRIPTION,
        "status": "active",
        "endpoints": {
            "ndvi": "/ndvi",
            "lulc": "/lulc",
            "flood": "/flood",
            "layers": "/layers",
            "health": "/health",
            "docs": "/docs"
        }
    }


@app.get("/health", tags=["Health"])
async def health_check(session: EarthEngineSession = Depends(get_session)):
    """Health check endpoint."""
    try:
        await session.ensure_initialized()
        value = await EarthEngineClient().evaluate(ee.Number(1))
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Earth Engine connection failed: {str(e)}"
        )
    return {
        "status": "healthy",
        "earth_engine": "connected",
        "check": value,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/layers", tags=["Information"])
async def get_supported_layers():
    """Get the list of map layers and their legends."""
    return {"supported_layers": supported_layers()}


@app.get("/ndvi", response_model=NDVIResponse, tags=["Analysis"])
async def ndvi_endpoint(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    region: Optional[str] = None,
    province: Optional[str] = None,
    municipality: Optional[str] = None,
    include_time_series: str = Query("true", alias="includeTimeSeries"),
    session: EarthEngineSession = Depends(get_session),
    services: AnalysisServices = Depends(get_services),
):
    """
    NDVI median composite with an optional per-acquisition time series,
    multi-year calendar-day averages and sampled per-date maps.
    """
    today = date.today()
    start_date = start_date or (today - timedelta(days=config.DEFAULT_NDVI_SPAN_DAYS)).isoformat()
    end_date = end_date or today.isoformat()
    window = validate_window(start_date, end_date)
    time_series_enabled = include_time_series.lower() == "true"

    await session.ensure_initialized()
    selector = AdminSelector(region=region, province=province, municipality=municipality)
    roi = await services.resolver.resolve(selector)

    logger.info(f"🌱 NDVI {window.describe()} over {roi.level} (time series: {time_series_enabled})")
    result = await services.ndvi.aggregate(roi, window, time_series_enabled)
    viewport = await services.viewport.estimate(roi.geometry)

    return NDVIResponse(
        map_url=result.map_url,
        **_framing(viewport),
        time_series=TimeSeries(
            enabled=time_series_enabled,
            data=[asdict(s) for s in result.samples],
            maps=[asdict(m) for m in result.map_samples],
            calendar_day_averages=[asdict(a) for a in result.calendar_averages],
            date_range=DateRange(start=window.start_str, end=window.end_str),
            total_images=result.collection_size,
            processed_maps=len(result.map_samples),
        ),
        metadata={
            "startDate": window.start_str,
            "endDate": window.end_str,
            **_location_metadata(selector, roi),
            "dataset": "MODIS NDVI (MOD13Q1)",
            "collectionSize": result.collection_size,
            "totalDays": window.total_days,
            "ndviScale": ndvi_scale(),
            "interpretation": NDVI_INTERPRETATION,
            "temporal": {
                "frequency": "16-day composite",
                "calendarDayRange": "1-365",
                "normalizedForLeapYears": True
            },
            "satellite": "MODIS Terra",
            "sensor": "MOD13Q1",
            "resolution": "250m"
        },
    )


@app.get("/lulc", response_model=LULCResponse, tags=["Analysis"])
async def lulc_endpoint(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    region: Optional[str] = None,
    province: Optional[str] = None,
    municipality: Optional[str] = None,
    session: EarthEngineSession = Depends(get_session),
    services: AnalysisServices = Depends(get_services),
):
    """Land use / land cover classification mosaic for the selected region."""
    window = validate_window(start_date or config.DEFAULT_LULC_START, end_date or config.DEFAULT_LULC_END)

    await session.ensure_initialized()
    selector = AdminSelector(region=region, province=province, municipality=municipality)
    roi = await services.resolver.resolve(selector)

    logger.info(f"🗺️  LULC {window.describe()} over {roi.level}")
    try:
        result = await services.lulc.analyze(roi, window)
    except AnalysisError as e:
        if e.metadata is not None:
            e.metadata.update(_location_metadata(selector, roi))
        raise
    viewport = await services.viewport.estimate(roi.geometry)

    return LULCResponse(
        map_url=result.map_url,
        **_framing(viewport),
        metadata={
            "startDate": window.start_str,
            "endDate": window.end_str,
            **_location_metadata(selector, roi),
            "dataset": "ESRI Global Land Use Land Cover",
            "collectionSize": result.collection_size,
            "totalDays": window.total_days,
            "colors": lulc_colors(),
            "classMapping": lulc_class_mapping(),
        },
    )


@app.get("/flood", response_model=FloodResponse, tags=["Analysis"])
async def flood_endpoint(
    before_start: Optional[str] = Query(None, alias="beforeStart"),
    before_end: Optional[str] = Query(None, alias="beforeEnd"),
    after_start: Optional[str] = Query(None, alias="afterStart"),
    after_end: Optional[str] = Query(None, alias="afterEnd"),
    region: Optional[str] = None,
    province: Optional[str] = None,
    municipality: Optional[str] = None,
    polarization: Literal["VH", "VV"] = "VH",
    pass_direction: Literal["ASCENDING", "DESCENDING"] = Query("DESCENDING", alias="passDirection"),
    difference_threshold: float = Query(1.25, alias="differenceThreshold", gt=0),
    smoothing_radius: float = Query(50, alias="smoothingRadius", gt=0),
    slope_threshold: float = Query(5, alias="slopeThreshold", gt=0),
    connected_pixel_threshold: int = Query(8, alias="connectedPixelThreshold", ge=1),
    session: EarthEngineSession = Depends(get_session),
    services: AnalysisServices = Depends(get_services),
):
    """SAR change detection flood extent between a before and an after period."""
    default_before, default_after = config.DEFAULT_FLOOD_BEFORE, config.DEFAULT_FLOOD_AFTER
    before_window = validate_window(
        before_start or default_before[0], before_end or default_before[1], label="Before period")
    after_window = validate_window(
        after_start or default_after[0], after_end or default_after[1], label="After period")
    params = FloodParams(
        polarization=polarization,
        pass_direction=pass_direction,
        difference_threshold=difference_threshold,
        smoothing_radius_m=smoothing_radius,
        slope_threshold_deg=slope_threshold,
        connected_pixel_threshold=connected_pixel_threshold,
    )

    await session.ensure_initialized()
    selector = AdminSelector(region=region, province=province, municipality=municipality)
    roi = await services.resolver.resolve(selector)

    logger.info(f"🌊 Flood detection {before_window.describe()} vs {after_window.describe()} over {roi.level}")
    result = await services.flood.detect(roi, before_window, after_window, params)
    viewport = await services.viewport.estimate(roi.geometry)

    return FloodResponse(
        maps=FloodMaps(
            before=result.before_url,
            after=result.after_url,
            difference=result.difference_url,
            flooded=result.flooded_url,
        ),
        **_framing(viewport),
        statistics=FloodStatistics(
            flooded_area_ha=result.flooded_area_hectares,
            flooded_area_km2=result.flooded_area_km2,
        ),
        metadata={
            "analysis": {
                "beforePeriod": result.before_period,
                "afterPeriod": result.after_period,
                "beforeImages": result.before_images,
                "afterImages": result.after_images,
            },
            "location": _location_metadata(selector, roi),
            "parameters": {
                "polarization": params.polarization,
                "passDirection": params.pass_direction,
                "differenceThreshold": params.difference_threshold,
                "smoothingRadius": params.smoothing_radius_m,
                "slopeThreshold": params.slope_threshold_deg,
                "connectedPixelThreshold": params.connected_pixel_threshold,
            },
            "satellite": "Sentinel-1",
            "sensor": "C-band Synthetic Aperture Radar",
            "resolution": "10m",
            "methodology": "Change detection using SAR backscatter intensity",
            "interpretation": flood_interpretation(
                params.slope_threshold_deg, params.smoothing_radius_m, params.connected_pixel_threshold),
            "disclaimer": FLOOD_DISCLAIMER,
        },
    )


def _error_content(request: Request, error: str, status_code: int, **fields) -> dict:
    content = ErrorResponse(error=error, **fields)
    if status_code >= 500:
        content.timestamp = datetime.now(timezone.utc).isoformat()
        content.request_params = dict(request.query_params)
    return content.to_json()


@app.exception_handler(AnalysisError)
async def analysis_exception_handler(request: Request, exc: AnalysisError):
    """Translate domain errors into their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"❌ {exc.error_code}: {exc.message}")
    else:
        logger.info(f"{exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request, exc.message, exc.status_code,
            error_code=exc.error_code, metadata=exc.metadata
        )
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters are client errors."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content=_error_content(
            request, "Invalid request parameters", 400,
            detail=details, error_code="VALIDATION_ERROR"
        )
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request, str(exc.detail), exc.status_code,
            error_code=f"HTTP_{exc.status_code}"
        )
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """General exception handler for unexpected errors."""
    logger.exception(f"❌ Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content=_error_content(
            request, str(exc) or "Internal server error", 500,
            error_code="INTERNAL_ERROR"
        )
    )


if __name__ == "__main__":
    # For development only
    uvicorn.run(
        "eo_layers.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
