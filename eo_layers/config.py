"""
Configuration module for the Earth observation layers API.
Handles environment variables and service account authentication.
"""

import os
import json
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from google.oauth2 import service_account

# Load environment variables from .env file
load_dotenv()

EARTH_ENGINE_SCOPES = ['https://www.googleapis.com/auth/earthengine']


class Config:
    """Configuration settings for the application."""

    # Google Earth Engine Service Account Configuration
    GEE_SERVICE_ACCOUNT_EMAIL: str = os.getenv("GEE_SERVICE_ACCOUNT_EMAIL", "")
    GEE_SERVICE_ACCOUNT_KEY_PATH: str = os.getenv(
        "GEE_SERVICE_ACCOUNT_KEY_PATH",
        "gee-sa.json"
    )

    # Alternatively, use service account key as JSON string (for deployment)
    GEE_SERVICE_ACCOUNT_KEY_JSON: Optional[str] = (
        os.getenv("GEE_SERVICE_ACCOUNT_KEY_JSON") or os.getenv("GOOGLE_SERVICE_KEY")
    )
    GEE_PROJECT: Optional[str] = os.getenv("GEE_PROJECT")

    # Application settings
    PROJECT_NAME: str = "EO Layers API"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = (
        "NDVI, land cover and SAR flood extent layers over administrative "
        "regions using Google Earth Engine"
    )
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Administrative boundaries (country -> region -> province -> municipality)
    COUNTRY_NAME: str = os.getenv("COUNTRY_NAME", "Philippines")
    COUNTRY_COLLECTION: str = "USDOS/LSIB_SIMPLE/2017"
    COUNTRY_NAME_FIELD: str = "country_na"
    ADMIN_COLLECTIONS: Dict[str, str] = {
        "region": os.getenv("ADMIN1_COLLECTION", "projects/decoded-academy-219803/assets/ph_admin1"),
        "province": os.getenv("ADMIN2_COLLECTION", "projects/decoded-academy-219803/assets/ph_admin2"),
        "municipality": os.getenv("ADMIN3_COLLECTION", "projects/decoded-academy-219803/assets/ph_admin3"),
    }
    ADMIN_CODE_FIELDS: Dict[str, str] = {
        "region": "ADM1_PCODE",
        "province": "ADM2_PCODE",
        "municipality": "ADM3_PCODE",
    }

    # Viewport used when the region extent cannot be computed
    DEFAULT_VIEWPORT: Dict[str, Any] = {
        "center": {"latitude": 12.8797, "longitude": 121.7740},
        "bounds": {"north": 21.0, "south": 4.5, "east": 127.0, "west": 116.0},
        "zoom": 6,
    }

    # Date windows used when a request omits them
    DEFAULT_NDVI_SPAN_DAYS: int = 2 * 365
    DEFAULT_LULC_START: str = "2023-01-01"
    DEFAULT_LULC_END: str = "2023-12-31"
    # Typhoon Ulysses (Vamco), November 2020
    DEFAULT_FLOOD_BEFORE = ("2020-10-01", "2020-11-01")
    DEFAULT_FLOOD_AFTER = ("2020-11-02", "2020-11-25")

    # Analysis constants
    MAX_RANGE_YEARS: int = 10
    NDVI_SCALE_FACTOR: float = 10000.0
    NDVI_STATS_SCALE_M: int = 250
    NDVI_COMPOSITE_DAYS: int = 16
    MAX_TIME_SERIES_MAPS: int = 15
    FLOOD_SCALE_M: int = 10


def get_gee_credentials():
    """
    Get Google Earth Engine credentials from service account.

    Returns:
        google.oauth2.service_account.Credentials: GEE credentials
    """
    if Config.GEE_SERVICE_ACCOUNT_KEY_JSON:
        # Use JSON string from environment variable (for deployment)
        try:
            key_data = json.loads(Config.GEE_SERVICE_ACCOUNT_KEY_JSON)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in GEE_SERVICE_ACCOUNT_KEY_JSON: {e}")
        return service_account.Credentials.from_service_account_info(
            key_data,
            scopes=EARTH_ENGINE_SCOPES
        )

    elif os.path.exists(Config.GEE_SERVICE_ACCOUNT_KEY_PATH):
        # Use JSON file path
        return service_account.Credentials.from_service_account_file(
            Config.GEE_SERVICE_ACCOUNT_KEY_PATH,
            scopes=EARTH_ENGINE_SCOPES
        )

    else:
        raise FileNotFoundError(
            f"Service account key file not found at: {Config.GEE_SERVICE_ACCOUNT_KEY_PATH}. "
            "Please ensure the file exists or set GEE_SERVICE_ACCOUNT_KEY_JSON environment variable."
        )


# Configuration instance
config = Config()
