"""Legend content for each map layer."""

from typing import Dict, List

from .gee_client import get_visualization_parameters

LULC_CLASS_NAMES = [
    ('water', 'Water'),
    ('trees', 'Trees'),
    ('floodedVegetation', 'Flooded Vegetation'),
    ('crops', 'Crops'),
    ('builtArea', 'Built Area'),
    ('bareGround', 'Bare Ground'),
    ('snowIce', 'Snow/Ice'),
    ('clouds', 'Clouds'),
    ('rangeland', 'Rangeland'),
]

NDVI_INTERPRETATION = {
    'Water/Snow/Ice': '< 0',
    'Bare soil/Rock': '0 - 0.1',
    'Sparse vegetation': '0.1 - 0.3',
    'Moderate vegetation': '0.3 - 0.5',
    'Dense vegetation': '0.5 - 0.8',
    'Very dense vegetation': '> 0.8',
}

FLOOD_DISCLAIMER = (
    'This product has been derived automatically without validation data. '
    'All geographic information has limitations due to the scale, resolution, date '
    'and interpretation of the original source materials. No liability concerning '
    'the content or the use thereof is assumed by the producer.'
)


def lulc_colors() -> Dict[str, str]:
    palette = get_visualization_parameters()['lulc']['palette']
    return {key: f"#{color}" for (key, _), color in zip(LULC_CLASS_NAMES, palette)}


def lulc_class_mapping() -> Dict[int, str]:
    return {index: name for index, (_, name) in enumerate(LULC_CLASS_NAMES, start=1)}


def ndvi_scale() -> Dict:
    return {
        'min': 0,
        'max': 8000,
        'realMin': -0.2,
        'realMax': 1.0,
        'description': 'Normalized Difference Vegetation Index',
    }


def flood_interpretation(slope_threshold, smoothing_radius, connected_pixels) -> Dict[str, str]:
    return {
        'Blue areas': 'Potentially flooded areas',
        'Excluded': f'Permanent water bodies, steep slopes (>{slope_threshold}°)',
        'Filtering': (f'Speckle filter ({smoothing_radius}m radius), '
                      f'connectivity filter (>{connected_pixels} pixels)'),
    }


def supported_layers() -> List[Dict]:
    """Layers served by the API with their legends."""
    vis = get_visualization_parameters()
    return [
        {
            "name": "ndvi",
            "description": "Normalized Difference Vegetation Index, 16-day composites",
            "data_source": "MODIS Terra MOD13Q1 (250m)",
            "endpoint": "/ndvi",
            "legend": {
                "palette": vis['ndvi']['palette'],
                "scale": ndvi_scale(),
                "interpretation": NDVI_INTERPRETATION,
            },
        },
        {
            "name": "lulc",
            "description": "Land use / land cover classification",
            "data_source": "ESRI Global LULC 10m Time Series",
            "endpoint": "/lulc",
            "legend": {
                "colors": lulc_colors(),
                "classMapping": lulc_class_mapping(),
            },
        },
        {
            "name": "flood",
            "description": "Flood extent from SAR backscatter change detection",
            "data_source": "Sentinel-1 GRD (10m)",
            "endpoint": "/flood",
            "legend": {
                "flooded": f"#{vis['flood']['palette'][0]}",
                "difference": vis['difference'],
                "disclaimer": FLOOD_DISCLAIMER,
            },
        },
    ]
