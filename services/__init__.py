"""
Services for polygon geometry, analytics and persistence
"""
from . import geometry, records, validation, statistics, polygon_store, gateway, geocoding, polygons, geojson

__all__ = [
    "geometry",
    "records",
    "validation",
    "statistics",
    "polygon_store",
    "gateway",
    "geocoding",
    "polygons",
    "geojson",
]
