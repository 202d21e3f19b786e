"""
API Routers for the Deforestation Maps Service
"""
from . import polygons, forest_layers, search, session

__all__ = ["polygons", "forest_layers", "search", "session"]
