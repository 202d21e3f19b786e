"""
Request and response schemas for the REST API
"""
from . import common, polygon, forest_layer, session

__all__ = ["common", "polygon", "forest_layer", "session"]
