"""
SQLAlchemy models for the deforestation maps database
"""
from .user import User
from .polygon import Polygon
from .forest_layer import ForestLayer, FOREST_TYPES
from .user_session import UserSession

__all__ = [
    "User",
    "Polygon",
    "ForestLayer",
    "FOREST_TYPES",
    "UserSession",
]
