"""
Forest layer model
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from database import Base, JSONType, utcnow

FOREST_TYPES = {
    "deforestation": "Deforestation Areas",
    "regrowth": "Regrowth Areas",
    "primary_forest": "Primary Forest",
    "disturbed_forest": "Disturbed Forest",
}


class ForestLayer(Base):
    """
    A GeoJSON overlay classified by forest type.
    """
    __tablename__ = "forest_layers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    # Types: deforestation, regrowth, primary_forest, disturbed_forest

    color: Mapped[str] = mapped_column(String(7), default="#3b82f6")
    geometry: Mapped[dict] = mapped_column(JSONType, nullable=False)
    properties: Mapped[Optional[dict]] = mapped_column(JSONType)
    area_km2: Mapped[Optional[float]] = mapped_column(Float)

    # Display
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    opacity: Mapped[float] = mapped_column(Float, default=0.70)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_forest_layers_user_type", user_id, type),
    )

    def __repr__(self) -> str:
        return f"<ForestLayer {self.name} ({self.type})>"
