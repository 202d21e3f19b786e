"""
Smallholder polygon model
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from database import Base, JSONType, utcnow


class Polygon(Base):
    """
    A certified smallholder land parcel.
    Geometry is stored as GeoJSON; latitude/longitude hold a representative
    point used for bounds queries.
    """
    __tablename__ = "polygons"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Ownership
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )

    # Identity
    object_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    license_no: Mapped[str] = mapped_column(String(255), nullable=False)
    smallholder_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Administrative region
    state: Mapped[str] = mapped_column(String(255), nullable=False)
    district: Mapped[str] = mapped_column(String(255), nullable=False)
    subdistrict: Mapped[Optional[str]] = mapped_column(String(255))
    spoc_name: Mapped[Optional[str]] = mapped_column(String(255))
    spoc_code: Mapped[Optional[str]] = mapped_column(String(255))
    lot_no: Mapped[Optional[str]] = mapped_column(String(255))

    # Certification
    certified_area_ha: Mapped[float] = mapped_column(Float, nullable=False)
    planted_area_ha: Mapped[float] = mapped_column(Float, nullable=False)
    mspo_certification: Mapped[Optional[str]] = mapped_column(String(255))
    land_title: Mapped[Optional[str]] = mapped_column(String(255))

    # Representative point
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)

    # Geometry - GeoJSON Polygon
    geometry: Mapped[dict] = mapped_column(JSONType, nullable=False)
    centroid: Mapped[list] = mapped_column(JSONType, nullable=False)  # [lat, lng]
    area_km2: Mapped[float] = mapped_column(Float, nullable=False)

    # Audit
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
        Index("idx_polygons_user_state", user_id, state),
        Index("idx_polygons_lat_lng", latitude, longitude),
    )

    def __repr__(self) -> str:
        return f"<Polygon {self.object_id} ({self.smallholder_name})>"
