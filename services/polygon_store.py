"""
Polygon Store - in-memory polygon repository for a map session

Owns the polygon collection of the active session together with the
selection, drawing and editing state, the operation history and derived
analysis and statistics. Instances are created explicitly and handed to
their consumers; map views observe selection through ``subscribe``.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

import pydantic
import structlog
from pydantic import BaseModel

from config import get_settings
from errors import (
    ConflictError,
    DegenerateGeometryError,
    ModeConflictError,
    NotFoundError,
    OperationInProgressError,
    PolygonValidationError,
    ServiceError,
    ValidationError,
)
from services import geometry, statistics
from services.records import (
    DEFAULT_STYLE,
    STYLES_BY_SEVERITY,
    AnalysisResult,
    Bounds,
    DrawingMode,
    HistoryEntry,
    HistoryOperation,
    Polygon,
    PolygonStatsSnapshot,
    PolygonStyle,
    parse_area,
    parse_instant,
    utc_now_iso,
)
from services.validation import ValidationResult, validate_polygon

logger = structlog.get_logger()

PolygonInput = Union[Polygon, Mapping[str, Any]]
BoundsInput = Union[Bounds, Mapping[str, float]]

_FIELD_ALIASES = {name: (info.alias or name) for name, info in Polygon.model_fields.items()}


class SelectionChanged(BaseModel):
    """Emitted whenever the selected polygon changes"""
    polygon_id: Optional[str] = None
    polygon: Optional[Polygon] = None


SelectionListener = Callable[[SelectionChanged], None]


def generate_polygon_id() -> str:
    return f"polygon_{uuid4().hex}"


class PolygonRepository:
    """In-memory polygon collection with drawing/editing state and history"""

    def __init__(
        self,
        history_limit: Optional[int] = None,
        validator: Callable[[PolygonInput], ValidationResult] = validate_polygon,
        max_rendered: Optional[int] = None,
    ):
        settings = get_settings()
        self.history_limit = history_limit if history_limit is not None else settings.history_limit
        self.max_rendered = max_rendered if max_rendered is not None else settings.max_polygons_to_render
        self._validate = validator

        # Polygon management
        self.polygons: List[Polygon] = []
        self.selected_polygon_id: Optional[str] = None
        self.hovered_polygon_id: Optional[str] = None

        # Drawing and editing
        self.is_drawing = False
        self.is_editing = False
        self.drawing_mode = DrawingMode.POLYGON
        self.editing_polygon_id: Optional[str] = None
        self.temp_polygon: Optional[Polygon] = None

        # Operations
        self.operation_in_progress = False
        self.is_syncing = False
        self.export_in_progress = False
        self.last_operation: Optional[HistoryEntry] = None
        self.operation_history: List[HistoryEntry] = []
        self.last_bulk_errors: Dict[str, str] = {}

        # Validation and analysis
        self.validation_errors: Dict[str, List[str]] = {}
        self.analysis_results: Dict[str, AnalysisResult] = {}

        # Rendering
        self.visible_polygons: List[Polygon] = []
        self.loaded_bounds: Optional[Bounds] = None

        self.stats = PolygonStatsSnapshot()
        self._selection_listeners: List[SelectionListener] = []

    # ===========================================
    # Lookups
    # ===========================================

    def get(self, polygon_id: str) -> Optional[Polygon]:
        for polygon in self.polygons:
            if polygon.id == polygon_id:
                return polygon
        return None

    def _index_of(self, polygon_id: str) -> int:
        for index, polygon in enumerate(self.polygons):
            if polygon.id == polygon_id:
                return index
        raise NotFoundError("Polygon", polygon_id)

    @property
    def selected_polygon(self) -> Optional[Polygon]:
        return self.get(self.selected_polygon_id) if self.selected_polygon_id else None

    @property
    def hovered_polygon(self) -> Optional[Polygon]:
        return self.get(self.hovered_polygon_id) if self.hovered_polygon_id else None

    @property
    def is_any_operation_active(self) -> bool:
        return self.is_drawing or self.is_editing or self.operation_in_progress

    def is_valid_polygon(self, polygon_id: str) -> bool:
        return not self.validation_errors.get(polygon_id)

    def style_for(self, polygon: Polygon) -> PolygonStyle:
        severity = polygon.properties.severity if polygon.properties else None
        return STYLES_BY_SEVERITY.get(getattr(severity, "value", severity), DEFAULT_STYLE)

    # ===========================================
    # CRUD
    # ===========================================

    def add(self, polygon: PolygonInput) -> Polygon:
        """
        Validate and append a polygon.

        Assigns an id and timestamps when missing. On validation failure the
        errors are recorded under the polygon id, PolygonValidationError is
        raised and the collection is left untouched.
        """
        record = _coerce(polygon)
        if not record.id:
            record.id = generate_polygon_id()
        elif self.get(record.id) is not None:
            raise ConflictError(f"Polygon with ID {record.id} already exists")

        now = utc_now_iso()
        record.created_at = record.created_at or now
        record.updated_at = now

        self._check(record)

        self.polygons.append(record)
        self._refresh_stats()
        self._add_to_history(HistoryOperation.ADD, record.id)

        logger.info("Polygon added", polygon_id=record.id)
        return record

    def update(self, polygon_id: str, fields: Mapping[str, Any]) -> Polygon:
        """
        Shallow-merge ``fields`` onto a polygon and re-validate the result.

        Nested mappings such as ``properties`` replace the stored value
        wholesale. The stored record is unchanged when validation fails.
        """
        index = self._index_of(polygon_id)

        merged = self.polygons[index].model_dump(by_alias=True)
        merged.update({_FIELD_ALIASES.get(key, key): value for key, value in fields.items()})
        merged["id"] = polygon_id
        merged["updatedAt"] = utc_now_iso()

        updated = _coerce(merged)
        self._check(updated)

        self.polygons[index] = updated
        self._refresh_stats()
        self.validation_errors.pop(polygon_id, None)
        self._add_to_history(HistoryOperation.UPDATE, polygon_id)

        logger.info("Polygon updated", polygon_id=polygon_id)
        return updated

    def remove(self, polygon_id: str) -> Polygon:
        """Remove a polygon and every piece of state keyed by its id"""
        index = self._index_of(polygon_id)
        removed = self.polygons.pop(index)

        if self.selected_polygon_id == polygon_id:
            self.clear_selection()
        if self.hovered_polygon_id == polygon_id:
            self.hovered_polygon_id = None
        if self.editing_polygon_id == polygon_id:
            self.editing_polygon_id = None
            self.is_editing = False
            self.temp_polygon = None

        self.validation_errors.pop(polygon_id, None)
        self.analysis_results.pop(polygon_id, None)

        self._refresh_stats()
        self._add_to_history(HistoryOperation.REMOVE, polygon_id, removed.to_dict())

        logger.info("Polygon removed", polygon_id=polygon_id)
        return removed

    def _check(self, record: Polygon) -> None:
        result = self._validate(record)
        if not result.is_valid:
            self.validation_errors[record.id] = result.errors
            logger.warning("Polygon validation failed", polygon_id=record.id, errors=result.errors)
            raise PolygonValidationError(record.id, result.errors)

    # ===========================================
    # Bulk operations
    # ===========================================

    def bulk_update(self, polygon_ids: Iterable[str], fields: Mapping[str, Any]) -> List[Polygon]:
        """
        Apply the same update to several polygons.

        Each id is processed independently; failures are logged, collected in
        ``last_bulk_errors`` and left out of the returned list.
        """
        polygon_ids = list(polygon_ids)
        self._begin_bulk_operation()

        try:
            updated = []
            for polygon_id in polygon_ids:
                try:
                    updated.append(self.update(polygon_id, fields))
                except ServiceError as e:
                    self.last_bulk_errors[polygon_id] = str(e)
                    logger.error("Error updating polygon", polygon_id=polygon_id, error=str(e))

            self._add_to_history(HistoryOperation.BULK_UPDATE, polygon_ids)
            return updated
        finally:
            self.operation_in_progress = False

    def bulk_delete(self, polygon_ids: Iterable[str]) -> List[Polygon]:
        """Remove several polygons; same failure policy as bulk_update"""
        polygon_ids = list(polygon_ids)
        self._begin_bulk_operation()

        try:
            deleted = []
            for polygon_id in polygon_ids:
                try:
                    deleted.append(self.remove(polygon_id))
                except ServiceError as e:
                    self.last_bulk_errors[polygon_id] = str(e)
                    logger.error("Error deleting polygon", polygon_id=polygon_id, error=str(e))

            self._add_to_history(
                HistoryOperation.BULK_DELETE,
                polygon_ids,
                [polygon.to_dict() for polygon in deleted],
            )
            return deleted
        finally:
            self.operation_in_progress = False

    def _begin_bulk_operation(self) -> None:
        if self.operation_in_progress:
            raise OperationInProgressError("A bulk operation is already in progress")
        self.operation_in_progress = True
        self.last_bulk_errors = {}

    # ===========================================
    # Selection
    # ===========================================

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """
        Register a selection listener.

        Returns a function that removes the listener again.
        """
        self._selection_listeners.append(listener)

        def unsubscribe():
            if listener in self._selection_listeners:
                self._selection_listeners.remove(listener)

        return unsubscribe

    def select(self, polygon_id: str) -> None:
        self.selected_polygon_id = polygon_id
        self._notify_selection()

    def clear_selection(self) -> None:
        self.selected_polygon_id = None
        self._notify_selection()

    def set_hovered(self, polygon_id: str) -> None:
        self.hovered_polygon_id = polygon_id

    def clear_hover(self) -> None:
        self.hovered_polygon_id = None

    def _notify_selection(self) -> None:
        event = SelectionChanged(polygon_id=self.selected_polygon_id, polygon=self.selected_polygon)
        for listener in list(self._selection_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Selection listener error", error=str(e))

    # ===========================================
    # Drawing
    # ===========================================

    def start_drawing(self, mode: Union[DrawingMode, str] = DrawingMode.POLYGON) -> None:
        if self.is_editing:
            raise ModeConflictError("Cannot start drawing while a polygon is being edited")
        try:
            drawing_mode = DrawingMode(mode)
        except ValueError:
            raise ValidationError([f"Invalid drawing mode: {mode}"])

        self.is_drawing = True
        self.drawing_mode = drawing_mode
        self.temp_polygon = None

    def stop_drawing(self) -> None:
        self.is_drawing = False
        self.temp_polygon = None

    def set_temp_polygon(self, polygon: Optional[PolygonInput]) -> None:
        self.temp_polygon = _coerce(polygon) if polygon is not None else None

    def finish_drawing(self, final_polygon: Optional[PolygonInput]) -> Optional[Polygon]:
        """
        Add the drawn polygon and select it.

        Drawing mode is exited whether or not the polygon was accepted;
        a rejected polygon re-raises its validation error.
        """
        if final_polygon is None:
            return None

        try:
            added = self.add(final_polygon)
        except ServiceError as e:
            logger.error("Error finishing polygon drawing", error=str(e))
            raise
        finally:
            self.stop_drawing()

        self.select(added.id)
        return added

    # ===========================================
    # Editing
    # ===========================================

    def start_editing(self, polygon_id: str) -> None:
        if self.get(polygon_id) is None:
            raise NotFoundError("Polygon", polygon_id)
        if self.is_drawing:
            raise ModeConflictError("Cannot edit a polygon while drawing")

        self.is_editing = True
        self.editing_polygon_id = polygon_id
        self.temp_polygon = None
        self.select(polygon_id)

    def stop_editing(self, save: bool = False) -> Optional[Polygon]:
        """
        Leave edit mode, optionally saving the staged geometry.

        Only the geometry is written. Edit mode is cleared even when the
        save is rejected.
        """
        try:
            if (
                save
                and self.editing_polygon_id
                and self.temp_polygon is not None
                and self.temp_polygon.geometry is not None
            ):
                return self.update(self.editing_polygon_id, {"geometry": self.temp_polygon.geometry})
            return None
        except ServiceError as e:
            logger.error("Error saving edited polygon", polygon_id=self.editing_polygon_id, error=str(e))
            raise
        finally:
            self.is_editing = False
            self.editing_polygon_id = None
            self.temp_polygon = None

    # ===========================================
    # Queries
    # ===========================================

    def by_severity(self, severity: str) -> List[Polygon]:
        severity = getattr(severity, "value", severity)
        return [
            p for p in self.polygons
            if p.properties and getattr(p.properties.severity, "value", p.properties.severity) == severity
        ]

    def in_bounds(self, bounds: BoundsInput) -> List[Polygon]:
        """Polygons whose vertex-average centroid lies inside ``bounds`` (edges included)"""
        bounds = _coerce_bounds(bounds)
        matches = []
        for polygon in self.polygons:
            ring = polygon.ring
            if not ring:
                continue
            try:
                center = geometry.centroid(ring)
            except DegenerateGeometryError:
                continue
            if bounds.contains(center["lat"], center["lng"]):
                matches.append(polygon)
        return matches

    def by_date_range(self, start: Any, end: Any) -> List[Polygon]:
        """Polygons detected within [start, end]; undated polygons never match"""
        start_at, end_at = parse_instant(start), parse_instant(end)
        if start_at is None or end_at is None:
            raise ValidationError(["Invalid date range"])

        matches = []
        for polygon in self.polygons:
            detected = parse_instant(polygon.properties.detected_date) if polygon.properties else None
            if detected is not None and start_at <= detected <= end_at:
                matches.append(polygon)
        return matches

    def stats_by_time_range(self, days: int = 30) -> Dict[str, Any]:
        """Count, area and severity breakdown of polygons from the last ``days`` days"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        recent = []
        for polygon in self.polygons:
            props = polygon.properties
            when = parse_instant((props.detected_date if props else None) or polygon.created_at)
            if when is not None and when >= cutoff:
                recent.append(polygon)

        breakdown: Dict[str, int] = {}
        for polygon in recent:
            severity = (polygon.properties.severity if polygon.properties else None) or "unknown"
            breakdown[severity] = breakdown.get(severity, 0) + 1

        return {
            "count": len(recent),
            "totalArea": sum((parse_area(p.properties.area) if p.properties else None) or 0.0 for p in recent),
            "severityBreakdown": breakdown,
        }

    def analyze(self, polygon_id: str) -> AnalysisResult:
        """
        Compute and cache geometric metrics for a polygon.

        Results are not refreshed when the polygon changes; call again after
        edits. Degenerate geometry raises DegenerateGeometryError.
        """
        polygon = self.get(polygon_id)
        if polygon is None:
            raise NotFoundError("Polygon", polygon_id)

        ring = polygon.ring
        if not ring:
            raise DegenerateGeometryError(f"Polygon {polygon_id} has no coordinates")

        try:
            area_ha = geometry.area(ring)
            perimeter_m = geometry.perimeter(ring)
            analysis = AnalysisResult(
                area=area_ha,
                perimeter=perimeter_m,
                centroid=geometry.centroid(ring),
                bounding_box=geometry.bounding_box(ring),
                compactness=geometry.compactness(area_ha * 10_000, perimeter_m),
                analyzed_at=utc_now_iso(),
            )
        except DegenerateGeometryError as e:
            logger.error("Error analyzing polygon", polygon_id=polygon_id, error=str(e))
            raise

        self.analysis_results[polygon_id] = analysis
        return analysis

    def update_visible_polygons(self, bounds: BoundsInput) -> List[Polygon]:
        """Cache the polygons inside ``bounds`` for rendering, at most ``max_rendered`` of them"""
        bounds = _coerce_bounds(bounds)
        visible = self.in_bounds(bounds)
        if len(visible) > self.max_rendered:
            logger.warning("Visible polygons truncated", count=len(visible), limit=self.max_rendered)
            visible = visible[:self.max_rendered]

        self.visible_polygons = visible
        self.loaded_bounds = bounds
        return self.visible_polygons

    # ===========================================
    # Data management
    # ===========================================

    def load(self, polygons: Iterable[PolygonInput]) -> List[Polygon]:
        """
        Replace the collection without semantic validation, backfilling missing ids.

        Records that cannot be read as polygons at all are skipped and logged.
        """
        loaded = []
        skipped = 0
        for polygon in polygons:
            try:
                record = _coerce(polygon)
            except ValidationError as e:
                skipped += 1
                logger.warning("Skipping malformed polygon", errors=e.errors)
                continue
            record.id = record.id or generate_polygon_id()
            loaded.append(record)

        self.polygons = loaded
        self._refresh_stats()
        logger.info("Polygons loaded", count=len(loaded), skipped=skipped)
        return self.polygons

    def clear(self) -> None:
        """Drop every polygon and all state that refers to one"""
        self.polygons = []
        self.selected_polygon_id = None
        self.hovered_polygon_id = None

        self.is_drawing = False
        self.is_editing = False
        self.editing_polygon_id = None
        self.temp_polygon = None

        self.validation_errors = {}
        self.analysis_results = {}
        self.operation_history = []
        self.last_operation = None
        self.visible_polygons = []
        self.loaded_bounds = None
        self._refresh_stats()
        self._notify_selection()

    async def sync(self, gateway, bounds: Optional[BoundsInput] = None, state: Optional[str] = None) -> List[Polygon]:
        """Replace the collection with the polygons stored remotely"""
        if self.is_syncing:
            raise OperationInProgressError("Polygon sync already in progress")

        self.is_syncing = True
        try:
            remote = await gateway.list_polygons(
                bounds=_coerce_bounds(bounds) if bounds is not None else None,
                state=state,
            )
            return self.load(remote)
        finally:
            self.is_syncing = False

    async def export(self, gateway) -> Dict[str, Any]:
        """Fetch the owner's polygons as a GeoJSON FeatureCollection"""
        if self.export_in_progress:
            raise OperationInProgressError("Export already in progress")

        self.export_in_progress = True
        try:
            return await gateway.export_geojson()
        finally:
            self.export_in_progress = False

    # ===========================================
    # History and statistics
    # ===========================================

    def _add_to_history(self, operation: HistoryOperation, polygon_ids, data: Any = None) -> None:
        ids = list(polygon_ids) if isinstance(polygon_ids, (list, tuple)) else [polygon_ids]
        entry = HistoryEntry(operation=operation, polygon_ids=ids, data=data, timestamp=utc_now_iso())

        self.operation_history.insert(0, entry)
        del self.operation_history[self.history_limit:]
        self.last_operation = entry

    def _refresh_stats(self) -> None:
        self.stats = statistics.recompute(self.polygons)


def _coerce(polygon: PolygonInput) -> Polygon:
    """Copy input into a Polygon record, reporting malformed input as ValidationError"""
    if isinstance(polygon, Polygon):
        return polygon.model_copy(deep=True)
    try:
        return Polygon.model_validate(polygon)
    except pydantic.ValidationError as e:
        messages = [
            f"{'.'.join(str(part) for part in error['loc']) or 'polygon'}: {error['msg']}"
            for error in e.errors()
        ]
        raise ValidationError(messages, message="Malformed polygon")


def _coerce_bounds(bounds: BoundsInput) -> Bounds:
    return bounds if isinstance(bounds, Bounds) else Bounds.model_validate(bounds)
