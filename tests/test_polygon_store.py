"""
Tests for the in-memory polygon repository.

Tests cover:
- CRUD with validation and no partial writes
- Cascade cleanup of id-keyed state on removal
- Operation history cap and ordering
- Bounds and date-range filtering
- Analysis caching
- Best-effort bulk operations
- Drawing/editing state machine and mode exclusivity
- Selection events
- Remote sync and export guards
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from errors import (
    ConflictError,
    DegenerateGeometryError,
    ModeConflictError,
    NotFoundError,
    OperationInProgressError,
    PolygonValidationError,
    RemoteUnavailableError,
    ValidationError,
)
from services.polygon_store import PolygonRepository
from services.records import DEFAULT_STYLE, STYLES_BY_SEVERITY, DrawingMode, HistoryOperation, Polygon

from conftest import make_polygon, square_ring

TWO_POINT_GEOMETRY = {"type": "Polygon", "coordinates": [[[0, 0], [1, 1]]]}


@pytest.fixture
def repo():
    return PolygonRepository()


class FakeGateway:
    """Stands in for the remote polygon API."""

    def __init__(self, polygons=None, collection=None, error=None):
        self.polygons = polygons or []
        self.collection = collection or {"type": "FeatureCollection", "features": []}
        self.error = error
        self.calls = []

    async def list_polygons(self, bounds=None, state=None):
        self.calls.append(("list", bounds, state))
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return self.polygons

    async def export_geojson(self):
        self.calls.append(("export",))
        if self.error:
            raise self.error
        return self.collection


# =============================================================================
# CRUD
# =============================================================================


class TestAdd:

    def test_assigns_id_and_timestamps(self, repo):
        added = repo.add(make_polygon(severity="high", area=4))

        assert added.id.startswith("polygon_")
        assert added.created_at is not None
        assert added.updated_at is not None
        assert repo.get(added.id) is added
        assert repo.stats.total_count == 1
        assert repo.stats.total_area == 4

    def test_generated_ids_are_unique(self, repo):
        ids = {repo.add(make_polygon()).id for _ in range(20)}
        assert len(ids) == 20

    def test_keeps_given_id_and_created_at(self, repo):
        added = repo.add({**make_polygon("p1"), "createdAt": "2024-01-01T00:00:00+00:00"})
        assert added.id == "p1"
        assert added.created_at == "2024-01-01T00:00:00+00:00"

    def test_does_not_mutate_input(self, repo):
        polygon = Polygon.model_validate(make_polygon())
        repo.add(polygon)
        assert polygon.id is None

    def test_invalid_polygon_is_rejected(self, repo):
        with pytest.raises(PolygonValidationError) as exc_info:
            repo.add(make_polygon("bad", severity="extreme"))

        assert exc_info.value.errors == ["Invalid severity level: extreme"]
        assert repo.polygons == []
        assert repo.validation_errors["bad"] == ["Invalid severity level: extreme"]
        assert repo.is_valid_polygon("bad") is False
        assert repo.operation_history == []

    def test_duplicate_id_is_rejected(self, repo):
        repo.add(make_polygon("p1"))
        with pytest.raises(ConflictError):
            repo.add(make_polygon("p1"))
        assert len(repo.polygons) == 1

    def test_malformed_input_raises_validation_error(self, repo):
        with pytest.raises(ValidationError):
            repo.add({"geometry": "not-a-geometry"})


class TestUpdate:

    def test_merges_fields_and_refreshes_updated_at(self, repo):
        original = repo.add(make_polygon("p1", severity="low"))
        repo.polygons[0].updated_at = "2000-01-01T00:00:00+00:00"

        updated = repo.update("p1", {"properties": {"severity": "critical", "area": 9}})

        assert updated.properties.severity == "critical"
        assert updated.updated_at != "2000-01-01T00:00:00+00:00"
        assert updated.created_at == original.created_at
        assert updated.geometry == original.geometry
        assert repo.stats.severity_distribution == {"critical": 1}

    def test_properties_are_replaced_not_deep_merged(self, repo):
        repo.add(make_polygon("p1", severity="low", cause="logging"))
        updated = repo.update("p1", {"properties": {"severity": "high"}})
        assert updated.properties.cause is None

    def test_accepts_python_field_names(self, repo):
        repo.add(make_polygon("p1"))
        updated = repo.update("p1", {"created_at": "2023-06-01T00:00:00+00:00"})
        assert updated.created_at == "2023-06-01T00:00:00+00:00"

    def test_rejected_update_leaves_record_intact(self, repo):
        repo.add(make_polygon("p1"))
        before = repo.get("p1").geometry

        with pytest.raises(PolygonValidationError):
            repo.update("p1", {"geometry": TWO_POINT_GEOMETRY})

        assert repo.get("p1").geometry == before
        assert len(repo.get("p1").ring) == 5
        assert repo.validation_errors["p1"]

    def test_successful_update_clears_validation_errors(self, repo):
        repo.add(make_polygon("p1"))
        with pytest.raises(PolygonValidationError):
            repo.update("p1", {"geometry": TWO_POINT_GEOMETRY})

        repo.update("p1", {"properties": {"severity": "medium"}})
        assert "p1" not in repo.validation_errors

    def test_unknown_id(self, repo):
        with pytest.raises(NotFoundError):
            repo.update("missing", {"properties": {}})


class TestRemove:

    def test_add_then_remove_restores_state(self, repo):
        repo.add(make_polygon("keep"))
        count = len(repo.polygons)

        repo.add(make_polygon("p1", severity="high"))
        repo.analyze("p1")
        repo.select("p1")
        repo.set_hovered("p1")
        with pytest.raises(PolygonValidationError):
            repo.update("p1", {"geometry": TWO_POINT_GEOMETRY})

        removed = repo.remove("p1")

        assert removed.id == "p1"
        assert len(repo.polygons) == count
        assert repo.selected_polygon_id is None
        assert repo.hovered_polygon_id is None
        assert "p1" not in repo.validation_errors
        assert "p1" not in repo.analysis_results
        assert repo.stats.total_count == count

    def test_remove_clears_edit_state(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_editing("p1")
        repo.remove("p1")
        assert repo.is_editing is False
        assert repo.editing_polygon_id is None

    def test_history_keeps_removed_record(self, repo):
        repo.add(make_polygon("p1", severity="low"))
        repo.remove("p1")

        entry = repo.last_operation
        assert entry.operation == HistoryOperation.REMOVE
        assert entry.polygon_ids == ["p1"]
        assert entry.data["id"] == "p1"
        assert entry.data["properties"]["severity"] == "low"

    def test_unknown_id(self, repo):
        with pytest.raises(NotFoundError):
            repo.remove("missing")


# =============================================================================
# History
# =============================================================================


class TestHistory:

    def test_history_is_capped_most_recent_first(self, repo):
        ids = [repo.add(make_polygon(f"p{i}")).id for i in range(55)]

        assert len(repo.operation_history) == 50
        assert repo.operation_history[0].polygon_ids == [ids[-1]]
        assert repo.operation_history[-1].polygon_ids == [ids[5]]
        assert repo.last_operation is repo.operation_history[0]

    def test_custom_limit(self):
        repo = PolygonRepository(history_limit=3)
        for i in range(5):
            repo.add(make_polygon(f"p{i}"))
        assert [e.polygon_ids[0] for e in repo.operation_history] == ["p4", "p3", "p2"]

    def test_zero_limit_keeps_no_history(self):
        repo = PolygonRepository(history_limit=0)
        repo.add(make_polygon("p1"))

        assert repo.history_limit == 0
        assert repo.operation_history == []
        assert repo.last_operation.polygon_ids == ["p1"]


# =============================================================================
# Queries
# =============================================================================


class TestQueries:

    def test_bounds_filter_uses_centroid(self, repo):
        for i, center in enumerate([(1, 1), (5, 5), (10, 10)]):
            repo.add(make_polygon(f"p{i}", center=center))

        found = repo.in_bounds({"north": 6, "south": 0, "east": 6, "west": 0})
        assert [p.id for p in found] == ["p0", "p1"]

    def test_bounds_are_inclusive(self, repo):
        repo.add(make_polygon("edge", center=(6, 6)))
        found = repo.in_bounds({"north": 6, "south": 0, "east": 6, "west": 0})
        assert [p.id for p in found] == ["edge"]

    def test_update_visible_polygons_caches_result(self, repo):
        repo.add(make_polygon("p0", center=(1, 1)))
        repo.add(make_polygon("p1", center=(10, 10)))

        visible = repo.update_visible_polygons({"north": 2, "south": 0, "east": 2, "west": 0})

        assert [p.id for p in visible] == ["p0"]
        assert repo.visible_polygons == visible
        assert repo.loaded_bounds.north == 2

        # not refreshed automatically
        repo.add(make_polygon("p2", center=(1.5, 1.5)))
        assert [p.id for p in repo.visible_polygons] == ["p0"]

    def test_visible_polygons_are_capped(self):
        repo = PolygonRepository(max_rendered=2)
        for i in range(4):
            repo.add(make_polygon(f"p{i}", center=(1, 1)))

        visible = repo.update_visible_polygons({"north": 2, "south": 0, "east": 2, "west": 0})

        assert [p.id for p in visible] == ["p0", "p1"]
        assert len(repo.in_bounds({"north": 2, "south": 0, "east": 2, "west": 0})) == 4

    def test_date_range_is_inclusive(self, repo):
        repo.add(make_polygon("jan", detectedDate="2024-01-01"))
        repo.add(make_polygon("feb", detectedDate="2024-02-15T12:00:00Z"))
        repo.add(make_polygon("mar", detectedDate="2024-03-31"))
        repo.add(make_polygon("undated"))

        found = repo.by_date_range("2024-01-01", "2024-02-15T12:00:00Z")
        assert [p.id for p in found] == ["jan", "feb"]

    def test_invalid_date_range(self, repo):
        with pytest.raises(ValidationError):
            repo.by_date_range("soon", "2024-01-01")

    def test_by_severity(self, repo):
        repo.add(make_polygon("a", severity="high"))
        repo.add(make_polygon("b", severity="low"))
        assert [p.id for p in repo.by_severity("high")] == ["a"]

    def test_stats_by_time_range(self, repo):
        recent = (datetime.now(timezone.utc) - timedelta(days=3)).isoformat()
        old = (datetime.now(timezone.utc) - timedelta(days=90)).isoformat()
        repo.add(make_polygon("recent", detectedDate=recent, severity="high", area=2))
        repo.add(make_polygon("old", detectedDate=old, area=5))
        repo.add(make_polygon("created-now", area=1))

        stats = repo.stats_by_time_range(30)
        assert stats["count"] == 2
        assert stats["totalArea"] == 3
        assert stats["severityBreakdown"] == {"high": 1, "unknown": 1}

    def test_style_for_severity(self, repo):
        high = repo.add(make_polygon("a", severity="high"))
        plain = repo.add(make_polygon("b"))
        assert repo.style_for(high) == STYLES_BY_SEVERITY["high"]
        assert repo.style_for(plain) == DEFAULT_STYLE


class TestAnalyze:

    def test_computes_and_caches_metrics(self, repo):
        repo.add(make_polygon("p1", center=(1, 1)))
        result = repo.analyze("p1")

        assert result.centroid == {"lat": 1.0, "lng": 1.0}
        assert result.bounding_box == {"minLng": 0.5, "maxLng": 1.5, "minLat": 0.5, "maxLat": 1.5}
        assert result.area > 0
        assert result.perimeter > 0
        assert 0 < result.compactness < 1
        assert repo.analysis_results["p1"] is result

    def test_not_refreshed_on_update(self, repo):
        repo.add(make_polygon("p1", center=(1, 1)))
        result = repo.analyze("p1")
        repo.update("p1", {"geometry": {"type": "Polygon", "coordinates": [square_ring(3, 3, 1)]}})
        assert repo.analysis_results["p1"] is result

    def test_unknown_id(self, repo):
        with pytest.raises(NotFoundError):
            repo.analyze("missing")

    def test_degenerate_polygon_propagates(self, repo):
        repo.add({"id": "dot", "geometry": {"type": "Polygon", "coordinates": [[[1, 1]] * 4]}})
        with pytest.raises(DegenerateGeometryError):
            repo.analyze("dot")
        assert "dot" not in repo.analysis_results


# =============================================================================
# Bulk operations
# =============================================================================


class TestBulkOperations:

    def test_bulk_update_is_best_effort(self, repo):
        repo.add(make_polygon("a"))
        repo.add(make_polygon("b"))

        updated = repo.bulk_update(["a", "missing", "b"], {"properties": {"severity": "critical"}})

        assert [p.id for p in updated] == ["a", "b"]
        assert set(repo.last_bulk_errors) == {"missing"}
        assert repo.stats.severity_distribution == {"critical": 2}
        assert repo.last_operation.operation == HistoryOperation.BULK_UPDATE
        assert repo.last_operation.polygon_ids == ["a", "missing", "b"]
        assert repo.operation_in_progress is False

    def test_bulk_update_skips_invalid_results(self, repo):
        repo.add(make_polygon("a"))
        updated = repo.bulk_update(["a"], {"properties": {"severity": "extreme"}})
        assert updated == []
        assert "a" in repo.last_bulk_errors
        assert repo.get("a").properties.severity is None

    def test_bulk_delete(self, repo):
        repo.add(make_polygon("a"))
        repo.add(make_polygon("b"))
        repo.add(make_polygon("c"))

        deleted = repo.bulk_delete(["a", "missing", "c"])

        assert [p.id for p in deleted] == ["a", "c"]
        assert [p.id for p in repo.polygons] == ["b"]
        entry = repo.last_operation
        assert entry.operation == HistoryOperation.BULK_DELETE
        assert [d["id"] for d in entry.data] == ["a", "c"]

    def test_bulk_operation_rejects_reentry(self, repo):
        repo.operation_in_progress = True
        with pytest.raises(OperationInProgressError):
            repo.bulk_delete(["a"])


# =============================================================================
# Drawing and editing
# =============================================================================


class TestDrawing:

    def test_start_drawing(self, repo):
        repo.set_temp_polygon(make_polygon())
        repo.start_drawing("rectangle")

        assert repo.is_drawing is True
        assert repo.drawing_mode == DrawingMode.RECTANGLE
        assert repo.temp_polygon is None
        assert repo.is_any_operation_active is True

    def test_invalid_mode(self, repo):
        with pytest.raises(ValidationError):
            repo.start_drawing("hexagon")
        assert repo.is_drawing is False

    def test_finish_drawing_adds_and_selects(self, repo):
        repo.start_drawing()
        added = repo.finish_drawing(make_polygon(severity="low"))

        assert repo.get(added.id) is added
        assert repo.is_drawing is False
        assert repo.selected_polygon_id == added.id

    def test_finish_drawing_without_polygon(self, repo):
        repo.start_drawing()
        assert repo.finish_drawing(None) is None
        assert repo.is_drawing is True

    def test_finish_drawing_failure_exits_drawing(self, repo):
        repo.start_drawing()
        with pytest.raises(PolygonValidationError):
            repo.finish_drawing({"geometry": TWO_POINT_GEOMETRY})

        assert repo.is_drawing is False
        assert repo.polygons == []
        assert repo.selected_polygon_id is None

    def test_cannot_draw_while_editing(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_editing("p1")
        with pytest.raises(ModeConflictError):
            repo.start_drawing()


class TestEditing:

    def test_start_editing_selects(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_editing("p1")

        assert repo.is_editing is True
        assert repo.editing_polygon_id == "p1"
        assert repo.selected_polygon.id == "p1"

    def test_start_editing_unknown_id(self, repo):
        with pytest.raises(NotFoundError):
            repo.start_editing("missing")
        assert repo.is_editing is False

    def test_cannot_edit_while_drawing(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_drawing()
        with pytest.raises(ModeConflictError):
            repo.start_editing("p1")

    def test_stop_editing_saves_geometry_only(self, repo):
        repo.add(make_polygon("p1", severity="high"))
        repo.start_editing("p1")
        new_ring = square_ring(4, 4, 1)
        repo.set_temp_polygon({"geometry": {"type": "Polygon", "coordinates": [new_ring]},
                               "properties": {"severity": "low"}})

        saved = repo.stop_editing(save=True)

        assert saved.ring == new_ring
        assert saved.properties.severity == "high"
        assert repo.is_editing is False
        assert repo.temp_polygon is None

    def test_stop_editing_without_save_discards(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_editing("p1")
        repo.set_temp_polygon({"geometry": {"type": "Polygon", "coordinates": [square_ring(4, 4)]}})

        assert repo.stop_editing() is None
        assert repo.get("p1").ring == square_ring(1, 1)

    def test_switching_target_discards_staged_geometry(self, repo):
        repo.add(make_polygon("a", center=(1, 1)))
        repo.add(make_polygon("b", center=(20, 20)))

        repo.start_editing("a")
        repo.set_temp_polygon({"geometry": {"type": "Polygon", "coordinates": [square_ring(5, 5)]}})
        repo.start_editing("b")

        assert repo.temp_polygon is None
        assert repo.stop_editing(save=True) is None
        assert repo.get("b").ring == square_ring(20, 20)
        assert repo.get("a").ring == square_ring(1, 1)

    def test_failed_save_still_exits_edit_mode(self, repo):
        repo.add(make_polygon("p1"))
        repo.start_editing("p1")
        repo.set_temp_polygon({"geometry": TWO_POINT_GEOMETRY})

        with pytest.raises(PolygonValidationError):
            repo.stop_editing(save=True)

        assert repo.is_editing is False
        assert repo.editing_polygon_id is None
        assert repo.get("p1").ring == square_ring(1, 1)


# =============================================================================
# Selection events
# =============================================================================


class TestSelectionEvents:

    def test_listeners_receive_selection_changes(self, repo):
        events = []
        repo.subscribe(events.append)
        repo.add(make_polygon("p1"))

        repo.select("p1")
        repo.clear_selection()

        assert [e.polygon_id for e in events] == ["p1", None]
        assert events[0].polygon.id == "p1"

    def test_removing_selected_polygon_emits_clear(self, repo):
        events = []
        repo.add(make_polygon("p1"))
        repo.select("p1")
        repo.subscribe(events.append)

        repo.remove("p1")

        assert [e.polygon_id for e in events] == [None]

    def test_unsubscribe(self, repo):
        events = []
        unsubscribe = repo.subscribe(events.append)
        unsubscribe()
        repo.select("p1")
        assert events == []

    def test_failing_listener_does_not_break_selection(self, repo):
        def broken(event):
            raise RuntimeError("map view gone")

        events = []
        repo.subscribe(broken)
        repo.subscribe(events.append)
        repo.select("p1")

        assert repo.selected_polygon_id == "p1"
        assert len(events) == 1


# =============================================================================
# Data management and remote sync
# =============================================================================


class TestDataManagement:

    def test_load_backfills_ids_without_validation(self, repo):
        loaded = repo.load([
            {"geometry": TWO_POINT_GEOMETRY, "properties": {"area": 2}},
            make_polygon("p1", area=3),
        ])

        assert len(loaded) == 2
        assert loaded[0].id.startswith("polygon_")
        assert loaded[1].id == "p1"
        assert repo.stats.total_area == 5

    def test_load_skips_malformed_records(self, repo):
        loaded = repo.load([
            make_polygon("good", area=2),
            {"id": "bad", "geometry": "not-a-geometry"},
            {"id": "typed", "geometry": TWO_POINT_GEOMETRY, "properties": {"severity": 3}},
        ])

        assert [p.id for p in loaded] == ["good"]
        assert repo.stats.total_count == 1

    def test_clear(self, repo):
        repo.add(make_polygon("p1"))
        repo.analyze("p1")
        repo.select("p1")

        repo.clear()

        assert repo.polygons == []
        assert repo.analysis_results == {}
        assert repo.operation_history == []
        assert repo.selected_polygon_id is None
        assert repo.stats.total_count == 0

    def test_clear_leaves_edit_mode(self, repo):
        repo.add(make_polygon("p1"))
        repo.update_visible_polygons({"north": 2, "south": 0, "east": 2, "west": 0})
        repo.start_editing("p1")
        repo.set_temp_polygon({"geometry": {"type": "Polygon", "coordinates": [square_ring(4, 4)]}})

        repo.clear()

        assert repo.is_editing is False
        assert repo.editing_polygon_id is None
        assert repo.temp_polygon is None
        assert repo.loaded_bounds is None
        assert repo.is_any_operation_active is False
        repo.start_drawing()
        assert repo.is_drawing is True

    def test_clear_leaves_drawing_mode(self, repo):
        repo.start_drawing("circle")
        repo.clear()
        assert repo.is_drawing is False


class TestRemoteSync:

    @pytest.mark.asyncio
    async def test_sync_replaces_collection(self, repo):
        repo.add(make_polygon("local"))
        gateway = FakeGateway(polygons=[Polygon.model_validate(make_polygon("remote", area=4))])

        polygons = await repo.sync(gateway, bounds={"north": 6, "south": 0, "east": 6, "west": 0}, state="Johor")

        assert [p.id for p in polygons] == ["remote"]
        assert repo.stats.total_area == 4
        assert repo.is_syncing is False
        _, bounds, state = gateway.calls[0]
        assert bounds.north == 6
        assert state == "Johor"

    @pytest.mark.asyncio
    async def test_sync_resets_flag_on_failure(self, repo):
        repo.add(make_polygon("local"))
        gateway = FakeGateway(error=RemoteUnavailableError("Polygon service unavailable"))

        with pytest.raises(RemoteUnavailableError):
            await repo.sync(gateway)

        assert repo.is_syncing is False
        assert [p.id for p in repo.polygons] == ["local"]

    @pytest.mark.asyncio
    async def test_concurrent_sync_is_rejected(self, repo):
        gateway = FakeGateway(polygons=[])

        first = asyncio.ensure_future(repo.sync(gateway))
        await asyncio.sleep(0)
        assert repo.is_syncing is True

        with pytest.raises(OperationInProgressError):
            await repo.sync(gateway)

        await first
        assert repo.is_syncing is False

    @pytest.mark.asyncio
    async def test_export(self, repo):
        collection = {"type": "FeatureCollection", "features": [{"type": "Feature"}]}
        gateway = FakeGateway(collection=collection)

        assert await repo.export(gateway) == collection
        assert repo.export_in_progress is False
