"""Tests for derived product state and route snapshots."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from routetrack.core.errors import ConflictInvariantViolation
from routetrack.schemas.station import StationResponse
from routetrack.services.product_state import compute_progress, due_at, effective_status, lifecycle_of
from routetrack.services.route_service import RouteSnapshot, RouteStop

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _station(name: str) -> StationResponse:
    return StationResponse(
        id=uuid.uuid4(), name=name, owner="Jane Doe", completion_rule="all_filled", estimated_duration_minutes=10
    )


class TestComputeProgress:
    @pytest.mark.parametrize(
        "closed,total,expected",
        [(0, 5, 0), (1, 5, 20), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
    )
    def test_rounds_half_up(self, closed, total, expected):
        assert compute_progress(closed, total) == expected

    def test_only_a_full_route_reaches_100(self):
        assert compute_progress(199, 200) == 99
        assert compute_progress(200, 200) == 100

    def test_empty_route(self):
        assert compute_progress(0, 0) == 0


class TestDueAt:
    def test_adds_estimate(self):
        assert due_at(NOW, 45) == NOW + timedelta(minutes=45)

    def test_zero_estimate_has_no_deadline(self):
        assert due_at(NOW, 0) is None


class TestEffectiveStatus:
    def test_override_wins(self):
        assert effective_status("normal", NOW - timedelta(hours=1), "derived", NOW) == "normal"
        assert effective_status("overdue", None, "manual", NOW) == "overdue"

    def test_derived_policy_uses_deadline(self):
        assert effective_status(None, NOW - timedelta(seconds=1), "derived", NOW) == "overdue"
        assert effective_status(None, NOW + timedelta(minutes=5), "derived", NOW) == "normal"
        assert effective_status(None, None, "derived", NOW) == "normal"

    def test_manual_policy_ignores_deadline(self):
        assert effective_status(None, NOW - timedelta(days=2), "manual", NOW) == "normal"


class TestLifecycle:
    def test_not_started(self, product_factory):
        assert lifecycle_of(product_factory.create()) == "not_started"

    def test_at_station(self, product_factory):
        assert lifecycle_of(product_factory.create(current_station_id=uuid.uuid4(), progress_percent=40)) == "at_station"

    def test_completed(self, product_factory):
        assert lifecycle_of(product_factory.create(progress_percent=100)) == "completed"

    def test_terminated_is_absorbing(self, product_factory):
        product = product_factory.create(terminated_at=NOW, progress_percent=100)
        assert lifecycle_of(product) == "terminated"


class TestRouteSnapshot:
    @pytest.fixture
    def snapshot(self):
        prep, qc, pack = _station("Prep"), _station("QC"), _station("Pack")
        stops = (
            RouteStop(1, prep),
            RouteStop(2, qc),
            RouteStop(3, qc),
            RouteStop(4, pack),
        )
        return RouteSnapshot(route_id=uuid.uuid4(), name="Custom", version=1, stops=stops)

    def test_repeated_stations_count_individually(self, snapshot):
        assert snapshot.total_stations == 4

    def test_station_at_bounds(self, snapshot):
        assert snapshot.station_at(0) is None
        assert snapshot.station_at(1).station.name == "Prep"
        assert snapshot.station_at(5) is None

    def test_next_after_follows_position_not_station(self, snapshot):
        qc_id = snapshot.station_at(2).station.id
        assert snapshot.next_after(qc_id, 2).sequence_order == 3
        assert snapshot.next_after(qc_id, 3).sequence_order == 4

    def test_next_after_last_is_none(self, snapshot):
        assert snapshot.next_after(snapshot.station_at(4).station.id, 4) is None

    def test_next_after_rejects_mismatched_position(self, snapshot):
        with pytest.raises(ConflictInvariantViolation) as exc_info:
            snapshot.next_after(snapshot.station_at(1).station.id, 2)
        assert exc_info.value.code == "route_position_mismatch"
