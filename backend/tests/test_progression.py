"""Tests for the progression engine against a SQLite store."""

import asyncio
import uuid
from datetime import timedelta

import pytest

from routetrack.core.database import utcnow
from routetrack.core.errors import ConflictInvariantViolation, NotFoundError, ValidationFailedError
from routetrack.schemas.field import FieldDefinitionCreate
from routetrack.schemas.product import ProductCreate
from routetrack.schemas.station import StationCreate, StationUpdate
from routetrack.services.progression import ProgressionEngine, normalize_field_keys
from routetrack.services.route_service import RouteService
from routetrack.services.station_service import StationService


async def _new_product(engine, floor, actor, name="Widget A-100"):
    return await engine.create_product(ProductCreate(name=name, model="WA100", route_id=floor.route.id), actor)


def _open_entries(history):
    return [e for e in history if e.is_open]


class TestCreateProduct:
    @pytest.mark.asyncio
    async def test_starts_at_first_station(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        assert product.lifecycle == "at_station"
        assert product.current_station_id == floor.station_a.id
        assert product.current_sequence == 1
        assert product.total_stations == 2
        assert product.progress_percent == 0
        assert product.status == "normal"
        assert product.created_by == actor.id
        assert product.current_due_at is not None

        history = await engine.history(product.id)
        assert len(history) == 1
        assert history[0].status == "pending"
        assert history[0].station_name == "Material Preparation"
        assert history[0].owner == "John Smith"

    @pytest.mark.asyncio
    async def test_without_auto_start_is_not_started(self, session_factory, floor, actor):
        engine = ProgressionEngine(session_factory, auto_start=False, bulk_max_concurrency=1)
        product = await _new_product(engine, floor, actor)

        assert product.lifecycle == "not_started"
        assert product.current_station_id is None
        assert product.estimated_completion is not None
        assert await engine.history(product.id) == []

    @pytest.mark.asyncio
    async def test_unknown_route(self, engine, actor):
        with pytest.raises(NotFoundError):
            await engine.create_product(ProductCreate(name="X", model="X1", route_id=uuid.uuid4()), actor)

    @pytest.mark.asyncio
    async def test_inactive_route_rejected(self, engine, session_factory, floor, actor):
        async with session_factory() as session:
            async with session.begin():
                await RouteService(session).deactivate_route(floor.route.id)

        with pytest.raises(ValidationFailedError):
            await _new_product(engine, floor, actor)

    @pytest.mark.asyncio
    async def test_detail_reads_state_and_history_together(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)
        await engine.advance(product.id, floor.valid_a(), actor=actor)

        detail = await engine.detail(product.id)
        assert detail.progress_percent == 50
        assert detail.current_station_id == floor.station_b.id
        assert [(e.sequence_order, e.status) for e in detail.history] == [(1, "completed"), (2, "pending")]

        with pytest.raises(NotFoundError):
            await engine.detail(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_product(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.get_state(uuid.uuid4())
        assert exc_info.value.status_code == 404


class TestAllFilledThenCustomScenario:
    """Route A (all_filled, two required fields) -> B (custom)."""

    @pytest.mark.asyncio
    async def test_walks_the_route(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        # Missing required field: rejected, nothing changes
        result = await engine.advance(product.id, {floor.quantity: 10}, actor=actor)
        assert not result.ok
        assert [(e.field_id, e.reason) for e in result.errors] == [(floor.batch, "required")]
        assert result.product.current_station_id == floor.station_a.id
        assert result.product.progress_percent == 0
        history = await engine.history(product.id)
        assert len(history) == 1
        assert history[0].status == "pending"
        assert history[0].captured_field_data == {}

        # Complete A
        result = await engine.advance(product.id, floor.valid_a(), "first pass", actor=actor)
        assert result.ok
        assert result.closed_entry.status == "completed"
        assert result.closed_entry.notes == "first pass"
        assert result.closed_entry.end_time is not None
        assert result.closed_entry.captured_field_data[floor.quantity] == 10
        assert result.closed_entry.captured_field_data[floor.batch] == "B-42"
        # default of the optional select is recorded on close
        assert "Steel" in result.closed_entry.captured_field_data.values()
        assert result.opened_entry.station_id == floor.station_b.id
        assert result.opened_entry.sequence_order == 2
        assert result.product.progress_percent == 50
        assert result.product.current_station_id == floor.station_b.id
        # B has no estimate, so it can never run late
        assert result.product.current_due_at is None

        # B needs an explicit mark-complete
        result = await engine.advance(product.id, {floor.inspector: "QC-7"}, actor=actor)
        assert not result.ok
        assert result.errors[0].reason == "completion_requires_confirmation"
        assert result.errors[0].field_id is None
        assert result.product.current_station_id == floor.station_b.id

        # Type errors still block a forced completion
        result = await engine.advance(product.id, {floor.passed: "perhaps"}, force_complete=True, actor=actor)
        assert not result.ok
        assert result.errors[0].reason == "invalid_boolean"

        # Required-ness is not enforced on custom stations
        result = await engine.advance(product.id, {floor.passed: True}, force_complete=True, actor=actor)
        assert result.ok
        assert result.opened_entry is None
        assert result.product.current_station_id is None
        assert result.product.progress_percent == 100
        assert result.product.lifecycle == "completed"
        assert result.product.estimated_completion is None

        history = await engine.history(product.id)
        assert [e.status for e in history] == ["completed", "completed"]
        assert _open_entries(history) == []

    @pytest.mark.asyncio
    async def test_advancing_a_completed_product_fails(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)
        await engine.advance(product.id, floor.valid_a(), actor=actor)
        await engine.advance(product.id, force_complete=True, actor=actor)

        with pytest.raises(ConflictInvariantViolation) as exc_info:
            await engine.advance(product.id, force_complete=True, actor=actor)
        assert exc_info.value.code == "no_open_station"
        assert len(await engine.history(product.id)) == 2

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)
        data = {**floor.valid_a(), floor.inspector: "QC-7"}

        result = await engine.advance(product.id, data, actor=actor)
        assert not result.ok
        assert result.errors[0].reason == "unknown_field"

    @pytest.mark.asyncio
    async def test_oversized_number_is_rejected(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        result = await engine.advance(product.id, {floor.quantity: 10**400, floor.batch: "B-42"}, actor=actor)
        assert not result.ok
        assert [(e.field_id, e.reason) for e in result.errors] == [(floor.quantity, "invalid_number")]
        assert result.product.current_station_id == floor.station_a.id
        assert len(await engine.history(product.id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_advances_close_one_visit(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        results = await asyncio.gather(
            engine.advance(product.id, floor.valid_a(), actor=actor),
            engine.advance(product.id, floor.valid_a(), actor=actor),
        )

        assert sum(r.ok for r in results) == 1
        loser = next(r for r in results if not r.ok)
        # the second caller is judged against station B
        assert "completion_requires_confirmation" in {e.reason for e in loser.errors}
        assert loser.product.current_station_id == floor.station_b.id
        history = await engine.history(product.id)
        assert [(e.sequence_order, e.status) for e in history] == [(1, "completed"), (2, "pending")]
        assert len(_open_entries(history)) == 1


class TestSkip:
    @pytest.mark.asyncio
    async def test_skip_always_transitions(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        result = await engine.skip(product.id, "material shortage", actor)
        assert result.ok
        assert result.closed_entry.status == "skipped"
        assert result.closed_entry.notes == "material shortage"
        assert result.product.current_station_id == floor.station_b.id
        assert result.product.progress_percent == 50

        result = await engine.skip(product.id, actor=actor)
        assert result.ok
        assert result.product.lifecycle == "completed"
        assert result.product.progress_percent == 100

    @pytest.mark.asyncio
    async def test_skip_does_not_record_submitted_data(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        result = await engine.advance(product.id, {floor.quantity: "not a number"}, outcome="skipped", actor=actor)
        assert result.ok
        assert result.closed_entry.captured_field_data == {}


class TestLedgerInvariants:
    @pytest.mark.asyncio
    async def test_single_open_entry_and_monotone_progress(self, engine, make_station, make_route, actor):
        stations = [
            await make_station(StationCreate(name=f"Step {index}", owner="Line Lead", estimated_duration_minutes=5))
            for index in range(3)
        ]
        route = await make_route("Rework", [stations[0].id, stations[1].id, stations[1].id, stations[2].id])

        product = await engine.create_product(ProductCreate(name="Loop", model="L1", route_id=route.id), actor)
        progress = [product.progress_percent]
        sequences = [product.current_sequence]
        for step in range(4):
            result = (
                await engine.skip(product.id, actor=actor)
                if step % 2
                else await engine.advance(product.id, actor=actor)
            )
            assert result.ok
            progress.append(result.product.progress_percent)
            sequences.append(result.product.current_sequence)
            assert len(_open_entries(await engine.history(product.id))) <= 1

        assert progress == sorted(progress)
        assert progress == [0, 25, 50, 75, 100]
        # the repeated station is visited twice, in position order
        assert sequences == [1, 2, 3, 4, None]
        assert result.product.current_station_id is None

        history = await engine.history(product.id)
        assert [e.sequence_order for e in history] == [1, 2, 3, 4]
        assert history[1].station_id == history[2].station_id

    @pytest.mark.asyncio
    async def test_captured_data_survives_station_rename(self, engine, session_factory, floor, actor):
        product = await _new_product(engine, floor, actor)
        await engine.advance(product.id, floor.valid_a(), actor=actor)

        async with session_factory() as session:
            async with session.begin():
                await StationService(session).update_station(
                    floor.station_a.id, StationUpdate(name="Kitting", owner="New Owner")
                )

        entry = (await engine.history(product.id))[0]
        assert entry.station_name == "Material Preparation"
        assert entry.owner == "John Smith"
        assert entry.captured_field_data[floor.quantity] == 10
        assert entry.captured_field_data[floor.batch] == "B-42"

    @pytest.mark.asyncio
    async def test_referenced_field_is_immutable(self, engine, session_factory, floor, actor):
        product = await _new_product(engine, floor, actor)
        await engine.advance(product.id, floor.valid_a(), actor=actor)

        async with session_factory() as session:
            service = StationService(session)
            with pytest.raises(ConflictInvariantViolation) as exc_info:
                await service.update_field(
                    floor.station_a.id,
                    uuid.UUID(floor.quantity),
                    FieldDefinitionCreate(name="Qty", type="text"),
                )
            assert exc_info.value.code == "field_referenced"
            with pytest.raises(ConflictInvariantViolation):
                await service.remove_field(floor.station_a.id, uuid.UUID(floor.quantity))


class TestSaveFieldData:
    @pytest.mark.asyncio
    async def test_draft_then_advance(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        entry = await engine.save_field_data(product.id, {floor.quantity: 7}, "half way", actor)
        assert entry.status == "in_progress"
        assert entry.captured_field_data == {floor.quantity: 7}
        assert entry.notes == "half way"

        # the earlier draft counts towards completeness
        result = await engine.advance(product.id, {floor.batch: "B-9"}, actor=actor)
        assert result.ok
        assert result.closed_entry.captured_field_data[floor.quantity] == 7

    @pytest.mark.asyncio
    async def test_draft_type_errors_rejected(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        with pytest.raises(ValidationFailedError) as exc_info:
            await engine.save_field_data(product.id, {floor.quantity: "lots"}, actor=actor)
        assert exc_info.value.errors[0].reason == "invalid_number"
        assert (await engine.history(product.id))[0].status == "pending"

    @pytest.mark.asyncio
    async def test_keys_are_normalized(self, engine, floor, actor):
        product = await _new_product(engine, floor, actor)

        entry = await engine.save_field_data(product.id, {floor.quantity.upper(): 3}, actor=actor)
        assert entry.captured_field_data == {floor.quantity: 3}

    def test_normalize_field_keys_passes_through_garbage(self):
        field_id = uuid.uuid4()
        assert normalize_field_keys({str(field_id).upper(): 1, "qty": 2}) == {str(field_id): 1, "qty": 2}
        assert normalize_field_keys(None) == {}


class TestLazyStart:
    @pytest.mark.asyncio
    async def test_first_advance_opens_and_closes_position_one(self, session_factory, floor, actor):
        engine = ProgressionEngine(session_factory, auto_start=False, bulk_max_concurrency=1)
        product = await _new_product(engine, floor, actor)

        result = await engine.advance(product.id, floor.valid_a(), actor=actor)
        assert result.ok
        assert result.closed_entry.sequence_order == 1
        assert result.product.current_sequence == 2
        assert result.product.progress_percent == 50

    @pytest.mark.asyncio
    async def test_rejected_first_advance_leaves_product_not_started(self, session_factory, floor, actor):
        engine = ProgressionEngine(session_factory, auto_start=False, bulk_max_concurrency=1)
        product = await _new_product(engine, floor, actor)

        result = await engine.advance(product.id, {}, actor=actor)
        assert not result.ok
        assert result.product.lifecycle == "not_started"
        assert await engine.history(product.id) == []


class TestTerminate:
    @pytest.mark.asyncio
    async def test_terminate_closes_open_visit(self, engine, floor, manager):
        product = await _new_product(engine, floor, manager)

        terminated = await engine.terminate(product.id, "scrapped", manager)
        assert terminated.lifecycle == "terminated"
        assert terminated.current_station_id is None
        assert terminated.terminated_at is not None
        assert terminated.progress_percent == 50

        history = await engine.history(product.id)
        assert [(e.status, e.notes) for e in history] == [("skipped", "scrapped")]

    @pytest.mark.asyncio
    async def test_terminated_is_absorbing(self, engine, floor, manager):
        product = await _new_product(engine, floor, manager)
        await engine.terminate(product.id, actor=manager)

        with pytest.raises(ConflictInvariantViolation) as exc_info:
            await engine.advance(product.id, floor.valid_a(), actor=manager)
        assert exc_info.value.code == "no_open_station"
        with pytest.raises(ConflictInvariantViolation):
            await engine.terminate(product.id, actor=manager)
        assert len(await engine.history(product.id)) == 1

    @pytest.mark.asyncio
    async def test_completed_product_cannot_be_terminated(self, engine, floor, manager):
        product = await _new_product(engine, floor, manager)
        await engine.skip(product.id, actor=manager)
        await engine.skip(product.id, actor=manager)

        with pytest.raises(ConflictInvariantViolation) as exc_info:
            await engine.terminate(product.id, actor=manager)
        assert exc_info.value.code == "completed"


class TestOverdue:
    @pytest.mark.asyncio
    async def test_derived_policy_flags_late_visit(self, session_factory, floor, actor):
        later = ProgressionEngine(session_factory, clock=lambda: utcnow() + timedelta(hours=2))
        product = await _new_product(later, floor, actor)

        assert (await later.get_state(product.id)).status == "overdue"

    @pytest.mark.asyncio
    async def test_manual_policy_never_derives_overdue(self, session_factory, floor, actor):
        later = ProgressionEngine(
            session_factory, overdue_policy="manual", clock=lambda: utcnow() + timedelta(hours=2)
        )
        product = await _new_product(later, floor, actor)

        assert (await later.get_state(product.id)).status == "normal"

    @pytest.mark.asyncio
    async def test_station_without_estimate_never_overdue(self, session_factory, engine, floor, actor):
        product = await _new_product(engine, floor, actor)
        await engine.advance(product.id, floor.valid_a(), actor=actor)

        later = ProgressionEngine(session_factory, clock=lambda: utcnow() + timedelta(days=30))
        assert (await later.get_state(product.id)).status == "normal"


class TestBulkAdvance:
    @pytest.mark.asyncio
    async def test_partial_success(self, engine, floor, actor):
        products = [await _new_product(engine, floor, actor, name=f"P{i}") for i in range(3)]
        # one product already past station A is rejected at B
        await engine.advance(products[2].id, floor.valid_a(), actor=actor)

        outcome = await engine.bulk_advance(
            [str(p.id) for p in products] + ["not-a-uuid"], floor.valid_a(), actor=actor
        )
        assert outcome.updated_count == 2
        assert outcome.failed_count == 2
        kinds = sorted(e.kind for e in outcome.errors)
        assert kinds == ["validation_failed", "validation_failed"]
        rejected = next(e for e in outcome.errors if e.product_id == str(products[2].id))
        assert rejected.errors[0]["reason"] == "unknown_field"

        for product in products[:2]:
            assert (await engine.get_state(product.id)).current_sequence == 2
