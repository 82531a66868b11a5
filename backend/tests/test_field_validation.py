"""Tests for station submission validation."""

import uuid

import pytest

from routetrack.schemas.field import FieldDefinitionResponse, FieldValidationRules
from routetrack.schemas.station import StationResponse
from routetrack.services.field_validation import (
    apply_defaults,
    check_types,
    is_boolean_like,
    is_empty,
    validate_submission,
    validate_value,
)


def _field(name: str, type_: str, required: bool = False, **extra) -> FieldDefinitionResponse:
    return FieldDefinitionResponse(
        id=uuid.uuid4(), station_id=uuid.uuid4(), name=name, type=type_, required=required, **extra
    )


def _station(rule: str, fields: list[FieldDefinitionResponse]) -> StationResponse:
    return StationResponse(
        id=uuid.uuid4(),
        name="Assembly",
        owner="Jane Doe",
        completion_rule=rule,
        estimated_duration_minutes=60,
        fields=fields,
    )


class TestValidateValue:
    @pytest.mark.parametrize("value", [3, 2.5, "7", " 1e3 "])
    def test_number_accepts_numeric(self, value):
        assert validate_value(_field("Qty", "number"), value) == []

    @pytest.mark.parametrize("value", [True, "abc", "nan", [1], 10**400, "1e400"])
    def test_number_rejects_non_numeric(self, value):
        errors = validate_value(_field("Qty", "number"), value)
        assert [e.reason for e in errors] == ["invalid_number"]

    def test_text_requires_string(self):
        errors = validate_value(_field("Batch", "text"), 42)
        assert errors[0].reason == "invalid_type"
        assert errors[0].field_name == "Batch"

    def test_date_accepts_iso_date_and_datetime(self):
        field = _field("Shipped", "date")
        assert validate_value(field, "2024-03-01") == []
        assert validate_value(field, "2024-03-01T10:15:00") == []
        assert validate_value(field, "01/03/2024")[0].reason == "invalid_date"

    def test_select_must_be_an_option(self):
        field = _field("Material", "select", options=["Steel", "Aluminum"])
        assert validate_value(field, "Steel") == []
        assert validate_value(field, "Wood")[0].reason == "invalid_option"

    @pytest.mark.parametrize("value", [True, False, 0, 1, "yes", "OFF", "true"])
    def test_checkbox_accepts_boolean_like(self, value):
        assert validate_value(_field("Checked", "checkbox"), value) == []

    def test_checkbox_rejects_other_values(self):
        assert validate_value(_field("Checked", "checkbox"), "maybe")[0].reason == "invalid_boolean"
        assert not is_boolean_like(2)

    def test_number_rules(self):
        field = _field("Torque", "number", validation_rules=FieldValidationRules(min=1, max=10))
        assert validate_value(field, 5) == []
        assert validate_value(field, 0)[0].reason == "below_minimum"
        assert validate_value(field, 11)[0].reason == "above_maximum"

    def test_text_rules(self):
        field = _field(
            "Serial",
            "text",
            validation_rules=FieldValidationRules(min_length=3, max_length=6, pattern=r"[A-Z]+-\d+"),
        )
        assert validate_value(field, "AB-12") == []
        assert validate_value(field, "A1")[0].reason in {"too_short", "pattern_mismatch"}
        assert "too_long" in {e.reason for e in validate_value(field, "ABCDE-123")}
        assert validate_value(field, "ab-12")[0].reason == "pattern_mismatch"


class TestIsEmpty:
    def test_none_and_blank_are_empty(self):
        assert is_empty(None)
        assert is_empty("   ")

    def test_falsy_values_are_filled(self):
        assert not is_empty(0)
        assert not is_empty(False)


class TestValidateSubmission:
    def test_all_filled_passes_when_required_present(self):
        qty = _field("Qty", "number", required=True)
        batch = _field("Batch", "text", required=True)
        result = validate_submission(_station("all_filled", [qty, batch]), {str(qty.id): 5, str(batch.id): "B1"})
        assert result.valid
        assert result.errors == []

    def test_all_filled_names_missing_required_field(self):
        qty = _field("Qty", "number", required=True)
        batch = _field("Batch", "text", required=True)
        result = validate_submission(_station("all_filled", [qty, batch]), {str(qty.id): 5})
        assert not result.valid
        assert [(e.field_id, e.reason) for e in result.errors] == [(str(batch.id), "required")]

    def test_blank_string_does_not_satisfy_required(self):
        batch = _field("Batch", "text", required=True)
        result = validate_submission(_station("all_filled", [batch]), {str(batch.id): "  "})
        assert result.errors[0].reason == "required"

    def test_all_filled_reports_type_errors_on_optional_fields(self):
        notes = _field("Weight", "number")
        result = validate_submission(_station("all_filled", [notes]), {str(notes.id): "heavy"})
        assert not result.valid

    def test_oversized_integer_is_an_error_not_a_crash(self):
        qty = _field("Qty", "number", required=True, validation_rules=FieldValidationRules(max=100))
        result = validate_submission(_station("all_filled", [qty]), {str(qty.id): 10**400})
        assert not result.valid
        assert [e.reason for e in result.errors] == ["invalid_number"]

    def test_custom_never_gates_on_required(self):
        inspector = _field("Inspector", "text", required=True)
        result = validate_submission(_station("custom", [inspector]), {})
        assert result.valid

    def test_custom_still_type_checks(self):
        passed = _field("Passed", "checkbox")
        result = validate_submission(_station("custom", [passed]), {str(passed.id): "perhaps"})
        assert result.errors[0].reason == "invalid_boolean"

    def test_unknown_field_is_reported(self):
        station = _station("all_filled", [])
        stray = str(uuid.uuid4())
        errors = check_types(station, {stray: "x"})
        assert errors[0].reason == "unknown_field"
        assert errors[0].field_id == stray


class TestApplyDefaults:
    def test_fills_missing_and_blank_values(self):
        material = _field("Material", "select", options=["Steel", "Aluminum"], default_value="Steel")
        station = _station("all_filled", [material])
        assert apply_defaults(station, {}) == {str(material.id): "Steel"}
        assert apply_defaults(station, {str(material.id): ""}) == {str(material.id): "Steel"}

    def test_keeps_submitted_values(self):
        material = _field("Material", "select", options=["Steel", "Aluminum"], default_value="Steel")
        captured = {str(material.id): "Aluminum"}
        merged = apply_defaults(_station("all_filled", [material]), captured)
        assert merged == captured
        assert merged is not captured
