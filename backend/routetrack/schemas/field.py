"""Field definition Pydantic schemas."""

import uuid
from typing import Literal

from pydantic import BaseModel, Field, model_validator

FieldType = Literal["text", "number", "date", "select", "checkbox", "textarea"]


class FieldValidationRules(BaseModel):
    """Optional per-field constraints beyond the type check."""

    min: float | None = None
    max: float | None = None
    min_length: int | None = Field(None, ge=0)
    max_length: int | None = Field(None, ge=1)
    pattern: str | None = Field(None, max_length=255)

    model_config = {"extra": "forbid"}


class FieldDefinitionCreate(BaseModel):
    """Schema for declaring a field on a station."""

    name: str = Field(..., min_length=1, max_length=100)
    type: FieldType
    required: bool = False
    options: list[str] | None = None
    default_value: str | None = Field(None, max_length=255)
    validation_rules: FieldValidationRules | None = None

    @model_validator(mode="after")
    def _options_match_type(self) -> "FieldDefinitionCreate":
        if self.type == "select":
            if not self.options:
                raise ValueError("select fields need at least one option")
            if self.default_value is not None and self.default_value not in self.options:
                raise ValueError("default_value must be one of the options")
        elif self.options:
            raise ValueError("options are only allowed on select fields")
        return self


class FieldDefinitionResponse(BaseModel):
    """A field as seen by the engine and by API clients."""

    id: uuid.UUID
    station_id: uuid.UUID
    name: str
    type: FieldType
    required: bool
    options: list[str] | None = None
    default_value: str | None = None
    validation_rules: FieldValidationRules | None = None
    position: int = 0

    @classmethod
    def from_model(cls, field) -> "FieldDefinitionResponse":
        return cls(
            id=field.id,
            station_id=field.station_id,
            name=field.name,
            type=field.field_type,
            required=field.required,
            options=field.options,
            default_value=field.default_value,
            validation_rules=field.validation_rules,
            position=field.position,
        )
