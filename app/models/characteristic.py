import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import field_validator
from sqlmodel import SQLModel, Field
from app.db.schema import CharacteristicType

# ==========================================
# Create Model
# ==========================================


class CharacteristicCreate(SQLModel):
    """
    Payload for defining a new Characteristic in the tenant's schema.

    NOTE: `type`, `options` and `units` cannot be changed after creation.
    Option based types (select, radio, multiSelect, checkbox) need at least
    two options; `units` is only accepted for number and float.
    """
    name: str = Field(
        min_length=2,
        max_length=64,
        schema_extra={"examples": ["Weight"]},
        description="Display name, unique within the tenant."
    )
    description: str = Field(
        default="",
        max_length=255,
        schema_extra={"examples": ["Net weight of one unit, packaging excluded."]},
        description="What the characteristic describes."
    )
    type: CharacteristicType = Field(
        description="The kind of value materials will hold for this characteristic."
    )
    options: Optional[List[str]] = Field(
        default=None,
        schema_extra={"examples": [["S", "M", "L"]]},
        description="Option labels, in display order. Required for option based types only."
    )
    units: Optional[str] = Field(
        default=None,
        max_length=32,
        schema_extra={"examples": ["kg"]},
        description="Measurement unit shown next to number and float values."
    )

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("units", mode="before")
    @classmethod
    def blank_units_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

# ==========================================
# Update Model
# ==========================================


class CharacteristicUpdate(SQLModel):
    """
    Payload for renaming or re-describing a Characteristic.
    A change fans out a new history snapshot to every live material using it.
    """
    name: str = Field(
        min_length=2,
        max_length=64,
        description="New display name."
    )
    description: str = Field(
        default="",
        max_length=255,
        description="New description."
    )

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

# ==========================================
# Read Models
# ==========================================


class CharacteristicSummary(SQLModel):
    """Definition fields needed to render a value."""
    id: uuid.UUID
    name: str
    type: CharacteristicType
    options: Optional[List[str]] = None
    units: Optional[str] = None


class CharacteristicRead(CharacteristicSummary):
    description: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    material_count: int = Field(
        default=0,
        description="Number of live materials using this characteristic. Deletion is blocked while above zero."
    )
