import re
from uuid import UUID
from typing import Optional
from pydantic import field_validator
from sqlmodel import SQLModel, Field

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _check_hex_color(value):
    if value is not None and not HEX_COLOR.match(value):
        raise ValueError("Color must be a '#rrggbb' hex string")
    return value


class TagBase(SQLModel):
    name: str = Field(min_length=1, max_length=32, schema_extra={"examples": ["Red"]})
    color: str = Field(description="Background color. Example: '#ff0000'")
    font_color: str = Field(description="Text color. Example: '#ffffff'")

    @field_validator("color", "font_color")
    @classmethod
    def hex_colors(cls, value):
        return _check_hex_color(value)


class TagCreate(TagBase):
    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class TagUpdate(SQLModel):
    """Partial update; omitted fields keep their value."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=32)
    color: Optional[str] = None
    font_color: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("color", "font_color")
    @classmethod
    def hex_colors(cls, value):
        return _check_hex_color(value)


class TagRead(TagBase):
    id: UUID
    material_count: int = 0
