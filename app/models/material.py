from uuid import UUID
from datetime import datetime
from typing import Any, List, Optional
from pydantic import field_validator
from sqlmodel import SQLModel, Field

from app.models.characteristic import CharacteristicSummary
from app.models.file import FileRefRead
from app.models.tag import TagRead

# ==========================================
# Input Models
# ==========================================


class FileUpload(SQLModel):
    """Raw bytes of one uploaded file, as handed over by the edge layer."""
    filename: str
    content_type: str = "application/octet-stream"
    content: bytes


class CharacteristicValueInput(SQLModel):
    """
    One characteristic assignment on a material.

    `value` is the raw input and is normalized according to the
    characteristic's type. File characteristics ignore `value` and use
    `file_to_add` / `file_to_delete` instead.
    """
    characteristic_id: UUID
    value: Any = None
    file_to_add: List[FileUpload] = Field(
        default_factory=list,
        description="New files to upload for a file characteristic."
    )
    file_to_delete: List[UUID] = Field(
        default_factory=list,
        description="Ids of files currently attached that must be detached (updates only)."
    )


class MaterialBase(SQLModel):
    name: str = Field(min_length=2, max_length=128)
    description: str = Field(default="", max_length=255)
    tag_ids: List[UUID] = Field(default_factory=list)
    order: List[UUID] = Field(
        default_factory=list,
        description="Preferred display order of characteristic ids. Reconciled against `values`."
    )

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class MaterialCreate(MaterialBase):
    values: List[CharacteristicValueInput] = Field(default_factory=list)


class MaterialUpdate(MaterialBase):
    """
    Full replacement payload: every characteristic value not listed is
    removed from the material.
    """
    values: List[CharacteristicValueInput] = Field(default_factory=list)

# ==========================================
# Edge Payloads (multipart JSON part)
# ==========================================


class CharacteristicValuePayload(SQLModel):
    characteristic_id: UUID
    value: Any = None
    file_to_add: List[str] = Field(
        default_factory=list,
        description="Filenames of the multipart uploads belonging to this characteristic."
    )
    file_to_delete: List[UUID] = Field(default_factory=list)


class MaterialPayload(MaterialBase):
    values: List[CharacteristicValuePayload] = Field(default_factory=list)

# ==========================================
# Read Models
# ==========================================


class MaterialRead(SQLModel):
    id: UUID
    entity_id: UUID
    name: str
    description: str
    characteristic_order: List[UUID] = []
    tags: List[TagRead] = []
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class MaterialValueRead(SQLModel):
    """A value row with its definition, ready for rendering."""
    characteristic: CharacteristicSummary
    value: Any = None
    files: List[FileRefRead] = []
