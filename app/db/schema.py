from typing import Optional, List, Any, Dict
from datetime import datetime
import uuid
from sqlmodel import SQLModel, Field, Relationship, JSON
from sqlalchemy import UniqueConstraint
from enum import Enum


class EntityStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class CharacteristicType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    LINK = "link"
    EMAIL = "email"
    NUMBER = "number"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATE_HOUR = "dateHour"
    DATE_RANGE = "dateRange"
    DATE_HOUR_RANGE = "dateHourRange"
    SELECT = "select"
    RADIO = "radio"
    MULTI_SELECT = "multiSelect"
    CHECKBOX = "checkbox"
    MULTI_TEXT = "multiText"
    MULTI_TEXT_AREA = "multiTextArea"
    FILE = "file"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class TimestampMixin(SQLModel):
    """
    A foundational mixin that provides standard audit timestamps for database records.
    Every entity inheriting from this mixin tracks when it was originally created
    and when it was last modified.
    """
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="The exact UTC timestamp when this record was first persisted in the database. Example: '2023-10-27 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
        description="The exact UTC timestamp when this record was last modified. Updates automatically. Example: '2023-10-28 09:15:00'"
    )


class Entity(TimestampMixin, SQLModel, table=True):
    """
    The tenant. Every characteristic, tag and material belongs to exactly one
    Entity, and every service call names the Entity it acts for.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the tenant."
    )
    name: str = Field(
        index=True,
        description="Display name of the tenant. Example: 'Acme Workshop'"
    )
    status: EntityStatus = Field(
        default=EntityStatus.ACTIVE,
        description="Disabled tenants are treated as missing by the services. Example: 'active'"
    )


class MaterialTagLink(SQLModel, table=True):
    """
    Many-to-many pivot between Materials and Tags.
    """
    material_id: uuid.UUID = Field(
        foreign_key="material.id",
        primary_key=True
    )
    tag_id: uuid.UUID = Field(
        foreign_key="tag.id",
        primary_key=True
    )


class Tag(TimestampMixin, SQLModel, table=True):
    """
    A colored label that can be attached to materials.
    Snapshots copy name and colors, so later edits never rewrite history.
    """
    __table_args__ = (UniqueConstraint("entity_id", "name"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    entity_id: uuid.UUID = Field(
        foreign_key="entity.id",
        index=True,
        description="The tenant owning this tag."
    )
    name: str = Field(
        description="Label text. Example: 'Red'"
    )
    color: str = Field(
        description="Background color as hex. Example: '#ff0000'"
    )
    font_color: str = Field(
        description="Text color as hex. Example: '#ffffff'"
    )

    materials: List["Material"] = Relationship(
        back_populates="tags", link_model=MaterialTagLink)


class Characteristic(TimestampMixin, SQLModel, table=True):
    """
    A tenant-defined typed attribute that can be assigned to any material.

    `type`, `options` and `units` are frozen once created; only `name` and
    `description` can be edited afterwards.
    """
    __table_args__ = (UniqueConstraint("entity_id", "name"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Unique identifier for the characteristic."
    )
    entity_id: uuid.UUID = Field(
        foreign_key="entity.id",
        index=True,
        description="The tenant owning this characteristic."
    )
    name: str = Field(
        index=True,
        description="Display name, unique per tenant. Example: 'Weight'"
    )
    description: str = Field(
        default="",
        description="Free text explaining what the characteristic measures."
    )
    type: CharacteristicType = Field(
        description="The value kind accepted for this characteristic. Example: 'number'"
    )
    options: Optional[List[str]] = Field(
        default=None,
        sa_type=JSON,
        description="Ordered option labels for select, radio, multiSelect and checkbox. Example: ['S', 'M', 'L']"
    )
    units: Optional[str] = Field(
        default=None,
        description="Measurement unit for number and float. Example: 'kg'"
    )

    values: List["MaterialCharacteristic"] = Relationship(
        back_populates="characteristic")


class Material(TimestampMixin, SQLModel, table=True):
    """
    The primary catalog entry.

    `characteristic_order` lists the characteristic ids attached to the
    material, in display order. It always matches the set of value rows.
    Deletion only sets `deleted_at` so history stays resolvable.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Unique identifier for the material."
    )
    entity_id: uuid.UUID = Field(
        foreign_key="entity.id",
        index=True,
        description="The tenant owning this material."
    )
    name: str = Field(
        index=True,
        description="Material name. Example: 'Oak plank 20mm'"
    )
    description: str = Field(
        default="",
        description="Free text notes about the material."
    )
    characteristic_order: List[str] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Characteristic ids (as strings) in display order."
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        index=True,
        description="Soft delete tombstone. Null while the material is live."
    )

    tags: List[Tag] = Relationship(
        back_populates="materials", link_model=MaterialTagLink)
    values: List["MaterialCharacteristic"] = Relationship(
        back_populates="material",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    history: List["MaterialHistory"] = Relationship(back_populates="material")


class FileRecord(SQLModel, table=True):
    """
    Metadata of a blob written by the blob store (the FileRef).
    `path` is the storage locator copied verbatim into history snapshots.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    name: str = Field(
        description="Original file name, whitespace replaced by dashes. Example: 'spec-sheet.pdf'"
    )
    type: str = Field(
        description="MIME type. Example: 'application/pdf'"
    )
    path: str = Field(
        description="Storage locator of the blob. Relative to the storage root. Example: 'materials/<id>/characteristics/<id>/1700000000000-ab12cd34-spec-sheet.pdf'"
    )
    size: int = Field(
        default=0,
        description="Stored size in bytes (after image downscaling)."
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MaterialCharacteristicFile(SQLModel, table=True):
    """
    Ordered link between a value row of a file characteristic and its files.
    """
    material_characteristic_id: uuid.UUID = Field(
        foreign_key="materialcharacteristic.id",
        primary_key=True
    )
    file_id: uuid.UUID = Field(
        foreign_key="filerecord.id",
        primary_key=True
    )
    position: int = Field(default=0)

    file: FileRecord = Relationship()
    material_characteristic: "MaterialCharacteristic" = Relationship(
        back_populates="file_links")


class MaterialCharacteristic(SQLModel, table=True):
    """
    The value of one characteristic on one material.

    `value` holds the normalized JSON variant. For `file` characteristics
    `value` stays null and the payload lives in `file_links`.
    """
    __table_args__ = (UniqueConstraint("material_id", "characteristic_id"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    material_id: uuid.UUID = Field(
        foreign_key="material.id",
        index=True
    )
    characteristic_id: uuid.UUID = Field(
        foreign_key="characteristic.id",
        index=True
    )
    value: Any = Field(
        default=None,
        nullable=True,
        sa_type=JSON,
        description="Normalized value. Example: 42, ['M'], {'date': '2024-01-31'}"
    )

    material: Material = Relationship(back_populates="values")
    characteristic: Characteristic = Relationship(back_populates="values")
    file_links: List[MaterialCharacteristicFile] = Relationship(
        back_populates="material_characteristic",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "MaterialCharacteristicFile.position",
        }
    )

    @property
    def files(self) -> List[FileRecord]:
        return [link.file for link in self.file_links]


class MaterialHistory(SQLModel, table=True):
    """
    An immutable, denormalized snapshot of a material.

    Characteristic names, types, units and file paths are copied in, so a
    snapshot renders without the live tables and survives later edits.
    Rows are only ever appended.
    """
    __table_args__ = (UniqueConstraint("material_id", "revision"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    material_id: uuid.UUID = Field(
        foreign_key="material.id",
        index=True
    )
    revision: int = Field(
        description="Per-material counter starting at 1. Breaks created_at ties."
    )
    name: str
    description: str = Field(default="")
    tags: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Frozen tags. Example: [{'name': 'Red', 'color': '#ff0000', 'fontColor': '#ffffff'}]"
    )
    characteristics: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Frozen values. Example: [{'name': 'Weight', 'type': 'number', 'units': 'kg', 'value': 42}]"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        index=True
    )

    material: Material = Relationship(back_populates="history")


class ActivityLog(SQLModel, table=True):
    """
    Append-only audit trail of administrative and catalog actions.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    entity_id: uuid.UUID = Field(
        foreign_key="entity.id",
        index=True
    )
    actor_user_id: Optional[uuid.UUID] = Field(
        default=None,
        description="The user who triggered the action, when known."
    )
    record_type: str = Field(
        description="Kind of record touched. Example: 'Characteristic'"
    )
    record_id: uuid.UUID
    action: AuditAction
    changes: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        index=True
    )
