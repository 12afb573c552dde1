import uuid
from datetime import datetime
from typing import Any, List, Optional
from sqlmodel import SQLModel


class TagSnapshot(SQLModel):
    """Tag as frozen in a snapshot. Key names are part of the stored contract."""
    name: str
    color: str
    fontColor: str


class CharacteristicSnapshot(SQLModel):
    """
    Characteristic value as frozen in a snapshot.
    File values are stored as {"file": [{"type", "name", "path"}]}.
    """
    name: str
    type: str
    units: Optional[str] = None
    value: Any = None


class MaterialHistoryRead(SQLModel):
    id: uuid.UUID
    material_id: uuid.UUID
    revision: int
    name: str
    description: str
    tags: List[TagSnapshot] = []
    characteristics: List[CharacteristicSnapshot] = []
    created_at: datetime
