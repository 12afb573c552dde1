from uuid import UUID
from sqlmodel import SQLModel


class FileRefRead(SQLModel):
    id: UUID
    name: str
    type: str
    path: str
