import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks
from loguru import logger
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from app.core.exceptions import ConsistencyError, NotFoundError
from app.core.locks import material_lock
from app.core.tasks import run_after_commit
from app.db.schema import (
    Characteristic, Material, MaterialCharacteristic,
    MaterialCharacteristicFile, MaterialHistory
)
from app.models.material_history import MaterialHistoryRead
from app.services.characteristic_value import is_file_type, snapshot_files


class SnapshotState(str, Enum):
    NOT_STARTED = "not_started"
    BUILDING = "building"
    COMMITTED = "committed"
    FAILED = "failed"


class SnapshotJob:
    """
    One snapshot build for one material.

    The job is the observable handle of a build that may run after the
    triggering request: `state` ends in COMMITTED (with `snapshot_id`) or
    FAILED (with `error`). There is no retry.
    """

    def __init__(self, material_id: uuid.UUID, bind: Engine):
        self.material_id = material_id
        self.bind = bind
        self.state = SnapshotState.NOT_STARTED
        self.snapshot_id: Optional[uuid.UUID] = None
        self.error: Optional[Exception] = None

    def __repr__(self) -> str:
        return f"<SnapshotJob material={self.material_id} state={self.state.value}>"

    @property
    def succeeded(self) -> bool:
        return self.state == SnapshotState.COMMITTED

    def run(self, session: Optional[Session] = None) -> "SnapshotJob":
        """
        Builds and commits the snapshot.
        Opens its own session unless one is given.
        """
        if session is not None:
            return self._run(session)

        with Session(self.bind) as own_session:
            return self._run(own_session)

    def _run(self, session: Session) -> "SnapshotJob":
        self.state = SnapshotState.BUILDING
        try:
            with material_lock(self.material_id):
                snapshot = MaterialHistoryService(session).build_snapshot(self.material_id)
            self.snapshot_id = snapshot.id
            self.state = SnapshotState.COMMITTED

        except Exception as e:
            session.rollback()
            self.error = e
            self.state = SnapshotState.FAILED
            logger.error(f"Snapshot build failed for material {self.material_id}: {e}")

        return self


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def to_history_read(history: MaterialHistory) -> MaterialHistoryRead:
    return MaterialHistoryRead(
        id=history.id,
        material_id=history.material_id,
        revision=history.revision,
        name=history.name,
        description=history.description,
        tags=history.tags,
        characteristics=history.characteristics,
        created_at=history.created_at,
    )


class MaterialHistoryService:
    """
    Builds immutable material snapshots and serves the history read path.

    Every job this instance starts is kept in `jobs`, so callers can observe
    builds that were handed to background tasks.
    """

    def __init__(self, session: Session):
        self.session = session
        self.jobs: List[SnapshotJob] = []

    # ==========================================================================
    # SCHEDULING
    # ==========================================================================

    def snapshot_now(self, material_id: uuid.UUID) -> SnapshotJob:
        """
        Builds a snapshot synchronously on this service's session.
        Call only after the material changes are committed.
        """
        job = SnapshotJob(material_id, self.session.get_bind())
        self.jobs.append(job)
        return job.run(self.session)

    def enqueue(
        self,
        material_id: uuid.UUID,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> SnapshotJob:
        """
        Schedules a snapshot build in its own session, after the response when
        background tasks are available, immediately otherwise.
        """
        job = SnapshotJob(material_id, self.session.get_bind())
        self.jobs.append(job)
        run_after_commit(background_tasks, job.run)
        return job

    def enqueue_many(
        self,
        material_ids: List[uuid.UUID],
        background_tasks: Optional[BackgroundTasks] = None
    ) -> List[SnapshotJob]:
        return [self.enqueue(material_id, background_tasks) for material_id in material_ids]

    # ==========================================================================
    # BUILD
    # ==========================================================================

    def _load_material(self, material_id: uuid.UUID) -> Material:
        material = self.session.exec(
            select(Material)
            .where(Material.id == material_id)
            .options(
                selectinload(Material.tags),
                selectinload(Material.values)
                .selectinload(MaterialCharacteristic.file_links)
                .selectinload(MaterialCharacteristicFile.file),
            )
            .execution_options(populate_existing=True)
        ).first()

        if not material:
            raise NotFoundError("Material", material_id)
        return material

    def _build_characteristics(self, material: Material) -> List[Dict[str, Any]]:
        order: List[uuid.UUID] = []
        for raw_id in material.characteristic_order:
            try:
                order.append(uuid.UUID(str(raw_id)))
            except ValueError:
                raise ConsistencyError(
                    f"Material {material.id} has a malformed characteristic id in its order: {raw_id!r}")

        definitions = {
            c.id: c for c in self.session.exec(
                select(Characteristic).where(
                    Characteristic.id.in_(order),
                    Characteristic.entity_id == material.entity_id
                )
            ).all()
        } if order else {}
        rows = {row.characteristic_id: row for row in material.values}

        frozen = []
        for characteristic_id in order:
            characteristic = definitions.get(characteristic_id)
            if characteristic is None:
                raise ConsistencyError(
                    f"Characteristic {characteristic_id} in the order of material {material.id} does not exist.",
                    {"material_id": str(material.id), "characteristic_id": str(characteristic_id)}
                )

            row = rows.get(characteristic_id)
            if row is None:
                raise ConsistencyError(
                    f"Material {material.id} has no value row for characteristic {characteristic_id}.",
                    {"material_id": str(material.id), "characteristic_id": str(characteristic_id)}
                )

            if is_file_type(characteristic.type):
                value = snapshot_files(row.files)
            else:
                value = row.value

            frozen.append({
                "name": characteristic.name,
                "type": characteristic.type.value,
                "units": characteristic.units or None,
                "value": value,
            })

        return frozen

    def build_snapshot(self, material_id: uuid.UUID) -> MaterialHistory:
        """
        Freezes the committed state of a material into a new history row.

        The characteristic order decides both which values are included and
        in which order. Tags are frozen as name/color/fontColor triples.

        Raises:
            NotFoundError: the material does not exist.
            ConsistencyError: the order references a missing definition or
                value row. Nothing is written in that case.
        """
        material = self._load_material(material_id)

        try:
            characteristics = self._build_characteristics(material)
        except ConsistencyError as e:
            logger.error(f"Snapshot aborted for material {material_id}: {e.message}")
            raise

        tags = [
            {"name": tag.name, "color": tag.color, "fontColor": tag.font_color}
            for tag in sorted(material.tags, key=lambda t: t.name.lower())
        ]

        last_revision = self.session.exec(
            select(func.max(MaterialHistory.revision)).where(
                MaterialHistory.material_id == material_id)
        ).one()

        snapshot = MaterialHistory(
            material_id=material.id,
            revision=(last_revision or 0) + 1,
            name=material.name,
            description=material.description,
            tags=tags,
            characteristics=characteristics,
            created_at=datetime.utcnow(),
        )
        self.session.add(snapshot)
        self.session.commit()
        self.session.refresh(snapshot)

        logger.info(
            f"Snapshot r{snapshot.revision} stored for material {material_id} ({len(characteristics)} characteristic(s))")
        return snapshot

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def _get_material(self, entity_id: uuid.UUID, material_id: uuid.UUID) -> Material:
        # Soft-deleted materials keep a readable history.
        material = self.session.exec(
            select(Material).where(
                Material.id == material_id,
                Material.entity_id == entity_id
            )
        ).first()
        if not material:
            raise NotFoundError("Material", material_id)
        return material

    def get_history(
        self,
        entity_id: uuid.UUID,
        material_id: uuid.UUID,
        date_from: datetime,
        date_to: datetime
    ) -> List[MaterialHistory]:
        """
        Snapshots of a material created within [date_from, date_to], newest first.
        An inverted range yields an empty list.
        """
        self._get_material(entity_id, material_id)

        date_from, date_to = _as_naive_utc(date_from), _as_naive_utc(date_to)
        if date_from > date_to:
            return []

        statement = (
            select(MaterialHistory)
            .where(
                MaterialHistory.material_id == material_id,
                MaterialHistory.created_at >= date_from,
                MaterialHistory.created_at <= date_to
            )
            .order_by(MaterialHistory.created_at.desc(), MaterialHistory.revision.desc())
        )
        return list(self.session.exec(statement).all())

    def get_latest(self, entity_id: uuid.UUID, material_id: uuid.UUID) -> MaterialHistory:
        """
        The newest snapshot of a material.

        Raises:
            NotFoundError: unknown material, or no snapshot exists yet.
        """
        self._get_material(entity_id, material_id)

        snapshot = self.session.exec(
            select(MaterialHistory)
            .where(MaterialHistory.material_id == material_id)
            .order_by(MaterialHistory.created_at.desc(), MaterialHistory.revision.desc())
        ).first()

        if not snapshot:
            logger.error(f"No history found for material {material_id}")
            raise NotFoundError("Material history", material_id)
        return snapshot
