import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional
from loguru import logger
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select
from fastapi import BackgroundTasks

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.locks import material_lock
from app.db.schema import (
    AuditAction, Characteristic, FileRecord, Material,
    MaterialCharacteristic, MaterialCharacteristicFile
)
from app.models.characteristic import CharacteristicSummary
from app.models.file import FileRefRead
from app.models.material import (
    CharacteristicValueInput, MaterialCreate, MaterialRead,
    MaterialUpdate, MaterialValueRead
)
from app.services.characteristic import CharacteristicService
from app.services.characteristic_value import (
    file_location, is_file_type, normalize_value, split_existing_files
)
from app.services.entity import get_active_entity, schedule_audit
from app.services.material_history import MaterialHistoryService, SnapshotJob
from app.services.tag import TagService
from app.utils.file_storage import LocalBlobStore


class PreparedValue(NamedTuple):
    characteristic: Characteristic
    data: CharacteristicValueInput
    value: Any


def reconcile_order(order: Iterable[uuid.UUID], value_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
    """
    Makes a characteristic order match the set of values actually attached.

    Supplied ids that have a value keep their relative order (duplicates
    dropped), value ids the order does not mention are appended in value
    order, and ids without a value are dropped.
    """
    value_ids = list(value_ids)
    present = set(value_ids)
    result: List[uuid.UUID] = []
    seen = set()

    for characteristic_id in list(order) + value_ids:
        if characteristic_id in present and characteristic_id not in seen:
            seen.add(characteristic_id)
            result.append(characteristic_id)

    return result


class MaterialService:
    """
    The material aggregate: name, description, tags, characteristic values
    and their display order.

    Writes are serialized per material and replace the whole value set in
    one transaction. Each committed write is followed by a synchronous
    snapshot build; a failing build is logged and leaves the write in place.
    """

    def __init__(
        self,
        session: Session,
        history: Optional[MaterialHistoryService] = None,
        blob_store: Optional[LocalBlobStore] = None,
        tags: Optional[TagService] = None,
        characteristics: Optional[CharacteristicService] = None
    ):
        self.session = session
        self.history = history or MaterialHistoryService(session)
        self.blob_store = blob_store or LocalBlobStore(session)
        self.tags = tags or TagService(session, self.history)
        self.characteristics = characteristics or CharacteristicService(
            session, self.history, self.blob_store)

    def _get_material(
        self,
        entity_id: uuid.UUID,
        material_id: uuid.UUID,
        for_update: bool = False
    ) -> Material:
        statement = select(Material).where(
            Material.id == material_id,
            Material.entity_id == entity_id,
            Material.deleted_at == None
        )
        if for_update:
            statement = statement.with_for_update()

        material = self.session.exec(statement).first()
        if not material:
            raise NotFoundError("Material", material_id)
        return material

    def _prepare_values(
        self,
        entity_id: uuid.UUID,
        values: List[CharacteristicValueInput]
    ) -> List[PreparedValue]:
        """
        Validates every value before anything is written.

        Raises:
            ValidationError: duplicate characteristic, malformed value, or
                files sent to a non file characteristic.
            NotFoundError: characteristic unknown to the tenant.
        """
        seen = set()
        for item in values:
            if item.characteristic_id in seen:
                raise ValidationError(
                    f"Characteristic {item.characteristic_id} is listed more than once.",
                    field="values"
                )
            seen.add(item.characteristic_id)

        definitions = self.characteristics.get_characteristics_by_ids(
            entity_id, [item.characteristic_id for item in values])

        prepared = []
        for item in values:
            characteristic = definitions[item.characteristic_id]

            if is_file_type(characteristic.type):
                if not settings.storage_enabled:
                    logger.warning(
                        f"File storage disabled, skipping value of characteristic '{characteristic.name}'")
                    continue
                prepared.append(PreparedValue(characteristic, item, None))
                continue

            if item.file_to_add or item.file_to_delete:
                raise ValidationError(
                    f"'{characteristic.name}' is not a file characteristic and cannot hold files.",
                    field=str(characteristic.id)
                )
            prepared.append(PreparedValue(
                characteristic, item, normalize_value(characteristic, item.value)))

        return prepared

    def _upload(self, material_id: uuid.UUID, prepared: PreparedValue) -> List[FileRecord]:
        return self.blob_store.save_many(
            prepared.data.file_to_add,
            file_location(material_id, prepared.characteristic.id),
            max_width=settings.material_image_max_width,
            max_height=settings.material_image_max_height,
        )

    def _add_value_row(self, material_id: uuid.UUID, prepared: PreparedValue, files: List[FileRecord]):
        row = MaterialCharacteristic(
            material_id=material_id,
            characteristic_id=prepared.characteristic.id,
            value=prepared.value
        )
        row.file_links = [
            MaterialCharacteristicFile(file=record, position=position)
            for position, record in enumerate(files)
        ]
        self.session.add(row)

    def _run_snapshot(self, material_id: uuid.UUID) -> SnapshotJob:
        job = self.history.snapshot_now(material_id)
        if not job.succeeded:
            logger.error(f"Material {material_id} saved without a new snapshot: {job.error}")
        return job

    def _to_read(self, material: Material) -> MaterialRead:
        return MaterialRead(
            id=material.id,
            entity_id=material.entity_id,
            name=material.name,
            description=material.description,
            characteristic_order=material.characteristic_order,
            tags=[
                TagService.to_read(t)
                for t in sorted(material.tags, key=lambda t: t.name.lower())
            ],
            created_at=material.created_at,
            updated_at=material.updated_at,
            deleted_at=material.deleted_at,
        )

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_materials(self, entity_id: uuid.UUID) -> List[MaterialRead]:
        """Live materials of the tenant, most recently updated first."""
        get_active_entity(self.session, entity_id)

        results = self.session.exec(
            select(Material)
            .where(Material.entity_id == entity_id, Material.deleted_at == None)
            .options(selectinload(Material.tags))
            .order_by(Material.updated_at.desc())
        ).all()

        return [self._to_read(m) for m in results]

    def get_material(self, entity_id: uuid.UUID, material_id: uuid.UUID) -> MaterialRead:
        get_active_entity(self.session, entity_id)
        return self._to_read(self._get_material(entity_id, material_id))

    def get_values(self, entity_id: uuid.UUID, material_id: uuid.UUID) -> List[MaterialValueRead]:
        """
        Value rows of a live material in display order, with their
        definitions and file references.
        """
        get_active_entity(self.session, entity_id)
        material = self._get_material(entity_id, material_id)

        rows = {str(row.characteristic_id): row for row in material.values}
        result = []
        for key in material.characteristic_order:
            row = rows.get(key)
            if row is None:
                logger.warning(f"Material {material.id} orders characteristic {key} without a value row")
                continue

            characteristic = row.characteristic
            result.append(MaterialValueRead(
                characteristic=CharacteristicSummary(
                    id=characteristic.id,
                    name=characteristic.name,
                    type=characteristic.type,
                    options=characteristic.options,
                    units=characteristic.units,
                ),
                value=row.value,
                files=[
                    FileRefRead(id=f.id, name=f.name, type=f.type, path=f.path)
                    for f in row.files
                ],
            ))
        return result

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def create_material(
        self,
        entity_id: uuid.UUID,
        data: MaterialCreate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> MaterialRead:
        """
        Creates a material with its values and tags, then builds its first
        snapshot.

        Raises:
            ValidationError: a value does not fit its characteristic.
            NotFoundError: unknown tag or characteristic id.
        """
        get_active_entity(self.session, entity_id)

        # 1. Validate everything up front
        prepared = self._prepare_values(entity_id, data.values)
        tags = self.tags.get_tags_by_ids(entity_id, data.tag_ids)

        material = Material(
            entity_id=entity_id,
            name=data.name,
            description=data.description
        )

        written: List[FileRecord] = []
        try:
            with material_lock(material.id):
                material.tags = tags
                self.session.add(material)
                self.session.flush()

                # 2. Value rows, uploading files first
                for item in prepared:
                    files: List[FileRecord] = []
                    if is_file_type(item.characteristic.type):
                        files = self._upload(material.id, item)
                        written.extend(files)
                    self._add_value_row(material.id, item, files)

                # 3. Order
                order = reconcile_order(data.order, [item.characteristic.id for item in prepared])
                material.characteristic_order = [str(c) for c in order]

                self.session.commit()
                self.session.refresh(material)

        except Exception as e:
            self.session.rollback()
            self.blob_store.discard(written)
            logger.error(f"Material creation failed: {e}")
            raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Material", material.id, AuditAction.CREATE,
            {"name": material.name, "characteristics": material.characteristic_order}
        )
        logger.info(f"Material '{material.name}' created with {len(prepared)} value(s)")

        # 4. First snapshot, after the commit
        self._run_snapshot(material.id)
        return self._to_read(material)

    def update_material(
        self,
        entity_id: uuid.UUID,
        material_id: uuid.UUID,
        data: MaterialUpdate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> MaterialRead:
        """
        Replaces name, description, tags and the whole value set of a material.

        Characteristics missing from `data.values` are removed. File
        deletions only drop database records: blobs stay on disk so older
        snapshots keep resolving their paths.
        """
        get_active_entity(self.session, entity_id)

        # 1. Validate everything up front
        prepared = self._prepare_values(entity_id, data.values)
        tags = self.tags.get_tags_by_ids(entity_id, data.tag_ids)
        incoming = {item.characteristic.id for item in prepared}

        written: List[FileRecord] = []
        with material_lock(material_id):
            material = self._get_material(entity_id, material_id, for_update=True)
            try:
                existing_rows = {row.characteristic_id: row for row in material.values}

                # 2. Final file sets: kept files first, then new uploads
                final_files: Dict[uuid.UUID, List[FileRecord]] = {}
                detached_ids: List[uuid.UUID] = []
                for item in prepared:
                    if not is_file_type(item.characteristic.type):
                        continue
                    row = existing_rows.get(item.characteristic.id)
                    kept, detached = split_existing_files(
                        row.files if row else [], item.data.file_to_delete)
                    detached_ids.extend(f.id for f in detached)

                    uploaded = self._upload(material.id, item)
                    written.extend(uploaded)
                    final_files[item.characteristic.id] = kept + uploaded

                # Characteristics dropped from the material lose their files
                for characteristic_id, row in existing_rows.items():
                    if characteristic_id not in incoming:
                        detached_ids.extend(f.id for f in row.files)

                # 3. Replace all value rows
                for row in existing_rows.values():
                    self.session.delete(row)
                self.session.flush()
                self.session.expire(material, ["values"])

                self.blob_store.delete_many(detached_ids, db_only=True)

                for item in prepared:
                    self._add_value_row(
                        material.id, item, final_files.get(item.characteristic.id, []))

                # 4. Scalar fields, tags and order
                order = reconcile_order(data.order, [item.characteristic.id for item in prepared])
                material.name = data.name
                material.description = data.description
                material.tags = tags
                material.characteristic_order = [str(c) for c in order]
                material.updated_at = datetime.utcnow()
                self.session.add(material)

                self.session.commit()
                self.session.refresh(material)

            except Exception as e:
                self.session.rollback()
                self.blob_store.discard(written)
                logger.error(f"Material update failed for {material_id}: {e}")
                raise

            schedule_audit(
                self.session, background_tasks, entity_id, user_id,
                "Material", material.id, AuditAction.UPDATE,
                {"name": material.name, "characteristics": material.characteristic_order,
                 "detached_files": [str(f) for f in detached_ids]}
            )

            # 5. New snapshot, still serialized with other writers
            self._run_snapshot(material.id)

        return self._to_read(material)

    def delete_material(
        self,
        entity_id: uuid.UUID,
        material_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ):
        """
        Soft delete: the material leaves the live listings, its values and
        history stay.
        """
        get_active_entity(self.session, entity_id)

        with material_lock(material_id):
            material = self._get_material(entity_id, material_id, for_update=True)
            try:
                material.deleted_at = datetime.utcnow()
                self.session.add(material)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                logger.error(f"Material deletion failed for {material_id}: {e}")
                raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Material", material_id, AuditAction.DELETE, {}
        )
        logger.info(f"Material {material_id} soft-deleted")
        return {"message": "Material deleted successfully"}
