import uuid
from typing import Dict, List, Optional
from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from fastapi import BackgroundTasks

from app.db.schema import AuditAction, Characteristic, Material, MaterialCharacteristic
from app.models.characteristic import CharacteristicCreate, CharacteristicRead, CharacteristicUpdate
from app.core.exceptions import ConflictError, InUseError, NotFoundError
from app.services.characteristic_value import is_file_type, validate_definition
from app.services.entity import get_active_entity, schedule_audit
from app.services.material_history import MaterialHistoryService
from app.utils.file_storage import LocalBlobStore


class CharacteristicService:
    """
    The per-tenant attribute schema.

    Only `name` and `description` are editable. A real edit snapshots every
    live material holding the characteristic, since snapshots embed its name.
    """

    def __init__(
        self,
        session: Session,
        history: Optional[MaterialHistoryService] = None,
        blob_store: Optional[LocalBlobStore] = None
    ):
        self.session = session
        self.history = history or MaterialHistoryService(session)
        self.blob_store = blob_store or LocalBlobStore(session)

    def _get_characteristic(self, entity_id: uuid.UUID, characteristic_id: uuid.UUID) -> Characteristic:
        characteristic = self.session.exec(
            select(Characteristic).where(
                Characteristic.id == characteristic_id,
                Characteristic.entity_id == entity_id
            )
        ).first()
        if not characteristic:
            raise NotFoundError("Characteristic", characteristic_id)
        return characteristic

    def _check_uniqueness(self, entity_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None):
        statement = select(Characteristic).where(
            Characteristic.entity_id == entity_id,
            func.lower(Characteristic.name) == name.lower()
        )
        if exclude_id:
            statement = statement.where(Characteristic.id != exclude_id)

        if self.session.exec(statement).first():
            raise ConflictError(
                f"A characteristic named '{name}' already exists.", {"name": name})

    def _live_material_ids(self, characteristic_id: uuid.UUID) -> List[uuid.UUID]:
        """Live (not soft-deleted) materials holding a value for the characteristic."""
        return list(self.session.exec(
            select(Material.id)
            .join(MaterialCharacteristic, MaterialCharacteristic.material_id == Material.id)
            .where(
                MaterialCharacteristic.characteristic_id == characteristic_id,
                Material.deleted_at == None
            )
        ).all())

    def _live_counts(self, entity_id: uuid.UUID) -> Dict[uuid.UUID, int]:
        rows = self.session.exec(
            select(MaterialCharacteristic.characteristic_id, func.count(Material.id))
            .join(Material, Material.id == MaterialCharacteristic.material_id)
            .where(Material.entity_id == entity_id, Material.deleted_at == None)
            .group_by(MaterialCharacteristic.characteristic_id)
        ).all()
        return {characteristic_id: count for characteristic_id, count in rows}

    @staticmethod
    def _to_read(characteristic: Characteristic, material_count: int = 0) -> CharacteristicRead:
        return CharacteristicRead(
            id=characteristic.id,
            name=characteristic.name,
            description=characteristic.description,
            type=characteristic.type,
            options=characteristic.options,
            units=characteristic.units,
            created_at=characteristic.created_at,
            updated_at=characteristic.updated_at,
            material_count=material_count,
        )

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_characteristics(self, entity_id: uuid.UUID) -> List[CharacteristicRead]:
        """
        All characteristics of the tenant, ordered by name, with the number of
        live materials using each one.
        """
        get_active_entity(self.session, entity_id)

        results = self.session.exec(
            select(Characteristic)
            .where(Characteristic.entity_id == entity_id)
            .order_by(Characteristic.name.asc())
        ).all()
        counts = self._live_counts(entity_id)

        return [self._to_read(c, counts.get(c.id, 0)) for c in results]

    def get_characteristic(self, entity_id: uuid.UUID, characteristic_id: uuid.UUID) -> CharacteristicRead:
        get_active_entity(self.session, entity_id)
        characteristic = self._get_characteristic(entity_id, characteristic_id)
        return self._to_read(characteristic, len(self._live_material_ids(characteristic.id)))

    def get_characteristics_by_ids(
        self,
        entity_id: uuid.UUID,
        characteristic_ids: List[uuid.UUID]
    ) -> Dict[uuid.UUID, Characteristic]:
        """
        Characteristic provider for the material service.
        Any id unknown to the tenant is a NotFoundError.
        """
        unique_ids = list(dict.fromkeys(characteristic_ids))
        if not unique_ids:
            return {}

        found = {
            c.id: c for c in self.session.exec(
                select(Characteristic).where(
                    Characteristic.entity_id == entity_id,
                    Characteristic.id.in_(unique_ids)
                )
            ).all()
        }
        for characteristic_id in unique_ids:
            if characteristic_id not in found:
                raise NotFoundError("Characteristic", characteristic_id)
        return found

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def create_characteristic(
        self,
        entity_id: uuid.UUID,
        data: CharacteristicCreate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> CharacteristicRead:
        """
        Defines a new characteristic.

        Raises:
            ValidationError: options or units do not fit the type.
            ConflictError: the tenant already has a characteristic with that name.
        """
        get_active_entity(self.session, entity_id)

        # 1. Type dependent shape
        options, units = validate_definition(data.type, data.options, data.units)

        # 2. Name must be unique within the tenant
        self._check_uniqueness(entity_id, data.name)

        characteristic = Characteristic(
            entity_id=entity_id,
            name=data.name,
            description=data.description,
            type=data.type,
            options=options,
            units=units
        )

        try:
            self.session.add(characteristic)
            self.session.commit()
            self.session.refresh(characteristic)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(
                f"A characteristic named '{data.name}' already exists.", {"name": data.name})
        except Exception as e:
            self.session.rollback()
            logger.error(f"Characteristic creation failed: {e}")
            raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Characteristic", characteristic.id, AuditAction.CREATE,
            {"name": characteristic.name, "type": characteristic.type.value,
             "options": options, "units": units}
        )
        logger.info(
            f"Characteristic '{characteristic.name}' ({characteristic.type.value}) created for entity {entity_id}")
        return self._to_read(characteristic)

    def update_characteristic(
        self,
        entity_id: uuid.UUID,
        characteristic_id: uuid.UUID,
        data: CharacteristicUpdate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> CharacteristicRead:
        """
        Renames or re-describes a characteristic.

        An unchanged payload returns early: no write, no snapshot, no
        activity entry. Otherwise every live material holding the
        characteristic gets a new snapshot after the commit.
        """
        get_active_entity(self.session, entity_id)
        characteristic = self._get_characteristic(entity_id, characteristic_id)

        changes = {}
        if characteristic.name != data.name:
            changes["name"] = data.name
        if characteristic.description != data.description:
            changes["description"] = data.description

        if not changes:
            logger.debug(f"Characteristic {characteristic_id} unchanged, skipping update")
            return self._to_read(characteristic, len(self._live_material_ids(characteristic.id)))

        if "name" in changes:
            self._check_uniqueness(entity_id, data.name, exclude_id=characteristic.id)

        try:
            for field, value in changes.items():
                setattr(characteristic, field, value)
            self.session.add(characteristic)
            self.session.commit()
            self.session.refresh(characteristic)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(
                f"A characteristic named '{data.name}' already exists.", {"name": data.name})
        except Exception as e:
            self.session.rollback()
            logger.error(f"Characteristic update failed: {e}")
            raise

        # Fan out: snapshots embed the characteristic name
        material_ids = self._live_material_ids(characteristic.id)
        if material_ids:
            logger.info(
                f"Characteristic {characteristic.id} changed, snapshotting {len(material_ids)} material(s)")
            self.history.enqueue_many(material_ids, background_tasks)

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Characteristic", characteristic.id, AuditAction.UPDATE, changes
        )
        return self._to_read(characteristic, len(material_ids))

    def delete_characteristic(
        self,
        entity_id: uuid.UUID,
        characteristic_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ):
        """
        Hard-deletes a characteristic nobody live uses anymore.

        Value rows held by soft-deleted materials go with it; their history
        already carries a denormalized copy. File records of those rows are
        removed from the database only, so snapshot paths keep resolving.

        Raises:
            InUseError: a live material still holds a value for it.
        """
        get_active_entity(self.session, entity_id)
        characteristic = self._get_characteristic(entity_id, characteristic_id)

        usage = len(self._live_material_ids(characteristic.id))
        if usage > 0:
            raise InUseError("Characteristic", usage)

        characteristic_name = characteristic.name
        key = str(characteristic.id)

        try:
            # 1. Rows left on soft-deleted materials
            rows = self.session.exec(
                select(MaterialCharacteristic).where(
                    MaterialCharacteristic.characteristic_id == characteristic.id)
            ).all()

            file_ids = []
            if is_file_type(characteristic.type):
                file_ids = [f.id for row in rows for f in row.files]

            for row in rows:
                material = row.material
                if key in material.characteristic_order:
                    material.characteristic_order = [
                        c for c in material.characteristic_order if c != key]
                    self.session.add(material)
                self.session.delete(row)
            self.session.flush()

            # 2. Orphaned file records, blobs stay
            self.blob_store.delete_many(file_ids, db_only=True)

            # 3. The definition itself
            self.session.delete(characteristic)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Characteristic deletion failed: {e}")
            raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Characteristic", characteristic_id, AuditAction.DELETE,
            {"name": characteristic_name, "removed_rows": len(rows)}
        )
        logger.info(f"Characteristic '{characteristic_name}' deleted ({len(rows)} archived value row(s) removed)")
        return {"message": "Characteristic deleted successfully"}
