import uuid
from typing import Dict, List, Optional
from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from fastapi import BackgroundTasks

from app.db.schema import AuditAction, Material, MaterialTagLink, Tag
from app.models.tag import TagCreate, TagRead, TagUpdate
from app.core.exceptions import ConflictError, InUseError, NotFoundError
from app.services.entity import get_active_entity, schedule_audit
from app.services.material_history import MaterialHistoryService


class TagService:
    """
    Tenant tags. Also the read-only tag provider of the material service.
    """

    def __init__(self, session: Session, history: Optional[MaterialHistoryService] = None):
        self.session = session
        self.history = history or MaterialHistoryService(session)

    def _get_tag(self, entity_id: uuid.UUID, tag_id: uuid.UUID) -> Tag:
        tag = self.session.exec(
            select(Tag).where(Tag.id == tag_id, Tag.entity_id == entity_id)
        ).first()
        if not tag:
            raise NotFoundError("Tag", tag_id)
        return tag

    def _check_uniqueness(self, entity_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None):
        statement = select(Tag).where(
            Tag.entity_id == entity_id,
            func.lower(Tag.name) == name.lower()
        )
        if exclude_id:
            statement = statement.where(Tag.id != exclude_id)

        if self.session.exec(statement).first():
            raise ConflictError(f"A tag named '{name}' already exists.", {"name": name})

    def _live_material_ids(self, tag_id: uuid.UUID) -> List[uuid.UUID]:
        return list(self.session.exec(
            select(Material.id)
            .join(MaterialTagLink, MaterialTagLink.material_id == Material.id)
            .where(MaterialTagLink.tag_id == tag_id, Material.deleted_at == None)
        ).all())

    def _live_counts(self, entity_id: uuid.UUID) -> Dict[uuid.UUID, int]:
        rows = self.session.exec(
            select(MaterialTagLink.tag_id, func.count(Material.id))
            .join(Material, Material.id == MaterialTagLink.material_id)
            .where(Material.entity_id == entity_id, Material.deleted_at == None)
            .group_by(MaterialTagLink.tag_id)
        ).all()
        return {tag_id: count for tag_id, count in rows}

    @staticmethod
    def to_read(tag: Tag, material_count: int = 0) -> TagRead:
        return TagRead(
            id=tag.id,
            name=tag.name,
            color=tag.color,
            font_color=tag.font_color,
            material_count=material_count,
        )

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_tags(self, entity_id: uuid.UUID) -> List[TagRead]:
        get_active_entity(self.session, entity_id)

        tags = self.session.exec(
            select(Tag).where(Tag.entity_id == entity_id).order_by(Tag.name.asc())
        ).all()
        counts = self._live_counts(entity_id)

        return [self.to_read(t, counts.get(t.id, 0)) for t in tags]

    def get_tag(self, entity_id: uuid.UUID, tag_id: uuid.UUID) -> TagRead:
        get_active_entity(self.session, entity_id)
        tag = self._get_tag(entity_id, tag_id)
        return self.to_read(tag, len(self._live_material_ids(tag.id)))

    def get_tags_by_ids(self, entity_id: uuid.UUID, tag_ids: List[uuid.UUID]) -> List[Tag]:
        """
        Resolves tag ids of one tenant, keeping the given order and
        dropping duplicates. Any unknown id is a NotFoundError.
        """
        unique_ids = list(dict.fromkeys(tag_ids))
        if not unique_ids:
            return []

        tags = {
            t.id: t for t in self.session.exec(
                select(Tag).where(Tag.entity_id == entity_id, Tag.id.in_(unique_ids))
            ).all()
        }
        for tag_id in unique_ids:
            if tag_id not in tags:
                raise NotFoundError("Tag", tag_id)

        return [tags[tag_id] for tag_id in unique_ids]

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def create_tag(
        self,
        entity_id: uuid.UUID,
        data: TagCreate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> TagRead:
        get_active_entity(self.session, entity_id)
        name = data.name.strip()
        self._check_uniqueness(entity_id, name)

        tag = Tag(
            entity_id=entity_id,
            name=name,
            color=data.color,
            font_color=data.font_color
        )

        try:
            self.session.add(tag)
            self.session.commit()
            self.session.refresh(tag)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(f"A tag named '{name}' already exists.", {"name": name})
        except Exception as e:
            self.session.rollback()
            logger.error(f"Tag creation failed: {e}")
            raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Tag", tag.id, AuditAction.CREATE, data.model_dump(mode="json")
        )
        logger.info(f"Tag '{tag.name}' created for entity {entity_id}")
        return self.to_read(tag)

    def update_tag(
        self,
        entity_id: uuid.UUID,
        tag_id: uuid.UUID,
        data: TagUpdate,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> TagRead:
        """
        Edits a tag. A rename snapshots every live material carrying it;
        older snapshots keep the name they were taken with.
        """
        get_active_entity(self.session, entity_id)
        tag = self._get_tag(entity_id, tag_id)

        changes = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if field == "name":
                value = value.strip()
            if getattr(tag, field) != value:
                changes[field] = value

        if not changes:
            return self.to_read(tag, len(self._live_material_ids(tag.id)))

        if "name" in changes:
            self._check_uniqueness(entity_id, changes["name"], exclude_id=tag.id)

        try:
            for field, value in changes.items():
                setattr(tag, field, value)
            self.session.add(tag)
            self.session.commit()
            self.session.refresh(tag)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(f"A tag named '{changes.get('name')}' already exists.")
        except Exception as e:
            self.session.rollback()
            logger.error(f"Tag update failed: {e}")
            raise

        material_ids = self._live_material_ids(tag.id)
        if "name" in changes and material_ids:
            logger.info(f"Tag {tag.id} renamed, snapshotting {len(material_ids)} material(s)")
            self.history.enqueue_many(material_ids, background_tasks)

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Tag", tag.id, AuditAction.UPDATE, changes
        )
        return self.to_read(tag, len(material_ids))

    def delete_tag(
        self,
        entity_id: uuid.UUID,
        tag_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ):
        get_active_entity(self.session, entity_id)
        tag = self._get_tag(entity_id, tag_id)

        usage = len(self._live_material_ids(tag.id))
        if usage > 0:
            raise InUseError("Tag", usage)

        tag_name = tag.name
        try:
            # Only soft-deleted materials can still link the tag here.
            tag.materials.clear()

            self.session.delete(tag)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Tag deletion failed: {e}")
            raise

        schedule_audit(
            self.session, background_tasks, entity_id, user_id,
            "Tag", tag_id, AuditAction.DELETE, {"name": tag_name}
        )
        return {"message": "Tag deleted successfully"}
