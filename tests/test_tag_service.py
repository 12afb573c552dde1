import warnings

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SAWarning
from sqlmodel import select

from app.core.exceptions import ConflictError, InUseError, NotFoundError
from app.db.schema import MaterialTagLink
from app.models.material import MaterialCreate
from app.models.tag import TagCreate, TagUpdate


def _tag(tags, entity, name="Red", color="#ff0000"):
    return tags.create_tag(entity.id, TagCreate(name=name, color=color, font_color="#ffffff"))


def test_create_and_list_with_counts(tags, materials, entity):
    red = _tag(tags, entity)
    _tag(tags, entity, name="Blue", color="#0000ff")
    materials.create_material(entity.id, MaterialCreate(name="Oak plank", tag_ids=[red.id]))

    listed = tags.list_tags(entity.id)
    assert [(t.name, t.material_count) for t in listed] == [("Blue", 0), ("Red", 1)]


def test_colors_must_be_hex():
    with pytest.raises(PydanticValidationError):
        TagCreate(name="Red", color="red", font_color="#ffffff")


def test_duplicate_name_is_a_conflict(tags, entity):
    _tag(tags, entity)
    with pytest.raises(ConflictError):
        _tag(tags, entity, name=" red ")


def test_color_change_does_not_fan_out(tags, materials, history, entity):
    red = _tag(tags, entity)
    materials.create_material(entity.id, MaterialCreate(name="Oak plank", tag_ids=[red.id]))
    jobs_before = len(history.jobs)

    updated = tags.update_tag(entity.id, red.id, TagUpdate(color="#aa0000"))

    assert updated.color == "#aa0000"
    assert updated.material_count == 1
    assert len(history.jobs) == jobs_before


def test_rename_fans_out_to_live_materials_only(tags, materials, history, entity):
    red = _tag(tags, entity)
    live = materials.create_material(entity.id, MaterialCreate(name="Oak plank", tag_ids=[red.id]))
    gone = materials.create_material(entity.id, MaterialCreate(name="Pine plank", tag_ids=[red.id]))
    materials.delete_material(entity.id, gone.id)
    jobs_before = len(history.jobs)

    tags.update_tag(entity.id, red.id, TagUpdate(name="Crimson"))

    new_jobs = history.jobs[jobs_before:]
    assert [job.material_id for job in new_jobs] == [live.id]
    assert all(job.succeeded for job in new_jobs)


def test_delete_blocked_by_live_material(tags, materials, entity):
    red = _tag(tags, entity)
    materials.create_material(entity.id, MaterialCreate(name="Oak plank", tag_ids=[red.id]))

    with pytest.raises(InUseError):
        tags.delete_tag(entity.id, red.id)


def test_delete_drops_links_of_deleted_materials(tags, materials, session, entity):
    red = _tag(tags, entity)
    gone = materials.create_material(entity.id, MaterialCreate(name="Oak plank", tag_ids=[red.id]))
    materials.delete_material(entity.id, gone.id)

    # each link row is removed exactly once
    with warnings.catch_warnings():
        warnings.simplefilter("error", SAWarning)
        tags.delete_tag(entity.id, red.id)

    assert tags.list_tags(entity.id) == []
    assert session.exec(select(MaterialTagLink)).all() == []
    with pytest.raises(NotFoundError):
        tags.get_tag(entity.id, red.id)


def test_lookup_by_ids_is_tenant_scoped(tags, entity, other_entity):
    red = _tag(tags, entity)
    foreign = _tag(tags, other_entity)

    assert [t.id for t in tags.get_tags_by_ids(entity.id, [red.id, red.id])] == [red.id]
    with pytest.raises(NotFoundError):
        tags.get_tags_by_ids(entity.id, [foreign.id])


def test_update_colors_must_be_hex():
    with pytest.raises(PydanticValidationError):
        TagUpdate(font_color="#fff")
    assert TagUpdate(color="#A0b1C2").color == "#A0b1C2"
    assert TagUpdate(name="Blue").color is None
