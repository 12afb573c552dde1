import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect
from sqlmodel import SQLModel

import app.db.schema  # noqa: F401

VERSIONS = Path(__file__).resolve().parent.parent / "migrations" / "versions"


def _load(name):
    spec = importlib.util.spec_from_file_location(name, VERSIONS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_migration_matches_models():
    migration = _load("3f2a9c1d7b40_create_catalog_tables")
    engine = create_engine("sqlite://")

    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            migration.upgrade()

        tables = set(inspect(connection).get_table_names())
        assert tables == set(SQLModel.metadata.tables)

        for table in SQLModel.metadata.sorted_tables:
            migrated = {c["name"] for c in inspect(connection).get_columns(table.name)}
            assert migrated == {c.name for c in table.columns}, table.name

        with Operations.context(context):
            migration.downgrade()

        assert inspect(connection).get_table_names() == []
