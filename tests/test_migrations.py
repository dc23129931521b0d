"""
BlockServed - Alembic Migration Tests
The migration must build the same schema as the ORM models.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from blockserved.core.database import Base
from blockserved.models import models  # noqa: F401  registers tables

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def alembic_config(tmp_path):
    database = tmp_path / "migrations.db"
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{database}")
    config.attributes["configure_logger"] = False
    config.attributes["database_path"] = database
    return config


def test_upgrade_creates_model_tables(alembic_config):
    command.upgrade(alembic_config, "head")

    engine = create_engine(f"sqlite:///{alembic_config.attributes['database_path']}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables

        for name, table in Base.metadata.tables.items():
            migrated = {column["name"] for column in inspector.get_columns(name)}
            assert migrated == set(table.columns.keys()), name

        unique = {constraint["name"] for constraint in inspector.get_unique_constraints("staged_recipients")}
        assert "uq_staged_recipients_tx_index" in unique
    finally:
        engine.dispose()


def test_downgrade_drops_everything(alembic_config):
    command.upgrade(alembic_config, "head")
    command.downgrade(alembic_config, "base")

    engine = create_engine(f"sqlite:///{alembic_config.attributes['database_path']}")
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
