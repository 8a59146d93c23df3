"""Alembic migration tests.

File named test_zzz_alembic.py to sort LAST in pytest collection order.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from cordnode.db import models  # noqa: F401
from cordnode.db.base import Base

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def alembic_config(tmp_path: Path) -> tuple[Config, Path]:
    db_path = tmp_path / "migrations.db"
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    config.attributes["configure_logger"] = False
    return config, db_path


def _tables(db_path: Path) -> set[str]:
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_upgrade_head_creates_every_model_table(alembic_config: tuple[Config, Path]) -> None:
    config, db_path = alembic_config
    command.upgrade(config, "head")
    assert set(Base.metadata.tables) <= _tables(db_path)


def test_migrated_columns_match_models(alembic_config: tuple[Config, Path]) -> None:
    config, db_path = alembic_config
    command.upgrade(config, "head")
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        for name, table in Base.metadata.tables.items():
            migrated = {c["name"] for c in inspector.get_columns(name)}
            assert migrated == {c.name for c in table.columns}, name
    finally:
        engine.dispose()


def test_downgrade_to_base(alembic_config: tuple[Config, Path]) -> None:
    config, db_path = alembic_config
    command.upgrade(config, "head")
    command.downgrade(config, "base")
    assert not set(Base.metadata.tables) & _tables(db_path)
