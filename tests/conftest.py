from __future__ import annotations

import os

import pytest
from sqlalchemy.orm import sessionmaker

import shiftboard.db as app_db
import shiftboard.models  # noqa: F401
from shiftboard.groups import create_group
from shiftboard.staff import create_staff

os.environ.setdefault("CLEANUP_INTERVAL_HOURS", "0")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_shiftboard.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = app_db.build_engine(app_db.DATABASE_URL)
    app_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=app_db.engine,
        expire_on_commit=False,
    )

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def db():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def group(db):
    return create_group(db, "Cafe A", "admin-pass")


@pytest.fixture
def staff_member(db, group):
    return create_staff(db, group.id, "Yamada")
