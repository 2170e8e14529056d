from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shiftboard.errors import StoreError

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    raw_url = os.getenv("DATABASE_URL", "sqlite:///./shiftboard.db")
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def get_store_timeout() -> float:
    raw = os.getenv("STORE_TIMEOUT_SECONDS", "15")
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid STORE_TIMEOUT_SECONDS=%r", raw)
        return 15.0
    return timeout if timeout > 0 else 15.0


def build_connect_args(database_url: str, timeout: float) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout}
    if database_url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return {}


def build_engine(database_url: str):
    connect_args = build_connect_args(database_url, get_store_timeout())
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


DATABASE_URL = get_database_url()
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors(db: Session, action: str, **context) -> Iterator[None]:
    """Translate SQLAlchemy failures inside the block into StoreError.

    The session is rolled back and the underlying exception is logged with the
    action name and the identifiers passed as keyword arguments.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        details = ", ".join(f"{key}={value}" for key, value in sorted(context.items()))
        logger.exception("Store failure during %s (%s)", action, details or "no context")
        raise StoreError(action) from exc
