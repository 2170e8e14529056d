from __future__ import annotations

import logging
import os
from datetime import timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftboard.db import store_errors
from shiftboard.errors import AuthorizationError, NotFoundError, ValidationError
from shiftboard.models import Group, GroupSession, utcnow
from shiftboard.schemas import GroupAccess
from shiftboard.security import generate_key, generate_session_id, hash_password, verify_password
from shiftboard.validators import ensure_name

logger = logging.getLogger(__name__)

KEY_LENGTH = 8
MIN_ADMIN_PASSWORD_LENGTH = 4


def get_session_max_age() -> timedelta:
    raw = os.getenv("SESSION_MAX_AGE_DAYS", "14")
    try:
        days = int(raw)
    except ValueError:
        days = 14
    return timedelta(days=days if days > 0 else 14)


def _unused_key(db: Session, column) -> str:
    while True:
        key = generate_key(KEY_LENGTH)
        if db.scalar(select(Group.id).where(column == key)) is None:
            return key


def create_group(db: Session, name: str, admin_password: str) -> Group:
    name = ensure_name(name, "group name")
    if len(admin_password or "") < MIN_ADMIN_PASSWORD_LENGTH:
        raise ValidationError(f"Admin password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters")
    with store_errors(db, "create_group"):
        group = Group(
            name=name,
            access_key=_unused_key(db, Group.access_key),
            admin_key=_unused_key(db, Group.admin_key),
            admin_password_hash=hash_password(admin_password),
        )
        db.add(group)
        db.commit()
        db.refresh(group)
    logger.info("Created group %s", group.id)
    return group


def to_access(group: Group, is_admin: bool) -> GroupAccess:
    return GroupAccess(
        group_id=group.id,
        group_name=group.name,
        is_admin=is_admin,
        access_key=group.access_key,
        admin_key=group.admin_key if is_admin else None,
    )


def resolve_access_key(db: Session, access_key: str) -> GroupAccess:
    key = (access_key or "").strip()
    if not key:
        raise ValidationError("Access key is required")
    with store_errors(db, "resolve_access_key"):
        group = db.scalar(select(Group).where(Group.access_key == key))
    if group is None:
        raise NotFoundError("No group matches that access key")
    return to_access(group, is_admin=False)


def resolve_admin_key(db: Session, admin_key: str) -> GroupAccess:
    key = (admin_key or "").strip()
    if not key:
        raise ValidationError("Admin key is required")
    with store_errors(db, "resolve_admin_key"):
        group = db.scalar(select(Group).where(Group.admin_key == key))
    if group is None:
        raise NotFoundError("No group matches that admin key")
    return to_access(group, is_admin=True)


def verify_admin_password(db: Session, group_id: str, password: str) -> bool:
    with store_errors(db, "verify_admin_password", group_id=group_id):
        group = db.get(Group, group_id)
    if group is None:
        return False
    return verify_password(password or "", group.admin_password_hash)


def elevate(db: Session, group_id: str, password: str) -> GroupAccess:
    """Turn a staff-level handle into an admin handle given the admin password."""
    if not verify_admin_password(db, group_id, password):
        raise AuthorizationError("Incorrect admin password")
    with store_errors(db, "elevate", group_id=group_id):
        group = db.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    logger.info("Session for group %s elevated to admin", group_id)
    return to_access(group, is_admin=True)


def create_session(db: Session, group_id: str, is_admin: bool) -> str:
    with store_errors(db, "create_session", group_id=group_id):
        while True:
            session_id = generate_session_id()
            if db.get(GroupSession, session_id) is None:
                break
        db.add(
            GroupSession(
                session_id=session_id,
                group_id=group_id,
                is_admin=is_admin,
                expires_at=utcnow() + get_session_max_age(),
            )
        )
        db.commit()
    return session_id


def delete_session(db: Session, session_id: str) -> None:
    with store_errors(db, "delete_session"):
        session = db.get(GroupSession, session_id)
        if session is not None:
            db.delete(session)
            db.commit()


def get_session_access(db: Session, session_id: str | None) -> GroupAccess | None:
    if not session_id:
        return None
    with store_errors(db, "get_session_access"):
        session = db.get(GroupSession, session_id)
        if session is None:
            return None
        expires_at = session.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= utcnow():
            db.delete(session)
            db.commit()
            return None
        group = db.get(Group, session.group_id)
        if group is None:
            db.delete(session)
            db.commit()
            return None
    return to_access(group, is_admin=session.is_admin)
