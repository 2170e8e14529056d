from __future__ import annotations

import pytest

from shiftboard.errors import AuthorizationError, NotFoundError, ValidationError
from shiftboard.groups import (
    create_group,
    create_session,
    delete_session,
    elevate,
    get_session_access,
    resolve_access_key,
    resolve_admin_key,
    verify_admin_password,
)
from shiftboard.models import GroupSession
from shiftboard.security import KEY_ALPHABET


def test_created_group_has_distinct_random_keys_and_hashed_password(group):
    assert len(group.access_key) == 8
    assert len(group.admin_key) == 8
    assert set(group.access_key + group.admin_key) <= set(KEY_ALPHABET)
    assert group.access_key != group.admin_key
    assert group.admin_password_hash.startswith("$2")


def test_create_group_validates_input(db):
    with pytest.raises(ValidationError):
        create_group(db, "   ", "admin-pass")
    with pytest.raises(ValidationError):
        create_group(db, "Cafe B", "abc")


def test_keys_resolve_to_staff_and_admin_handles(db, group):
    staff_access = resolve_access_key(db, group.access_key)
    assert staff_access.group_id == group.id
    assert staff_access.is_admin is False
    assert staff_access.admin_key is None

    admin_access = resolve_admin_key(db, group.admin_key)
    assert admin_access.is_admin is True
    assert admin_access.admin_key == group.admin_key

    with pytest.raises(NotFoundError):
        resolve_access_key(db, "wrongkey")
    with pytest.raises(NotFoundError):
        resolve_admin_key(db, group.access_key)


def test_admin_password_check_and_elevation(db, group):
    assert verify_admin_password(db, group.id, "admin-pass") is True
    assert verify_admin_password(db, group.id, "nope") is False
    assert elevate(db, group.id, "admin-pass").is_admin is True
    with pytest.raises(AuthorizationError):
        elevate(db, group.id, "nope")


def test_sessions_expire_and_can_be_deleted(db, group):
    session_id = create_session(db, group.id, is_admin=False)
    access = get_session_access(db, session_id)
    assert access is not None
    assert access.group_id == group.id

    row = db.get(GroupSession, session_id)
    row.expires_at = row.created_at
    db.add(row)
    db.commit()
    assert get_session_access(db, session_id) is None
    assert db.get(GroupSession, session_id) is None

    other = create_session(db, group.id, is_admin=True)
    delete_session(db, other)
    assert get_session_access(db, other) is None
    assert get_session_access(db, None) is None
