"""
Tests for identity loading (ORM -> Authentication).

Uses db_session fixture: in-memory SQLite, rolled back after each test.
"""
from __future__ import annotations

import pytest
from fastapi import HTTPException

from exprsec.models.security import Authority, User
from exprsec.security.auth import load_user, to_authentication


def _user(db_session, username: str, authorities: list[str], is_active: bool = True) -> User:
    user = User(username=username, email=f"{username}@example.com", is_active=is_active)
    for name in authorities:
        authority = Authority(name=name)
        db_session.add(authority)
        user.authorities.append(authority)
    db_session.add(user)
    db_session.commit()
    return user


def test_load_user_returns_user_with_authorities(db_session):
    user = _user(db_session, "testuser", ["ROLE_ADMIN", "audit:read"])

    loaded = load_user(db_session, user.id)

    assert loaded.id == user.id
    assert loaded.username == "testuser"
    assert sorted(a.name for a in loaded.authorities) == ["ROLE_ADMIN", "audit:read"]


def test_load_user_raises_when_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, 99999)
    assert exc_info.value.status_code == 401


def test_load_user_raises_when_inactive(db_session):
    user = _user(db_session, "inactive", [], is_active=False)

    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, user.id)
    assert exc_info.value.status_code == 401


def test_to_authentication_full_and_remember_me(db_session):
    user = _user(db_session, "carol", ["ROLE_STAFF"])

    full = to_authentication(user)
    remembered = to_authentication(user, remember_me=True)

    assert full.name == "carol"
    assert full.principal == "carol"
    assert full.authorities == frozenset({"ROLE_STAFF"})
    assert full.details["user_id"] == user.id
    assert full.is_fully_authenticated
    assert remembered.is_authenticated
    assert not remembered.is_fully_authenticated
