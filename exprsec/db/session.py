from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from exprsec.settings import Settings, get_settings


def _engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.sql_echo}
    if settings.is_sqlite:
        # Identity lookups and permission checks run on threadpool workers.
        options["connect_args"] = {"check_same_thread": False}
    return options


_settings = get_settings()

engine = create_engine(_settings.db_url, **_engine_options(_settings))

# expire_on_commit=False: services hand detached rows to pydantic after commit.
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


def get_db() -> Iterator[Session]:
    """Per-request session, used to resolve the caller's identity."""

    with SessionLocal() as db:
        yield db
