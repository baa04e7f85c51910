from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from exprsec.models.security import User
from exprsec.security.authentication import Authentication
from exprsec.security.config import AuthConfig

logger = logging.getLogger(__name__)


def _bad_credentials(request: Request, reason: str, detail: str) -> HTTPException:
    logger.warning("Rejected credentials path=%s method=%s reason=%s", request.url.path, request.method, reason)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def bearer_user_id(request: Request, config: AuthConfig) -> int | None:
    """
    User id carried by the bearer credential, or None when the header is absent.

    The demo identity store is keyed by integer id, so the token *is* the id.
    A malformed header is a client error (400), never an anonymous request.
    """

    raw = request.headers.get(config.authorization_header)
    if not raw:
        return None

    scheme, _, token = raw.partition(" ")
    expected = f"'{config.bearer_prefix} <user id>'"
    if scheme != config.bearer_prefix:
        raise _bad_credentials(request, "scheme", f"Invalid {config.authorization_header}. Expected {expected}.")
    token = token.strip()
    if not token:
        raise _bad_credentials(request, "empty", f"Invalid {config.authorization_header}. Expected {expected}.")
    if not token.isdigit():
        raise _bad_credentials(request, "not-an-id", "Bearer token must be a user id in this demo.")
    return int(token)


def remember_me_user_id(request: Request, config: AuthConfig) -> int | None:
    """User id from the remember-me cookie; a weaker proof than a bearer token."""

    raw = request.cookies.get(config.remember_me_cookie)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.info("Ignoring malformed remember-me cookie path=%s", request.url.path)
        return None


def load_user(db: Session, user_id: int) -> User:
    user = db.execute(
        select(User).where(User.id == user_id).options(selectinload(User.authorities))
    ).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user


def to_authentication(user: User, *, remember_me: bool = False) -> Authentication:
    return Authentication.of(
        user.username,
        user.authority_names,
        principal=user.username,
        remember_me=remember_me,
        details={"user_id": user.id, "email": user.email},
    )


def resolve_authentication(request: Request, db: Session, config: AuthConfig) -> Authentication:
    """
    Identity for this request.

    1. bearer token   -> fully authenticated
    2. remember-me    -> authenticated, but not fully
    3. nothing        -> anonymous
    """

    user_id = bearer_user_id(request, config)
    if user_id is not None:
        return to_authentication(load_user(db, user_id))

    remembered = remember_me_user_id(request, config)
    if remembered is not None:
        return to_authentication(load_user(db, remembered), remember_me=True)

    return Authentication.anonymous_user()
