"""
Authority model and the current-identity holder.

The engine only ever reads an `Authentication`; producing one is the job of
the identity layer (see `exprsec.security.auth` for the demo bearer/cookie flow).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

ANONYMOUS_PRINCIPAL = "anonymousUser"
ANONYMOUS_AUTHORITY = "ROLE_ANONYMOUS"


@dataclass(frozen=True)
class Authentication:
    """
    Identity of the current actor plus its granted authorities.

    Notes:
    - `authorities` is a set of opaque strings (roles, permissions, scopes...).
    - `remember_me` marks a weaker proof of identity (e.g. a long-lived cookie).
    - Instances are immutable for the lifetime of a request/invocation.
    """

    name: str | None
    principal: Any = None
    authorities: frozenset[str] = frozenset()
    anonymous: bool = False
    remember_me: bool = False
    details: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def of(
        cls,
        name: str,
        authorities: Iterable[str] = (),
        *,
        principal: Any = None,
        remember_me: bool = False,
        details: Mapping[str, Any] | None = None,
    ) -> Authentication:
        return cls(
            name=name,
            principal=principal if principal is not None else name,
            authorities=frozenset(authorities),
            remember_me=remember_me,
            details=dict(details or {}),
        )

    @classmethod
    def anonymous_user(cls) -> Authentication:
        return cls(
            name=ANONYMOUS_PRINCIPAL,
            principal=ANONYMOUS_PRINCIPAL,
            authorities=frozenset({ANONYMOUS_AUTHORITY}),
            anonymous=True,
        )

    @property
    def is_authenticated(self) -> bool:
        return not self.anonymous

    @property
    def is_fully_authenticated(self) -> bool:
        return not self.anonymous and not self.remember_me


class AuthenticationTrustResolver:
    """Classifies an authentication; a missing authentication counts as anonymous."""

    def is_anonymous(self, authentication: Authentication | None) -> bool:
        return authentication is None or authentication.anonymous

    def is_remember_me(self, authentication: Authentication | None) -> bool:
        return authentication is not None and not authentication.anonymous and authentication.remember_me

    def is_authenticated(self, authentication: Authentication | None) -> bool:
        return not self.is_anonymous(authentication)

    def is_fully_authenticated(self, authentication: Authentication | None) -> bool:
        return not self.is_anonymous(authentication) and not self.is_remember_me(authentication)


# ---- Current identity ----------------------------------------------------------------

_current: ContextVar[Authentication | None] = ContextVar("exprsec_authentication", default=None)


def get_authentication() -> Authentication | None:
    """Authentication bound to the current thread/task, if any."""
    return _current.get()


def set_authentication(authentication: Authentication | None) -> Token:
    return _current.set(authentication)


def clear_authentication(token: Token) -> None:
    _current.reset(token)


@contextmanager
def security_context(authentication: Authentication | None) -> Iterator[Authentication | None]:
    """
    Bind `authentication` for the duration of the block.

    Usage:
        with security_context(Authentication.of("alice", {"ROLE_USER"})):
            service.read(42)
    """

    token = set_authentication(authentication)
    try:
        yield authentication
    finally:
        clear_authentication(token)
