from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class AuthorityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    description: str | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    is_active: bool
    authorities: list[AuthorityOut]


class AuthenticationOut(BaseModel):
    """The caller as the expression engine sees it."""

    name: str | None
    authorities: list[str]
    anonymous: bool
    remember_me: bool
    fully_authenticated: bool
