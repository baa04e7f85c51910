from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from exprsec.db.session import get_db
from exprsec.models.security import User
from exprsec.schemas.security import AuthenticationOut, UserOut
from exprsec.security.authentication import Authentication
from exprsec.security.dependencies import get_current_authentication

router = APIRouter(tags=["admin"])


@router.get("/me", response_model=AuthenticationOut)
def me(authentication: Authentication = Depends(get_current_authentication)) -> AuthenticationOut:
    return AuthenticationOut(
        name=authentication.name,
        authorities=sorted(authentication.authorities),
        anonymous=authentication.anonymous,
        remember_me=authentication.remember_me,
        fully_authenticated=authentication.is_fully_authenticated,
    )


@router.get("/admin/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)) -> list[User]:
    # Access is governed by the `/admin/users` rule in security_config.yaml.
    stmt = select(User).options(selectinload(User.authorities)).order_by(User.id)
    return list(db.scalars(stmt).all())


@router.get("/admin/audit")
def audit_report() -> dict[str, object]:
    # Guarded by hasPermission('daily', 'AuditReport', 'read') in security_config.yaml.
    return {"report": "daily", "entries": []}
