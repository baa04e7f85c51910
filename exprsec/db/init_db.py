from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from exprsec.db.base import Base
from exprsec.db.session import SessionLocal, engine
from exprsec.models.documents import Document
from exprsec.models.security import Authority, User


def init_db(*, seed_demo_data: bool = True) -> None:
    """
    Create tables, then seed demo data into an empty database.

    The seed is small and deterministic so the expression rules can be tried
    without additional setup.
    """

    Base.metadata.create_all(bind=engine)
    if not seed_demo_data:
        return

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(User.id).limit(1)).first() is not None


def seed(db: Session) -> None:
    # Authorities
    admin = Authority(name="ROLE_ADMIN", description="System administrator")
    staff = Authority(name="ROLE_STAFF", description="Staff member")
    user = Authority(name="ROLE_USER", description="Regular user")
    audit = Authority(name="audit:read", description="May read audit reports")
    db.add_all([admin, staff, user, audit])
    db.flush()

    # Users
    alice = User(username="alice", email="alice@example.com", is_active=True)
    alice.authorities.append(admin)

    bob = User(username="bob", email="bob@example.com", is_active=True)
    bob.authorities.append(user)

    carol = User(username="carol", email="carol@example.com", is_active=True)
    carol.authorities.extend([staff, audit])

    dave = User(username="dave", email="dave@example.com", is_active=False)
    dave.authorities.append(user)

    db.add_all([alice, bob, carol, dave])
    db.flush()

    # Documents
    db.add_all(
        [
            Document(title="Company handbook", owner="alice", confidential=False),
            Document(title="Salary bands", owner="alice", confidential=True),
            Document(title="Bob's notes", owner="bob", confidential=False),
            Document(title="Bob's diary", owner="bob", confidential=True),
            Document(title="Quarterly plan", owner="carol", confidential=False),
        ]
    )
    db.commit()
