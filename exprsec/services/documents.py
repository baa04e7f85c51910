"""
Document service: the protected operations of the demo application.

The methods below contain no authorization code at all; every check lives in
the expressions attached by the decorators and is enforced by the proxy built
with `MethodSecurityInterceptor.protect`.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from exprsec.models.documents import Document
from exprsec.schemas.documents import DocumentOut
from exprsec.security.authentication import Authentication
from exprsec.security.decorators import post_authorize, post_filter, pre_authorize, pre_filter
from exprsec.security.permission import PermissionEvaluator

logger = logging.getLogger(__name__)

ADMIN_AUTHORITY = "ROLE_ADMIN"


class DocumentNotFoundError(LookupError):
    pass


class DocumentService:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @post_filter("hasPermission(filterObject, 'read')")
    def list_documents(self) -> list[DocumentOut]:
        with self._session_factory() as db:
            rows = db.scalars(select(Document).order_by(Document.id)).all()
            return [DocumentOut.model_validate(row) for row in rows]

    @post_filter("hasPermission(filterObject, 'read')")
    def list_for_owner(self, username: str) -> list[DocumentOut]:
        with self._session_factory() as db:
            rows = db.scalars(select(Document).where(Document.owner == username).order_by(Document.id)).all()
            return [DocumentOut.model_validate(row) for row in rows]

    @post_filter("hasPermission(filterObject.value, 'read')")
    def index(self) -> dict[int, DocumentOut]:
        with self._session_factory() as db:
            rows = db.scalars(select(Document).order_by(Document.id)).all()
            return {row.id: DocumentOut.model_validate(row) for row in rows}

    @post_authorize("hasPermission(returnValue, 'read')")
    def get_document(self, document_id: int) -> DocumentOut:
        with self._session_factory() as db:
            row = db.get(Document, document_id)
            if row is None:
                raise DocumentNotFoundError(document_id)
            return DocumentOut.model_validate(row)

    @pre_authorize("isFullyAuthenticated() and owner == authentication.name")
    def create(self, owner: str, title: str, confidential: bool = False) -> DocumentOut:
        with self._session_factory() as db:
            row = Document(title=title, owner=owner, confidential=confidential)
            db.add(row)
            db.commit()
            logger.info("Document created id=%s owner=%s", row.id, owner)
            return DocumentOut.model_validate(row)

    @pre_authorize("hasPermission(document_id, 'Document', 'write')")
    def rename(self, document_id: int, title: str) -> DocumentOut:
        with self._session_factory() as db:
            row = db.get(Document, document_id)
            if row is None:
                raise DocumentNotFoundError(document_id)
            row.title = title
            db.commit()
            return DocumentOut.model_validate(row)

    @pre_authorize("isFullyAuthenticated()")
    @pre_filter("hasPermission(filterObject, 'Document', 'delete')", filter_target="document_ids")
    def delete_many(self, document_ids: list[int]) -> list[int]:
        """Delete the given documents; ids the caller may not delete were already dropped."""

        if not document_ids:
            return []
        with self._session_factory() as db:
            existing = list(db.scalars(select(Document.id).where(Document.id.in_(document_ids))).all())
            db.execute(delete(Document).where(Document.id.in_(existing)))
            db.commit()
        logger.info("Documents deleted ids=%s", existing)
        return existing


class DocumentPermissionEvaluator(PermissionEvaluator):
    """
    Owner-based rules for documents.

    - admins may do anything
    - read: owner, or anyone authenticated when the document is not confidential
    - write / delete: owner only

    Id-based checks load the document from the database; database failures
    propagate (they are not a "no").
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def has_permission(self, authentication, target, permission) -> bool:
        if target is None:
            return False
        return _decide(authentication, target.owner, target.confidential, permission)

    def has_permission_by_id(self, authentication, target_id, target_type, permission) -> bool:
        try:
            document_id = int(target_id)
        except (TypeError, ValueError):
            return False
        with self._session_factory() as db:
            row = db.get(Document, document_id)
            if row is None:
                return False
            return _decide(authentication, row.owner, row.confidential, permission)


def _decide(authentication: Authentication | None, owner: str, confidential: bool, permission: str) -> bool:
    if authentication is None or authentication.anonymous:
        return False
    if ADMIN_AUTHORITY in authentication.authorities:
        return True
    if permission == "read":
        return owner == authentication.name or not confidential
    if permission in ("write", "delete"):
        return owner == authentication.name
    return False


class DocumentAccess:
    """Named helper exposed to route expressions as `documentAccess`."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def is_owner(self, authentication: Authentication | None, document_id) -> bool:
        if authentication is None or authentication.anonymous:
            return False
        try:
            key = int(document_id)
        except (TypeError, ValueError):
            return False
        with self._session_factory() as db:
            owner = db.scalar(select(Document.owner).where(Document.id == key))
        return owner is not None and owner == authentication.name
