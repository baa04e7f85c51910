from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from exprsec.schemas.documents import DocumentCreate, DocumentIds, DocumentOut, DocumentRename
from exprsec.security.authentication import Authentication
from exprsec.security.dependencies import get_current_authentication
from exprsec.services.documents import DocumentNotFoundError

router = APIRouter(tags=["documents"])


def get_document_service(request: Request):
    service = getattr(request.app.state, "documents", None)
    if service is None:
        raise RuntimeError("Document service not wired. Did app startup run?")
    return service


@router.get("/documents", response_model=list[DocumentOut])
def list_documents(service=Depends(get_document_service)) -> list[DocumentOut]:
    # Unreadable documents are removed by the service's post_filter.
    return service.list_documents()


@router.get("/documents/index", response_model=dict[int, DocumentOut])
def document_index(service=Depends(get_document_service)) -> dict[int, DocumentOut]:
    return service.index()


@router.get("/documents/{document_id}", response_model=DocumentOut)
def get_document(document_id: int, service=Depends(get_document_service)) -> DocumentOut:
    try:
        return service.get_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc


@router.post("/documents", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def create_document(
    payload: DocumentCreate,
    service=Depends(get_document_service),
    authentication: Authentication = Depends(get_current_authentication),
) -> DocumentOut:
    return service.create(authentication.name, payload.title, confidential=payload.confidential)


@router.patch("/documents/{document_id}", response_model=DocumentOut)
def rename_document(document_id: int, payload: DocumentRename, service=Depends(get_document_service)) -> DocumentOut:
    try:
        return service.rename(document_id, payload.title)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(document_id: int, service=Depends(get_document_service)) -> None:
    # The route rule already required ownership (or admin) for this id.
    service.delete_many([document_id])


@router.post("/documents/delete", response_model=DocumentIds)
def delete_documents(payload: DocumentIds, service=Depends(get_document_service)) -> DocumentIds:
    # Ids the caller may not delete are silently dropped by the pre_filter.
    return DocumentIds(ids=service.delete_many(payload.ids))


@router.get("/users/{username}/documents", response_model=list[DocumentOut])
def documents_of(username: str, service=Depends(get_document_service)) -> list[DocumentOut]:
    return service.list_for_owner(username)
