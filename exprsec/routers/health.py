from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/internal/ping")
def internal_ping() -> dict[str, str]:
    return {"status": "pong"}
