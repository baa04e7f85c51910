from __future__ import annotations

from collections.abc import AsyncIterator
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from exprsec.db.session import get_db
from exprsec.security.auth import resolve_authentication
from exprsec.security.authentication import Authentication, clear_authentication, set_authentication
from exprsec.security.config import SecurityConfig
from exprsec.security.errors import ExpressionEvaluationError, PermissionEvaluatorError

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_authentication(request: Request) -> Authentication:
    authentication = getattr(request.state, "authentication", None)
    if authentication is None or authentication.anonymous:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return authentication


async def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    db: Session = Depends(get_db, use_cache=False),
) -> AsyncIterator[None]:
    """
    Global security dependency (configuration-driven).

    Why an async dependency?
    - It runs in the request task, so the identity it binds is visible to the
      endpoint and to any method security the endpoint calls into.
    - Blocking work (identity lookup, permission checks) is pushed to the threadpool.
    - The identity is unbound again once the request is done.
    """

    authentication = await run_in_threadpool(resolve_authentication, request, db, config.auth)
    request.state.authentication = authentication

    token = set_authentication(authentication)
    try:
        match = config.match(request.url.path, request.method)
        context = config.handler.create_web_context(authentication, request, match.path_variables)

        try:
            allowed = await run_in_threadpool(match.expression.evaluate_bool, context)
        except PermissionEvaluatorError as exc:
            logger.error("Permission evaluator failed path=%s method=%s error=%s", request.url.path, request.method, exc)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Authorization service unavailable") from exc
        except ExpressionEvaluationError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Authorization evaluation failed") from exc

        if not allowed:
            logger.info(
                "Access denied path=%s method=%s rule=%s principal=%s",
                request.url.path,
                request.method,
                match.expression.label,
                authentication.name,
            )
            if authentication.anonymous:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access is denied")

        yield
    finally:
        clear_authentication(token)
