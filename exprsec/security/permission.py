"""
Permission evaluators: answer "may this identity do X to that object?".

Expressions reach them through `hasPermission(target, permission)` and
`hasPermission(target_id, target_type, permission)`. A failing backing store
is surfaced as `PermissionEvaluatorError`; it is never turned into a deny.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
import logging
from typing import Any

from exprsec.security.authentication import Authentication
from exprsec.security.errors import PermissionEvaluatorError

logger = logging.getLogger(__name__)


class PermissionEvaluator(ABC):
    @abstractmethod
    def has_permission(self, authentication: Authentication | None, target: Any, permission: Any) -> bool:
        """Permission check against an already-loaded domain object."""

    @abstractmethod
    def has_permission_by_id(
        self,
        authentication: Authentication | None,
        target_id: Any,
        target_type: str,
        permission: Any,
    ) -> bool:
        """Permission check by identifier; the evaluator loads the target if it needs to."""


class DenyAllPermissionEvaluator(PermissionEvaluator):
    def has_permission(self, authentication, target, permission) -> bool:
        logger.warning("DenyAllPermissionEvaluator denying %r on %r", permission, type(target).__name__)
        return False

    def has_permission_by_id(self, authentication, target_id, target_type, permission) -> bool:
        logger.warning("DenyAllPermissionEvaluator denying %r on %s#%r", permission, target_type, target_id)
        return False


def target_type_of(target: Any) -> str:
    """Type tag of a domain object: its `permission_type` attribute, else its class name."""

    tag = getattr(type(target), "permission_type", None)
    if isinstance(tag, str) and tag:
        return tag
    return type(target).__name__


class RolePermissionEvaluator(PermissionEvaluator):
    """
    Config-driven evaluator: type tag -> permission -> authorities allowed.

    Example (YAML):

        permissions:
          Document:
            read: [ROLE_USER]
            delete: [ROLE_ADMIN]

    Unknown types or permissions deny.
    """

    def __init__(self, grants: Mapping[str, Mapping[str, Iterable[str]]], role_hierarchy=None) -> None:
        self._grants = {
            type_tag: {perm: frozenset(authorities) for perm, authorities in perms.items()}
            for type_tag, perms in grants.items()
        }
        self._role_hierarchy = role_hierarchy

    def has_permission(self, authentication, target, permission) -> bool:
        if target is None:
            return False
        return self.has_permission_by_id(authentication, None, target_type_of(target), permission)

    def has_permission_by_id(self, authentication, target_id, target_type, permission) -> bool:
        if authentication is None:
            return False
        allowed = self._grants.get(target_type, {}).get(str(permission))
        if not allowed:
            return False
        granted = authentication.authorities
        if self._role_hierarchy is not None:
            granted = self._role_hierarchy.reachable_authorities(granted)
        return bool(granted & allowed)


class DelegatingPermissionEvaluator(PermissionEvaluator):
    """Routes each check to the evaluator registered for the target's type tag."""

    def __init__(
        self,
        evaluators: Mapping[str, PermissionEvaluator],
        fallback: PermissionEvaluator | None = None,
    ) -> None:
        self._evaluators = dict(evaluators)
        self._fallback = fallback

    def _route(self, target_type: str) -> PermissionEvaluator | None:
        return self._evaluators.get(target_type, self._fallback)

    def has_permission(self, authentication, target, permission) -> bool:
        delegate = self._route(target_type_of(target))
        if delegate is None:
            logger.debug("No permission evaluator for type=%s", target_type_of(target))
            return False
        return delegate.has_permission(authentication, target, permission)

    def has_permission_by_id(self, authentication, target_id, target_type, permission) -> bool:
        delegate = self._route(target_type)
        if delegate is None:
            logger.debug("No permission evaluator for type=%s", target_type)
            return False
        return delegate.has_permission_by_id(authentication, target_id, target_type, permission)


def invoke_permission_evaluator(evaluator: PermissionEvaluator, authentication, *args: Any) -> bool:
    """
    Call the two- or three-argument form of `evaluator` depending on `args`.

    - 2 args: (target, permission)
    - 3 args: (target_id, target_type, permission)
    """

    if len(args) == 2:
        call = evaluator.has_permission
    elif len(args) == 3:
        call = evaluator.has_permission_by_id
    else:
        raise TypeError(f"hasPermission takes 2 or 3 arguments ({len(args)} given)")

    try:
        result = call(authentication, *args)
    except PermissionEvaluatorError:
        raise
    except Exception as exc:
        logger.error("Permission evaluator %s failed: %s", type(evaluator).__name__, exc)
        raise PermissionEvaluatorError(f"{type(evaluator).__name__} failed: {exc}") from exc

    if not isinstance(result, bool):
        raise PermissionEvaluatorError(
            f"{type(evaluator).__name__} returned {type(result).__name__}, expected bool"
        )
    return result
