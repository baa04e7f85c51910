"""
Role hierarchy: lets a granted role imply other roles.

Example (YAML):

    role_hierarchy:
      ROLE_ADMIN: [ROLE_STAFF]
      ROLE_STAFF: [ROLE_USER]

A user granted ROLE_ADMIN is treated as also holding ROLE_STAFF and ROLE_USER.
Inheritance is resolved once at startup; cycles are rejected.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging

from exprsec.security.errors import ConfigurationError

logger = logging.getLogger(__name__)


class RoleHierarchy:
    def __init__(self, implied: Mapping[str, Iterable[str]] | None = None) -> None:
        raw: dict[str, frozenset[str]] = {}
        for role, children in (implied or {}).items():
            if isinstance(children, str):
                raise ConfigurationError(f"role_hierarchy[{role!r}] must be a list of roles, not a string")
            raw[str(role)] = frozenset(str(c) for c in children)
        self._implied = raw
        self._reachable = _compute_reachable(raw)

    @property
    def reachable(self) -> Mapping[str, frozenset[str]]:
        """Reachable roles per configured role (the role itself included)."""
        return dict(self._reachable)

    def reachable_authorities(self, authorities: Iterable[str]) -> frozenset[str]:
        result: set[str] = set()
        for authority in authorities:
            result.add(authority)
            result.update(self._reachable.get(authority, ()))
        return frozenset(result)


def _compute_reachable(implied: Mapping[str, frozenset[str]]) -> dict[str, frozenset[str]]:
    """Transitive closure over `implied`, raising ConfigurationError on cycles."""

    reachable: dict[str, frozenset[str]] = {}
    visiting: set[str] = set()

    def dfs(role: str) -> frozenset[str]:
        if role in reachable:
            return reachable[role]
        if role in visiting:
            raise ConfigurationError(f"cycle detected in role hierarchy at {role!r}")
        visiting.add(role)
        roles = {role}
        for child in implied.get(role, ()):
            roles.update(dfs(child))
        result = frozenset(roles)
        reachable[role] = result
        visiting.remove(role)
        return result

    for name in implied:
        dfs(name)

    logger.debug("Role hierarchy resolved: %s", {k: sorted(v) for k, v in reachable.items()})
    return reachable
