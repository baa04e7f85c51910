"""
Expression roots: the names and predicates an expression can see.

`SecurityExpressionRoot` holds the built-in predicate library. Web and method
roots wrap it (composition) and only add their own bindings on top.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import ipaddress
import logging
from typing import Any

from exprsec.security.authentication import Authentication, AuthenticationTrustResolver
from exprsec.security.errors import ConfigurationError
from exprsec.security.expressions import EvaluationContext
from exprsec.security.hierarchy import RoleHierarchy
from exprsec.security.permission import PermissionEvaluator, invoke_permission_evaluator

logger = logging.getLogger(__name__)

DEFAULT_ROLE_PREFIX = "ROLE_"

FILTER_OBJECT = "filterObject"
RETURN_VALUE = "returnValue"
REQUEST = "request"
THIS = "this"

PERMISSION_FUNCTION = "hasPermission"
IP_ADDRESS_FUNCTION = "hasIpAddress"

BUILTIN_FUNCTIONS = frozenset(
    {
        "hasRole",
        "hasAnyRole",
        "hasAuthority",
        "hasAnyAuthority",
        PERMISSION_FUNCTION,
        "isAnonymous",
        "isRememberMe",
        "isAuthenticated",
        "isFullyAuthenticated",
    }
)
BUILTIN_VARIABLES = frozenset({"principal", "authentication", "permitAll", "denyAll"})
RESERVED_NAMES = BUILTIN_FUNCTIONS | BUILTIN_VARIABLES | {FILTER_OBJECT, RETURN_VALUE, REQUEST, THIS, IP_ADDRESS_FUNCTION}


def with_role_prefix(prefix: str | None, role: str) -> str:
    if not prefix or role.startswith(prefix):
        return role
    return prefix + role


class SecurityExpressionRoot:
    """
    Built-in predicates shared by every kind of expression.

    Notes:
    - A missing authentication is treated as anonymous, never as an error.
    - The role prefix is applied to the *argument* of hasRole/hasAnyRole only.
    - The authority set is resolved lazily (role hierarchy applied) once per root.
    """

    def __init__(
        self,
        authentication: Authentication | None,
        *,
        default_role_prefix: str | None = DEFAULT_ROLE_PREFIX,
        role_hierarchy: RoleHierarchy | None = None,
        trust_resolver: AuthenticationTrustResolver | None = None,
        permission_evaluator: PermissionEvaluator | None = None,
    ) -> None:
        self._authentication = authentication
        self._default_role_prefix = default_role_prefix
        self._role_hierarchy = role_hierarchy
        self._trust_resolver = trust_resolver or AuthenticationTrustResolver()
        self._permission_evaluator = permission_evaluator
        self._authorities: frozenset[str] | None = None

    # ---- Values ---------------------------------------------------------------------

    @property
    def authentication(self) -> Authentication | None:
        return self._authentication

    @property
    def principal(self) -> Any:
        if self._authentication is None:
            return None
        return self._authentication.principal

    @property
    def permit_all(self) -> bool:
        return True

    @property
    def deny_all(self) -> bool:
        return False

    # ---- Authority predicates ---------------------------------------------------------

    def _authority_set(self) -> frozenset[str]:
        if self._authorities is None:
            granted = self._authentication.authorities if self._authentication is not None else frozenset()
            if self._role_hierarchy is not None:
                granted = self._role_hierarchy.reachable_authorities(granted)
            self._authorities = frozenset(granted)
        return self._authorities

    def _has_any(self, prefix: str | None, candidates: tuple[Any, ...]) -> bool:
        granted = self._authority_set()
        for candidate in candidates:
            if isinstance(candidate, str) and with_role_prefix(prefix, candidate) in granted:
                return True
        return False

    def has_authority(self, authority: str) -> bool:
        return self._has_any(None, (authority,))

    def has_any_authority(self, *authorities: str) -> bool:
        return self._has_any(None, authorities)

    def has_role(self, role: str) -> bool:
        return self._has_any(self._default_role_prefix, (role,))

    def has_any_role(self, *roles: str) -> bool:
        return self._has_any(self._default_role_prefix, roles)

    # ---- Authentication state ---------------------------------------------------------

    def is_anonymous(self) -> bool:
        return self._trust_resolver.is_anonymous(self._authentication)

    def is_remember_me(self) -> bool:
        return self._trust_resolver.is_remember_me(self._authentication)

    def is_authenticated(self) -> bool:
        return self._trust_resolver.is_authenticated(self._authentication)

    def is_fully_authenticated(self) -> bool:
        return self._trust_resolver.is_fully_authenticated(self._authentication)

    # ---- Permissions ------------------------------------------------------------------

    def has_permission(self, *args: Any) -> bool:
        if self._permission_evaluator is None:
            raise ConfigurationError("hasPermission() used but no permission evaluator is configured")
        return invoke_permission_evaluator(self._permission_evaluator, self._authentication, *args)

    # ---- Context ----------------------------------------------------------------------

    def variables(self) -> dict[str, Any]:
        return {
            "principal": self.principal,
            "authentication": self._authentication,
            "permitAll": self.permit_all,
            "denyAll": self.deny_all,
        }

    def functions(self) -> dict[str, Callable[..., Any]]:
        return {
            "hasRole": self.has_role,
            "hasAnyRole": self.has_any_role,
            "hasAuthority": self.has_authority,
            "hasAnyAuthority": self.has_any_authority,
            PERMISSION_FUNCTION: self.has_permission,
            "isAnonymous": self.is_anonymous,
            "isRememberMe": self.is_remember_me,
            "isAuthenticated": self.is_authenticated,
            "isFullyAuthenticated": self.is_fully_authenticated,
        }

    def context(self) -> EvaluationContext:
        return EvaluationContext(variables=self.variables(), functions=self.functions())


class WebSecurityExpressionRoot:
    """Common predicates + the inbound request, its path variables and `hasIpAddress`."""

    def __init__(
        self,
        root: SecurityExpressionRoot,
        request: Any,
        path_variables: Mapping[str, str] | None = None,
    ) -> None:
        self.root = root
        self.request = request
        self.path_variables = dict(path_variables or {})

    def has_ip_address(self, ip_range: str) -> bool:
        network = ipaddress.ip_network(ip_range, strict=False)
        host = remote_address(self.request)
        if host is None:
            return False
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            logger.debug("Unparseable remote address %r", host)
            return False
        return address in network

    def variables(self) -> dict[str, Any]:
        variables: dict[str, Any] = dict(self.path_variables)
        variables.update(self.root.variables())
        variables[REQUEST] = self.request
        return variables

    def functions(self) -> dict[str, Callable[..., Any]]:
        functions = self.root.functions()
        functions[IP_ADDRESS_FUNCTION] = self.has_ip_address
        return functions

    def context(self) -> EvaluationContext:
        return EvaluationContext(variables=self.variables(), functions=self.functions())


def remote_address(request: Any) -> str | None:
    client = getattr(request, "client", None)
    host = getattr(client, "host", None)
    if host is None:
        host = getattr(request, "remote_addr", None)
    return host


UNSET: Any = object()


class MethodSecurityExpressionRoot:
    """
    Common predicates + the call's named arguments.

    `returnValue` is only bound for post-invocation expressions; `filterObject`
    is rebound per element by the collection filter.
    """

    def __init__(
        self,
        root: SecurityExpressionRoot,
        arguments: Mapping[str, Any],
        *,
        target: Any = None,
        return_value: Any = UNSET,
    ) -> None:
        self.root = root
        self.arguments = dict(arguments)
        self.target = target
        self.return_value = return_value

    def variables(self) -> dict[str, Any]:
        variables: dict[str, Any] = dict(self.arguments)
        variables.update(self.root.variables())
        if self.target is not None:
            variables[THIS] = self.target
        if self.return_value is not UNSET:
            variables[RETURN_VALUE] = self.return_value
        return variables

    def functions(self) -> dict[str, Callable[..., Any]]:
        return self.root.functions()

    def context(self) -> EvaluationContext:
        return EvaluationContext(variables=self.variables(), functions=self.functions())
