from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
import re
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from exprsec.security.beans import BeanRegistry
from exprsec.security.errors import ConfigurationError
from exprsec.security.expressions import CompiledExpression, TemplateRef
from exprsec.security.handler import SecurityExpressionHandler
from exprsec.security.hierarchy import RoleHierarchy
from exprsec.security.permission import (
    DelegatingPermissionEvaluator,
    PermissionEvaluator,
    RolePermissionEvaluator,
)
from exprsec.security.root import DEFAULT_ROLE_PREFIX, RESERVED_NAMES

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    remember_me_cookie: str = "remember-me"


class TemplateRefModel(BaseModel):
    name: str
    params: dict[str, Any] = Field(default_factory=dict)


class AccessRule(BaseModel):
    access: str | None = None
    template: TemplateRefModel | None = None

    @model_validator(mode="after")
    def _one_expression(self) -> AccessRule:
        if (self.access is None) == (self.template is None):
            raise ValueError("exactly one of 'access' or 'template' is required")
        return self

    def expression(self) -> str | TemplateRef:
        if self.template is not None:
            return TemplateRef(name=self.template.name, params=self.template.params)
        return self.access  # type: ignore[return-value]


class DefaultRule(AccessRule):
    access: str | None = "isAuthenticated()"

    @model_validator(mode="before")
    @classmethod
    def _template_replaces_default(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("template") is not None and "access" not in data:
            data = {**data, "access": None}
        return data


class RouteRule(AccessRule):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    default_role_prefix: str = DEFAULT_ROLE_PREFIX
    role_hierarchy: dict[str, list[str]] = Field(default_factory=dict)
    templates: dict[str, str] = Field(default_factory=dict)
    # type tag -> permission -> authorities
    permissions: dict[str, dict[str, list[str]]] = Field(default_factory=dict)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class CompiledRoute:
    path: str
    regex: re.Pattern[str]
    methods: frozenset[str]
    variables: tuple[str, ...]
    expression: CompiledExpression


@dataclass(frozen=True)
class RouteMatch:
    """The expression that governs a request, plus the path variables it binds."""

    expression: CompiledExpression
    path_variables: Mapping[str, str]


_PATH_VARIABLE_RE = re.compile(r"\{([^/{}]+)\}")


def _path_template_to_regex(path_template: str) -> tuple[re.Pattern[str], tuple[str, ...]]:
    # Convert "/users/{username}/documents" -> r"^/users/(?P<username>[^/]+)/documents$"
    variables: list[str] = []
    pieces: list[str] = []
    last = 0
    for match in _PATH_VARIABLE_RE.finditer(path_template):
        name = match.group(1).strip()
        if not name.isidentifier():
            raise ConfigurationError(f"Path variable {name!r} in {path_template!r} is not a valid identifier")
        if name in RESERVED_NAMES:
            raise ConfigurationError(f"Path variable {name!r} in {path_template!r} shadows a built-in name")
        if name in variables:
            raise ConfigurationError(f"Path variable {name!r} appears twice in {path_template!r}")
        variables.append(name)
        pieces.append(re.escape(path_template[last : match.start()]))
        pieces.append(f"(?P<{name}>[^/]+)")
        last = match.end()
    pieces.append(re.escape(path_template[last:]))
    return re.compile(rf"^{''.join(pieces)}$"), tuple(variables)


class SecurityConfig:
    """
    Runtime helper around validated config: the expression handler plus
    compiled route rules.

    Every route expression is parsed and checked here, so a typo in the YAML
    stops startup instead of failing a request.
    """

    def __init__(self, model: SecurityConfigModel, handler: SecurityExpressionHandler):
        self.model = model
        self.handler = handler

        compiled: list[CompiledRoute] = []
        for index, rule in enumerate(self.model.routes):
            regex, variables = _path_template_to_regex(rule.path)
            expression = handler.parse(rule.expression(), f"routes[{index}] {rule.path}")
            handler.validate(expression, variables, web=True)
            compiled.append(
                CompiledRoute(
                    path=rule.path,
                    regex=regex,
                    methods=frozenset(rule.normalized_methods()),
                    variables=variables,
                    expression=expression,
                )
            )

        # Prefer exact matches over templates.
        self._exact_routes: dict[str, list[CompiledRoute]] = {}
        for route in compiled:
            if not route.variables:
                self._exact_routes.setdefault(route.path, []).append(route)
        self._compiled_routes = compiled

        self._default = handler.parse(self.model.default.expression(), "default")
        handler.validate(self._default, web=True)

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> RouteMatch:
        """
        Find the best matching rule for (path, method); fall back to the default rule.
        """

        method = method.upper()

        # 1) exact path match
        for candidate in self._exact_routes.get(path, []):
            if method in candidate.methods:
                return RouteMatch(expression=candidate.expression, path_variables={})

        # 2) template match
        for candidate in self._compiled_routes:
            if method not in candidate.methods:
                continue
            found = candidate.regex.match(path)
            if found:
                logger.debug("Route %s %s matched %s", method, path, candidate.path)
                return RouteMatch(expression=candidate.expression, path_variables=found.groupdict())

        # 3) no match -> default
        logger.debug("Route %s %s matched no rule, using default", method, path)
        return RouteMatch(expression=self._default, path_variables={})


def build_expression_handler(
    model: SecurityConfigModel,
    *,
    permission_evaluators: Mapping[str, PermissionEvaluator] | None = None,
    beans: Mapping[str, Any] | None = None,
) -> SecurityExpressionHandler:
    """
    Assemble the handler from config.

    - `role_hierarchy` -> RoleHierarchy (cycles rejected)
    - `permissions` -> RolePermissionEvaluator, used as fallback behind any
      per-type evaluators passed in
    """

    hierarchy = RoleHierarchy(model.role_hierarchy) if model.role_hierarchy else None

    fallback = RolePermissionEvaluator(model.permissions, hierarchy) if model.permissions else None
    evaluator: PermissionEvaluator | None
    if permission_evaluators:
        evaluator = DelegatingPermissionEvaluator(permission_evaluators, fallback=fallback)
    else:
        evaluator = fallback

    return SecurityExpressionHandler(
        default_role_prefix=model.default_role_prefix,
        permission_evaluator=evaluator,
        role_hierarchy=hierarchy,
        beans=BeanRegistry(beans),
        templates=model.templates,
    )


def load_security_config(
    path: Path,
    *,
    permission_evaluators: Mapping[str, PermissionEvaluator] | None = None,
    beans: Mapping[str, Any] | None = None,
) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    handler = build_expression_handler(model, permission_evaluators=permission_evaluators, beans=beans)
    return SecurityConfig(model, handler)
