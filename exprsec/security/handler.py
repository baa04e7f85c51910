"""
Builds evaluation contexts (common, web, method) and validates expressions.

The handler is assembled once at startup and is read-only afterwards, so a
single instance is shared by every request/call.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import ipaddress
import logging
from typing import Any

from exprsec.security.authentication import Authentication, AuthenticationTrustResolver
from exprsec.security.beans import BeanRegistry
from exprsec.security.errors import ConfigurationError
from exprsec.security.expressions import (
    CompiledExpression,
    EvaluationContext,
    ExpressionParser,
    ExpressionTemplates,
    TemplateRef,
)
from exprsec.security.hierarchy import RoleHierarchy
from exprsec.security.parameters import ParameterNameDiscoverer
from exprsec.security.permission import PermissionEvaluator
from exprsec.security.root import (
    BUILTIN_FUNCTIONS,
    BUILTIN_VARIABLES,
    DEFAULT_ROLE_PREFIX,
    IP_ADDRESS_FUNCTION,
    PERMISSION_FUNCTION,
    REQUEST,
    UNSET,
    MethodSecurityExpressionRoot,
    SecurityExpressionRoot,
    WebSecurityExpressionRoot,
)

logger = logging.getLogger(__name__)


class SecurityExpressionHandler:
    def __init__(
        self,
        *,
        default_role_prefix: str | None = DEFAULT_ROLE_PREFIX,
        permission_evaluator: PermissionEvaluator | None = None,
        role_hierarchy: RoleHierarchy | None = None,
        trust_resolver: AuthenticationTrustResolver | None = None,
        beans: BeanRegistry | Mapping[str, Any] | None = None,
        templates: ExpressionTemplates | Mapping[str, str] | None = None,
        parameter_name_discoverer: ParameterNameDiscoverer | None = None,
    ) -> None:
        self.default_role_prefix = default_role_prefix
        self.permission_evaluator = permission_evaluator
        self.role_hierarchy = role_hierarchy
        self.trust_resolver = trust_resolver or AuthenticationTrustResolver()
        self.beans = beans if isinstance(beans, BeanRegistry) else BeanRegistry(beans)
        if not isinstance(templates, ExpressionTemplates):
            templates = ExpressionTemplates(templates)
        self.parser = ExpressionParser(templates)
        self.parameter_name_discoverer = parameter_name_discoverer or ParameterNameDiscoverer()

    # ---- Configuration time ---------------------------------------------------------

    def parse(self, expression: str | TemplateRef, label: str) -> CompiledExpression:
        return self.parser.parse(expression, label)

    def validate(self, compiled: CompiledExpression, extra_names: Iterable[str] = (), *, web: bool = False) -> None:
        """
        Fail fast on expressions that could never evaluate cleanly.

        - every free name must be a built-in, a bean, or one of `extra_names`
        - `hasPermission` requires a configured permission evaluator
        - literal `hasIpAddress` ranges must parse (web expressions only)
        """

        known = set(BUILTIN_FUNCTIONS) | set(BUILTIN_VARIABLES) | set(self.beans) | set(extra_names)
        if web:
            known |= {REQUEST, IP_ADDRESS_FUNCTION}
        unknown = sorted(compiled.names - known)
        if unknown:
            raise ConfigurationError(f"Expression {compiled.label} references unbound name(s) {unknown}: {compiled.source!r}")

        if PERMISSION_FUNCTION in compiled.names and self.permission_evaluator is None:
            raise ConfigurationError(
                f"Expression {compiled.label} calls {PERMISSION_FUNCTION}() but no permission evaluator is configured"
            )

        if web:
            for args in compiled.literal_call_arguments(IP_ADDRESS_FUNCTION):
                if len(args) != 1:
                    raise ConfigurationError(f"{IP_ADDRESS_FUNCTION}() takes one argument ({compiled.label})")
                try:
                    ipaddress.ip_network(str(args[0]), strict=False)
                except ValueError as exc:
                    raise ConfigurationError(f"Invalid IP range {args[0]!r} in {compiled.label}: {exc}") from exc

    # ---- Per evaluation -------------------------------------------------------------

    def create_root(self, authentication: Authentication | None) -> SecurityExpressionRoot:
        # No bound identity means anonymous.
        if authentication is None:
            authentication = Authentication.anonymous_user()
        return SecurityExpressionRoot(
            authentication,
            default_role_prefix=self.default_role_prefix,
            role_hierarchy=self.role_hierarchy,
            trust_resolver=self.trust_resolver,
            permission_evaluator=self.permission_evaluator,
        )

    def _with_beans(self, context: EvaluationContext) -> EvaluationContext:
        if not self.beans:
            return context
        variables = dict(self.beans)
        variables.update(context.variables)
        return EvaluationContext(variables=variables, functions=context.functions)

    def create_context(self, authentication: Authentication | None) -> EvaluationContext:
        return self._with_beans(self.create_root(authentication).context())

    def create_web_context(
        self,
        authentication: Authentication | None,
        request: Any,
        path_variables: Mapping[str, str] | None = None,
    ) -> EvaluationContext:
        root = WebSecurityExpressionRoot(self.create_root(authentication), request, path_variables)
        return self._with_beans(root.context())

    def create_method_context(
        self,
        authentication: Authentication | None,
        arguments: Mapping[str, Any],
        *,
        target: Any = None,
        return_value: Any = UNSET,
    ) -> EvaluationContext:
        root = MethodSecurityExpressionRoot(
            self.create_root(authentication),
            arguments,
            target=target,
            return_value=return_value,
        )
        return self._with_beans(root.context())
