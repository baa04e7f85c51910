"""
Thin layer over the generic expression evaluator (simpleeval).

Key ideas:
- Expressions are parsed once at configuration time into a `CompiledExpression`.
- Each evaluation gets a fresh `EvaluationContext` (names + callables).
- Free names are computed up front so unbound references fail at startup.
- Named templates let one expression text be reused by name.
"""

from __future__ import annotations

import ast
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
import logging
import re
from typing import Any

from simpleeval import EvalWithCompoundTypes

from exprsec.security.errors import (
    ConfigurationError,
    ExpressionEvaluationError,
    SecurityError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """Name/value/function bag an expression is evaluated against."""

    variables: Mapping[str, Any]
    functions: Mapping[str, Callable[..., Any]]

    def with_variables(self, **extra: Any) -> EvaluationContext:
        merged = dict(self.variables)
        merged.update(extra)
        return replace(self, variables=merged)


@dataclass(frozen=True)
class CompiledExpression:
    source: str
    node: ast.AST = field(repr=False, compare=False)
    names: frozenset[str]
    label: str = "<expression>"

    def evaluate(self, context: EvaluationContext) -> Any:
        evaluator = EvalWithCompoundTypes(names=dict(context.variables), functions=dict(context.functions))
        try:
            return evaluator.eval(self.source, previously_parsed=self.node)
        except SecurityError:
            # Permission-store faults and nested denials keep their own type.
            raise
        except Exception as exc:
            logger.error("Expression evaluation failed label=%s expression=%r error=%s", self.label, self.source, exc)
            raise ExpressionEvaluationError(self.label, self.source, exc) from exc

    def evaluate_bool(self, context: EvaluationContext) -> bool:
        return self.evaluate(context) is True

    def literal_call_arguments(self, function_name: str) -> list[tuple[Any, ...]]:
        """Positional arguments of every `function_name(...)` call made only of literals."""

        found: list[tuple[Any, ...]] = []
        for child in ast.walk(self.node):
            if not isinstance(child, ast.Call):
                continue
            if not (isinstance(child.func, ast.Name) and child.func.id == function_name):
                continue
            if all(isinstance(a, ast.Constant) for a in child.args):
                found.append(tuple(a.value for a in child.args))
        return found


# ---- Templates -----------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateRef:
    """Reference to a named expression template, with placeholder values."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


def template(name: str, **params: Any) -> TemplateRef:
    return TemplateRef(name=name, params=params)


_PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}|\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ExpressionTemplates:
    """
    Registry of named expression texts.

        templates = ExpressionTemplates({"hasRoleOf": "hasRole('{role}')"})
        templates.expand(template("hasRoleOf", role="ADMIN"))  # "hasRole('ADMIN')"

    Only `{identifier}` placeholders are substituted, so dict literals survive.
    A single-name set literal is written doubled: `{{x}}` expands to `{x}`.
    """

    def __init__(self, templates: Mapping[str, str] | None = None) -> None:
        self._templates = dict(templates or {})

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def names(self) -> frozenset[str]:
        return frozenset(self._templates)

    def expand(self, expression: str | TemplateRef) -> str:
        if isinstance(expression, str):
            return expression
        text = self._templates.get(expression.name)
        if text is None:
            raise ConfigurationError(f"Unknown expression template {expression.name!r}")

        def substitute(match: re.Match[str]) -> str:
            if match.group(1) is not None:
                return "{" + match.group(1) + "}"
            key = match.group(2)
            if key not in expression.params:
                raise ConfigurationError(f"Template {expression.name!r} requires parameter {key!r}")
            return str(expression.params[key])

        return _PLACEHOLDER_RE.sub(substitute, text)


# ---- Parser --------------------------------------------------------------------------


class ExpressionParser:
    def __init__(self, templates: ExpressionTemplates | None = None) -> None:
        self.templates = templates or ExpressionTemplates()
        self._evaluator = EvalWithCompoundTypes()

    def parse(self, expression: str | TemplateRef, label: str = "<expression>") -> CompiledExpression:
        source = self.templates.expand(expression).strip()
        if not source:
            raise ConfigurationError(f"Empty security expression ({label})")
        try:
            node = self._evaluator.parse(source)
        except SyntaxError as exc:
            raise ConfigurationError(f"Invalid security expression {source!r} ({label}): {exc.msg}") from exc
        if not isinstance(node, ast.Expr):
            raise ConfigurationError(f"Security expression must be a single expression: {source!r} ({label})")
        return CompiledExpression(source=source, node=node, names=_free_names(node), label=label)


def _free_names(node: ast.AST) -> frozenset[str]:
    loaded: set[str] = set()
    stored: set[str] = set()
    for child in ast.walk(node):
        if isinstance(child, ast.Name):
            if isinstance(child.ctx, ast.Store):
                stored.add(child.id)
            else:
                loaded.add(child.id)
    return frozenset(loaded - stored)
