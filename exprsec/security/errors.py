from __future__ import annotations


class SecurityError(Exception):
    """Base class for everything raised by the expression security engine."""


class ConfigurationError(SecurityError, ValueError):
    """
    Raised while assembling security configuration.

    Examples: unresolved parameter names, ambiguous pre-filter targets,
    unsupported filter shapes, `hasPermission` without a permission evaluator.
    These are startup failures, not per-call outcomes.
    """


class AccessDeniedError(SecurityError):
    """
    Expected per-call outcome: an authorization expression did not yield True.

    The message is fixed on purpose so callers never learn which rule said no.
    """

    def __init__(self) -> None:
        super().__init__("Access is denied")


class ExpressionEvaluationError(SecurityError):
    """An expression could not be evaluated against the supplied context."""

    def __init__(self, label: str, expression: str, cause: BaseException) -> None:
        super().__init__(f"Failed to evaluate expression {expression!r} ({label}): {cause}")
        self.label = label
        self.expression = expression


class PermissionEvaluatorError(SecurityError):
    """The permission evaluator (or the store behind it) failed to answer."""
