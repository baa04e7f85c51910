"""
Expression-based authorization.

Expressions such as `hasRole('ADMIN') or hasPermission(document, 'write')` are
attached to routes (YAML) or to methods (decorators) and evaluated against the
current identity. This package has no dependency on the demo app packages
(exprsec.db, exprsec.routers, ...) except for `auth` and `dependencies`, which
plug it into FastAPI.
"""

from .authentication import Authentication, AuthenticationTrustResolver, get_authentication, security_context
from .beans import BeanRegistry
from .decorators import post_authorize, post_filter, pre_authorize, pre_filter
from .errors import (
    AccessDeniedError,
    ConfigurationError,
    ExpressionEvaluationError,
    PermissionEvaluatorError,
    SecurityError,
)
from .expressions import EvaluationContext, ExpressionTemplates, template
from .filtering import MapEntry, filter_collection
from .handler import SecurityExpressionHandler
from .hierarchy import RoleHierarchy
from .method import MethodSecurityInterceptor
from .parameters import P, Param
from .permission import (
    DelegatingPermissionEvaluator,
    DenyAllPermissionEvaluator,
    PermissionEvaluator,
    RolePermissionEvaluator,
)

__all__ = [
    "AccessDeniedError",
    "Authentication",
    "AuthenticationTrustResolver",
    "BeanRegistry",
    "ConfigurationError",
    "DelegatingPermissionEvaluator",
    "DenyAllPermissionEvaluator",
    "EvaluationContext",
    "ExpressionEvaluationError",
    "ExpressionTemplates",
    "MapEntry",
    "MethodSecurityInterceptor",
    "P",
    "Param",
    "PermissionEvaluator",
    "PermissionEvaluatorError",
    "RoleHierarchy",
    "RolePermissionEvaluator",
    "SecurityError",
    "SecurityExpressionHandler",
    "filter_collection",
    "get_authentication",
    "post_authorize",
    "post_filter",
    "pre_authorize",
    "pre_filter",
    "security_context",
    "template",
]
