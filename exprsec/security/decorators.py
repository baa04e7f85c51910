from __future__ import annotations

from collections.abc import Callable

from exprsec.security.errors import ConfigurationError
from exprsec.security.expressions import TemplateRef

PRE_AUTHORIZE_ATTR = "__security_pre_authorize__"
PRE_FILTER_ATTR = "__security_pre_filter__"
PRE_FILTER_TARGET_ATTR = "__security_pre_filter_target__"
POST_AUTHORIZE_ATTR = "__security_post_authorize__"
POST_FILTER_ATTR = "__security_post_filter__"

SECURITY_ATTRS = (PRE_AUTHORIZE_ATTR, PRE_FILTER_ATTR, POST_AUTHORIZE_ATTR, POST_FILTER_ATTR)

Expression = str | TemplateRef


def _attach(fn: Callable, attr: str, expression: Expression) -> None:
    if getattr(fn, attr, None) is not None:
        raise ConfigurationError(f"{getattr(fn, '__qualname__', fn)!r} already has a {attr.strip('_')} expression")
    setattr(fn, attr, expression)


def pre_authorize(expression: Expression) -> Callable:
    """
    Attach a pre-invocation authorization expression.

    Implementation detail:
    - This decorator does NOT perform authorization itself.
    - It attaches metadata that `MethodSecurityInterceptor.secured` resolves once,
      when the function is wired up at startup.
    """

    def decorator(fn: Callable) -> Callable:
        _attach(fn, PRE_AUTHORIZE_ATTR, expression)
        return fn

    return decorator


def pre_filter(expression: Expression, filter_target: str | None = None) -> Callable:
    """
    Attach a pre-invocation filter; `filterObject` is each element of the target argument.

    `filter_target` names the argument to filter. It is required when more than
    one argument is a container.
    """

    def decorator(fn: Callable) -> Callable:
        _attach(fn, PRE_FILTER_ATTR, expression)
        setattr(fn, PRE_FILTER_TARGET_ATTR, filter_target)
        return fn

    return decorator


def post_authorize(expression: Expression) -> Callable:
    """Attach a post-invocation authorization expression; `returnValue` is in scope."""

    def decorator(fn: Callable) -> Callable:
        _attach(fn, POST_AUTHORIZE_ATTR, expression)
        return fn

    return decorator


def post_filter(expression: Expression) -> Callable:
    def decorator(fn: Callable) -> Callable:
        _attach(fn, POST_FILTER_ATTR, expression)
        return fn

    return decorator


def has_security_metadata(fn: object) -> bool:
    return any(getattr(fn, attr, None) is not None for attr in SECURITY_ATTRS)
