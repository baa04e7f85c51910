"""
Method security: the pre/post invocation decision protocol.

Phases of one call:

    START -> PRE_AUTHORIZED -> INVOKED -> POST_FILTERED -> POST_AUTHORIZED -> DONE
                     \\________________________\\______________/
                                         DENIED

- A pre-authorize denial means the function never runs.
- A post-authorize denial means the caller never sees the (already computed) value.
- Evaluation faults and permission-store faults propagate as their own
  exception types; they are never reported as denials.

Usage:
    interceptor = MethodSecurityInterceptor(handler)

    class Documents:
        @pre_authorize("hasRole('USER')")
        @post_filter("filterObject.owner == authentication.name")
        def list_documents(self) -> list[Document]: ...

    documents = interceptor.protect(Documents())
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import enum
import functools
import inspect
import logging
from typing import Any

from exprsec.security.authentication import Authentication, get_authentication
from exprsec.security.decorators import (
    POST_AUTHORIZE_ATTR,
    POST_FILTER_ATTR,
    PRE_AUTHORIZE_ATTR,
    PRE_FILTER_ATTR,
    PRE_FILTER_TARGET_ATTR,
    has_security_metadata,
)
from exprsec.security.errors import AccessDeniedError, ConfigurationError
from exprsec.security.expressions import CompiledExpression
from exprsec.security.filtering import filter_with_expression, is_filterable, is_filterable_type
from exprsec.security.handler import SecurityExpressionHandler
from exprsec.security.parameters import ParameterBinder, type_hints
from exprsec.security.root import FILTER_OBJECT, RETURN_VALUE, THIS, UNSET

logger = logging.getLogger(__name__)


class InvocationPhase(enum.Enum):
    START = "start"
    PRE_AUTHORIZED = "pre_authorized"
    INVOKED = "invoked"
    POST_FILTERED = "post_filtered"
    POST_AUTHORIZED = "post_authorized"
    DONE = "done"
    DENIED = "denied"


@dataclass(frozen=True)
class MethodSecurityAttachment:
    """
    Fully-resolved security metadata for one callable.

    Built once when the callable is secured; read-only afterwards.
    """

    operation: str
    binder: ParameterBinder
    target: Any = None
    pre_authorize: CompiledExpression | None = None
    pre_filter: CompiledExpression | None = None
    # Parameter name to filter; None means "decide from the actual arguments".
    filter_target: str | None = None
    post_authorize: CompiledExpression | None = None
    post_filter: CompiledExpression | None = None

    @property
    def has_expressions(self) -> bool:
        return any(e is not None for e in (self.pre_authorize, self.pre_filter, self.post_authorize, self.post_filter))


class MethodSecurityInterceptor:
    def __init__(self, handler: SecurityExpressionHandler) -> None:
        self.handler = handler

    # ---- Configuration time ---------------------------------------------------------

    def attachment_for(self, fn: Callable[..., Any]) -> MethodSecurityAttachment:
        operation = getattr(fn, "__qualname__", None) or repr(fn)
        binder = ParameterBinder(fn, self.handler.parameter_name_discoverer)
        arguments = set(binder.names)
        if getattr(fn, "__self__", None) is not None:
            arguments.add(THIS)

        def compile_slot(attr: str, slot: str, extra: set[str]) -> CompiledExpression | None:
            expression = getattr(fn, attr, None)
            if expression is None:
                return None
            compiled = self.handler.parse(expression, f"{operation}:{slot}")
            self.handler.validate(compiled, arguments | extra)
            return compiled

        pre_filter = compile_slot(PRE_FILTER_ATTR, "pre_filter", {FILTER_OBJECT})
        filter_target = None
        if pre_filter is not None:
            filter_target = self._static_filter_target(fn, binder, getattr(fn, PRE_FILTER_TARGET_ATTR, None))

        attachment = MethodSecurityAttachment(
            operation=operation,
            binder=binder,
            target=getattr(fn, "__self__", None),
            pre_authorize=compile_slot(PRE_AUTHORIZE_ATTR, "pre_authorize", set()),
            pre_filter=pre_filter,
            filter_target=filter_target,
            post_authorize=compile_slot(POST_AUTHORIZE_ATTR, "post_authorize", {RETURN_VALUE}),
            post_filter=compile_slot(POST_FILTER_ATTR, "post_filter", {RETURN_VALUE, FILTER_OBJECT}),
        )
        logger.debug("Resolved method security for %s", operation)
        return attachment

    def _static_filter_target(
        self,
        fn: Callable[..., Any],
        binder: ParameterBinder,
        explicit: str | None,
    ) -> str | None:
        if explicit is not None:
            parameter = binder.parameter_for(explicit)
            if parameter is None:
                raise ConfigurationError(f"pre_filter target {explicit!r} is not a parameter of {binder.description}")
            return parameter

        parameters = list(binder.signature.parameters)
        if len(parameters) == 1:
            return parameters[0]

        hints = type_hints(fn)
        containers = [name for name in parameters if name in hints and is_filterable_type(hints[name])]
        if len(containers) > 1:
            raise ConfigurationError(
                f"pre_filter on {binder.description} is ambiguous: {containers} are all containers; set filter_target"
            )
        if len(containers) == 1:
            return containers[0]
        if hints and all(name in hints for name in parameters):
            raise ConfigurationError(f"pre_filter on {binder.description} has no container argument to filter")
        return None

    # ---- Decision protocol ----------------------------------------------------------

    def _deny(self, attachment: MethodSecurityAttachment, phase: InvocationPhase, authentication) -> None:
        logger.info(
            "Access denied operation=%s phase=%s principal=%s",
            attachment.operation,
            phase.value,
            getattr(authentication, "name", None),
        )
        raise AccessDeniedError()

    def _runtime_filter_target(self, attachment: MethodSecurityAttachment, bound: inspect.BoundArguments) -> str:
        containers = [name for name, value in bound.arguments.items() if is_filterable(value)]
        if len(containers) == 1:
            return containers[0]
        if not containers:
            raise ConfigurationError(f"pre_filter on {attachment.operation}: no container argument to filter")
        raise ConfigurationError(
            f"pre_filter on {attachment.operation} is ambiguous: {containers} are all containers; set filter_target"
        )

    def before(
        self,
        attachment: MethodSecurityAttachment,
        bound: inspect.BoundArguments,
        authentication: Authentication | None,
    ) -> inspect.BoundArguments:
        """
        Pre-invocation entry point.

        Returns the (possibly filtered) arguments to call with, or raises
        AccessDeniedError.
        """

        if attachment.pre_authorize is not None:
            context = self.handler.create_method_context(
                authentication, attachment.binder.variables(bound), target=attachment.target
            )
            if not attachment.pre_authorize.evaluate_bool(context):
                self._deny(attachment, InvocationPhase.START, authentication)
        logger.debug("operation=%s phase=%s", attachment.operation, InvocationPhase.PRE_AUTHORIZED.value)

        if attachment.pre_filter is not None:
            parameter = attachment.filter_target or self._runtime_filter_target(attachment, bound)
            context = self.handler.create_method_context(
                authentication, attachment.binder.variables(bound), target=attachment.target
            )
            filtered = filter_with_expression(bound.arguments[parameter], attachment.pre_filter, context)
            arguments = dict(bound.arguments)
            arguments[parameter] = filtered
            bound = inspect.BoundArguments(bound.signature, arguments)

        return bound

    def after(
        self,
        attachment: MethodSecurityAttachment,
        bound: inspect.BoundArguments,
        return_value: Any,
        authentication: Authentication | None,
    ) -> Any:
        """
        Post-invocation entry point.

        Returns the (possibly filtered) value to hand to the caller, or raises
        AccessDeniedError.
        """

        arguments = attachment.binder.variables(bound)
        value = return_value

        if attachment.post_filter is not None:
            context = self.handler.create_method_context(
                authentication, arguments, target=attachment.target, return_value=value
            )
            value = filter_with_expression(value, attachment.post_filter, context)
        logger.debug("operation=%s phase=%s", attachment.operation, InvocationPhase.POST_FILTERED.value)

        if attachment.post_authorize is not None:
            context = self.handler.create_method_context(
                authentication, arguments, target=attachment.target, return_value=value
            )
            if not attachment.post_authorize.evaluate_bool(context):
                self._deny(attachment, InvocationPhase.POST_FILTERED, authentication)
        logger.debug("operation=%s phase=%s", attachment.operation, InvocationPhase.POST_AUTHORIZED.value)

        return value

    def invoke(
        self,
        attachment: MethodSecurityAttachment,
        fn: Callable[..., Any],
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
        authentication: Authentication | None | Any = UNSET,
    ) -> Any:
        if authentication is UNSET:
            authentication = get_authentication()
        bound = self.before(attachment, attachment.binder.bind(args, kwargs), authentication)
        result = fn(*bound.args, **bound.kwargs)
        logger.debug("operation=%s phase=%s", attachment.operation, InvocationPhase.INVOKED.value)
        return self.after(attachment, bound, result, authentication)

    async def invoke_async(
        self,
        attachment: MethodSecurityAttachment,
        fn: Callable[..., Any],
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
        authentication: Authentication | None | Any = UNSET,
    ) -> Any:
        if authentication is UNSET:
            authentication = get_authentication()
        bound = self.before(attachment, attachment.binder.bind(args, kwargs), authentication)
        result = await fn(*bound.args, **bound.kwargs)
        logger.debug("operation=%s phase=%s", attachment.operation, InvocationPhase.INVOKED.value)
        return self.after(attachment, bound, result, authentication)

    # ---- Wiring ---------------------------------------------------------------------

    def secured(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Wrap `fn` so every call runs the decision protocol. Resolution happens now."""

        attachment = self.attachment_for(fn)
        if not attachment.has_expressions:
            return fn

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                return await self.invoke_async(attachment, fn, args, kwargs)

            async_wrapper.__security_attachment__ = attachment  # type: ignore[attr-defined]
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.invoke(attachment, fn, args, kwargs)

        wrapper.__security_attachment__ = attachment  # type: ignore[attr-defined]
        return wrapper

    def protect(self, obj: Any) -> SecuredProxy:
        """Proxy `obj`, securing every method that carries security decorators."""

        methods: dict[str, Callable[..., Any]] = {}
        for name, member in inspect.getmembers(type(obj)):
            if name.startswith("__") or not callable(member):
                continue
            if has_security_metadata(member):
                methods[name] = self.secured(getattr(obj, name))
        if not methods:
            logger.warning("protect(): %s has no secured methods", type(obj).__name__)
        return SecuredProxy(obj, methods)


class SecuredProxy:
    def __init__(self, target: Any, methods: Mapping[str, Callable[..., Any]]) -> None:
        self._target = target
        self._methods = dict(methods)

    def __getattr__(self, name: str) -> Any:
        methods = self.__dict__.get("_methods", {})
        if name in methods:
            return methods[name]
        return getattr(self.__dict__["_target"], name)

    def __repr__(self) -> str:
        return f"SecuredProxy({self._target!r})"
