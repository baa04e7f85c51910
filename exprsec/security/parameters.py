"""
Parameter name discovery and argument binding for method expressions.

Names are discovered by an ordered chain of resolvers; each returns one name
per parameter (None where it has no opinion) or None when not applicable:

1. `P("name")` tags (via `typing.Annotated`)
2. `Param("name")` tags, the "named query parameter" style
3. `inspect.signature` names
4. code-object names (`__code__.co_varnames`); unavailable for abstract declarations

Usage:
    def transfer(self, src: Annotated[Account, P("source")], amount: int) -> None: ...
    # expressions may reference `source` and `amount`
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import inspect
import logging
import typing
from typing import Any

from exprsec.security.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class P:
    """Explicit expression name for a parameter."""

    name: str


@dataclass(frozen=True)
class Param:
    """Named query parameter tag; also honoured as an expression name."""

    name: str


def _describe(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


def _signature(fn: Callable[..., Any]) -> inspect.Signature | None:
    try:
        return inspect.signature(fn)
    except (TypeError, ValueError):
        return None


def type_hints(fn: Callable[..., Any]) -> dict[str, Any]:
    try:
        return typing.get_type_hints(fn, include_extras=True)
    except Exception as exc:  # unresolvable forward references, odd callables
        logger.debug("Could not resolve type hints for %s: %s", _describe(fn), exc)
        return {}


class TagNameResolver:
    tag_type: type = P

    def resolve(self, fn: Callable[..., Any]) -> list[str | None] | None:
        signature = _signature(fn)
        if signature is None:
            return None
        hints = type_hints(fn)

        names: list[str | None] = []
        for parameter in signature.parameters.values():
            metadata = getattr(hints.get(parameter.name), "__metadata__", ())
            tags = [m for m in metadata if isinstance(m, self.tag_type)]
            if len(tags) > 1:
                raise ConfigurationError(
                    f"Parameter {parameter.name!r} of {_describe(fn)} has more than one {self.tag_type.__name__} tag"
                )
            names.append(tags[0].name if tags else None)

        if not any(names):
            return None

        seen: set[str] = set()
        for name in names:
            if name is None:
                continue
            if name in seen:
                raise ConfigurationError(
                    f"{self.tag_type.__name__}({name!r}) is used on more than one parameter of {_describe(fn)}"
                )
            seen.add(name)
        return names


class AnnotatedNameResolver(TagNameResolver):
    tag_type = P


class QueryParamNameResolver(TagNameResolver):
    tag_type = Param


class SignatureNameResolver:
    def resolve(self, fn: Callable[..., Any]) -> list[str | None] | None:
        signature = _signature(fn)
        if signature is None:
            return None
        return list(signature.parameters)


class CodeObjectNameResolver:
    def resolve(self, fn: Callable[..., Any]) -> list[str | None] | None:
        if getattr(fn, "__isabstractmethod__", False):
            return None
        func = getattr(fn, "__func__", fn)
        code = getattr(func, "__code__", None)
        if code is None:
            return None

        varnames = code.co_varnames
        positional = list(varnames[: code.co_argcount])
        index = code.co_argcount
        kwonly = list(varnames[index : index + code.co_kwonlyargcount])
        index += code.co_kwonlyargcount
        varargs: list[str] = []
        if code.co_flags & inspect.CO_VARARGS:
            varargs.append(varnames[index])
            index += 1
        varkw: list[str] = []
        if code.co_flags & inspect.CO_VARKEYWORDS:
            varkw.append(varnames[index])

        names: list[str | None] = [*positional, *varargs, *kwonly, *varkw]
        if inspect.ismethod(fn):
            names = names[1:]
        return names


DEFAULT_RESOLVERS = (
    AnnotatedNameResolver(),
    QueryParamNameResolver(),
    SignatureNameResolver(),
    CodeObjectNameResolver(),
)


class ParameterNameDiscoverer:
    """Tries each resolver in order; later resolvers only fill the gaps."""

    def __init__(self, resolvers: Sequence[Any] | None = None) -> None:
        self.resolvers = tuple(resolvers) if resolvers is not None else DEFAULT_RESOLVERS

    def discover(self, fn: Callable[..., Any]) -> tuple[str | None, ...] | None:
        merged: list[str | None] | None = None
        for resolver in self.resolvers:
            names = resolver.resolve(fn)
            if names is None:
                continue
            if merged is None:
                merged = list(names)
            elif len(names) == len(merged):
                merged = [current or found for current, found in zip(merged, names)]
            if all(merged):
                break
        return tuple(merged) if merged is not None else None


class ParameterBinder:
    """Maps a call's actual arguments onto expression names, for one callable."""

    def __init__(self, fn: Callable[..., Any], discoverer: ParameterNameDiscoverer | None = None) -> None:
        self.fn = fn
        signature = _signature(fn)
        if signature is None:
            raise ConfigurationError(f"Cannot introspect parameters of {_describe(fn)}")
        self.signature = signature

        discovered = (discoverer or ParameterNameDiscoverer()).discover(fn) or ()
        parameters = list(signature.parameters.values())
        if len(discovered) != len(parameters):
            discovered = (None,) * len(parameters)

        # expression name -> parameter name
        self.names: dict[str, str] = {}
        for parameter, name in zip(parameters, discovered):
            if name is None:
                continue
            if name in self.names:
                raise ConfigurationError(
                    f"Expression name {name!r} refers to both {self.names[name]!r} and {parameter.name!r} "
                    f"of {_describe(fn)}"
                )
            self.names[name] = parameter.name

    @property
    def description(self) -> str:
        return _describe(self.fn)

    def bind(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> inspect.BoundArguments:
        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return bound

    def variables(self, bound: inspect.BoundArguments) -> dict[str, Any]:
        return {name: bound.arguments[parameter] for name, parameter in self.names.items() if parameter in bound.arguments}

    def parameter_for(self, name: str) -> str | None:
        return self.names.get(name)
