"""
Tests for parameter name discovery and argument binding.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated

import pytest

from exprsec.security.errors import ConfigurationError
from exprsec.security.parameters import (
    AnnotatedNameResolver,
    CodeObjectNameResolver,
    P,
    Param,
    ParameterBinder,
    ParameterNameDiscoverer,
    QueryParamNameResolver,
    SignatureNameResolver,
)


def tagged(src: Annotated[int, P("source")], amount: int) -> None:
    pass


def queried(q: Annotated[str, Param("query")], limit: int = 10) -> None:
    pass


def both_tags(value: Annotated[int, P("explicit"), Param("query")]) -> None:
    pass


def duplicate_tags(a: Annotated[int, P("x")], b: Annotated[int, P("x")]) -> None:
    pass


def tag_claims_sibling_name(src: Annotated[int, P("amount")], amount: int) -> None:
    pass


def two_tags_one_parameter(a: Annotated[int, P("x"), P("y")]) -> None:
    pass


def everything(a, b=1, *rest, c, **extra):
    pass


class Repository(ABC):
    @abstractmethod
    def find(self, key):
        ...


class Accounts:
    def transfer(self, src: Annotated[int, P("source")], dst: int) -> None:
        pass


def test_explicit_tag_wins_and_signature_fills_the_rest():
    binder = ParameterBinder(tagged)

    assert binder.names == {"source": "src", "amount": "amount"}


def test_query_param_tag():
    binder = ParameterBinder(queried)

    assert binder.names == {"query": "q", "limit": "limit"}


def test_explicit_tag_takes_priority_over_query_param():
    assert ParameterBinder(both_tags).names == {"explicit": "value"}


def test_same_tag_name_on_two_parameters_is_configuration_error():
    with pytest.raises(ConfigurationError, match="more than one parameter"):
        ParameterBinder(duplicate_tags)


def test_tag_naming_another_parameter_is_configuration_error():
    with pytest.raises(ConfigurationError, match="refers to both 'src' and 'amount'"):
        ParameterBinder(tag_claims_sibling_name)


def test_two_tags_on_one_parameter_is_configuration_error():
    with pytest.raises(ConfigurationError, match="more than one P tag"):
        ParameterBinder(two_tags_one_parameter)


def test_tag_resolvers_are_not_applicable_without_tags():
    assert AnnotatedNameResolver().resolve(everything) is None
    assert QueryParamNameResolver().resolve(tagged) is None


def test_signature_resolver():
    assert SignatureNameResolver().resolve(everything) == ["a", "b", "rest", "c", "extra"]


def test_code_object_resolver_follows_signature_order():
    assert CodeObjectNameResolver().resolve(everything) == ["a", "b", "rest", "c", "extra"]


def test_code_object_resolver_drops_self_of_bound_methods():
    assert CodeObjectNameResolver().resolve(Accounts().transfer) == ["src", "dst"]


def test_code_object_resolver_is_not_applicable_to_abstract_declarations():
    assert CodeObjectNameResolver().resolve(Repository.find) is None


def test_discoverer_falls_through_to_later_resolvers():
    class NotApplicable:
        def resolve(self, fn):
            return None

    discoverer = ParameterNameDiscoverer([NotApplicable(), CodeObjectNameResolver()])

    assert discoverer.discover(everything) == ("a", "b", "rest", "c", "extra")


def test_discoverer_with_no_applicable_resolver():
    class NotApplicable:
        def resolve(self, fn):
            return None

    binder = ParameterBinder(everything, ParameterNameDiscoverer([NotApplicable()]))

    assert binder.names == {}


def test_bound_method_binding():
    binder = ParameterBinder(Accounts().transfer)

    bound = binder.bind((1, 2), {})

    assert binder.variables(bound) == {"source": 1, "dst": 2}


def test_bind_applies_defaults():
    binder = ParameterBinder(queried)

    bound = binder.bind(("invoices",), {})

    assert binder.variables(bound) == {"query": "invoices", "limit": 10}
    assert binder.parameter_for("query") == "q"
    assert binder.parameter_for("q") is None


def test_uninspectable_callable_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Cannot introspect"):
        ParameterBinder(42)  # type: ignore[arg-type]
