"""
Tests for the collection filter engine.
"""
from __future__ import annotations

import array
from collections import OrderedDict

import pytest

from exprsec.security.errors import ConfigurationError
from exprsec.security.filtering import (
    MapEntry,
    filter_collection,
    filter_with_expression,
    is_filterable,
    is_filterable_type,
)


def test_sequence_keeps_relative_order(handler, bob):
    compiled = handler.parse("filterObject in ['a', 'c', 'e']", "test")
    items = ["a", "b", "c", "d", "e"]

    result = filter_with_expression(items, compiled, handler.create_context(bob))

    assert result == ["a", "c", "e"]
    assert items == ["a", "b", "c", "d", "e"]


def test_kept_elements_keep_identity():
    first, second = object(), object()

    result = filter_collection([first, second], lambda e: e is first)

    assert len(result) == 1
    assert result[0] is first


def test_map_entries_expose_key_and_value(handler, bob):
    compiled = handler.parse("filterObject.key != 'k1' and filterObject.value == 'v2'", "test")
    source = {"k1": "v1", "k2": "v2", "k3": "v3"}

    result = filter_with_expression(source, compiled, handler.create_context(bob))

    assert result == {"k2": "v2"}
    assert source == {"k1": "v1", "k2": "v2", "k3": "v3"}


def test_map_predicate_receives_map_entry():
    seen = []

    filter_collection({"k1": 1}, lambda entry: seen.append(entry) or True)

    assert seen == [MapEntry("k1", 1)]


def test_ordered_dict_stays_ordered_dict():
    source = OrderedDict([("b", 2), ("a", 1), ("c", 3)])

    result = filter_collection(source, lambda entry: entry.value != 1)

    assert isinstance(result, OrderedDict)
    assert list(result) == ["b", "c"]


def test_tuple_is_rebuilt_to_pass_count():
    result = filter_collection((1, 2, 3, 4), lambda e: e > 2)

    assert result == (3, 4)


def test_array_keeps_typecode():
    source = array.array("i", [1, 2, 3, 4, 5])

    result = filter_collection(source, lambda e: e % 2 == 1)

    assert isinstance(result, array.array)
    assert result.typecode == "i"
    assert result.tolist() == [1, 3, 5]
    assert source.tolist() == [1, 2, 3, 4, 5]


@pytest.mark.parametrize("source", [{1, 2, 3}, frozenset({1, 2, 3})])
def test_sets_keep_their_type(source):
    result = filter_collection(source, lambda e: e != 2)

    assert type(result) is type(source)
    assert result == {1, 3}


def test_none_passes_through():
    assert filter_collection(None, lambda e: False) is None


@pytest.mark.parametrize("target", ["abc", b"abc", 42, iter([1, 2]), object()])
def test_unsupported_shapes_are_configuration_errors(target):
    with pytest.raises(ConfigurationError, match="not supported"):
        filter_collection(target, lambda e: True)


def test_non_true_predicate_results_drop_the_element(handler, bob):
    compiled = handler.parse("filterObject", "test")

    result = filter_with_expression([True, 1, "yes", None, False], compiled, handler.create_context(bob))

    assert result == [True]


def test_is_filterable():
    assert is_filterable([1])
    assert is_filterable({"a": 1})
    assert is_filterable(array.array("b"))
    assert not is_filterable("text")
    assert not is_filterable(None)


def test_is_filterable_type():
    from typing import Annotated, Optional, Union

    assert is_filterable_type(list[int])
    assert is_filterable_type(dict[str, int])
    assert is_filterable_type(Annotated[list[int], "meta"])
    assert not is_filterable_type(str)
    assert not is_filterable_type(int)
    assert is_filterable_type(Optional[list[int]])
    assert is_filterable_type(list[int] | None)
    assert is_filterable_type(Annotated[Optional[set[str]], "meta"])
    assert not is_filterable_type(Optional[str])
    assert not is_filterable_type(Union[list[int], dict[str, int]])
