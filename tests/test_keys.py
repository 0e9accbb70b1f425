from __future__ import annotations

import enum
import functools
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import BaseModel

from recoal import KeyDerivationError, canonical_serialize, default_key, operation_name
from recoal.keys import derive_key


async def fetch_user(user_id: str, *, include_roles: bool = False) -> dict:
    return {"id": user_id, "roles": include_roles}


class Repository:
    async def load(self, row_id: int) -> int:
        return row_id


class Loader:
    def __call__(self, value: int) -> int:
        return value


@dataclass
class Query:
    table: str
    limit: int


class Filter(BaseModel):
    field: str
    values: list[int]


class Color(str, enum.Enum):
    RED = "red"


class Level(enum.IntEnum):
    HIGH = 3


def test_mapping_insertion_order_does_not_change_key():
    left = default_key("op", {"a": 1, "b": {"x": 1, "y": 2}})
    right = default_key("op", {"b": {"y": 2, "x": 1}, "a": 1})
    assert left == right


def test_positional_order_and_values_change_key():
    assert default_key("op", 1, 2) != default_key("op", 2, 1)
    assert default_key("op", 1) != default_key("op", "1")
    assert default_key("op", [1, 2]) != default_key("op", 1, 2)


def test_keyword_arguments_are_order_independent_and_distinct_from_positional():
    assert default_key("op", 1, a=1, b=2) == default_key("op", 1, b=2, a=1)
    assert default_key("op", 1, flag=True) != default_key("op", 1, True)


def test_default_key_layout():
    assert default_key("pkg.fn", 1, "a") == 'pkg.fn|[1,"a"]'
    assert default_key("pkg.fn", 1, limit=5) == 'pkg.fn|[1]|{"limit":5}'


def test_sets_serialize_in_canonical_order():
    assert canonical_serialize({3, 1, 2}) == canonical_serialize({2, 3, 1})
    assert canonical_serialize(frozenset({"b", "a"})) == (
        '{"__type__":"builtins.frozenset","value":["a","b"]}'
    )
    assert canonical_serialize({1, 2}) != canonical_serialize([1, 2])


def test_structured_arguments_are_tagged_with_their_type():
    when = datetime(2026, 1, 2, tzinfo=timezone.utc)
    ident = uuid.UUID("12345678-1234-5678-1234-567812345678")

    assert canonical_serialize(Query(table="users", limit=5)) == (
        f'{{"__type__":"{__name__}.Query","value":{{"limit":5,"table":"users"}}}}'
    )
    assert canonical_serialize(Filter(field="age", values=[1, 2])) == (
        f'{{"__type__":"{__name__}.Filter","value":{{"field":"age","values":[1,2]}}}}'
    )
    assert canonical_serialize(ident) == (
        '{"__type__":"uuid.UUID","value":"12345678-1234-5678-1234-567812345678"}'
    )
    assert canonical_serialize(when).startswith(
        '{"__type__":"datetime.datetime","value":"2026-01-02T00:00:00'
    )


def test_bytes_and_str_never_share_a_key():
    assert default_key("op", b"x") != default_key("op", "x")
    assert default_key("op", bytearray(b"x")) != default_key("op", b"x")
    assert default_key("op", uuid.UUID(int=1)) != default_key("op", str(uuid.UUID(int=1)))
    assert default_key("op", Decimal("1")) != default_key("op", "1")


def test_enum_members_differ_from_their_values():
    assert default_key("op", Color.RED) != default_key("op", "red")
    assert default_key("op", Level.HIGH) != default_key("op", 3)
    assert default_key("op", Color.RED) == default_key("op", Color("red"))


def test_binary_payloads_serialize_as_hex():
    assert canonical_serialize(b"\xff\x00") == (
        '{"__type__":"builtins.bytes","value":"ff00"}'
    )
    assert canonical_serialize(b"\xff\x00") != canonical_serialize(b"\xff\x01")
    nested = Query(table="blobs", limit=1)
    assert canonical_serialize({"payload": b"\x80", "query": nested})


def test_keyword_named_name_is_an_ordinary_argument():
    assert default_key("op", name="bob") == 'op|[]|{"name":"bob"}'
    assert derive_key(fetch_user, (), {"name": "bob"}) == (
        f'{__name__}.fetch_user|[]|{{"name":"bob"}}'
    )


def test_unserializable_and_circular_arguments_fail():
    circular: dict = {}
    circular["self"] = circular

    with pytest.raises(KeyDerivationError):
        canonical_serialize(circular)
    with pytest.raises(KeyDerivationError):
        canonical_serialize(object())
    with pytest.raises(KeyDerivationError):
        canonical_serialize({1: "a", "b": 2})


def test_key_derivation_error_is_a_type_error():
    with pytest.raises(TypeError):
        canonical_serialize(object())


def test_operation_name_for_functions_methods_and_callables():
    assert operation_name(fetch_user) == f"{__name__}.fetch_user"
    assert operation_name(Repository().load) == f"{__name__}.Repository.load"
    assert operation_name(Loader()) == f"{__name__}.Loader"
    assert operation_name(lambda: None).endswith("<lambda>")


def test_partial_arguments_fold_into_the_key():
    bound = functools.partial(fetch_user, "u-1", include_roles=True)
    assert derive_key(bound, (), {}) == derive_key(
        fetch_user, ("u-1",), {"include_roles": True}
    )


def test_custom_generator_receives_name_and_arguments():
    calls: list[tuple] = []

    def generator(name, /, *args, **kwargs):
        calls.append((name, args, kwargs))
        return (name, args[0])

    key = derive_key(fetch_user, ("u-1",), {"include_roles": True}, generator=generator)
    assert key == (f"{__name__}.fetch_user", "u-1")
    assert calls == [(f"{__name__}.fetch_user", ("u-1",), {"include_roles": True})]


def test_unhashable_generator_result_is_rejected():
    with pytest.raises(KeyDerivationError):
        derive_key(fetch_user, ("u-1",), {}, generator=lambda name, /, *a, **k: [name])
