"""
Pytest configuration and shared fixtures for jstream tests.

Provides immutable test case tables, reference documents and helpers that
build asynchronous members (awaitables, text sources, item sources) with
controllable timing and failure.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import pytest

import jstream


@dataclass(frozen=True)
class EncodeTestCase:
    """
    Immutable container for serialization test case data.

    Holds the input value and the exact JSON text it must produce.
    """

    description: str
    value: Any
    expected: str


def compact(value: Any) -> str:
    """Reference serialization with the stdlib, in JSON.stringify layout."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


async def collect(fragments: jstream.JSONStream) -> list[str]:
    """Drains a stream into its list of fragments."""
    return [fragment async for fragment in fragments]


async def async_items(
    items: Iterable[Any], delay: float = 0
) -> AsyncIterator[Any]:
    for item in items:
        await asyncio.sleep(delay)
        yield item


async def failing_items(
    items: Iterable[Any], exc: Exception
) -> AsyncIterator[Any]:
    for item in items:
        await asyncio.sleep(0)
        yield item
    raise exc


def text_source(chunks: Iterable[Any], delay: float = 0) -> jstream.TextSource:
    return jstream.TextSource(async_items(chunks, delay))


def item_source(items: Iterable[Any], delay: float = 0) -> jstream.ItemSource:
    return jstream.ItemSource(async_items(items, delay))


async def resolve_later(value: Any, delay: float = 0.01) -> Any:
    await asyncio.sleep(delay)
    return value


async def reject_later(exc: Exception, delay: float = 0.01) -> Any:
    await asyncio.sleep(delay)
    raise exc


class Converted(dict[str, Any]):
    """Mapping whose ``to_json`` hook replaces its own contents."""

    def __init__(self, replacement: Any, **members: Any) -> None:
        super().__init__(**members)
        self.replacement = replacement

    def to_json(self) -> Any:
        return self.replacement


@pytest.fixture
def basic_values() -> list[EncodeTestCase]:
    """
    Provides primitive and simple container values with their JSON text.

    Covers every scalar type plus the absent-value and non-finite rules.
    """
    return [
        EncodeTestCase("integer", 1, "1"),
        EncodeTestCase("negative integer", -17, "-17"),
        EncodeTestCase("float", 3.14, "3.14"),
        EncodeTestCase("true boolean", True, "true"),
        EncodeTestCase("false boolean", False, "false"),
        EncodeTestCase("string", "string", '"string"'),
        EncodeTestCase("empty string", "", '""'),
        EncodeTestCase("null", None, "null"),
        EncodeTestCase("NaN", float("nan"), "null"),
        EncodeTestCase("infinity", float("inf"), "null"),
        EncodeTestCase("negative infinity", float("-inf"), "null"),
        EncodeTestCase("undefined", jstream.UNDEFINED, ""),
        EncodeTestCase("function", lambda: None, ""),
        EncodeTestCase("empty object", {}, "{}"),
        EncodeTestCase("empty array", [], "[]"),
        EncodeTestCase("empty tuple", (), "[]"),
    ]


@pytest.fixture
def json_pass_documents() -> list[EncodeTestCase]:
    """
    Provides the json.org pass documents as decoded Python values.

    Expected output is the stdlib's compact serialization of the same value.
    """
    documents = [
        (
            "pass1.json - complex nested structure",
            r"""[
    "JSON Test Pattern pass1",
    {"object with 1 member":["array with 1 element"]},
    {},
    [],
    -42,
    true,
    false,
    null,
    {
        "integer": 1234567890,
        "real": -9876.543210,
        "e": 0.123456789e-12,
        "E": 1.234567890E+34,
        "":  23456789012E66,
        "zero": 0,
        "one": 1,
        "space": " ",
        "quote": "\"",
        "backslash": "\\",
        "controls": "\b\f\n\r\t",
        "slash": "/ & \/",
        "alpha": "abcdefghijklmnopqrstuvwyz",
        "ALPHA": "ABCDEFGHIJKLMNOPQRSTUVWYZ",
        "digit": "0123456789",
        "0123456789": "digit",
        "special": "`1~!@#$%^&*()_+-={':[,]}|;.</>?",
        "hex": "\u0123\u4567\u89AB\uCDEF\uabcd\uef4A",
        "true": true,
        "false": false,
        "null": null,
        "array":[  ],
        "object":{  },
        "address": "50 St. James Street",
        "url": "https://www.JSON.org/",
        "comment": "// /* <!-- --",
        "# -- --> */": " ",
        " s p a c e d " :[1,2 , 3

,

4 , 5        ,          6           ,7        ],"compact":[1,2,3,4,5,6,7],
        "jsontext": "{\"object with 1 member\":[\"array with 1 element\"]}"
    }
]""",
        ),
        (
            "pass2.json - deep nesting",
            '[[[[[[[[[[[[[[[[[[["Not too deep"]]]]]]]]]]]]]]]]]]]',
        ),
        (
            "pass3.json - simple object",
            '{"JSON Test Pattern pass3": {"The outermost value": '
            '"must be an object or array.", "In this test": "It is an object."}}',
        ),
    ]
    cases = []
    for description, text in documents:
        value = json.loads(text)
        cases.append(EncodeTestCase(description, value, compact(value)))
    return cases
