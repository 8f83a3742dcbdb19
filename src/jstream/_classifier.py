"""
Value classification for the token generator.

Each value is probed once and tagged with the ``ValueKind`` that decides how
it is emitted; the traversal never inspects a value's shape again.
"""

import dataclasses
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jstream._profile import ProfileContext
from jstream._sources import as_source
from jstream._types import DEFAULT_CHUNK_SIZE
from jstream._types import UNDEFINED
from jstream._types import DefaultHook


class ValueKind(Enum):
    """Tags of the value union consumed by the engine."""

    PRIMITIVE = "primitive"
    ABSENT = "absent"
    SEQUENCE = "sequence"
    KEYED = "keyed"
    PENDING = "pending"
    TEXT_SOURCE = "text_source"
    ITEM_SOURCE = "item_source"


@dataclass(frozen=True)
class Classified:
    """A value paired with its kind; sources are already wrapped."""

    kind: ValueKind
    value: Any


def to_json(value: Any) -> Any:
    """Applies the value's ``to_json()`` conversion hook, if it has one."""
    hook = getattr(value, "to_json", None)
    if callable(hook) and not isinstance(value, type):
        return hook()
    return value


def is_absent(value: Any) -> bool:
    """True for values that JSON cannot represent: UNDEFINED and callables."""
    return value is UNDEFINED or callable(value)


def classify(
    value: Any,
    *,
    convert: bool = True,
    default: DefaultHook = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Classified:
    """
    Assigns ``value`` to a ValueKind.

    With ``convert`` the ``to_json()`` hook is applied first, exactly once;
    the hook's result is classified as-is even if it has a hook of its own.
    Unknown objects go through ``default`` once before being rejected.
    """
    with ProfileContext("classify"):
        if convert:
            value = to_json(value)
        classified = _classify_shape(value, chunk_size)
        if classified is None and default is not None:
            classified = _classify_shape(default(value), chunk_size)
        if classified is None:
            msg = f"Object of type {type(value).__name__} is not JSON serializable"
            raise TypeError(msg)
        return classified


def _classify_shape(value: Any, chunk_size: int) -> Classified | None:  # noqa: PLR0911
    if value is None or isinstance(value, bool | int | float | str):
        return Classified(ValueKind.PRIMITIVE, value)
    if isinstance(value, list | tuple):
        return Classified(ValueKind.SEQUENCE, value)
    if inspect.isawaitable(value):
        return Classified(ValueKind.PENDING, value)

    source = as_source(value, chunk_size=chunk_size)
    if source is not None:
        if source.object_mode:
            return Classified(ValueKind.ITEM_SOURCE, source)
        return Classified(ValueKind.TEXT_SOURCE, source)

    if isinstance(value, Mapping):
        return Classified(ValueKind.KEYED, value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {
            field.name: getattr(value, field.name)
            for field in dataclasses.fields(value)
        }
        return Classified(ValueKind.KEYED, fields)
    if is_absent(value):
        return Classified(ValueKind.ABSENT, UNDEFINED)
    return None
