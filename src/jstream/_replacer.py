"""
Replacer pipeline compatible with ``JSON.stringify``.

Turns a container into the ordered list of children the token generator
emits. The source container is never modified; a fresh list is built.
"""

from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jstream._classifier import is_absent
from jstream._classifier import to_json
from jstream._profile import ProfileContext
from jstream._types import Key
from jstream._types import ReplacerError

ReplacerFunction = Callable[[Key, Any], Any]
ReplacerSpec = ReplacerFunction | Sequence[str | int] | set[str | int] | None


class ReplacerMode(Enum):
    IDENTITY = "identity"
    KEY_ALLOWLIST = "key_allowlist"
    TRANSFORM = "transform"


@dataclass(frozen=True)
class Replacer:
    """
    Filters and transforms container children before they are emitted.

    A transform function is called with ``None`` and the whole container
    first, then with each member's key (array indexes as strings). Results
    that are UNDEFINED or callable drop object members and become ``null``
    in arrays. A key allowlist filters object members at every depth and
    leaves arrays alone.
    """

    mode: ReplacerMode = ReplacerMode.IDENTITY
    function: ReplacerFunction | None = None
    allowlist: frozenset[str] = frozenset()
    skipkeys: bool = False

    @classmethod
    def build(cls, replacer: Any = None, *, skipkeys: bool = False) -> "Replacer":
        """Creates a Replacer from a function, a collection of keys or None."""
        if replacer is None:
            return cls(skipkeys=skipkeys)
        if callable(replacer):
            return cls(ReplacerMode.TRANSFORM, replacer, skipkeys=skipkeys)
        if isinstance(replacer, list | tuple | set | frozenset):
            keys = []
            for key in replacer:
                if isinstance(key, bool) or not isinstance(key, str | int):
                    msg = f"replacer keys must be str or int, not {type(key).__name__}"
                    raise TypeError(msg)
                keys.append(str(key))
            return cls(
                ReplacerMode.KEY_ALLOWLIST,
                allowlist=frozenset(keys),
                skipkeys=skipkeys,
            )
        msg = (
            "replacer must be a function, a collection of keys or None, "
            f"not {type(replacer).__name__}"
        )
        raise TypeError(msg)

    def apply_sequence(self, seq: Sequence[Any]) -> list[Any]:
        """Returns the elements to emit; positions are never dropped."""
        with ProfileContext("apply_sequence"):
            if self.mode is not ReplacerMode.TRANSFORM:
                return [_null_if_absent(to_json(element)) for element in seq]

            working = self.function(None, seq)  # type: ignore[misc]
            if not isinstance(working, list | tuple):
                msg = (
                    "replacer must return a list or tuple for an array, "
                    f"not {type(working).__name__}"
                )
                raise ReplacerError(msg, working)
            return [
                _null_if_absent(self.function(str(index), to_json(element)))  # type: ignore[misc]
                for index, element in enumerate(working)
            ]

    def apply_keyed(self, mapping: Mapping[Any, Any]) -> list[tuple[str, Any]]:
        """Returns the ``(key, value)`` members to emit, in insertion order."""
        with ProfileContext("apply_keyed"):
            working = mapping
            if self.mode is ReplacerMode.TRANSFORM:
                working = self.function(None, mapping)  # type: ignore[misc]
                if not isinstance(working, Mapping):
                    msg = (
                        "replacer must return a mapping for an object, "
                        f"not {type(working).__name__}"
                    )
                    raise ReplacerError(msg, working)

            members = []
            for key, value in working.items():
                name = self._key_name(key)
                if name is None:
                    continue
                if (
                    self.mode is ReplacerMode.KEY_ALLOWLIST
                    and name not in self.allowlist
                ):
                    continue
                value = to_json(value)
                if self.mode is ReplacerMode.TRANSFORM:
                    value = self.function(name, value)  # type: ignore[misc]
                if is_absent(value):
                    continue
                members.append((name, value))
            return members

    def _key_name(self, key: Any) -> str | None:
        """Converts a mapping key to its JSON name; None means skip it."""
        if isinstance(key, str):
            return key
        # Only allow basic types to be converted to strings
        if key is True:
            return "true"
        if key is False:
            return "false"
        if key is None:
            return "null"
        if isinstance(key, int):
            return int.__repr__(key)
        if isinstance(key, float):
            return float.__repr__(key)
        if self.skipkeys:
            return None
        msg = f"keys must be str, int, float, bool or None, not {type(key).__name__}"
        raise TypeError(msg)


def _null_if_absent(value: Any) -> Any:
    return None if is_absent(value) else value
