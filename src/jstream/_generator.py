"""
Resumable depth-first token generator.

Walks a value tree and produces JSON text fragments in output order. When it
meets an awaitable or a streaming source it produces a ``Suspension``
instead, and continues only once the demand bridge resumes it with the data
it was waiting for.
"""

import math
import re
from collections.abc import Iterator
from collections.abc import Mapping
from collections.abc import Sequence
from enum import Enum
from typing import Any
from typing import TypeAlias

from jstream._classifier import Classified
from jstream._classifier import ValueKind
from jstream._classifier import classify
from jstream._classifier import to_json
from jstream._profile import ProfileContext
from jstream._replacer import Replacer
from jstream._sources import END
from jstream._sources import ItemSourceAdapter
from jstream._sources import StreamSource
from jstream._sources import Suspension
from jstream._sources import SuspendKind
from jstream._types import EncodeConfig
from jstream._types import Fragment

Token: TypeAlias = Fragment | Suspension

_ESCAPE_MAP = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
for _code in range(0x20):
    _ESCAPE_MAP.setdefault(chr(_code), f"\\u{_code:04x}")

# Lone surrogates are always escaped
_NEEDS_ESCAPE = re.compile(r'[\x00-\x1f\\"\ud800-\udfff]')
_NEEDS_ESCAPE_ASCII = re.compile(r'[\x00-\x1f\\"]|[^\x00-\x7e]')

_BMP_LIMIT = 0xFFFF


def _escape_char(match: re.Match[str]) -> str:
    char = match.group(0)
    escaped = _ESCAPE_MAP.get(char)
    if escaped is not None:
        return escaped
    code = ord(char)
    if code > _BMP_LIMIT:
        # Astral characters become a UTF-16 surrogate pair
        code -= 0x10000
        high = 0xD800 | (code >> 10)
        low = 0xDC00 | (code & 0x3FF)
        return f"\\u{high:04x}\\u{low:04x}"
    return f"\\u{code:04x}"


def escape_string(s: str, ensure_ascii: bool = False) -> str:
    """Escapes string content for a JSON literal, without the quotes."""
    with ProfileContext("escape_string", len(s)):
        pattern = _NEEDS_ESCAPE_ASCII if ensure_ascii else _NEEDS_ESCAPE
        return pattern.sub(_escape_char, s)


def encode_string(s: str, ensure_ascii: bool = False) -> str:
    """Encode string with proper escape sequences."""
    return '"' + escape_string(s, ensure_ascii) + '"'


def encode_number(n: int | float) -> str:
    """Encode numeric values; non-finite floats become null."""
    if isinstance(n, float):
        if not math.isfinite(n):
            return "null"
        return float.__repr__(n)
    return int.__repr__(n)


def encode_primitive(value: Any, ensure_ascii: bool = False) -> str:
    if value is None:
        return "null"
    elif value is True:
        return "true"
    elif value is False:
        return "false"
    elif isinstance(value, str):
        return encode_string(value, ensure_ascii)
    return encode_number(value)


class EngineState(Enum):
    """
    Lifecycle of one traversal.

    DONE and ERRORED are terminal; ERRORED is reachable from every other
    state.
    """

    START = "start"
    EMITTING = "emitting"
    SUSPENDED_PENDING = "suspended_pending"
    SUSPENDED_SOURCE = "suspended_source"
    DONE = "done"
    ERRORED = "errored"


_TERMINAL = frozenset({EngineState.DONE, EngineState.ERRORED})
_SUSPENDED = frozenset(
    {EngineState.SUSPENDED_PENDING, EngineState.SUSPENDED_SOURCE}
)


class TokenGenerator:
    """
    Single-pass traversal of one root value.

    ``advance()`` yields the next fragment or suspension; after a suspension
    the caller must ``resume()`` with the awaited result before advancing
    again. The traversal cannot be restarted.
    """

    def __init__(
        self,
        value: Any,
        replacer: Replacer | None = None,
        config: EncodeConfig | None = None,
    ) -> None:
        self.replacer = replacer or Replacer()
        self.config = config or EncodeConfig()
        self.state = EngineState.START
        self._tokens = self._emit_root(value)
        self._inbox: Any = None

    def __repr__(self) -> str:
        return f"<TokenGenerator state={self.state.value}>"

    def advance(self) -> Token | None:
        """Returns the next token, or None once the traversal is finished."""
        if self.state in _TERMINAL:
            return None
        if self.state in _SUSPENDED:
            raise RuntimeError("traversal is suspended; resume() it first")

        inbox, self._inbox = self._inbox, None
        try:
            token = self._tokens.send(inbox)
        except StopIteration:
            self.state = EngineState.DONE
            return None
        except Exception:
            self.state = EngineState.ERRORED
            raise

        if isinstance(token, Suspension):
            self.state = (
                EngineState.SUSPENDED_PENDING
                if token.kind is SuspendKind.PENDING
                else EngineState.SUSPENDED_SOURCE
            )
        else:
            self.state = EngineState.EMITTING
        return token

    def resume(self, result: Any) -> None:
        """Hands the awaited value or source unit back to the traversal."""
        if self.state not in _SUSPENDED:
            raise RuntimeError(f"cannot resume from state {self.state.value}")
        self._inbox = result
        self.state = EngineState.EMITTING

    def fail(self) -> None:
        """Aborts the traversal after a bound source or awaitable failed."""
        self.state = EngineState.ERRORED
        self._tokens.close()

    def close(self) -> None:
        if self.state not in _TERMINAL:
            self.state = EngineState.DONE
        self._tokens.close()

    def _classify(self, value: Any, convert: bool) -> Classified:
        return classify(
            value,
            convert=convert,
            default=self.config.default,
            chunk_size=self.config.chunk_size,
        )

    def _emit_root(self, value: Any) -> Iterator[Token]:
        yield from self._emit(self._classify(value, convert=True), at_root=True)

    def _emit(self, node: Classified, at_root: bool = False) -> Iterator[Token]:
        kind = node.kind
        if kind is ValueKind.PRIMITIVE:
            yield encode_primitive(node.value, self.config.ensure_ascii)
        elif kind is ValueKind.ABSENT:
            # Nothing at all for a bare root, a null placeholder elsewhere
            yield "" if at_root else "null"
        elif kind is ValueKind.SEQUENCE:
            yield from self._emit_sequence(node.value)
        elif kind is ValueKind.KEYED:
            yield from self._emit_keyed(node.value)
        elif kind is ValueKind.PENDING:
            resolved = yield Suspension.pending(node.value)
            yield from self._emit(self._classify(resolved, convert=True), at_root)
        elif kind is ValueKind.TEXT_SOURCE:
            yield from self._emit_text(node.value)
        else:
            adapter = ItemSourceAdapter(
                node.value, self._serialize_item, self.config.item_separator
            )
            yield from adapter.fragments()

    def _emit_sequence(self, seq: Sequence[Any]) -> Iterator[Token]:
        elements = self.replacer.apply_sequence(seq)
        yield "["
        for index, element in enumerate(elements):
            if index:
                yield self.config.item_separator
            yield from self._emit(self._classify(element, convert=False))
        yield "]"

    def _emit_keyed(self, mapping: Mapping[Any, Any]) -> Iterator[Token]:
        members = self.replacer.apply_keyed(mapping)
        yield "{"
        for index, (name, value) in enumerate(members):
            if index:
                yield self.config.item_separator
            yield (
                encode_string(name, self.config.ensure_ascii)
                + self.config.key_separator
            )
            yield from self._emit(self._classify(value, convert=False))
        yield "}"

    def _emit_text(self, source: StreamSource) -> Iterator[Token]:
        # The surrounding quotes belong to the generator; chunks only
        # contribute escaped content
        yield '"'
        while True:
            chunk = yield Suspension.pull(source)
            if chunk is END:
                break
            if chunk:
                yield escape_string(chunk, self.config.ensure_ascii)
        yield '"'

    def _serialize_item(self, item: Any) -> Iterator[Token]:
        return self._emit(self._classify(to_json(item), convert=False))
