"""
Streaming sources embedded in a value tree.

A source is drained one unit at a time through ``pull()``: a chunk of text for
a ``TextSource`` or one value for an ``ItemSource``. The ``object_mode`` flag
tells them apart, the same way a readable stream's mode does.
"""

import asyncio
import codecs
import inspect
import io
import logging
from collections.abc import Callable
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jstream._profile import ProfileContext
from jstream._types import DEFAULT_CHUNK_SIZE
from jstream._types import Fragment
from jstream._types import JSONStreamError
from jstream._types import PendingValueError
from jstream._types import SourceError

logger = logging.getLogger(__name__)


class _End:
    def __repr__(self) -> str:
        return "END"


# Returned by pull() once a source is exhausted
END = _End()


class StreamSource:
    """
    Pull interface over a sync iterable, async iterable or readable file.

    Readers (objects with ``read``) are consumed in ``chunk_size`` pieces;
    everything else is iterated. A source is single pass.

    Under ``pull()`` blocking ``read`` calls run in a worker thread through
    ``asyncio.to_thread``. Sync iterators and generators are advanced on the
    event loop itself, so one that blocks stalls every other task; wrap such
    producers in an async generator instead.
    """

    object_mode = True

    def __init__(self, iterable: Any, *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.iterable = iterable
        self.chunk_size = chunk_size
        self.exhausted = False
        self._iterator: Any = None
        self._read = (
            getattr(iterable, "read", None) if not self.object_mode else None
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.iterable!r})"

    @property
    def is_async(self) -> bool:
        """True when pulling requires an event loop."""
        if self._read is not None:
            return inspect.iscoroutinefunction(self._read) or isinstance(
                self.iterable, asyncio.StreamReader
            )
        return hasattr(self.iterable, "__aiter__")

    async def pull(self) -> Any:
        """Returns the next unit, or ``END`` once the source is exhausted."""
        if self.exhausted:
            return END
        with ProfileContext("source_pull"):
            if self._read is not None:
                if self.is_async:
                    raw = self._read(self.chunk_size)
                    if inspect.isawaitable(raw):
                        raw = await raw
                else:
                    # Blocking file reads run in a worker thread
                    raw = await asyncio.to_thread(self._read, self.chunk_size)
                if not raw:
                    raw = END
            elif hasattr(self.iterable, "__aiter__"):
                if self._iterator is None:
                    self._iterator = aiter(self.iterable)
                try:
                    raw = await anext(self._iterator)
                except StopAsyncIteration:
                    raw = END
            else:
                raw = self._next_sync()
            return self._accept(raw)

    def pull_sync(self) -> Any:
        """Synchronous ``pull`` for sources that need no event loop."""
        if self.is_async:
            raise TypeError(
                f"{type(self.iterable).__name__} is asynchronous; "
                "use the async interface to serialize it"
            )
        if self.exhausted:
            return END
        with ProfileContext("source_pull"):
            if self._read is not None:
                raw = self._read(self.chunk_size) or END
            else:
                raw = self._next_sync()
            return self._accept(raw)

    def _next_sync(self) -> Any:
        if self._iterator is None:
            self._iterator = iter(self.iterable)
        try:
            return next(self._iterator)
        except StopIteration:
            return END

    def _accept(self, raw: Any) -> Any:
        if raw is END:
            self.exhausted = True
            logger.debug("%r exhausted", self)
        return raw

    async def aclose(self) -> None:
        """Releases the underlying generator without pulling from it."""
        self.exhausted = True
        target = self._target()
        if inspect.isasyncgen(target):
            await target.aclose()
        elif inspect.isgenerator(target):
            target.close()

    def close(self) -> None:
        """Synchronous ``aclose``; async generators need the event loop."""
        self.exhausted = True
        target = self._target()
        if inspect.isgenerator(target):
            target.close()

    def _target(self) -> Any:
        return self._iterator if self._iterator is not None else self.iterable


class ItemSource(StreamSource):
    """A source of discrete values, serialized as a JSON array."""

    object_mode = True


class TextSource(StreamSource):
    """
    A source of raw text or byte chunks, serialized as one JSON string.

    Byte chunks are decoded incrementally as UTF-8, so a multi-byte character
    split across two chunks is reassembled. Invalid bytes become U+FFFD
    unless ``errors`` asks for another codec error handler.
    """

    object_mode = False

    def __init__(
        self,
        iterable: Any,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        encoding: str = "utf-8",
        errors: str = "replace",
    ) -> None:
        super().__init__(iterable, chunk_size=chunk_size)
        self._decoder = codecs.getincrementaldecoder(encoding)(errors)

    def _accept(self, raw: Any) -> Any:
        if raw is END:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                return tail
            return super()._accept(raw)
        if isinstance(raw, str):
            return raw
        if isinstance(raw, bytes | bytearray | memoryview):
            return self._decoder.decode(bytes(raw))
        return str(raw)


def as_source(value: Any, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> StreamSource | None:
    """
    Wraps ``value`` in a source when it is stream-shaped, else returns None.

    Lists, tuples, strings and mappings are never sources.
    """
    if isinstance(value, StreamSource):
        return value
    if isinstance(value, str | bytes | bytearray | list | tuple | dict):
        return None
    if isinstance(value, asyncio.StreamReader):
        return TextSource(value, chunk_size=chunk_size)
    if isinstance(value, io.IOBase):
        if not value.readable():
            return None
        return TextSource(value, chunk_size=chunk_size)
    if hasattr(value, "__aiter__") or isinstance(value, Iterator):
        if getattr(value, "object_mode", True):
            return ItemSource(value, chunk_size=chunk_size)
        return TextSource(value, chunk_size=chunk_size)
    return None


class SuspendKind(Enum):
    """What a suspended traversal is waiting on."""

    PENDING = "pending"
    SOURCE = "source"


@dataclass(frozen=True)
class Suspension:
    """
    Request from the traversal to wait for data before it can continue.

    The demand bridge resolves it and sends the result back into the
    traversal: the awaited value for PENDING, the next unit (or ``END``) for
    SOURCE.
    """

    kind: SuspendKind
    target: Any

    @classmethod
    def pending(cls, awaitable: Any) -> "Suspension":
        return cls(SuspendKind.PENDING, awaitable)

    @classmethod
    def pull(cls, source: StreamSource) -> "Suspension":
        return cls(SuspendKind.SOURCE, source)

    @property
    def needs_loop(self) -> bool:
        """True when only an event loop can satisfy this suspension."""
        return self.kind is SuspendKind.PENDING or self.target.is_async

    def describe(self) -> str:
        if self.kind is SuspendKind.PENDING:
            return type(self.target).__name__
        return type(self.target.iterable).__name__

    async def wait(self) -> Any:
        if self.kind is SuspendKind.PENDING:
            return await self.target
        return await self.target.pull()

    def wait_sync(self) -> Any:
        if self.kind is SuspendKind.PENDING:
            raise TypeError(f"{self.describe()} can only be awaited")
        return self.target.pull_sync()

    def failure(self, exc: BaseException) -> JSONStreamError:
        """Builds the terminal error reported when waiting raised ``exc``."""
        if self.kind is SuspendKind.PENDING:
            return PendingValueError(str(exc), self.target)
        return SourceError(str(exc), self.target)


class ItemSourceAdapter:
    """
    Serializes an item source as a JSON array, one item in flight at a time.

    Each item is handed to ``serialize``, which runs a complete traversal over
    it; the next item is only pulled once that traversal is finished.
    """

    def __init__(
        self,
        source: ItemSource,
        serialize: Callable[[Any], Iterator[Fragment | Suspension]],
        item_separator: str = ",",
    ) -> None:
        self.source = source
        self.serialize = serialize
        self.item_separator = item_separator

    def fragments(self) -> Iterator[Fragment | Suspension]:
        yield "["
        count = 0
        while True:
            item = yield Suspension.pull(self.source)
            if item is END:
                break
            if count:
                yield self.item_separator
            yield from self.serialize(item)
            count += 1
        logger.debug("%r produced %d items", self.source, count)
        yield "]"
