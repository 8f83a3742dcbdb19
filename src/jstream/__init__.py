"""
Incremental JSON serialization for value trees with asynchronous members.

Produces JSON text as a sequence of fragments pulled on demand. Awaitables,
text streams and item streams may appear anywhere in the tree; traversal
suspends while they produce their content and output order always follows
the structure of the input, never the timing of the sources.
"""

import asyncio
import inspect
import io
import logging
from collections.abc import Iterator
from typing import Any

from jstream._classifier import Classified
from jstream._classifier import ValueKind
from jstream._classifier import classify
from jstream._generator import EngineState
from jstream._generator import Token
from jstream._generator import TokenGenerator
from jstream._generator import encode_string
from jstream._generator import escape_string
from jstream._profile import HotPathStats
from jstream._profile import ProfileContext
from jstream._profile import clear_hot_path_stats
from jstream._profile import get_hot_path_stats
from jstream._replacer import Replacer
from jstream._replacer import ReplacerMode
from jstream._replacer import ReplacerSpec
from jstream._sources import END
from jstream._sources import ItemSource
from jstream._sources import StreamSource
from jstream._sources import Suspension
from jstream._sources import SuspendKind
from jstream._sources import TextSource
from jstream._types import UNDEFINED
from jstream._types import EncodeConfig
from jstream._types import Fragment
from jstream._types import JSONStreamError
from jstream._types import PendingValueError
from jstream._types import ReplacerError
from jstream._types import SourceError

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


class JSONStream:
    """
    Pull-based fragment stream over one root value.

    Every ``await anext(stream)`` is one unit of demand: the traversal only
    advances when asked, so a slow consumer never causes output to pile up.
    End of output is ``StopAsyncIteration``; a failed awaitable or source
    surfaces once as a ``JSONStreamError`` and ends the stream.
    """

    def __init__(
        self, obj: Any, replacer: ReplacerSpec = None, **kwargs: Any
    ) -> None:
        self.config = EncodeConfig(**kwargs)
        self.replacer = Replacer.build(replacer, skipkeys=self.config.skipkeys)
        self.generator = TokenGenerator(obj, self.replacer, self.config)
        self._bound: list[StreamSource] = []
        self._busy = False

    def __repr__(self) -> str:
        return f"<JSONStream state={self.state.value}>"

    @property
    def state(self) -> EngineState:
        return self.generator.state

    @property
    def bound_sources(self) -> tuple[StreamSource, ...]:
        """Sources the traversal is currently inside, outermost first."""
        return tuple(self._bound)

    def __aiter__(self) -> "JSONStream":
        return self

    async def __anext__(self) -> Fragment:
        if self._busy:
            raise RuntimeError("JSONStream does not support concurrent demand")
        self._busy = True
        try:
            while True:
                token = await self._advance()
                if token is None:
                    raise StopAsyncIteration
                if not isinstance(token, Suspension):
                    return token
                self.generator.resume(await self._wait(token))
        finally:
            self._busy = False

    async def _advance(self) -> Token | None:
        try:
            return self.generator.advance()
        except Exception:
            await self._release()
            raise

    async def _wait(self, suspension: Suspension) -> Any:
        """Awaits the data a suspension asks for, binding its source."""
        source = None
        if suspension.kind is SuspendKind.SOURCE:
            source = suspension.target
            if source not in self._bound:
                self._bound.append(source)
                logger.debug("bound %r", source)
        else:
            logger.debug("awaiting %r", suspension.target)

        try:
            result = await suspension.wait()
        except Exception as exc:
            logger.debug("%r failed: %r", suspension.target, exc)
            self.generator.fail()
            await self._release()
            raise suspension.failure(exc) from exc

        if source is not None and result is END:
            self._bound.remove(source)
            logger.debug("released %r", source)
        return result

    async def _release(self) -> None:
        bound, self._bound = self._bound, []
        for source in reversed(bound):
            await source.aclose()

    async def aclose(self) -> None:
        """
        Stops the stream and releases any bound source.

        No further data is requested from released sources. Must not race a
        demand in progress; cancel that task first.
        """
        if self._busy:
            raise RuntimeError("aclose() called while a demand is in progress")
        self.generator.close()
        await self._release()

    async def __aenter__(self) -> "JSONStream":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


def stream(obj: Any, replacer: ReplacerSpec = None, **kwargs: Any) -> JSONStream:
    """
    Creates a fragment stream for ``obj``.

    ``replacer`` is a ``(key, value)`` function, a collection of allowed keys
    or None; keyword arguments configure ``EncodeConfig``.
    """
    return JSONStream(obj, replacer, **kwargs)


async def dumps(obj: Any, replacer: ReplacerSpec = None, **kwargs: Any) -> str:
    """
    Serializes ``obj`` to a JSON string, awaiting its asynchronous members.
    """
    parts: list[str] = []
    async with JSONStream(obj, replacer, **kwargs) as fragments:
        async for fragment in fragments:
            parts.append(fragment)
    return "".join(parts)


def _wants_bytes(fp: Any) -> bool:
    return isinstance(
        fp, asyncio.StreamWriter | io.RawIOBase | io.BufferedIOBase
    )


async def dump(
    obj: Any, fp: Any, replacer: ReplacerSpec = None, **kwargs: Any
) -> None:
    """
    Serializes ``obj`` into a writable, one fragment at a time.

    Awaitable ``write`` results and ``drain()`` are awaited after each
    fragment, so an asyncio ``StreamWriter`` applies its backpressure to the
    traversal.
    """
    if not hasattr(fp, "write"):
        raise TypeError("fp must have a write() method")

    encode = _wants_bytes(fp)
    drain = getattr(fp, "drain", None)
    async with JSONStream(obj, replacer, **kwargs) as fragments:
        async for fragment in fragments:
            if not fragment:
                continue
            result = fp.write(fragment.encode("utf-8") if encode else fragment)
            if inspect.isawaitable(result):
                await result
            if drain is not None:
                drained = drain()
                if inspect.isawaitable(drained):
                    await drained


def iterencode(
    obj: Any, replacer: ReplacerSpec = None, **kwargs: Any
) -> Iterator[Fragment]:
    """
    Synchronously yields the fragments of ``obj``.

    Synchronous sources (generators, iterators, readable files) are drained
    in place; an awaitable or asynchronous source raises ``TypeError``.
    Generators still bound when iteration stops are closed.
    """
    config = EncodeConfig(**kwargs)
    generator = TokenGenerator(
        obj, Replacer.build(replacer, skipkeys=config.skipkeys), config
    )
    bound: list[StreamSource] = []
    try:
        while (token := generator.advance()) is not None:
            if not isinstance(token, Suspension):
                yield token
                continue
            if token.needs_loop:
                generator.fail()
                msg = (
                    f"{token.describe()} is asynchronous; "
                    "use dumps() or stream() to serialize it"
                )
                raise TypeError(msg)
            source = token.target if token.kind is SuspendKind.SOURCE else None
            if source is not None and source not in bound:
                bound.append(source)
            try:
                result = token.wait_sync()
            except Exception as exc:
                generator.fail()
                raise token.failure(exc) from exc
            if source is not None and result is END:
                bound.remove(source)
            generator.resume(result)
    finally:
        generator.close()
        for source in reversed(bound):
            source.close()


__all__ = [
    "END",
    "UNDEFINED",
    "Classified",
    "EncodeConfig",
    "EngineState",
    "HotPathStats",
    "ItemSource",
    "JSONStream",
    "JSONStreamError",
    "PendingValueError",
    "ProfileContext",
    "Replacer",
    "ReplacerError",
    "ReplacerMode",
    "SourceError",
    "StreamSource",
    "SuspendKind",
    "Suspension",
    "TextSource",
    "TokenGenerator",
    "ValueKind",
    "classify",
    "clear_hot_path_stats",
    "dump",
    "dumps",
    "encode_string",
    "escape_string",
    "get_hot_path_stats",
    "iterencode",
    "stream",
]
