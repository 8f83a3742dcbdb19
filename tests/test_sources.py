"""
Streaming source tests.

Validates text sources (one JSON string per source) and item sources (one
JSON array per source) in every supported shape, including failures.
"""

import asyncio
import io
import threading
from collections.abc import AsyncIterator
from typing import Any

import pytest

import jstream

from .conftest import Converted
from .conftest import async_items
from .conftest import collect
from .conftest import compact
from .conftest import failing_items
from .conftest import item_source
from .conftest import resolve_later
from .conftest import text_source

FUNKY_CHUNKS = [
    "some data",
    "to stringify",
    "with funky characters\r",
    '\n \t" " " ` ` @ ',
]


async def test_text_source_escapes_chunks() -> None:
    """
    Validates chunks are escaped and wrapped in a single string literal.
    """
    assert await jstream.dumps(text_source(['a"b', "\nc"])) == '"a\\"b\\nc"'


async def test_text_source_funky_characters() -> None:
    """
    Validates a readable stream with control characters and quotes.
    """
    result = await jstream.dumps(text_source(FUNKY_CHUNKS))
    assert result == compact("".join(FUNKY_CHUNKS))


async def test_text_source_fragments_per_chunk() -> None:
    """
    Validates the quotes and each chunk arrive as separate fragments.
    """
    assert await collect(jstream.stream(text_source(["ab", "", "c"]))) == [
        '"',
        "ab",
        "c",
        '"',
    ]


async def test_empty_text_source() -> None:
    """
    Validates a source without chunks is an empty string.
    """
    assert await jstream.dumps(text_source([])) == '""'


async def test_text_source_decodes_split_utf8() -> None:
    """
    Validates a multi-byte character split across byte chunks.
    """
    chunks = [b"caf\xc3", b"\xa9 ok"]
    assert await jstream.dumps(text_source(chunks)) == '"café ok"'
    chunks = [b"caf\xc3", b"\xa9"]
    result = await jstream.dumps(text_source(chunks), ensure_ascii=True)
    assert result == '"caf\\u00e9"'


async def test_text_source_replaces_invalid_utf8() -> None:
    """
    Validates undecodable bytes become U+FFFD instead of failing.
    """
    value = {"t": jstream.TextSource(iter([b"ab\xffcd", b"\xc3"]))}
    assert await jstream.dumps(value) == '{"t":"ab\ufffdcd\ufffd"}'


async def test_text_source_strict_errors() -> None:
    """
    Validates a strict error handler reports bad bytes as SourceError.
    """
    source = jstream.TextSource(iter([b"ab\xffcd"]), errors="strict")
    with pytest.raises(jstream.SourceError, match="invalid start byte"):
        await jstream.dumps(source)


async def test_text_source_reads_files_off_the_loop() -> None:
    """
    Validates blocking reads run outside the event loop thread.
    """
    readers: list[int] = []

    class TrackedFile(io.StringIO):
        def read(self, size: int | None = -1) -> str:
            readers.append(threading.get_ident())
            return super().read(size)

    assert await jstream.dumps(TrackedFile("data")) == '"data"'
    assert readers
    assert threading.get_ident() not in readers


async def test_text_source_error() -> None:
    """
    Validates a failing text source aborts with SourceError.
    """
    source = jstream.TextSource(failing_items(["a"], RuntimeError("src stream error")))
    received = []
    with pytest.raises(jstream.SourceError, match="src stream error") as exc_info:
        async for fragment in jstream.stream(source):
            received.append(fragment)
    assert received == ['"', "a"]
    assert exc_info.value.source is source
    assert isinstance(exc_info.value.__cause__, RuntimeError)


async def test_text_source_from_files() -> None:
    """
    Validates readable text and binary files are text sources.
    """
    value = {"text": io.StringIO("line\n"), "bytes": io.BytesIO("é".encode())}
    assert await jstream.dumps(value) == '{"text":"line\\n","bytes":"é"}'


async def test_text_source_small_chunk_size() -> None:
    """
    Validates chunk_size bounds how much of a file is read per pull.
    """
    fragments = await collect(jstream.stream(io.StringIO("abcde"), chunk_size=2))
    assert fragments == ['"', "ab", "cd", "e", '"']


async def test_text_source_from_stream_reader() -> None:
    """
    Validates an asyncio StreamReader is drained as text.
    """
    reader = asyncio.StreamReader()
    reader.feed_data(b'he said "hi"')
    reader.feed_eof()
    assert await jstream.dumps({"body": reader}) == '{"body":"he said \\"hi\\""}'


async def test_object_mode_flag_selects_text() -> None:
    """
    Validates async iterables flagged with object_mode=False are text.
    """

    class Chunks:
        object_mode = False

        def __init__(self, chunks: list[str]) -> None:
            self.chunks = chunks

        def __aiter__(self) -> AsyncIterator[str]:
            return async_items(self.chunks)

    assert await jstream.dumps([Chunks(["x", "y"])]) == '["xy"]'


async def test_item_source_items() -> None:
    """
    Validates item sources serialize like arrays of their items.
    """
    data = [1, True, {}, '"string"', lambda: None, jstream.UNDEFINED, float("nan")]
    assert await jstream.dumps(item_source(data)) == (
        '[1,true,{},"\\"string\\"",null,null,null]'
    )


async def test_item_source_simple() -> None:
    """
    Validates the minimal mixed item source.
    """
    assert await jstream.dumps(item_source([1, True, {}])) == "[1,true,{}]"


async def test_empty_item_source() -> None:
    """
    Validates a source without items is an empty array.
    """
    assert await jstream.dumps(item_source([])) == "[]"


async def test_bare_async_generator_is_item_source() -> None:
    """
    Validates unwrapped async iterables default to item mode.
    """
    assert await jstream.dumps({"xs": async_items(["a", 2])}) == '{"xs":["a",2]}'


async def test_sync_iterators_are_item_sources() -> None:
    """
    Validates generators and iterators serialize as arrays.
    """
    value = {"squares": (i * i for i in range(4)), "mapped": map(str, [1, 2])}
    assert await jstream.dumps(value) == '{"squares":[0,1,4,9],"mapped":["1","2"]}'


async def test_item_source_items_use_hooks() -> None:
    """
    Validates each item's to_json hook is applied independently.
    """
    items = [Converted({"a": 1}, index=1), Converted({"a": 2}, index=2)]
    assert await jstream.dumps(item_source(items)) == '[{"a":1},{"a":2}]'


async def test_item_source_with_function_replacer() -> None:
    """
    Validates the transform function applies inside each item.
    """

    def double(key: Any, value: Any) -> Any:
        return 2 * value if key else value

    items = [{"a": 1}, [2, 3]]
    assert await jstream.dumps(item_source(items), double) == '[{"a":2},[4,6]]'


async def test_item_source_nested_async_members() -> None:
    """
    Validates items may themselves hold awaitables and sources.
    """
    items = [
        text_source(["a", "b"]),
        {"k": item_source([1, resolve_later(2)])},
        resolve_later("done"),
    ]
    assert await jstream.dumps(item_source(items)) == '["ab",{"k":[1,2]},"done"]'


async def test_item_source_error_after_items() -> None:
    """
    Validates items emitted before a failure are kept and nothing follows.
    """
    source = jstream.ItemSource(failing_items([1, 2], RuntimeError("src stream error")))
    received = []
    with pytest.raises(jstream.SourceError, match="src stream error"):
        async for fragment in jstream.stream(source):
            received.append(fragment)
    assert received == ["[", "1", ",", "2"]


async def test_object_with_streams_and_promises() -> None:
    """
    Validates an object mixing a text source and an awaitable.
    """
    value = "a string to stringify"
    result = await jstream.dumps(
        {"stream": text_source(FUNKY_CHUNKS), "promise": resolve_later(value)}
    )
    assert result == compact({"stream": "".join(FUNKY_CHUNKS), "promise": value})


async def test_sources_are_pulled_one_unit_at_a_time() -> None:
    """
    Validates an item is only requested after the previous one is written.
    """
    pulled: list[int] = []

    async def tracked() -> AsyncIterator[int]:
        for i in range(3):
            pulled.append(i)
            yield i

    fragments = jstream.stream({"items": jstream.ItemSource(tracked())})
    assert await anext(fragments) == "{"
    assert await anext(fragments) == '"items":'
    assert await anext(fragments) == "["
    assert pulled == []
    assert await anext(fragments) == "0"
    assert pulled == [0]
    assert await anext(fragments) == ","
    assert pulled == [0, 1]
    assert "".join(await collect(fragments)) == "1,2]}"
