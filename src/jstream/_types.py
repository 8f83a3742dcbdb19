"""
Shared vocabulary of the serialization engine.

Holds the absent-value sentinel, the immutable encoder configuration and the
exception hierarchy surfaced through the stream's error signal.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from typing import Final
from typing import TypeAlias

# Type aliases for domain concepts
Fragment: TypeAlias = str
Key: TypeAlias = str | int | None

DefaultHook = Callable[[Any], Any] | None


class _Undefined:
    """
    Marks a value that is absent rather than null.

    Serializes to nothing at the root, to ``null`` inside arrays, and removes
    the member it is assigned to inside objects.
    """

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Final = _Undefined()

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class EncodeConfig:
    """
    Configures streaming encoding behavior with immutable settings.

    Defaults reproduce ``JSON.stringify`` output: compact separators and raw
    non-ASCII characters.
    """

    skipkeys: bool = False
    ensure_ascii: bool = False
    separators: tuple[str, str] | None = None
    default: DefaultHook = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if not isinstance(self.skipkeys, bool):
            raise TypeError("skipkeys must be a boolean")
        if not isinstance(self.ensure_ascii, bool):
            raise TypeError("ensure_ascii must be a boolean")
        if self.separators is not None and (
            len(self.separators) != 2  # noqa: PLR2004
            or not all(isinstance(sep, str) for sep in self.separators)
        ):
            raise TypeError("separators must be a pair of strings")
        if self.default is not None and not callable(self.default):
            raise TypeError("default must be callable")
        if not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")

    @property
    def item_separator(self) -> str:
        return self.separators[0] if self.separators else ","

    @property
    def key_separator(self) -> str:
        return self.separators[1] if self.separators else ":"


class JSONStreamError(Exception):
    """
    Base class for failures that abort a serialization.

    Every subclass is terminal for the stream that raised it: no further
    fragments follow.
    """

    def __init__(self, msg: str) -> None:
        if not isinstance(msg, str):
            raise TypeError("msg must be a string")
        self.msg = msg
        super().__init__(msg)


class PendingValueError(JSONStreamError):
    """Raised when an awaitable embedded in the value tree fails."""

    def __init__(self, msg: str, pending: Any = None) -> None:
        super().__init__(msg)
        self.pending = pending


class SourceError(JSONStreamError):
    """Raised when a text or item source fails while it is being drained."""

    def __init__(self, msg: str, source: Any = None) -> None:
        super().__init__(msg)
        self.source = source


class ReplacerError(JSONStreamError, TypeError):
    """
    Raised when a replacer function returns an unusable container.

    The container-level call must hand back a list or tuple for arrays and a
    mapping for objects.
    """

    def __init__(self, msg: str, result: Any = None) -> None:
        super().__init__(msg)
        self.result = result
