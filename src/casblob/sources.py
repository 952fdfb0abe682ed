"""Re-openable byte sources for the content-addressed upload path.

Hashing, dedupe checks and content-type sniffing may each read the content
before the upload does, so the pipeline takes a source that can be opened
any number of times instead of a single-use stream.
"""

import io
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class ByteSource(Protocol):
    """Content that can be opened for reading repeatedly and independently."""

    def open(self) -> BinaryIO:
        """Return a fresh binary stream positioned at the start."""
        ...


class BytesSource:
    """In-memory source."""

    def __init__(self, data: bytes, name: Optional[str] = None):
        self.data = bytes(data)
        self.name = name

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"BytesSource({len(self.data)} bytes)"


class FileSource:
    """Source backed by a local file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.name

    def open(self) -> BinaryIO:
        return self.path.open("rb")

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def __repr__(self) -> str:
        return f"FileSource({str(self.path)!r})"


def read_head(source: ByteSource, length: int) -> bytes:
    """Read up to length leading bytes of a source."""
    with source.open() as stream:
        return stream.read(length)
