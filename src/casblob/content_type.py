"""Content-type inference for uploads that declare none."""

import mimetypes
from typing import Optional, Protocol, Tuple

from .sources import ByteSource, read_head

# (offset, magic bytes, media type); checked in order
_SIGNATURES: Tuple[Tuple[int, bytes, str], ...] = (
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"%PDF-", "application/pdf"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"\x1f\x8b", "application/gzip"),
    (0, b"BM", "image/bmp"),
    (0, b"OggS", "audio/ogg"),
    (0, b"fLaC", "audio/flac"),
    (0, b"ID3", "audio/mpeg"),
    (4, b"ftyp", "video/mp4"),
)

_HEAD_SIZE = 512


class ContentTyper(Protocol):
    def infer_type(self, source: ByteSource) -> Optional[str]:
        ...


class NullContentTyper:
    """Never infers anything."""

    def infer_type(self, source: ByteSource) -> Optional[str]:
        return None


class SignatureContentTyper:
    """Infer a media type from leading magic bytes, then from the file name."""

    def infer_type(self, source: ByteSource) -> Optional[str]:
        head = read_head(source, _HEAD_SIZE)

        for offset, magic, media_type in _SIGNATURES:
            if head[offset:offset + len(magic)] == magic:
                return media_type
        if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
            return "image/webp"

        name = getattr(source, "name", None)
        if name:
            guessed, _ = mimetypes.guess_type(name)
            if guessed:
                return guessed
        return None
