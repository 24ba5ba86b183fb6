"""Streaming content digests for checksum-based comparison."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import LocationError

if TYPE_CHECKING:
    from .location import Location


_HASH_CHUNK_SIZE = 2 * 1024 * 1024


@dataclass(frozen=True)
class Checksum:
    """SHA-256 digest of a file's content.

    Instances compare equal when their digests match byte for byte.
    """
    digest: bytes

    @property
    def hex(self) -> str:
        return self.digest.hex()

    def __str__(self) -> str:
        return f"sha256:{self.hex}"


def checksum_stream(stream) -> Checksum:
    """Digest a binary stream, reading it in fixed-size chunks until EOF."""
    h = hashlib.sha256()
    while True:
        chunk = stream.read(_HASH_CHUNK_SIZE)
        if not chunk:
            break
        h.update(chunk)
    return Checksum(h.digest())


def file_checksum(location: Location) -> Checksum:
    """Compute the :class:`Checksum` of the content at *location*.

    Raises :class:`~treesync.exceptions.LocationError` if the content
    cannot be opened or a read fails part way through.
    """
    with location.open_read() as stream:
        try:
            return checksum_stream(stream)
        except OSError as exc:
            raise LocationError.from_os_error(exc, location.uri) from exc


def checksums_differ(a: Checksum | None, b: Checksum | None) -> bool:
    """Return ``True`` unless both digests are present and identical."""
    if a is None or b is None:
        return True
    return a.digest != b.digest
