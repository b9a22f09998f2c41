"""
Binary Reader for XOB files.

Provides low-level binary reading utilities for the XOB9 container. Chunk
framing is big-endian while every payload field is little-endian, so both
byte orders are exposed here.

The standalone ``*_at`` accessors never raise: a read that would run past
the end of the buffer returns ``None`` and callers treat that as "this
candidate offset is invalid".
"""

import struct
from typing import Optional


class BinaryReader:
    """Cursor over a byte buffer, used for the HEAD string table."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.pos = offset

    def tell(self) -> int:
        """Return current position."""
        return self.pos

    def read_cstring(self, limit: Optional[int] = None) -> str:
        """Read a NUL-terminated string, stopping at ``limit`` if no NUL is found.

        The terminator is consumed but not returned.
        """
        end = len(self.data) if limit is None else min(limit, len(self.data))
        start = self.pos
        stop = start
        while stop < end and self.data[stop] != 0:
            stop += 1
        self.pos = stop + 1 if stop < end else end
        return bytes(self.data[start:stop]).decode("latin-1", errors="replace")


def _unpack_at(fmt: str, data: bytes, offset: int):
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        return None
    return struct.unpack_from(fmt, data, offset)


def u16_at(data: bytes, offset: int) -> Optional[int]:
    value = _unpack_at("<H", data, offset)
    return None if value is None else value[0]


def u32be_at(data: bytes, offset: int) -> Optional[int]:
    """Read a big-endian uint32 (IFF chunk sizes)."""
    value = _unpack_at(">I", data, offset)
    return None if value is None else value[0]


def vec3_at(data: bytes, offset: int) -> Optional[tuple]:
    """Read three consecutive little-endian floats."""
    return _unpack_at("<3f", data, offset)


def half_pair_at(data: bytes, offset: int) -> Optional[tuple]:
    """Read a (u, v) pair of half-floats."""
    return _unpack_at("<2e", data, offset)


def find_all(data: bytes, needle: bytes, start: int = 0, step_past: int = 0):
    """Yield every offset of ``needle`` in ``data``.

    After a hit the search resumes ``step_past`` bytes later (or right after
    the needle if ``step_past`` is 0), which keeps a scan from re-matching
    inside a fixed-size record that follows the marker.
    """
    advance = step_past or len(needle)
    pos = data.find(needle, start)
    while pos != -1:
        yield pos
        pos = data.find(needle, pos + advance)
