"""
XOB9 container reader.

An XOB file is an IFF-style FORM container::

    "FORM" u32be size "XOB9"
    [tag u32be size payload]...

Chunk tags of interest are HEAD (header, materials, LZO4 descriptors,
submesh table), LODS (LZ4-compressed vertex/index data), COLL (collision)
and VOLM (spatial octree).
"""

import logging
from typing import Dict, Optional

from construct import ConstructError

from .errors import XobFormatError
from .reader import u32be_at
from .structs import FormHeader

logger = logging.getLogger(__name__)

HEAD = b"HEAD"
LODS = b"LODS"
COLL = b"COLL"
VOLM = b"VOLM"

FORM_HEADER_SIZE = 12
MAX_CHUNK_SIZE = 100_000_000


class XobContainer:
    """FORM/XOB container over an in-memory file.

    Chunks are located by scanning for their tag rather than walking the
    IFF chain, since padding between chunks is not reliable.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self._chunks: Dict[bytes, Optional[bytes]] = {}

        if len(self.data) < FORM_HEADER_SIZE:
            raise XobFormatError(f"Data too small: {len(self.data)} bytes (need {FORM_HEADER_SIZE}+)")
        try:
            header = FormHeader.parse(self.data[:FORM_HEADER_SIZE])
        except ConstructError:
            raise XobFormatError("Invalid magic: not a FORM container") from None
        if not header.form_type.startswith(b"XOB"):
            raise XobFormatError(f"Invalid form type: {header.form_type!r} (expected XOB*)")

        self.form_size = header.size
        self.form_type = header.form_type.decode("latin-1")

    def find_chunk(self, tag: bytes) -> Optional[bytes]:
        """Return the payload of the first plausible ``tag`` chunk, or None."""
        if tag in self._chunks:
            return self._chunks[tag]

        payload = None
        pos = self.data.find(tag, FORM_HEADER_SIZE)
        while pos != -1:
            size = u32be_at(self.data, pos + 4)
            if size is not None and 0 < size < MAX_CHUNK_SIZE and pos + 8 + size <= len(self.data):
                logger.debug("Found chunk %s at pos=%d size=%d", tag.decode("latin-1"), pos, size)
                payload = self.data[pos + 8 : pos + 8 + size]
                break
            pos = self.data.find(tag, pos + 1)

        self._chunks[tag] = payload
        return payload

    def has_chunk(self, tag: bytes) -> bool:
        return self.find_chunk(tag) is not None
