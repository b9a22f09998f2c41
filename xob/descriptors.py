"""
LZO4 descriptor extraction.

The HEAD chunk carries one 116-byte LZO4 record per LOD / mesh-type
variant. There is no count field in front of them, so the records are
located by scanning for the marker.
"""

import logging
from typing import List

from .reader import find_all
from .structs import LZO4_MARKER, LZO4_DESCRIPTOR_SIZE, LZO4Descriptor
from .types import LodDescriptor, mesh_type_name

logger = logging.getLogger(__name__)


def _vec(v) -> tuple:
    return (v.x, v.y, v.z)


def parse_descriptor(head: bytes, offset: int) -> LodDescriptor:
    """Parse the LZO4 record whose marker sits at ``offset``."""
    raw = LZO4Descriptor.parse(head[offset : offset + LZO4_DESCRIPTOR_SIZE])
    return LodDescriptor(
        offset=offset,
        quality_tier=raw.quality_tier,
        switch_distance=raw.switch_distance,
        compressed_size=raw.compressed_size,
        decompressed_size=raw.decompressed_size,
        format_flags=raw.format_flags,
        bounds_min=_vec(raw.bounds_min),
        bounds_max=_vec(raw.bounds_max),
        triangle_count=raw.triangle_count,
        unique_vertex_count=raw.unique_vertex_count,
        original_vertex_count=raw.original_vertex_count,
        submesh_index=raw.submesh_index,
        attr_config=bytes(raw.attr_config),
        uv_bounds=(raw.uv_min_u, raw.uv_max_u, raw.uv_min_v, raw.uv_max_v),
        surface_scale=raw.surface_scale,
    )


def extract_descriptors(head: bytes) -> List[LodDescriptor]:
    """Return every LZO4 descriptor in ``head``, in file order.

    An empty list is not an error: the HEAD data may simply be truncated,
    and callers decode with an assumed single LOD in that case.
    """
    head = bytes(head)
    descriptors = []

    for pos in find_all(head, LZO4_MARKER, step_past=LZO4_DESCRIPTOR_SIZE):
        if pos + LZO4_DESCRIPTOR_SIZE > len(head):
            logger.warning("Truncated LZO4 descriptor at offset %d", pos)
            break

        desc = parse_descriptor(head, pos)
        logger.debug(
            "LOD %d: tier=%d type=%s comp=%d decomp=%d tris=%d verts=%d submesh=%d",
            len(descriptors), desc.quality_tier, mesh_type_name(desc.mesh_type),
            desc.compressed_size, desc.decompressed_size, desc.triangle_count,
            desc.unique_vertex_count, desc.submesh_index,
        )
        descriptors.append(desc)

    logger.debug("Found %d LOD descriptors", len(descriptors))
    return descriptors


def descriptor_table_end(head: bytes) -> int:
    """Offset just past the last complete LZO4 record, or 0 if there is none."""
    end = 0
    for pos in find_all(bytes(head), LZO4_MARKER, step_past=LZO4_DESCRIPTOR_SIZE):
        if pos + LZO4_DESCRIPTOR_SIZE > len(head):
            break
        end = pos + LZO4_DESCRIPTOR_SIZE
    return end
