"""Builders for synthetic XOB data used by the tests."""

import struct

import numpy as np

from xob.structs import HeadHeader, LZO4Descriptor
from xob.types import MESH_STATIC

GUID = "{0123456789ABCDEF}"

# Four non-degenerate vertices of a unit quad
QUAD_POSITIONS = [
    (1.0, 0.0, 1.0),
    (2.0, 0.0, 1.0),
    (2.0, 1.0, 1.0),
    (1.0, 1.0, 1.0),
]
QUAD_UVS = [(0.25, 0.25), (0.5, 0.25), (0.5, 0.75), (0.25, 0.75)]
QUAD_TRIANGLES = [0, 1, 2, 0, 2, 3]


def vec(x=0.0, y=0.0, z=0.0):
    return dict(x=x, y=y, z=z)


def descriptor(triangle_count=2, vertex_count=4, mesh_type=MESH_STATIC, quality_tier=0,
               submesh_index=0, decompressed_size=0, switch_distance=0.0,
               attr_config=bytes(8)):
    """One 116-byte LZO4 record."""
    return LZO4Descriptor.build(dict(
        quality_tier=quality_tier,
        switch_distance=switch_distance,
        compressed_size=decompressed_size // 2,
        decompressed_size=decompressed_size,
        format_flags=mesh_type << 24,
        bounds_min=vec(-1.0, -1.0, -1.0),
        bounds_max=vec(1.0, 1.0, 1.0),
        triangle_count=triangle_count,
        unique_vertex_count=vertex_count,
        original_vertex_count=vertex_count,
        submesh_index=submesh_index,
        attr_config=attr_config,
        uv_min_u=0.0,
        uv_max_u=1.0,
        uv_min_v=0.0,
        uv_max_v=1.0,
        surface_scale=1.0,
    ))


def head_chunk(materials=(), descriptors=(), tail=b"", material_count=None, bone_count=0):
    """HEAD payload: fixed header, material strings, descriptors, then ``tail``."""
    if material_count is None:
        material_count = len(materials)
    strings = b"".join(
        name.encode("latin-1") + b"\x00" + path.encode("latin-1") + b"\x00"
        for name, path in materials
    )
    header = HeadHeader.build(dict(
        bounds_min=vec(-1.0, -1.0, -1.0),
        bounds_max=vec(1.0, 1.0, 1.0),
        unknown_scale=1.0,
        material_count=material_count,
        bone_count=bone_count,
        lod_count=len(descriptors),
        material_data_size=len(strings),
    ))
    return header + strings + b"".join(descriptors) + tail


def submesh_block(material_index, index_count, order_key=1, lod=0, flags=0):
    """16-byte submesh record; its 0xFFFF marker sits 10 bytes in."""
    return struct.pack("<8H", order_key, 0, index_count, lod, 0, 0xFFFF, material_index, flags)


def submesh_table(*blocks):
    # Marker scan starts 8 bytes past the descriptor table
    return bytes(8) + b"".join(blocks)


def chunk(tag, payload):
    return tag + struct.pack(">I", len(payload)) + payload


def xob_file(head, lods=b"\x01" * 16, coll=None, volm=None, form_type=b"XOB9"):
    body = chunk(b"HEAD", head)
    if lods is not None:
        body += chunk(b"LODS", lods)
    if coll is not None:
        body += chunk(b"COLL", coll)
    if volm is not None:
        body += chunk(b"VOLM", volm)
    return b"FORM" + struct.pack(">I", len(body) + 4) + form_type + body


def index_array(indices):
    return np.asarray(indices, dtype="<u2").tobytes()


def position_stream(positions, stride=12):
    out = b""
    for x, y, z in positions:
        out += struct.pack("<3f", x, y, z)
        if stride == 16:
            out += struct.pack("<f", 1.0)
    return out


def packed_stream(values, count):
    """Four signed bytes per vertex, repeating ``values``."""
    return struct.pack("<4b", *values) * count


def uv_stream(uvs):
    return np.asarray(uvs, dtype="<f2").tobytes()


def separated_region(positions=QUAD_POSITIONS, triangles=QUAD_TRIANGLES, uvs=QUAD_UVS,
                     dual_index=True, color=None, gap=b"", stride=12,
                     normal=(0, 127, 0, 0), tangent=(127, 0, 0, 127)):
    """LOD region with one or two index arrays and separated vertex streams.

    ``color`` (bytes) is inserted between tangents and UVs; ``gap`` goes
    there as well, after any colour stream. Pass ``uvs=None`` to omit the
    UV stream.
    """
    vc = len(positions)
    indices = index_array(triangles)
    region = indices * 2 if dual_index else indices
    region += position_stream(positions, stride)
    region += packed_stream(normal, vc)
    region += packed_stream(tangent, vc)
    if color is not None:
        region += color
    region += gap
    if uvs is not None:
        region += uv_stream(uvs)
    return region
