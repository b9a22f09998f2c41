"""
XOB9 fixed-size record layouts.

Container framing (FORM header, chunk headers) is big-endian; everything
inside a chunk is little-endian.
"""

from construct import *

# =============================================================================
# PRIMITIVE TYPES
# =============================================================================

FVector = Struct(
    "x" / Float32l,
    "y" / Float32l,
    "z" / Float32l,
)

# =============================================================================
# CONTAINER FRAMING
# =============================================================================

FormHeader = Struct(
    "magic" / Const(b"FORM"),
    "size" / Int32ub,
    "form_type" / Bytes(4),     # "XOB9"
)

# =============================================================================
# HEAD CHUNK
# =============================================================================

# Material name/path pairs follow at 0x3C
HeadHeader = Struct(
    "bounds_min" / FVector,             # 0x00
    "bounds_max" / FVector,             # 0x0C
    Padding(16),                        # 0x18
    "unknown_scale" / Float32l,         # 0x28
    "material_count" / Int16ul,         # 0x2C
    "bone_count" / Int16ul,             # 0x2E
    "lod_count" / Int32ul,              # 0x30
    Padding(4),                         # 0x34
    "material_data_size" / Int32ul,     # 0x38
)

HEAD_HEADER_SIZE = 0x3C

# =============================================================================
# LZO4 DESCRIPTOR (116 bytes, offsets from the marker)
# =============================================================================

LZO4_MARKER = b"LZO4"

LZO4Descriptor = Struct(
    "marker" / Const(LZO4_MARKER),      # 0x00
    "quality_tier" / Int32ul,           # 0x04
    Padding(4),
    "switch_distance" / Float32l,       # 0x0C
    Padding(4),
    "compressed_size" / Int32ul,        # 0x14
    Padding(4),
    "decompressed_size" / Int32ul,      # 0x1C
    "format_flags" / Int32ul,           # 0x20
    "bounds_min" / FVector,             # 0x24
    "bounds_max" / FVector,             # 0x30
    Padding(16),
    "triangle_count" / Int16ul,         # 0x4C
    "unique_vertex_count" / Int16ul,    # 0x4E
    "original_vertex_count" / Int16ul,  # 0x50
    "submesh_index" / Int16ul,          # 0x52
    Padding(4),
    "attr_config" / Bytes(8),           # 0x58
    "uv_min_u" / Float32l,              # 0x60
    "uv_max_u" / Float32l,
    "uv_min_v" / Float32l,
    "uv_max_v" / Float32l,
    "surface_scale" / Float32l,         # 0x70
)

LZO4_DESCRIPTOR_SIZE = LZO4Descriptor.sizeof()  # 116
