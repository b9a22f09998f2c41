"""
Shared data types for XOB parsing.

Constants and dataclasses used across the descriptor, layout, vertex and
material modules.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

# =============================================================================
# CONSTANTS
# =============================================================================

# Mesh type (high byte of LZO4 format_flags)
MESH_STATIC = 0x0F
MESH_SKINNED = 0x1F
MESH_EMISSIVE = 0x8F
MESH_SKINNED_EMISSIVE = 0x9F

SKINNED_TYPES = (MESH_SKINNED, MESH_SKINNED_EMISSIVE)
EMISSIVE_TYPES = (MESH_EMISSIVE, MESH_SKINNED_EMISSIVE)

MESH_TYPE_NAMES = {
    MESH_STATIC: "static",
    MESH_SKINNED: "skinned",
    MESH_EMISSIVE: "emissive",
    MESH_SKINNED_EMISSIVE: "skinned+emissive",
}

# Vertex attribute sizes
INDEX_SIZE = 2
NORMAL_SIZE = 4
TANGENT_SIZE = 4
UV_SIZE_HALF = 4
UV_SIZE_FLOAT = 8
VERTEX_COLOR_SIZE = 4
POSITION_STRIDE_12 = 12  # XYZ
POSITION_STRIDE_16 = 16  # XYZW

# Interleaved record stride by mesh type
INTERLEAVED_STRIDE = 20
INTERLEAVED_STRIDE_EMISSIVE = 32

# Attribute config byte indices
ATTR_CFG_LOD_FLAG = 0
ATTR_CFG_UV_SETS = 2
ATTR_CFG_MAT_SLOTS = 3
ATTR_CFG_BONE_STREAMS = 4


def is_skinned(mesh_type: int) -> bool:
    return mesh_type in SKINNED_TYPES


def position_stride(mesh_type: int) -> int:
    """Skinned meshes store XYZW positions, everything else XYZ."""
    return POSITION_STRIDE_16 if is_skinned(mesh_type) else POSITION_STRIDE_12


def interleaved_stride(mesh_type: int) -> int:
    return INTERLEAVED_STRIDE_EMISSIVE if mesh_type in EMISSIVE_TYPES else INTERLEAVED_STRIDE


def mesh_type_name(mesh_type: int) -> str:
    return MESH_TYPE_NAMES.get(mesh_type, f"unknown(0x{mesh_type:02X})")


# =============================================================================
# DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class LodDescriptor:
    """One 116-byte LZO4 record from the HEAD chunk."""
    offset: int
    quality_tier: int
    switch_distance: float
    compressed_size: int
    decompressed_size: int
    format_flags: int
    bounds_min: Tuple[float, float, float]
    bounds_max: Tuple[float, float, float]
    triangle_count: int
    unique_vertex_count: int
    original_vertex_count: int
    submesh_index: int
    attr_config: bytes
    uv_bounds: Tuple[float, float, float, float]
    surface_scale: float

    @property
    def mesh_type(self) -> int:
        return (self.format_flags >> 24) & 0xFF

    @property
    def position_stride(self) -> int:
        return position_stride(self.mesh_type)

    @property
    def is_skinned(self) -> bool:
        return is_skinned(self.mesh_type)

    @property
    def lod_flag(self) -> int:
        return self.attr_config[ATTR_CFG_LOD_FLAG]

    @property
    def uv_set_count(self) -> int:
        return self.attr_config[ATTR_CFG_UV_SETS]

    @property
    def material_slot_count(self) -> int:
        return self.attr_config[ATTR_CFG_MAT_SLOTS]

    @property
    def bone_stream_count(self) -> int:
        return self.attr_config[ATTR_CFG_BONE_STREAMS]

    @property
    def has_second_uv(self) -> bool:
        if self.uv_set_count > 0:
            return self.uv_set_count >= 2
        return self.mesh_type in EMISSIVE_TYPES

    @property
    def has_skinning(self) -> bool:
        return self.is_skinned or self.bone_stream_count > 0


# =============================================================================
# LAYOUT
# =============================================================================

@dataclass
class VertexLayout:
    """Where each vertex attribute stream lives inside a LOD region.

    Offsets are relative to the start of the region. Only meaningful for
    separated streams; interleaved layouts read everything from
    ``vertex_data_offset``.
    """
    vertex_data_offset: int = 0
    position_stride: int = POSITION_STRIDE_12
    separated: bool = False
    single_index: bool = False
    color_before_uv: bool = False
    uv_resolved: bool = False
    uv_is_f32: bool = False
    strategy: str = "none"

    pos_offset: int = 0
    norm_offset: int = 0
    tangent_offset: int = 0
    uv0_offset: int = 0
    uv1_offset: int = 0
    color_offset: int = 0

    @property
    def uv_element_size(self) -> int:
        return UV_SIZE_FLOAT if self.uv_is_f32 else UV_SIZE_HALF


# =============================================================================
# VERTICES
# =============================================================================

VERTEX_DTYPE = np.dtype([
    ("position", np.float32, (3,)),
    ("normal", np.float32, (3,)),
    ("tangent", np.float32, (3,)),
    ("tangent_sign", np.float32),
    ("uv", np.float32, (2,)),
    # Not populated by the decoder
    ("extra_normal", np.float32, (3,)),
    ("extra_tangent", np.float32, (3,)),
    ("bone_indices", np.uint16, (4,)),
    ("bone_weights", np.float32, (4,)),
])


def empty_vertices(count: int) -> np.ndarray:
    """Vertex array with the decoder's defaults (+Y normal, +X tangent)."""
    vertices = np.zeros(count, dtype=VERTEX_DTYPE)
    vertices["normal"] = (0.0, 1.0, 0.0)
    vertices["tangent"] = (1.0, 0.0, 0.0)
    vertices["tangent_sign"] = 1.0
    vertices["extra_normal"] = (0.0, 1.0, 0.0)
    vertices["extra_tangent"] = (1.0, 0.0, 0.0)
    return vertices


# =============================================================================
# MATERIALS
# =============================================================================

@dataclass
class Material:
    """Material slot from the HEAD string table."""
    name: str
    path: str


@dataclass
class SubmeshBlock:
    """Submesh record recovered around a 0xFFFF marker."""
    position: int
    material_index: int
    index_count: int
    lod: int
    flags: int
    order_key: int


@dataclass
class MaterialRange:
    material_index: int
    triangle_start: int
    triangle_end: int
    triangle_count: int

    @classmethod
    def span(cls, material_index: int, start: int, count: int) -> 'MaterialRange':
        return cls(material_index, start, start + count, count)

    @property
    def index_start(self) -> int:
        return self.triangle_start * 3

    @property
    def index_count(self) -> int:
        return self.triangle_count * 3


# =============================================================================
# MESH
# =============================================================================

@dataclass
class MeshLod:
    distance: float
    index_offset: int
    index_count: int


@dataclass
class Mesh:
    """Decoded mesh for one LOD."""
    vertices: np.ndarray
    indices: np.ndarray
    lods: List[MeshLod] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)
    material_ranges: List[MaterialRange] = field(default_factory=list)
    collision: bytes = b""
    octree: bytes = b""
    bone_count: int = 0
    bounds_min: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    bounds_max: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    layout: Optional[VertexLayout] = None
    descriptors: List[LodDescriptor] = field(default_factory=list)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3
