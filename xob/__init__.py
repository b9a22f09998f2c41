"""
XOB9 Mesh Decoder

Reads the XOB9 mesh container: LZO4 LOD descriptors, heuristic vertex
layout detection, vertex/index decoding and per-material triangle ranges.
"""

from .container import XobContainer
from .descriptors import extract_descriptors
from .errors import RegionTooSmallError, XobFormatError
from .layout import detect_layout
from .materials import parse_materials, reconstruct_material_ranges
from .mesh import XobFile, decode_region
from .types import LodDescriptor, MaterialRange, Mesh, VertexLayout
from .vertices import decode_indices, decode_vertices

__all__ = [
    'XobContainer',
    'XobFile',
    'LodDescriptor',
    'VertexLayout',
    'MaterialRange',
    'Mesh',
    'XobFormatError',
    'RegionTooSmallError',
    'extract_descriptors',
    'detect_layout',
    'decode_vertices',
    'decode_indices',
    'decode_region',
    'parse_materials',
    'reconstruct_material_ranges',
]
