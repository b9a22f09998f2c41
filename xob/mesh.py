"""
XOB mesh assembly.

Ties the container, descriptor, layout, vertex and material modules
together into a single ``Mesh`` for one LOD.

The LODS chunk is LZ4 block-compressed; inflating it is left to the
caller, who passes either the inflated bytes (``lods_data``) or a
``decompress`` callable that receives the raw chunk payload.
"""

import logging
from typing import Callable, List, Optional, Tuple

import numpy as np

from .container import COLL, HEAD, LODS, VOLM, XobContainer
from .descriptors import extract_descriptors
from .errors import XobFormatError
from .layout import detect_layout
from .materials import parse_head_header, parse_materials, reconstruct_material_ranges
from .types import MESH_STATIC, LodDescriptor, Mesh, MeshLod, VertexLayout
from .vertices import decode_indices, decode_vertices

logger = logging.getLogger(__name__)


def decode_region(region: bytes, vertex_count: int, triangle_count: int,
                  mesh_type: int) -> Tuple[np.ndarray, np.ndarray, VertexLayout]:
    """Decode vertices and indices from one LOD region.

    Pure function of its inputs; safe to call from several threads on
    separate regions.
    """
    layout = detect_layout(region, vertex_count, triangle_count, mesh_type)
    vertices = decode_vertices(region, vertex_count, mesh_type, layout)
    indices = decode_indices(region, triangle_count, vertex_count)
    return vertices, indices, layout


def extract_lod_region(lods_data: bytes, descriptors: List[LodDescriptor], lod: int) -> bytes:
    """Slice LOD ``lod`` out of the inflated LODS payload.

    LOD regions are stored back to back in descriptor order. If the sizes
    don't add up the region falls back to the start of the payload.
    """
    desc = descriptors[lod]
    size = desc.decompressed_size
    if size <= 0:
        return lods_data

    start = sum(d.decompressed_size for d in descriptors[:lod])
    if start + size <= len(lods_data):
        return lods_data[start : start + size]
    if size <= len(lods_data):
        logger.warning("LOD %d region [%d, %d) exceeds payload of %d bytes; using payload start",
                       lod, start, start + size, len(lods_data))
        return lods_data[:size]
    return lods_data


def compute_bounds(vertices: np.ndarray):
    if len(vertices) == 0:
        return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
    positions = vertices["position"]
    return tuple(float(c) for c in positions.min(axis=0)), tuple(float(c) for c in positions.max(axis=0))


class XobFile:
    """Parser for XOB9 mesh files.

    Parses the HEAD chunk up front and provides access to:
    - descriptors: LZO4 descriptor per LOD / submesh variant
    - materials: material (name, path) slots
    - header: the fixed HEAD header (bone/material/LOD counts)
    """

    def __init__(self, data: bytes):
        self.container = XobContainer(data)

        head = self.container.find_chunk(HEAD)
        if head is None:
            raise XobFormatError("HEAD chunk not found")
        self.head = head
        self.header = parse_head_header(head)
        self.materials = parse_materials(head)
        self.descriptors = extract_descriptors(head)

    @classmethod
    def from_file(cls, filepath: str) -> 'XobFile':
        with open(filepath, "rb") as f:
            return cls(f.read())

    @property
    def lod_count(self) -> int:
        return len(self.descriptors)

    @property
    def material_count(self) -> int:
        if self.materials:
            return len(self.materials)
        return self.header.material_count if self.header is not None else 0

    @property
    def bone_count(self) -> int:
        return self.header.bone_count if self.header is not None else 0

    def lods_payload(self, lods_data: Optional[bytes] = None,
                     decompress: Optional[Callable[[bytes], bytes]] = None) -> bytes:
        """Inflated LODS bytes, either supplied directly or via ``decompress``."""
        if lods_data is not None:
            return bytes(lods_data)
        raw = self.container.find_chunk(LODS)
        if raw is None:
            raise XobFormatError("LODS chunk not found")
        if decompress is None:
            raise XobFormatError("LODS chunk is compressed; pass lods_data or a decompress callable")
        return bytes(decompress(raw))

    def parse(self, target_lod: int = 0, lods_data: Optional[bytes] = None,
              decompress: Optional[Callable[[bytes], bytes]] = None,
              vertex_count: Optional[int] = None, triangle_count: Optional[int] = None) -> Mesh:
        """Decode one LOD into a ``Mesh``.

        Without LZO4 descriptors the file is treated as a single static LOD
        and ``vertex_count``/``triangle_count`` must be given by the caller.
        """
        payload = self.lods_payload(lods_data, decompress)

        if self.descriptors:
            if not 0 <= target_lod < len(self.descriptors):
                logger.warning("Requested LOD %d > max %d, using LOD 0",
                               target_lod, len(self.descriptors) - 1)
                target_lod = 0
            desc = self.descriptors[target_lod]
            vertex_count = desc.unique_vertex_count
            triangle_count = desc.triangle_count
            mesh_type = desc.mesh_type
            distance = desc.switch_distance
            region = extract_lod_region(payload, self.descriptors, target_lod)
            target_tier = desc.quality_tier
            material_count = self.material_count
        else:
            if vertex_count is None or triangle_count is None:
                raise XobFormatError("No LZO4 descriptors; vertex_count and triangle_count are required")
            logger.warning("No LZO4 descriptors; assuming a single static LOD with one material")
            mesh_type = MESH_STATIC
            distance = 0.0
            region = payload
            target_tier = None
            material_count = 1

        if vertex_count == 0 or triangle_count == 0:
            raise XobFormatError(
                f"Invalid LOD {target_lod}: verts={vertex_count} tris={triangle_count}"
            )

        vertices, indices, layout = decode_region(region, vertex_count, triangle_count, mesh_type)
        logger.info("Parsed LOD %d: %d vertices, %d indices (%s)",
                    target_lod, len(vertices), len(indices), layout.strategy)

        bounds_min, bounds_max = compute_bounds(vertices)
        ranges = reconstruct_material_ranges(
            self.head, triangle_count, material_count, mesh_type,
            self.descriptors, target_tier,
        )

        return Mesh(
            vertices=vertices,
            indices=indices,
            lods=[MeshLod(distance=distance, index_offset=0, index_count=len(indices))],
            materials=list(self.materials),
            material_ranges=ranges,
            collision=self.container.find_chunk(COLL) or b"",
            octree=self.container.find_chunk(VOLM) or b"",
            bone_count=self.bone_count,
            bounds_min=bounds_min,
            bounds_max=bounds_max,
            layout=layout,
            descriptors=list(self.descriptors),
        )
