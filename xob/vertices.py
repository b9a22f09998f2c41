"""
Vertex and index stream decoding.

Turns a LOD region plus a detected ``VertexLayout`` into a numpy vertex
array (``VERTEX_DTYPE``) and a uint32 triangle index buffer. Reads that
would fall outside the region leave the affected vertices at their
defaults instead of failing the whole mesh.
"""

import logging

import numpy as np

from .types import (
    INDEX_SIZE, NORMAL_SIZE, TANGENT_SIZE, VertexLayout,
    empty_vertices, interleaved_stride,
)

logger = logging.getLogger(__name__)

NORMAL_EPS = 0.001

# Planar fallback when no UV stream was found
PLANAR_UV_OFFSET = 5.0
PLANAR_UV_SCALE = 0.1


def _records(region: bytes, offset: int, stride: int, count: int) -> np.ndarray:
    """View ``count`` fixed-size records at ``offset`` as an (n, stride) uint8 array.

    Only records that lie completely inside the region are returned, so
    ``n`` may be smaller than ``count``.
    """
    if offset < 0 or offset >= len(region):
        return np.zeros((0, stride), dtype=np.uint8)
    available = min(count, (len(region) - offset) // stride)
    if available <= 0:
        return np.zeros((0, stride), dtype=np.uint8)
    raw = np.frombuffer(region, dtype=np.uint8, count=available * stride, offset=offset)
    return raw.reshape(available, stride)


def _unit_vectors(raw: np.ndarray, default) -> np.ndarray:
    """Signed-byte triplets scaled by 1/127 and normalised."""
    vec = raw[:, :3].view(np.int8).astype(np.float32) / 127.0
    length = np.linalg.norm(vec, axis=1)
    good = length > NORMAL_EPS
    out = np.empty_like(vec)
    out[:] = default
    out[good] = vec[good] / length[good, None]
    return out


def decode_positions(raw: np.ndarray) -> np.ndarray:
    """First 12 bytes of each record as XYZ floats; non-finite triplets become 0."""
    positions = np.ascontiguousarray(raw[:, :12]).view("<f4").reshape(len(raw), 3).astype(np.float32)
    bad = ~np.isfinite(positions).all(axis=1)
    if bad.any():
        logger.warning("Zeroing %d vertices with non-finite positions", int(bad.sum()))
        positions[bad] = 0.0
    return positions


def decode_normals(raw: np.ndarray) -> np.ndarray:
    return _unit_vectors(raw, (0.0, 1.0, 0.0))


def decode_tangents(raw: np.ndarray):
    """Returns (tangents, signs); the 4th byte's sign is the handedness."""
    tangents = _unit_vectors(raw, (1.0, 0.0, 0.0))
    signs = np.where(raw[:, 3].view(np.int8) >= 0, 1.0, -1.0).astype(np.float32)
    return tangents, signs


def decode_uvs(raw: np.ndarray, is_f32: bool) -> np.ndarray:
    """Decode (u, v) pairs and flip V for the renderer."""
    dtype = "<f4" if is_f32 else "<f2"
    uv = np.ascontiguousarray(raw[:, : (8 if is_f32 else 4)]).view(dtype).astype(np.float32)
    uv = uv.reshape(-1, 2)
    uv[:, 1] = 1.0 - uv[:, 1]
    return uv


def planar_uvs(positions: np.ndarray) -> np.ndarray:
    """Project XZ onto UV space. Used when no UV stream could be located."""
    uv = np.empty((len(positions), 2), dtype=np.float32)
    uv[:, 0] = (positions[:, 0] + PLANAR_UV_OFFSET) * PLANAR_UV_SCALE
    uv[:, 1] = (positions[:, 2] + PLANAR_UV_OFFSET) * PLANAR_UV_SCALE
    return uv


def _decode_separated(region: bytes, vertex_count: int, layout: VertexLayout, vertices: np.ndarray):
    pos = _records(region, layout.pos_offset, layout.position_stride, vertex_count)
    vertices["position"][: len(pos)] = decode_positions(pos)

    norm = _records(region, layout.norm_offset, NORMAL_SIZE, vertex_count)
    vertices["normal"][: len(norm)] = decode_normals(norm)

    tan = _records(region, layout.tangent_offset, TANGENT_SIZE, vertex_count)
    tangents, signs = decode_tangents(tan)
    vertices["tangent"][: len(tan)] = tangents
    vertices["tangent_sign"][: len(tan)] = signs

    if layout.uv_resolved:
        uv = _records(region, layout.uv0_offset, layout.uv_element_size, vertex_count)
        vertices["uv"][: len(uv)] = decode_uvs(uv, layout.uv_is_f32)
    else:
        vertices["uv"] = planar_uvs(vertices["position"])


def _decode_interleaved(region: bytes, vertex_count: int, mesh_type: int,
                        layout: VertexLayout, vertices: np.ndarray):
    stride = interleaved_stride(mesh_type)
    rec = _records(region, layout.vertex_data_offset, stride, vertex_count)
    n = len(rec)

    vertices["position"][:n] = decode_positions(rec)
    vertices["normal"][:n] = decode_normals(rec[:, 12:16])
    tangents, signs = decode_tangents(rec[:, 16:20])
    vertices["tangent"][:n] = tangents
    vertices["tangent_sign"][:n] = signs

    uv_size = layout.uv_element_size
    if 20 + uv_size <= stride:
        vertices["uv"][:n] = decode_uvs(rec[:, 20 : 20 + uv_size], layout.uv_is_f32)
    else:
        # 20-byte records have no room for a UV
        vertices["uv"][:n] = planar_uvs(vertices["position"][:n])


def decode_vertices(region: bytes, vertex_count: int, mesh_type: int, layout: VertexLayout) -> np.ndarray:
    """Decode ``vertex_count`` vertices from ``region`` using ``layout``."""
    region = bytes(region)
    vertices = empty_vertices(vertex_count)
    if vertex_count <= 0:
        return vertices

    if layout.separated:
        _decode_separated(region, vertex_count, layout, vertices)
    else:
        _decode_interleaved(region, vertex_count, mesh_type, layout, vertices)

    return vertices


def decode_indices(region: bytes, triangle_count: int, vertex_count: int) -> np.ndarray:
    """Decode the first uint16 index array.

    Indices that point past the vertex array are clamped to 0 rather than
    rejected, so a slightly misread mesh still loads.
    """
    region = bytes(region)
    count = min(triangle_count * 3, len(region) // INDEX_SIZE)
    if count <= 0 or vertex_count <= 0:
        return np.zeros(0, dtype=np.uint32)

    indices = np.frombuffer(region, dtype="<u2", count=count).astype(np.uint32)
    out_of_range = indices >= vertex_count
    if out_of_range.any():
        logger.debug("Clamping %d out-of-range indices to 0", int(out_of_range.sum()))
        indices[out_of_range] = 0
    return indices
