"""
Vertex layout detection.

A decompressed LOD region starts with one or two uint16 index arrays,
followed by vertex data. Most meshes store each attribute as its own
stream::

    [indices][indices?][positions][normals][tangents][colors?][uv0][uv1]...

Neither the number of index arrays nor the presence of the colour stream
is recorded anywhere, so candidate offsets are probed for data that looks
like plausible UVs or positions. Strategies are tried in priority order
and the first one that validates wins.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from .errors import RegionTooSmallError, XobFormatError
from .reader import half_pair_at, vec3_at
from .types import (
    INDEX_SIZE, NORMAL_SIZE, TANGENT_SIZE, UV_SIZE_FLOAT, UV_SIZE_HALF,
    VERTEX_COLOR_SIZE, VertexLayout, position_stride,
)

logger = logging.getLogger(__name__)

# UV probe thresholds
UV_PROBE_SAMPLES = (0, 1, 2, 3, 4, 5, 7, 9)
UV_PROBE_RANGE = 8.0
UV_PROBE_MAX_ABS = 16.0
UV_NONZERO_EPS = 1e-4

# Position probe thresholds
POSITION_PROBE_COUNT = 4
POSITION_PROBE_MIN_VALID = 3
POSITION_MAX_ABS = 1000.0
POSITION_NONZERO_EPS = 1e-6

# Bounded UV scan
UV_SCAN_WINDOW_PER_VERTEX = 64
UV_SCAN_SAMPLES = 64
UV_SCAN_RANGE = 4.0
UV_SCAN_MIN_VALID = 12
UV_SCAN_MIN_NONZERO = 6
UV_SCAN_BATCH = 4096


@dataclass
class LayoutCandidate:
    """Outcome of a successful strategy."""
    vertex_data_offset: int
    single_index: bool
    color_before_uv: bool = False
    uv_offset: Optional[int] = None


class LayoutProbe:
    """Candidate offsets and validity probes for one LOD region."""

    def __init__(self, region: bytes, vertex_count: int, triangle_count: int, mesh_type: int):
        self.region = bytes(region)
        self.vertex_count = vertex_count
        self.triangle_count = triangle_count
        self.mesh_type = mesh_type
        self.stride = position_stride(mesh_type)

        self.index_array_size = triangle_count * 3 * INDEX_SIZE
        self.dual_start = self.index_array_size * 2
        self.single_start = self.index_array_size

    def uv_offset(self, vertex_data_offset: int, with_color: bool) -> int:
        """Expected UV0 offset for streams in fixed order from ``vertex_data_offset``."""
        vc = self.vertex_count
        offset = vertex_data_offset + vc * self.stride + vc * NORMAL_SIZE + vc * TANGENT_SIZE
        if with_color:
            offset += vc * VERTEX_COLOR_SIZE
        return offset

    def probe_uvs_f16(self, offset: int) -> bool:
        """Do the sampled half-float pairs at ``offset`` look like texture coordinates?"""
        vc = self.vertex_count
        if offset + 8 > len(self.region) or offset + vc * UV_SIZE_HALF > len(self.region):
            return False

        samples = list(UV_PROBE_SAMPLES)
        if vc > 4:
            samples += [vc // 4, vc // 2, (vc * 3) // 4, vc - 1]

        checked = valid = nonzero = 0
        max_abs = 0.0
        for idx in samples:
            if idx >= vc:
                continue
            pair = half_pair_at(self.region, offset + idx * UV_SIZE_HALF)
            if pair is None:
                continue
            u, v = pair
            if math.isfinite(u) and math.isfinite(v):
                max_abs = max(max_abs, abs(u), abs(v))
                if abs(u) > UV_NONZERO_EPS or abs(v) > UV_NONZERO_EPS:
                    nonzero += 1
                if -UV_PROBE_RANGE <= u <= UV_PROBE_RANGE and -UV_PROBE_RANGE <= v <= UV_PROBE_RANGE:
                    valid += 1
            checked += 1

        return (checked > 0
                and valid >= max(3, checked * 6 // 10)
                and nonzero >= 2
                and max_abs <= UV_PROBE_MAX_ABS)

    def probe_positions(self, offset: int) -> bool:
        """Do the first few position triplets at ``offset`` look like geometry?"""
        valid = 0
        for i in range(POSITION_PROBE_COUNT):
            xyz = vec3_at(self.region, offset + i * self.stride)
            if xyz is None:
                continue
            if not all(math.isfinite(c) and abs(c) < POSITION_MAX_ABS for c in xyz):
                continue
            if any(abs(c) > POSITION_NONZERO_EPS for c in xyz):
                valid += 1
        return valid >= POSITION_PROBE_MIN_VALID


# =============================================================================
# STRATEGIES
# =============================================================================

def _uv_strategy(single: bool, with_color: bool) -> Callable[[LayoutProbe], Optional[LayoutCandidate]]:
    def strategy(probe: LayoutProbe) -> Optional[LayoutCandidate]:
        start = probe.single_start if single else probe.dual_start
        uv_offset = probe.uv_offset(start, with_color)
        if not probe.probe_uvs_f16(uv_offset):
            return None
        # A single index array is the less common case, so it also has to
        # show plausible positions.
        if single and not probe.probe_positions(start):
            return None
        return LayoutCandidate(start, single, with_color, uv_offset)
    return strategy


def _position_strategy(single: bool) -> Callable[[LayoutProbe], Optional[LayoutCandidate]]:
    def strategy(probe: LayoutProbe) -> Optional[LayoutCandidate]:
        start = probe.single_start if single else probe.dual_start
        if probe.probe_positions(start):
            return LayoutCandidate(start, single)
        return None
    return strategy


STRATEGIES: List[Tuple[str, Callable[[LayoutProbe], Optional[LayoutCandidate]]]] = [
    ("dual_index", _uv_strategy(single=False, with_color=False)),
    ("dual_index_color", _uv_strategy(single=False, with_color=True)),
    ("single_index", _uv_strategy(single=True, with_color=False)),
    ("single_index_color", _uv_strategy(single=True, with_color=True)),
    ("dual_index_positions", _position_strategy(single=False)),
    ("single_index_positions", _position_strategy(single=True)),
]


# =============================================================================
# UV SCAN
# =============================================================================

def _score_uv_candidates(region: bytes, scan_start: int, scan_limit: int,
                         vertex_count: int, is_f32: bool):
    """Score every aligned offset in ``[scan_start, scan_limit)`` as a UV stream.

    Returns ``(offset, valid, nonzero, max_abs)`` for the first best-scoring
    candidate, or ``None`` when no candidate fits.
    """
    elem = UV_SIZE_FLOAT if is_f32 else UV_SIZE_HALF
    n_candidates = max(0, (scan_limit - scan_start) // elem)
    # Each candidate needs room for the whole stream
    n_rows = (len(region) - scan_start) // elem
    n_candidates = min(n_candidates, n_rows - vertex_count + 1)
    if n_candidates <= 0:
        return None

    dtype = "<f4" if is_f32 else "<f2"
    pairs = np.frombuffer(region, dtype=dtype, count=n_rows * 2, offset=scan_start)
    pairs = pairs.reshape(n_rows, 2).astype(np.float32)

    s = np.arange(UV_SCAN_SAMPLES)
    sample_rows = s * (vertex_count - 1) // (UV_SCAN_SAMPLES - 1) if vertex_count > 1 else np.zeros_like(s)

    best = None
    with np.errstate(invalid="ignore", over="ignore"):
        for first in range(0, n_candidates, UV_SCAN_BATCH):
            k = np.arange(first, min(first + UV_SCAN_BATCH, n_candidates))
            rows = k[:, None] + sample_rows[None, :]
            u = pairs[rows, 0]
            v = pairs[rows, 1]

            finite = np.isfinite(u) & np.isfinite(v)
            au = np.where(finite, np.abs(u), 0.0)
            av = np.where(finite, np.abs(v), 0.0)
            valid = (finite & (au <= UV_SCAN_RANGE) & (av <= UV_SCAN_RANGE)).sum(axis=1)
            nonzero = (finite & ((au > UV_NONZERO_EPS) | (av > UV_NONZERO_EPS))).sum(axis=1)
            max_abs = np.maximum(au, av).max(axis=1)

            # Lexicographic (valid, nonzero); argmax keeps the first maximum
            score = valid * (UV_SCAN_SAMPLES + 1) + nonzero
            i = int(np.argmax(score))
            candidate = (scan_start + int(k[i]) * elem, int(valid[i]), int(nonzero[i]), float(max_abs[i]))
            if best is None or candidate[1:3] > best[1:3]:
                best = candidate

    return best


def scan_for_uv_stream(region: bytes, layout: VertexLayout, vertex_count: int) -> bool:
    """Linear search for a UV stream after the tangents.

    Updates ``layout`` in place and returns True if a stream was accepted.
    """
    scan_start = layout.tangent_offset + vertex_count * TANGENT_SIZE
    scan_limit = min(len(region), scan_start + vertex_count * UV_SCAN_WINDOW_PER_VERTEX)

    best = None
    best_is_f32 = False
    for is_f32 in (False, True):
        found = _score_uv_candidates(region, scan_start, scan_limit, vertex_count, is_f32)
        if found is None:
            continue
        # f16 is scored first and only a strictly better f32 replaces it
        if best is None or found[1:3] > best[1:3]:
            best, best_is_f32 = found, is_f32

    if best is None:
        return False

    offset, valid, nonzero, max_abs = best
    if offset > 0 and valid >= UV_SCAN_MIN_VALID and nonzero >= UV_SCAN_MIN_NONZERO and max_abs <= UV_SCAN_RANGE:
        layout.uv0_offset = offset
        layout.uv_is_f32 = best_is_f32
        layout.uv_resolved = True
        logger.info("UV scan found stream at %d format=%s", offset, "f32" if best_is_f32 else "f16")
        return True

    logger.debug("UV scan rejected best candidate at %d (valid=%d nonzero=%d max=%.2f)",
                 offset, valid, nonzero, max_abs)
    return False


# =============================================================================
# DETECTION
# =============================================================================

def detect_layout(region: bytes, vertex_count: int, triangle_count: int, mesh_type: int) -> VertexLayout:
    """Work out where the vertex streams of a LOD region start.

    Raises ``RegionTooSmallError`` when the region cannot even hold one
    index array. Every other failure degrades the layout instead: the
    worst case is separated streams at the dual-index offset with UVs left
    unresolved.
    """
    if vertex_count <= 0:
        raise XobFormatError("Cannot detect layout for a LOD with no vertices")
    if triangle_count <= 0:
        raise XobFormatError("Cannot detect layout for a LOD with no triangles")

    probe = LayoutProbe(region, vertex_count, triangle_count, mesh_type)
    if len(probe.region) < probe.index_array_size:
        raise RegionTooSmallError(len(probe.region), probe.index_array_size)

    layout = VertexLayout(
        vertex_data_offset=probe.dual_start,
        position_stride=probe.stride,
        separated=True,
        strategy="default",
    )

    for name, strategy in STRATEGIES:
        candidate = strategy(probe)
        if candidate is None:
            continue
        layout.strategy = name
        layout.vertex_data_offset = candidate.vertex_data_offset
        layout.single_index = candidate.single_index
        layout.color_before_uv = candidate.color_before_uv
        if candidate.uv_offset is not None:
            layout.uv0_offset = candidate.uv_offset
            layout.uv_resolved = True
        break
    else:
        logger.warning("No layout strategy matched (verts=%d tris=%d); assuming dual index arrays",
                       vertex_count, triangle_count)

    logger.debug("Layout strategy: %s (vertex data at %d)", layout.strategy, layout.vertex_data_offset)

    vc = vertex_count
    layout.pos_offset = layout.vertex_data_offset
    layout.norm_offset = layout.pos_offset + vc * layout.position_stride
    layout.tangent_offset = layout.norm_offset + vc * NORMAL_SIZE
    tangent_end = layout.tangent_offset + vc * TANGENT_SIZE

    if layout.separated and not layout.uv_resolved:
        scan_for_uv_stream(probe.region, layout, vc)

    if not layout.uv_resolved:
        layout.uv0_offset = tangent_end + (vc * VERTEX_COLOR_SIZE if layout.color_before_uv else 0)
        logger.warning("UV stream unresolved; vertices will use planar UVs")

    layout.uv1_offset = layout.uv0_offset + vc * layout.uv_element_size
    if layout.color_before_uv:
        layout.color_offset = tangent_end
    else:
        layout.color_offset = layout.uv1_offset + vc * layout.uv_element_size

    return layout
