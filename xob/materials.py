"""
Materials and per-material triangle ranges.

The HEAD chunk lists material (name, path) string pairs right after its
fixed header. Which triangles use which material is recorded only
indirectly: after the LZO4 descriptor table sit submesh records that end
in a 0xFFFF marker::

    -10: u16 order key
     -6: u16 index count
     -4: u16 LOD id
     -2: u16 (always 0)
      0: 0xFFFF
     +2: u16 material index
     +4: u16 flags (lo byte = pass type, hi byte = LOD info)

The same material can appear several times (render passes, other LODs),
so the records are filtered and re-scaled before they are turned into
contiguous triangle ranges. When no record survives, the descriptor
table's submesh indices are used instead.
"""

import logging
import re
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence

import numpy as np
from construct import ConstructError

from .descriptors import descriptor_table_end
from .reader import BinaryReader, u16_at
from .structs import HEAD_HEADER_SIZE, LZO4_MARKER, HeadHeader
from .types import LodDescriptor, Material, MaterialRange, SubmeshBlock, is_skinned

logger = logging.getLogger(__name__)

SUBMESH_MARKER = b"\xff\xff"
SUBMESH_SCAN_START = 8
MAX_LOD_ID = 10

# Blocks reporting fewer triangles than this are trusted as-is; bigger ones
# are rescaled to share whatever the small blocks leave over.
SMALL_THRESHOLD = 10000

MAX_HEADER_MATERIALS = 100
MATERIAL_EXTENSIONS = (".emat", ".gamemat")
GUID_PATTERN = re.compile(rb"\{[0-9A-Fa-f]{16}\}")


# =============================================================================
# HEAD HEADER / MATERIAL TABLE
# =============================================================================

def parse_head_header(head: bytes):
    """Parse the fixed HEAD header, or return None if the chunk is too short."""
    if len(head) < HEAD_HEADER_SIZE:
        return None
    try:
        return HeadHeader.parse(head[:HEAD_HEADER_SIZE])
    except ConstructError as e:
        logger.warning("HEAD header parse failed: %s", e)
        return None


def _material_name(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    for ext in MATERIAL_EXTENSIONS:
        if name.endswith(ext):
            return name[: -len(ext)]
    return name


def _materials_from_header(head: bytes, material_count: int) -> List[Material]:
    table_end = head.find(LZO4_MARKER, HEAD_HEADER_SIZE)
    if table_end == -1:
        table_end = len(head)

    reader = BinaryReader(head, HEAD_HEADER_SIZE)
    materials = []
    for i in range(material_count):
        if reader.tell() >= table_end:
            break
        name = reader.read_cstring(table_end)
        if reader.tell() >= table_end:
            break
        path = reader.read_cstring(table_end)
        if not path.endswith(MATERIAL_EXTENSIONS):
            logger.debug("Material %d path has no material extension: %s", i, path)
        materials.append(Material(name=name, path=path))
    return materials


def _materials_from_guids(head: bytes) -> List[Material]:
    """Find "{16 hex}path" strings anywhere in the chunk."""
    materials = []
    pos = 0
    while True:
        match = GUID_PATTERN.search(head, pos)
        if match is None:
            break
        end = match.end()
        while end < len(head) and head[end] >= 0x20:
            end += 1
        path = head[match.start() : end].decode("latin-1")
        materials.append(Material(name=_material_name(path), path=path))
        pos = end
    return materials


def parse_materials(head: bytes) -> List[Material]:
    """Read the material table from the HEAD chunk.

    Uses the header's material count when it is plausible, otherwise falls
    back to searching for GUID-prefixed resource paths.
    """
    head = bytes(head)
    header = parse_head_header(head)
    if header is None:
        logger.warning("HEAD chunk too small for header: %d bytes", len(head))
        return []

    if 0 < header.material_count <= MAX_HEADER_MATERIALS:
        materials = _materials_from_header(head, header.material_count)
        if materials:
            logger.debug("Parsed %d materials from header", len(materials))
            return materials
        logger.warning("Header listed %d materials but none parsed; searching for GUIDs",
                       header.material_count)
    else:
        logger.warning("Implausible material count %d; searching for GUIDs", header.material_count)

    return _materials_from_guids(head)


# =============================================================================
# SUBMESH BLOCKS
# =============================================================================

def _corrected_lod(block: SubmeshBlock) -> int:
    """LOD id for skinned meshes, where the flag bytes carry the real value."""
    base = block.flags & 0xFF
    upper = (block.flags >> 8) & 0xFF
    if base == 0x02 or (base == 0x01 and upper == 0):
        return 0
    if base == 0x01 and upper > 0:
        return upper
    if block.lod > MAX_LOD_ID:
        return 0
    return block.lod


def find_submesh_blocks(head: bytes, material_count: int, mesh_type: int) -> List[SubmeshBlock]:
    """Scan the bytes after the descriptor table for 0xFFFF submesh markers."""
    head = bytes(head)
    start = descriptor_table_end(head)
    if start >= len(head):
        return []
    window = head[start:]
    skinned = is_skinned(mesh_type)

    blocks = []
    pos = window.find(SUBMESH_MARKER, SUBMESH_SCAN_START)
    while pos != -1 and pos + 6 <= len(window):
        material_index = u16_at(window, pos + 2)
        if material_index < material_count:
            block = SubmeshBlock(
                position=start + pos,
                material_index=material_index,
                index_count=u16_at(window, pos - 6),
                lod=u16_at(window, pos - 4),
                flags=u16_at(window, pos + 4),
                order_key=u16_at(window, pos - 10) if pos >= 10 else 0,
            )
            if skinned:
                block.lod = _corrected_lod(block)
            blocks.append(block)
        pos = window.find(SUBMESH_MARKER, pos + 6)

    logger.debug("Found %d submesh blocks", len(blocks))
    return blocks


def _target_lod(blocks: Sequence[SubmeshBlock]) -> int:
    """LOD whose blocks claim the most indices; ties go to the lowest id."""
    sums: Dict[int, int] = defaultdict(int)
    for block in blocks:
        if block.lod <= MAX_LOD_ID:
            sums[block.lod] += block.index_count

    target, best = 0, 0
    for lod in sorted(sums):
        if sums[lod] > best:
            target, best = lod, sums[lod]
    return target


def _whole_mesh(total_triangles: int, material_index: int = 0) -> List[MaterialRange]:
    return [MaterialRange.span(material_index, 0, total_triangles)]


def build_material_ranges(blocks: Sequence[SubmeshBlock], total_triangles: int,
                          mesh_type: int) -> List[MaterialRange]:
    """Turn submesh blocks into contiguous ranges covering every triangle."""
    if not blocks:
        return _whole_mesh(total_triangles)

    target = _target_lod(blocks)
    lod_blocks = [b for b in blocks if b.lod == target]

    passes = Counter(b.material_index for b in lod_blocks)
    pass_indices: Dict[int, int] = defaultdict(int)
    for block in lod_blocks:
        pass_indices[block.material_index] += block.index_count

    # First block per material in file order, from any LOD; only the
    # target LOD's render passes are averaged.
    ordered = []
    seen = set()
    for block in blocks:
        if block.lod > MAX_LOD_ID or block.material_index in seen:
            continue
        seen.add(block.material_index)
        index_count = block.index_count
        count = passes[block.material_index]
        if (block.lod == target and count > 1 and not is_skinned(mesh_type)
                and block.flags & 0x2):
            index_count = pass_indices[block.material_index] // count
        ordered.append((block, index_count))

    # Zero order keys go last
    ordered.sort(key=lambda item: (item[0].order_key == 0, item[0].order_key, item[0].material_index))

    block_tris = [index_count // 3 for _, index_count in ordered]
    small_total = sum(t for t in block_tris if t < SMALL_THRESHOLD)
    large_count = sum(1 for t in block_tris if t >= SMALL_THRESHOLD)
    large_claimed = sum(t for t in block_tris if t >= SMALL_THRESHOLD)
    large_budget = max(total_triangles - small_total, 0)

    ranges = []
    current = 0
    for i, ((block, _), tris) in enumerate(zip(ordered, block_tris)):
        if tris < SMALL_THRESHOLD:
            count = tris
        elif large_claimed > 0:
            # Single precision, matching the engine's rounding
            ratio = np.float32(tris) / np.float32(large_claimed)
            count = int(np.float32(large_budget) * ratio + np.float32(0.5))
        else:
            count = large_budget // max(1, large_count)

        if current + count > total_triangles:
            count = total_triangles - current
        if i == len(ordered) - 1:
            count = total_triangles - current
        if count == 0:
            continue

        ranges.append(MaterialRange.span(block.material_index, current, count))
        current += count

    return ranges or _whole_mesh(total_triangles)


# =============================================================================
# DESCRIPTOR FALLBACK
# =============================================================================

def ranges_from_descriptors(descriptors: Sequence[LodDescriptor], total_triangles: int,
                            material_count: int, target_tier: Optional[int] = None) -> List[MaterialRange]:
    """Derive ranges from the LZO4 submesh indices alone."""
    if material_count <= 1 or not descriptors:
        return _whole_mesh(total_triangles)

    tiers: Dict[int, List[LodDescriptor]] = defaultdict(list)
    for desc in descriptors:
        tiers[desc.quality_tier].append(desc)
    if target_tier not in tiers:
        target_tier = min(tiers)
    group = tiers[target_tier]

    def material_of(desc: LodDescriptor) -> int:
        return desc.submesh_index if desc.submesh_index < material_count else 0

    if len(group) <= 1:
        return _whole_mesh(total_triangles, material_of(group[0]))

    ranges = []
    current = 0
    for material_index, tris in sorted((material_of(d), d.triangle_count) for d in group):
        if tris == 0 or current >= total_triangles:
            continue
        count = min(tris, total_triangles - current)
        ranges.append(MaterialRange.span(material_index, current, count))
        current += count

    leftover = total_triangles - current
    if leftover > 0:
        first_zero = next((i for i, r in enumerate(ranges) if r.material_index == 0), None)
        if first_zero is None:
            ranges.append(MaterialRange.span(0, current, leftover))
        else:
            grown = ranges[first_zero]
            ranges[first_zero] = MaterialRange.span(0, grown.triangle_start, grown.triangle_count + leftover)
            for i in range(first_zero + 1, len(ranges)):
                r = ranges[i]
                ranges[i] = MaterialRange.span(r.material_index, r.triangle_start + leftover, r.triangle_count)

    return ranges or _whole_mesh(total_triangles)


# =============================================================================
# ENTRY POINT
# =============================================================================

def reconstruct_material_ranges(head: bytes, total_triangles: int, material_count: int, mesh_type: int,
                                descriptors: Sequence[LodDescriptor] = (),
                                target_tier: Optional[int] = None) -> List[MaterialRange]:
    """Partition ``[0, total_triangles)`` into per-material ranges."""
    if material_count <= 1:
        return _whole_mesh(total_triangles)

    blocks = find_submesh_blocks(head, material_count, mesh_type)
    if blocks:
        return build_material_ranges(blocks, total_triangles, mesh_type)

    logger.warning("No submesh blocks found; deriving material ranges from %d descriptors",
                   len(descriptors))
    return ranges_from_descriptors(descriptors, total_triangles, material_count, target_tier)
