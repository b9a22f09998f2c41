#!/usr/bin/env python3
"""
Dump the structure of XOB9 mesh files.

Prints the HEAD summary, the LZO4 descriptor table and material ranges.
When an inflated LODS payload is supplied (--lods), also runs layout
detection and vertex/index decoding for the requested LOD.

Usage:
    python3 extractors/dump_xob.py mesh.xob
    python3 extractors/dump_xob.py mesh.xob --lods mesh.lods.bin --lod 0
    python3 extractors/dump_xob.py mesh.xob --lods mesh.lods.bin --json out.json
"""

import argparse
import json
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from xob import XobFile, XobFormatError
from xob.materials import reconstruct_material_ranges
from xob.types import mesh_type_name


def print_header(xob: XobFile):
    print(f"  Form type: {xob.container.form_type}")
    if xob.header is not None:
        print(f"  Materials (header): {xob.header.material_count}")
        print(f"  Bones: {xob.header.bone_count}")
        print(f"  LOD count (header): {xob.header.lod_count}")
    for i, mat in enumerate(xob.materials):
        print(f"    [{i}] {mat.name}  ->  {mat.path}")


def print_descriptors(xob: XobFile):
    if not xob.descriptors:
        print("  No LZO4 descriptors found")
        return

    print(f"\n  {'#':<3} | {'Tier':<4} | {'Type':<16} | {'Tris':>6} | {'Verts':>6} | {'Sub':>3} | {'Decomp':>8} | Dist")
    print("  " + "-" * 72)
    for i, d in enumerate(xob.descriptors):
        print(f"  {i:<3} | {d.quality_tier:<4} | {mesh_type_name(d.mesh_type):<16} | "
              f"{d.triangle_count:>6} | {d.unique_vertex_count:>6} | {d.submesh_index:>3} | "
              f"{d.decompressed_size:>8} | {d.switch_distance:.3f}")


def print_ranges(ranges):
    print(f"\n  Material ranges ({len(ranges)}):")
    for r in ranges:
        print(f"    mat {r.material_index:<3} tris [{r.triangle_start}, {r.triangle_end})  count={r.triangle_count}  "
              f"indices [{r.index_start}, {r.index_start + r.index_count})")


def mesh_summary(path, xob, mesh):
    layout = mesh.layout
    return {
        'file': os.path.basename(path),
        'vertex_count': int(len(mesh.vertices)),
        'index_count': int(len(mesh.indices)),
        'bone_count': mesh.bone_count,
        'bounds': {'min': list(mesh.bounds_min), 'max': list(mesh.bounds_max)},
        'materials': [{'name': m.name, 'path': m.path} for m in mesh.materials],
        'material_ranges': [
            {'material': r.material_index, 'start': r.triangle_start,
             'end': r.triangle_end, 'count': r.triangle_count,
             'index_start': r.index_start, 'index_count': r.index_count}
            for r in mesh.material_ranges
        ],
        'layout': {
            'strategy': layout.strategy,
            'separated': layout.separated,
            'single_index': layout.single_index,
            'color_before_uv': layout.color_before_uv,
            'uv_resolved': layout.uv_resolved,
            'uv_format': 'f32' if layout.uv_is_f32 else 'f16',
            'pos_offset': layout.pos_offset,
            'norm_offset': layout.norm_offset,
            'tangent_offset': layout.tangent_offset,
            'uv0_offset': layout.uv0_offset,
        },
        'lods': [
            {'distance': lod.distance, 'index_offset': lod.index_offset, 'index_count': lod.index_count}
            for lod in mesh.lods
        ],
        'collision_bytes': len(mesh.collision),
        'octree_bytes': len(mesh.octree),
        'descriptor_count': xob.lod_count,
    }


def resolve_path(path):
    """Paths that don't exist as given are looked up under ASSETS_PATH."""
    if os.path.exists(path):
        return path
    candidate = os.path.join(config.ASSETS_PATH, path)
    return candidate if os.path.exists(candidate) else path


def dump_file(path, lods_path=None, lod=0):
    path = resolve_path(path)
    print(f"\n{'='*60}")
    print(f"File: {os.path.basename(path)}")
    print('='*60)

    xob = XobFile.from_file(path)
    print_header(xob)
    print_descriptors(xob)

    if lods_path is None:
        desc = xob.descriptors[lod] if 0 <= lod < xob.lod_count else None
        if desc is not None:
            ranges = reconstruct_material_ranges(
                xob.head, desc.triangle_count, xob.material_count, desc.mesh_type,
                xob.descriptors, desc.quality_tier,
            )
            print_ranges(ranges)
        print("\n  (no --lods payload given, skipping geometry)")
        return None

    with open(resolve_path(lods_path), "rb") as f:
        lods_data = f.read()

    mesh = xob.parse(target_lod=lod, lods_data=lods_data)
    layout = mesh.layout
    print(f"\n  Layout: {layout.strategy} "
          f"(separated={layout.separated}, single_index={layout.single_index}, "
          f"color_before_uv={layout.color_before_uv})")
    print(f"    pos@{layout.pos_offset} norm@{layout.norm_offset} tan@{layout.tangent_offset} "
          f"uv0@{layout.uv0_offset} ({'f32' if layout.uv_is_f32 else 'f16'}, "
          f"{'resolved' if layout.uv_resolved else 'planar fallback'})")
    print(f"  Vertices: {len(mesh.vertices)}  Indices: {len(mesh.indices)}  Triangles: {mesh.triangle_count}")
    print(f"  Bounds: {mesh.bounds_min} - {mesh.bounds_max}")
    print_ranges(mesh.material_ranges)
    if mesh.collision:
        print(f"  COLL: {len(mesh.collision)} bytes")
    if mesh.octree:
        print(f"  VOLM: {len(mesh.octree)} bytes")

    return mesh_summary(path, xob, mesh)


def main():
    parser = argparse.ArgumentParser(description="Dump XOB9 mesh structure")
    parser.add_argument('files', nargs='+', help='XOB files to dump')
    parser.add_argument('--lods', help='Inflated LODS payload (only valid with a single file)')
    parser.add_argument('--lod', type=int, default=0, help='LOD index to decode')
    parser.add_argument('--json', help='Write decoded mesh summaries to this JSON file')
    parser.add_argument('--verbose', action='store_true', help='Enable decoder logging')
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    if args.lod < 0:
        parser.error("--lod must be 0 or greater")

    if args.lods and len(args.files) > 1:
        parser.error("--lods can only be used with a single file")

    summaries = []
    failed = 0
    for path in args.files:
        try:
            summary = dump_file(path, args.lods, args.lod)
        except (OSError, XobFormatError) as e:
            print(f"  Error: {e}")
            failed += 1
            continue
        if summary is not None:
            summaries.append(summary)

    if args.json:
        # Bare file names go to the dumps folder
        out_path = args.json
        if not os.path.dirname(out_path):
            out_path = os.path.join(config.DUMPS_DIR, out_path)
        os.makedirs(os.path.dirname(os.path.abspath(out_path)), exist_ok=True)
        with open(out_path, "w") as f:
            json.dump(summaries, f, indent=2)
        print(f"\nWrote {len(summaries)} summaries to {out_path}")

    print(f"\nDone: {len(args.files) - failed} ok, {failed} failed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
