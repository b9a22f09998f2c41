import struct
import unittest

import numpy as np

from fixtures import QUAD_POSITIONS, index_array, packed_stream, separated_region
from xob.layout import detect_layout
from xob.types import MESH_EMISSIVE, MESH_STATIC, VertexLayout
from xob.vertices import decode_indices, decode_vertices, planar_uvs

VC = 4
TC = 2


class TestSeparatedDecode(unittest.TestCase):
    def setUp(self):
        self.region = separated_region(
            uvs=[(0.0, 0.25), (1.0, 0.5), (0.5, 0.0), (0.25, 1.0)],
            normal=(127, 0, 0, 0),
            tangent=(0, 0, 127, -127),
        )
        layout = detect_layout(self.region, VC, TC, MESH_STATIC)
        self.vertices = decode_vertices(self.region, VC, MESH_STATIC, layout)

    def test_positions(self):
        np.testing.assert_allclose(self.vertices["position"], np.array(QUAD_POSITIONS, dtype=np.float32))

    def test_uv_v_is_flipped(self):
        uv = self.vertices["uv"]
        self.assertAlmostEqual(0.0, float(uv[0, 0]))
        self.assertAlmostEqual(0.75, float(uv[0, 1]))
        self.assertAlmostEqual(0.5, float(uv[1, 1]))
        self.assertAlmostEqual(1.0, float(uv[2, 1]))
        self.assertAlmostEqual(0.0, float(uv[3, 1]))

    def test_normals_and_tangents(self):
        np.testing.assert_allclose(self.vertices["normal"], [[1.0, 0.0, 0.0]] * VC)
        np.testing.assert_allclose(self.vertices["tangent"], [[0.0, 0.0, 1.0]] * VC)
        np.testing.assert_array_equal(self.vertices["tangent_sign"], [-1.0] * VC)

    def test_zero_normal_uses_default(self):
        region = separated_region(normal=(0, 0, 0, 0), tangent=(0, 0, 0, 0))
        layout = detect_layout(region, VC, TC, MESH_STATIC)
        vertices = decode_vertices(region, VC, MESH_STATIC, layout)
        np.testing.assert_allclose(vertices["normal"], [[0.0, 1.0, 0.0]] * VC)
        np.testing.assert_allclose(vertices["tangent"], [[1.0, 0.0, 0.0]] * VC)

    def test_planar_uvs_when_unresolved(self):
        region = separated_region(uvs=None)
        layout = VertexLayout(vertex_data_offset=24, separated=True,
                              pos_offset=24, norm_offset=72, tangent_offset=88, uv0_offset=104)
        vertices = decode_vertices(region, VC, MESH_STATIC, layout)
        expected = planar_uvs(np.array(QUAD_POSITIONS, dtype=np.float32))
        np.testing.assert_allclose(vertices["uv"], expected)
        # (1 + 5) * 0.1
        self.assertAlmostEqual(0.6, float(vertices["uv"][0, 0]), places=6)

    def test_truncated_streams_keep_defaults(self):
        layout = detect_layout(self.region, VC, TC, MESH_STATIC)
        # Cut the region inside the normal stream
        region = self.region[: layout.norm_offset + 2 * 4]
        vertices = decode_vertices(region, VC, MESH_STATIC, layout)
        np.testing.assert_allclose(vertices["normal"][2:], [[0.0, 1.0, 0.0]] * 2)
        np.testing.assert_allclose(vertices["position"], np.array(QUAD_POSITIONS, dtype=np.float32))

    def test_non_finite_positions_are_zeroed(self):
        positions = [(float("nan"), 0.0, 0.0)] + QUAD_POSITIONS[1:]
        region = separated_region(positions=positions)
        layout = VertexLayout(vertex_data_offset=24, separated=True,
                              pos_offset=24, norm_offset=72, tangent_offset=88, uv0_offset=104)
        with self.assertLogs("xob.vertices", level="WARNING"):
            vertices = decode_vertices(region, VC, MESH_STATIC, layout)
        np.testing.assert_array_equal(vertices["position"][0], [0.0, 0.0, 0.0])


class TestInterleavedDecode(unittest.TestCase):
    def test_emissive_records_carry_uv(self):
        record = b""
        for (x, y, z), (u, v) in zip(QUAD_POSITIONS, [(0.5, 0.25)] * VC):
            record += struct.pack("<3f", x, y, z)
            record += packed_stream((0, 127, 0, 0), 1)
            record += packed_stream((127, 0, 0, 127), 1)
            record += struct.pack("<2e", u, v)
            record += bytes(8)
        layout = VertexLayout(vertex_data_offset=0, separated=False)
        vertices = decode_vertices(record, VC, MESH_EMISSIVE, layout)
        np.testing.assert_allclose(vertices["position"], np.array(QUAD_POSITIONS, dtype=np.float32))
        np.testing.assert_allclose(vertices["uv"], [[0.5, 0.75]] * VC)
        np.testing.assert_allclose(vertices["normal"], [[0.0, 1.0, 0.0]] * VC)

    def test_static_records_use_planar_uv(self):
        record = b"".join(
            struct.pack("<3f", *p) + packed_stream((0, 127, 0, 0), 1) + packed_stream((127, 0, 0, 127), 1)
            for p in QUAD_POSITIONS
        )
        layout = VertexLayout(vertex_data_offset=0, separated=False)
        vertices = decode_vertices(record, VC, MESH_STATIC, layout)
        np.testing.assert_allclose(vertices["uv"], planar_uvs(vertices["position"]))


class TestDecodeIndices(unittest.TestCase):
    def test_indices(self):
        region = index_array([0, 1, 2, 0, 2, 3])
        np.testing.assert_array_equal(decode_indices(region, TC, VC), [0, 1, 2, 0, 2, 3])

    def test_out_of_range_clamped(self):
        region = index_array([0, 1, 9, 3, 4, 2])
        indices = decode_indices(region, TC, VC)
        np.testing.assert_array_equal(indices, [0, 1, 0, 3, 0, 2])
        self.assertTrue(((indices >= 0) & (indices < VC)).all())

    def test_short_region(self):
        region = index_array([0, 1, 2, 3])
        self.assertEqual(4, len(decode_indices(region, TC, VC)))

    def test_no_vertices(self):
        self.assertEqual(0, len(decode_indices(index_array([0, 1, 2]), 1, 0)))


if __name__ == "__main__":
    unittest.main()
