import contextlib
import importlib.util
import io
import os
import sys
import tempfile
import unittest
from unittest import mock

from fixtures import GUID, descriptor, head_chunk, separated_region, submesh_block, submesh_table, xob_file

SCRIPT = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "extractors", "dump_xob.py")


def load_script():
    loader = importlib.util.spec_from_file_location("dump_xob", SCRIPT)
    module = importlib.util.module_from_spec(loader)
    loader.loader.exec_module(module)
    return module


class TestDumpXob(unittest.TestCase):
    def setUp(self):
        self.dump_xob = load_script()
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

        region = separated_region()
        head = head_chunk(
            [("rock", GUID + "Materials/rock.emat"), ("grass", GUID + "Materials/grass.emat")],
            descriptors=[descriptor(triangle_count=2, vertex_count=4, decompressed_size=len(region))],
            tail=submesh_table(submesh_block(0, 3, order_key=1), submesh_block(1, 3, order_key=2)),
        )
        self.xob_path = os.path.join(self.tmp.name, "quad.xob")
        self.lods_path = os.path.join(self.tmp.name, "quad.lods")
        with open(self.xob_path, "wb") as f:
            f.write(xob_file(head))
        with open(self.lods_path, "wb") as f:
            f.write(region)

    def run_main(self, *argv):
        out = io.StringIO()
        with mock.patch.object(sys, "argv", ["dump_xob.py", *argv]), \
                contextlib.redirect_stdout(out), contextlib.redirect_stderr(io.StringIO()):
            code = self.dump_xob.main()
        return code, out.getvalue()

    def test_negative_lod_rejected(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(self.xob_path, "--lod", "-1")
        self.assertNotEqual(0, ctx.exception.code)

    def test_summary_has_index_ranges(self):
        with contextlib.redirect_stdout(io.StringIO()):
            summary = self.dump_xob.dump_file(self.xob_path, self.lods_path, 0)
        ranges = summary["material_ranges"]
        self.assertEqual([0, 3], [r["index_start"] for r in ranges])
        self.assertEqual([3, 3], [r["index_count"] for r in ranges])
        self.assertEqual(4, summary["vertex_count"])

    def test_main_reports_bad_file(self):
        bad = os.path.join(self.tmp.name, "bad.xob")
        with open(bad, "wb") as f:
            f.write(b"not an xob file")
        code, out = self.run_main(bad)
        self.assertEqual(1, code)
        self.assertIn("Error:", out)


if __name__ == "__main__":
    unittest.main()
