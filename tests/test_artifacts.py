from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from qlever_local.artifacts import find_index_artifacts, verify_index_artifacts
from qlever_local.errors import BuildFailure


class TestIndexArtifacts(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.index_dir = Path(self.tmpdir.name) / "minimal-index"
        self.basename = self.index_dir / "index"

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_missing_directory_is_build_failure(self) -> None:
        with self.assertRaises(BuildFailure) as ctx:
            verify_index_artifacts(self.basename)
        self.assertIn("index.*", str(ctx.exception))

    def test_empty_directory_is_build_failure(self) -> None:
        self.index_dir.mkdir(parents=True)
        (self.index_dir / "other.index.pso").write_text("x", encoding="utf-8")
        with self.assertRaises(BuildFailure):
            verify_index_artifacts(self.basename)

    def test_matching_files_are_listed(self) -> None:
        self.index_dir.mkdir(parents=True)
        for suffix in ("index.pso", "meta-data.json"):
            (self.index_dir / f"index.{suffix}").write_text("x", encoding="utf-8")

        artifacts = verify_index_artifacts(self.basename)
        self.assertEqual(artifacts.pattern, "index.*")
        self.assertEqual(len(artifacts.files), 2)
        self.assertEqual(artifacts.as_dict()["file_count"], 2)

    def test_find_does_not_raise(self) -> None:
        artifacts = find_index_artifacts(self.basename)
        self.assertEqual(artifacts.files, [])


if __name__ == "__main__":
    unittest.main()
