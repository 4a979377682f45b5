from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import BuildFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexArtifactSet:
    basename: Path
    files: List[Path] = field(default_factory=list)

    @property
    def pattern(self) -> str:
        return f"{self.basename.name}.*"

    def as_dict(self) -> dict:
        return {
            "basename": str(self.basename),
            "pattern": self.pattern,
            "file_count": len(self.files),
            "files": [str(path) for path in self.files],
        }


def find_index_artifacts(basename: Path) -> IndexArtifactSet:
    basename = Path(basename)
    parent = basename.parent
    if not parent.is_dir():
        return IndexArtifactSet(basename=basename, files=[])
    files = sorted(path for path in parent.glob(f"{basename.name}.*") if path.is_file())
    return IndexArtifactSet(basename=basename, files=files)


def verify_index_artifacts(basename: Path) -> IndexArtifactSet:
    artifacts = find_index_artifacts(basename)
    if not artifacts.files:
        raise BuildFailure(f"Index build failed: no output files at {artifacts.basename}.*")
    logger.info("Index verified: %d file(s) at %s.*", len(artifacts.files), artifacts.basename)
    return artifacts
