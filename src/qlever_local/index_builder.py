from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import Dict, List

from rdflib import Graph, Literal, Namespace, RDF
from rdflib.namespace import FOAF

from .errors import BuildFailure

logger = logging.getLogger(__name__)

EX = Namespace("http://example.org/")

SAMPLE_PEOPLE = [
    ("alice", "Alice", "bob"),
    ("bob", "Bob", "charlie"),
    ("charlie", "Charlie", None),
]


def build_sample_graph() -> Graph:
    g = Graph()
    g.bind("ex", EX)
    g.bind("foaf", FOAF)
    for local_name, display_name, knows in SAMPLE_PEOPLE:
        person = EX[local_name]
        g.add((person, RDF.type, FOAF.Person))
        g.add((person, FOAF.name, Literal(display_name)))
        if knows:
            g.add((person, FOAF.knows, EX[knows]))
    return g


def write_sample_dataset(path: Path) -> Dict[str, object]:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    g = build_sample_graph()
    g.serialize(destination=str(path), format="turtle")
    logger.info("Wrote RDF Turtle dataset to %s (%d triples)", path, len(g))
    return {"path": str(path), "triple_count": len(g)}


def build_index_command(index_builder_bin: Path, index_basename: Path, input_file: Path) -> List[str]:
    return [
        str(index_builder_bin),
        "--index-basename",
        str(index_basename),
        "--kg-input-file",
        str(input_file),
        "--file-format",
        "ttl",
        "--parse-parallel",
        "false",
    ]


def build_index(index_builder_bin: Path, index_basename: Path, input_file: Path) -> Dict[str, object]:
    """Rebuild the index from scratch; the index directory is wiped first."""
    index_basename = Path(index_basename)
    index_dir = index_basename.parent
    if index_dir.exists():
        shutil.rmtree(index_dir)
    index_dir.mkdir(parents=True, exist_ok=True)

    cmd = build_index_command(index_builder_bin, index_basename, input_file)
    logger.info("Building QLever index at %s", index_basename)
    start = time.time()
    try:
        result = subprocess.run(cmd, text=True, capture_output=True)
    except OSError as exc:
        raise BuildFailure(f"Index builder could not be launched: {exc}") from exc
    elapsed = round(time.time() - start, 3)
    if result.returncode != 0:
        raise BuildFailure(
            f"Index builder exited with code {result.returncode}: {' '.join(cmd)}",
            log_text=f"stdout:\n{result.stdout}\nstderr:\n{result.stderr}",
        )
    return {
        "command": " ".join(cmd),
        "elapsed_sec": elapsed,
        "stdout": result.stdout.strip(),
    }


def ensure_control_checkout(control_dir: Path, repo_url: str) -> bool:
    control_dir = Path(control_dir)
    if control_dir.exists():
        logger.info("qlever-control already exists at %s", control_dir)
        return True
    logger.info("Cloning qlever-control into %s", control_dir)
    try:
        result = subprocess.run(
            ["git", "clone", repo_url, str(control_dir)],
            text=True,
            capture_output=True,
        )
    except OSError as exc:
        logger.warning("git is unavailable, skipping qlever-control checkout: %s", exc)
        return False
    if result.returncode != 0:
        logger.warning("qlever-control clone failed (exit %s): %s", result.returncode, result.stderr.strip())
        return False
    return True
