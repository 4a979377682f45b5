from __future__ import annotations

import os
import socket
import stat
import sys
from pathlib import Path

SERVER_SOURCE = '''
import argparse
import json
import os
from http.server import BaseHTTPRequestHandler, HTTPServer

DEFAULT_BODY = json.dumps(
    {
        "head": {"vars": ["s"]},
        "results": {"bindings": [{"s": {"type": "uri", "value": "http://example.org/alice"}}]},
    }
)
BODY = os.environ.get("FAKE_QLEVER_BODY") or DEFAULT_BODY


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        payload = BODY.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/sparql-results+json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, fmt, *args):
        print(fmt % args, flush=True)


parser = argparse.ArgumentParser()
parser.add_argument("--index-basename", required=True)
parser.add_argument("--port", type=int, required=True)
args = parser.parse_args()
print(f"serving {args.index_basename} on port {args.port}", flush=True)
HTTPServer(("127.0.0.1", args.port), Handler).serve_forever()
'''

CRASHING_SERVER_SOURCE = '''
import sys

print("loading index ...", flush=True)
print("ERROR: index files not found", file=sys.stderr, flush=True)
sys.exit(1)
'''

BUILDER_SOURCE = '''
import argparse
import os
from pathlib import Path

parser = argparse.ArgumentParser()
parser.add_argument("--index-basename", required=True)
parser.add_argument("--kg-input-file", required=True)
parser.add_argument("--file-format", required=True)
parser.add_argument("--parse-parallel", required=True)
args = parser.parse_args()

print(f"parsing {args.kg_input_file} as {args.file_format}", flush=True)
if os.environ.get("FAKE_BUILDER_MODE") == "empty":
    raise SystemExit(0)
if os.environ.get("FAKE_BUILDER_MODE") == "fail":
    raise SystemExit(3)
for suffix in ("index.pso", "index.pos", "meta-data.json", "vocabulary.internal"):
    Path(f"{args.index_basename}.{suffix}").write_text("x", encoding="utf-8")
'''


def write_program(directory: Path, name: str, source: str) -> Path:
    path = Path(directory) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{source.lstrip()}", encoding="utf-8")
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])
