"""Pytest configuration and shared fixtures for stacktally tests."""

import json
import logging
from pathlib import Path

import pytest

from stacktally.constants import HEAP_ALLOC, HEAP_FREE
from stacktally.lifetime.decoding import encode_payload
from stacktally.tree import AggregationTree, write_tree

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def _guard_project_repo(tmp_path, monkeypatch):
    """Keep relative output paths inside the test's temp directory."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo handler and level changes the CLI makes to the package logger."""
    pkg_logger = logging.getLogger("stacktally")
    handlers = list(pkg_logger.handlers)
    level = pkg_logger.level
    yield
    for handler in list(pkg_logger.handlers):
        if handler not in handlers:
            pkg_logger.removeHandler(handler)
    pkg_logger.setLevel(level)


@pytest.fixture
def sample_tree():
    """Two processes with a few stacks each, columns Count/Size."""
    tree = AggregationTree(["Count", "Size"])
    tree.add(["app.exe", "[Root]", "app.exe!main", "app.exe!load", ""], [1, 100])
    tree.add(["app.exe", "[Root]", "app.exe!main", "app.exe!parse", ""], [2, 50])
    tree.add(["svc.exe", "[Root]", "svc.exe!run", ""], [1, 10])
    return tree


@pytest.fixture
def write_tree_file(tmp_path):
    """Factory that writes an AggregationTree built from {path: values}."""

    def _write(name: str, rows: dict[tuple[str, ...], list[int]], columns=("Count", "Size")) -> Path:
        tree = AggregationTree(columns)
        for path, values in rows.items():
            tree.add(path, values)
        return write_tree(tree, tmp_path / name)

    return _write


def heap_line(kind: int, pid: int, tid: int, ts: int, *fields: int, pointer_size: int = 8, stack=None) -> dict:
    """One "heap" line of the events format."""
    line = {
        "type": "heap",
        "id": kind,
        "pid": pid,
        "tid": tid,
        "ts": ts,
        "pointer_size": pointer_size,
        "data": encode_payload(kind, pointer_size, *fields).hex(),
    }
    if stack is not None:
        line["stack"] = stack
    return line


@pytest.fixture
def make_heap_line():
    """The heap_line helper, for tests that build their own traces."""
    return heap_line


@pytest.fixture
def events_file(tmp_path):
    """A small trace: one target process, a window [1000, 2000) and four allocations.

    - 0x10 (64 bytes) allocated at 1100 from load, never freed: +64
    - 0x20 (32 bytes) allocated at 500 from parse, freed at 1500: -32
    - 0x30 (16 bytes) allocated at 1200 from load, freed at 1300: 0
    - 0x40 (8 bytes) allocated at 1400 in another process: ignored
    """
    heap = 0xAA
    load = ["ntdll.dll!RtlpAllocateHeapInternal", "ntdll.dll!RtlAllocateHeap", "app.exe!load", "app.exe!main"]
    parse = ["ntdll.dll!RtlAllocateHeap", "app.exe!parse", "app.exe!main"]
    lines = [
        {"type": "process", "pid": 42, "image": "app.exe", "command_line": "app.exe --run"},
        {"type": "process", "pid": 43, "image": "other.exe", "command_line": "other.exe"},
        {"type": "marker", "name": "Start", "ts": 1000},
        {"type": "marker", "name": "End", "ts": 2000},
        heap_line(HEAP_ALLOC, 42, 7, 500, heap, 32, 0x20, stack=parse),
        heap_line(HEAP_ALLOC, 42, 7, 1100, heap, 64, 0x10, stack=load),
        heap_line(HEAP_ALLOC, 42, 7, 1200, heap, 16, 0x30, stack=load),
        heap_line(HEAP_FREE, 42, 7, 1300, heap, 0x30),
        heap_line(HEAP_ALLOC, 43, 9, 1400, 0xBB, 8, 0x40, stack=["other.exe!main"]),
        heap_line(HEAP_FREE, 42, 8, 1500, heap, 0x20),
    ]
    path = tmp_path / "trace.jsonl"
    path.write_text("\n".join(json.dumps(line) for line in lines) + "\n")
    return path

