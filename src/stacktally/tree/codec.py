# Copyright 2026 Pennyworth Technologies, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Nested JSON form of an AggregationTree.

    {
      "columnNames": ["Count", "Size"],
      "treeData": [
        {"n": "app.exe", "c": [
          {"n": "[Root]", "c": [{"n": "", "0": 3, "1": 4096}]}
        ]}
      ]
    }

Internal nodes carry only children ("c"); leaves carry one property per
column index. The root's totals are not written: on import every ancestor
total is recomputed from the leaves beneath it.
"""

import json
import logging
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stacktally.constants import MAX_JSON_DEPTH, check_int64
from stacktally.errors import StackTallyError, TreeExportError, TreeImportError, ValueOverflowError
from stacktally.tree.table import AggregationTree, Node

logger = logging.getLogger(__name__)

# A JSON string literal or a single bracket; strings are matched whole so
# brackets inside names are skipped
_TOKEN_RE = re.compile(r'"(?:[^"\\]|\\.)*"|[\[\]{}]', re.DOTALL)

_DONE = object()


class TreeDocument(BaseModel):
    """Top-level envelope of a serialized tree."""

    model_config = ConfigDict(populate_by_name=True)

    column_names: list[str] = Field(alias="columnNames")
    tree_data: list[Any] = Field(alias="treeData")


def _json_str(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def iter_chunks(tree: AggregationTree) -> Iterator[str]:
    """Yield the serialized tree in pieces, without recursion."""
    yield '{"columnNames":[' + ",".join(_json_str(c) for c in tree.column_names) + '],"treeData":['

    stack: list[Iterator[Node]] = [iter(tree.root.children.values())]
    first: list[bool] = [True]
    while stack:
        node = next(stack[-1], None)
        if node is None:
            stack.pop()
            first.pop()
            if stack:
                yield "]}"
            continue

        prefix = "" if first[-1] else ","
        first[-1] = False
        head = prefix + '{"n":' + _json_str(node.name)
        if node.children:
            yield head + ',"c":['
            stack.append(iter(node.children.values()))
            first.append(True)
        else:
            yield head + "".join(f',"{i}":{v}' for i, v in enumerate(node.values)) + "}"

    yield "]}"


def serialize(tree: AggregationTree) -> str:
    """Serialize a tree to its nested JSON string."""
    return "".join(iter_chunks(tree))


def write_tree(tree: AggregationTree, path: str | Path) -> Path:
    """Write a tree to a JSON file, creating parent directories.

    Returns:
        The path written

    Raises:
        TreeExportError: If the file or its directory cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            for chunk in iter_chunks(tree):
                f.write(chunk)
    except OSError as e:
        raise TreeExportError(f"Error writing {path}: {e}") from e
    logger.info("Wrote tree %s (%d columns, %d nodes)", path, tree.width, tree.node_count())
    return path


def nesting_depth(text: str) -> int:
    """Maximum bracket nesting depth of a JSON text."""
    depth = 0
    deepest = 0
    for match in _TOKEN_RE.finditer(text):
        token = match.group()
        if token in "[{":
            depth += 1
            if depth > deepest:
                deepest = depth
        elif token in "]}":
            depth -= 1
    return deepest


def _leaf_values(element: dict[str, Any], width: int, name: str) -> list[int]:
    values = []
    for i in range(width):
        key = str(i)
        if key not in element:
            raise TreeImportError(f"Leaf '{name}' is missing value for column {i}")
        value = element[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise TreeImportError(f"Leaf '{name}' has non-integer value {value!r} for column {i}")
        try:
            values.append(check_int64(value, f"Leaf '{name}' column {i}"))
        except StackTallyError as e:
            raise TreeImportError(str(e)) from e
    return values


def _node_name(element: Any) -> str:
    if not isinstance(element, dict):
        raise TreeImportError(f"Tree node must be an object, got {type(element).__name__}")
    if "n" not in element:
        raise TreeImportError("Tree node is missing its name ('n')")
    name = element["n"]
    if name is None:
        return ""
    if not isinstance(name, str):
        raise TreeImportError(f"Tree node name must be a string, got {name!r}")
    return name


def build_tree(document: TreeDocument) -> AggregationTree:
    """Rebuild a tree from a validated document.

    Ancestor totals are recomputed from the leaves; any totals a
    hand-edited file might imply are ignored.
    """
    try:
        tree = AggregationTree(document.column_names)
    except StackTallyError as e:
        raise TreeImportError(str(e)) from e
    width = tree.width

    stack: list[tuple[Node, Iterator[Any]]] = [(tree.root, iter(document.tree_data))]
    while stack:
        parent, elements = stack[-1]
        element = next(elements, _DONE)
        if element is _DONE:
            stack.pop()
            if stack:
                stack[-1][0].add(parent.values)
            continue

        name = _node_name(element)
        if name in parent.children:
            logger.warning("Duplicate sibling '%s' under '%s'; later entry replaces earlier", name, parent.name)
        node = parent.children[name] = Node(name=name, values=[0] * width)

        if "c" in element:
            children = element["c"]
            if not isinstance(children, list):
                raise TreeImportError(f"Children of '{name}' must be an array")
            stack.append((node, iter(children)))
        else:
            node.values = _leaf_values(element, width, name)
            parent.add(node.values)

    return tree


def deserialize(text: str) -> AggregationTree:
    """Parse a tree from its nested JSON string.

    Raises:
        TreeImportError: Malformed JSON, wrong shape, bad values, or
            nesting deeper than MAX_JSON_DEPTH
    """
    depth = nesting_depth(text)
    if depth > MAX_JSON_DEPTH:
        raise TreeImportError(f"JSON nesting depth {depth} exceeds the limit of {MAX_JSON_DEPTH}")

    try:
        data = json.loads(text)
    except RecursionError as e:
        raise TreeImportError(f"JSON nesting too deep to parse (depth {depth})") from e
    except ValueError as e:
        raise TreeImportError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise TreeImportError("Tree file must contain a JSON object")

    try:
        document = TreeDocument.model_validate(data)
    except ValidationError as e:
        raise TreeImportError(f"Invalid tree document: {e}") from e

    try:
        return build_tree(document)
    except ValueOverflowError as e:
        raise TreeImportError(f"Recomputed totals overflow: {e}") from e


def read_tree(path: str | Path) -> AggregationTree:
    """Load a tree from a JSON file."""
    path = Path(path)
    if not path.is_file():
        raise TreeImportError(f"File not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TreeImportError(f"Error reading {path}: {e}") from e

    try:
        tree = deserialize(text)
    except TreeImportError as e:
        raise TreeImportError(f"{path}: {e}") from e
    logger.info("Loaded tree %s (%d columns)", path, tree.width)
    return tree
