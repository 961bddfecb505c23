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

"""Path-keyed aggregation tree.

Every add() walks a path from the root, creating nodes on demand and
accumulating the value vector into each node it passes, root included.
Walks over whole trees use explicit stacks, so call stacks deeper than the
interpreter's recursion limit are fine.
"""

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

from stacktally.constants import check_int64
from stacktally.errors import SchemaError, SchemaMismatchError

logger = logging.getLogger(__name__)

DIFF_SUFFIXES = ("Test", "Base", "Diff")


class CollisionPolicy(str, Enum):
    """What rename_leaves does when two siblings end up with one name."""

    ACCUMULATE = "accumulate"  # Fold colliding nodes together
    OVERWRITE = "overwrite"  # Last renamed node wins


@dataclass
class Node:
    """One path segment of an AggregationTree."""

    name: str
    values: list[int]
    children: dict[str, "Node"] = field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        """Check if this node has no children."""
        return len(self.children) == 0

    def add(self, values: Sequence[int]) -> None:
        """Accumulate a vector into this node's values.

        Nothing changes if any column overflows.
        """
        self.values[:] = [check_int64(a + b, "accumulated value") for a, b in zip(self.values, values)]

    def child(self, name: str, width: int) -> "Node":
        """Get the named child, creating it with a zero vector if missing."""
        node = self.children.get(name)
        if node is None:
            node = self.children[name] = Node(name=name, values=[0] * width)
        return node


def _accumulate(nodes: Sequence[Node], values: Sequence[int]) -> None:
    """Add values into every node, or into none of them on overflow."""
    updated = [[check_int64(a + b, "accumulated value") for a, b in zip(node.values, values)] for node in nodes]
    for node, new_values in zip(nodes, updated):
        node.values[:] = new_values


def _check_merge(dst: Node, src: Node) -> None:
    """Raise ValueOverflowError if merging src into dst would overflow."""
    stack = [(dst, src)]
    while stack:
        into, other = stack.pop()
        for a, b in zip(into.values, other.values):
            check_int64(a + b, "accumulated value")
        for name, other_child in other.children.items():
            into_child = into.children.get(name)
            # Subtrees missing on dst are copied as-is
            if into_child is not None:
                stack.append((into_child, other_child))


def _merge_nodes(dst: Node, src: Node, width: int) -> None:
    """Add src's subtree into dst's subtree, matching children by name."""
    _check_merge(dst, src)
    stack = [(dst, src)]
    while stack:
        into, other = stack.pop()
        into.add(other.values)
        for name, other_child in list(other.children.items()):
            stack.append((into.child(name, width), other_child))


def _nest_leaf(internal: Node, leaf: Node) -> None:
    """Add leaf below internal, following leaf.name until a leaf or gap."""
    chain = [internal]
    while not chain[-1].is_leaf:
        below = chain[-1].children.get(leaf.name)
        if below is None:
            break
        chain.append(below)
    _accumulate(chain, leaf.values)
    if not chain[-1].is_leaf:
        chain[-1].children[leaf.name] = Node(name=leaf.name, values=list(leaf.values))


class AggregationTree:
    """Accumulates fixed-width integer vectors along hierarchical paths.

    The column schema is fixed at construction. Each tree owns its nodes;
    merge() and diff() copy values and never share nodes between trees.
    """

    def __init__(self, column_names: Iterable[str]):
        self.column_names: tuple[str, ...] = tuple(column_names)
        if not self.column_names:
            raise SchemaError("A tree needs at least one column")
        self.root = Node(name="", values=[0] * len(self.column_names))

    @property
    def width(self) -> int:
        """Number of columns."""
        return len(self.column_names)

    @property
    def totals(self) -> list[int]:
        """The root vector: the sum of everything ever added."""
        return list(self.root.values)

    def column_index(self, name: str) -> int:
        """Index of a column by name."""
        try:
            return self.column_names.index(name)
        except ValueError:
            raise KeyError(f"Unknown column '{name}'. Columns: {', '.join(self.column_names)}")

    def _check_vector(self, values: Sequence[int]) -> None:
        if len(values) != self.width:
            raise SchemaError(
                f"Expected {self.width} values for columns {list(self.column_names)}, got {len(values)}"
            )

    def _check_schema(self, other: "AggregationTree") -> None:
        if other.column_names != self.column_names:
            raise SchemaMismatchError(self.column_names, other.column_names)

    def add(self, path: Iterable[str], values: Sequence[int]) -> Node:
        """Accumulate values into the root and every node along path.

        Returns:
            The node the path ends at

        Raises:
            ValueOverflowError: If any node would leave int64 range. The
                tree is left unchanged.
        """
        self._check_vector(values)
        values = [check_int64(v) for v in values]
        path = list(path)

        # Existing prefix of the path gets the values added in one step
        existing = [self.root]
        for name in path:
            node = existing[-1].children.get(name)
            if node is None:
                break
            existing.append(node)
        _accumulate(existing, values)

        current = existing[-1]
        for name in path[len(existing) - 1 :]:
            node = Node(name=name, values=list(values))
            current.children[name] = node
            current = node
        return current

    def merge(self, other: "AggregationTree") -> "AggregationTree":
        """Add every node of other into this tree.

        The result equals replaying every add() ever made on other onto
        this tree. Returns self. On ValueOverflowError this tree is left
        unchanged.
        """
        self._check_schema(other)
        _merge_nodes(self.root, other.root, self.width)
        return self

    @classmethod
    def diff(cls, test: "AggregationTree", base: "AggregationTree") -> "AggregationTree":
        """Build a three-way diff tree of test against base.

        The result has columns <name>Test..., <name>Base..., <name>Diff...
        and contains the union of both trees' paths. A path missing on one
        side contributes zeros for that side.
        """
        test._check_schema(base)
        width = test.width
        columns = [name + suffix for suffix in DIFF_SUFFIXES for name in test.column_names]
        result = cls(columns)
        zeros = [0] * width

        stack: list[tuple[Node, Node | None, Node | None]] = [(result.root, test.root, base.root)]
        while stack:
            out, test_node, base_node = stack.pop()
            test_values = test_node.values if test_node is not None else zeros
            base_values = base_node.values if base_node is not None else zeros
            out.values = (
                list(test_values)
                + list(base_values)
                + [check_int64(t - b, "difference") for t, b in zip(test_values, base_values)]
            )

            test_children = test_node.children if test_node is not None else {}
            base_children = base_node.children if base_node is not None else {}
            names = list(test_children) + [n for n in base_children if n not in test_children]
            for name in names:
                child = out.child(name, result.width)
                stack.append((child, test_children.get(name), base_children.get(name)))

        return result

    def diff_against(self, base: "AggregationTree") -> "AggregationTree":
        """Diff this tree (as test) against base."""
        return type(self).diff(self, base)

    def rename_leaves(
        self,
        new_name: str,
        policy: CollisionPolicy = CollisionPolicy.ACCUMULATE,
    ) -> int:
        """Rename every childless node to new_name.

        Siblings that end up sharing new_name collide. Among leaves,
        ACCUMULATE folds them into one node and OVERWRITE keeps only the
        last one. A leaf colliding with an internal sibling is moved under
        it as a child named new_name under either policy, so its values
        stay in the tree.

        Returns:
            Number of collisions
        """
        collisions = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                continue

            internal = {k: c for k, c in node.children.items() if not c.is_leaf}
            leaves = [c for c in node.children.values() if c.is_leaf]
            stack.extend(internal.values())
            if not leaves:
                continue

            renamed = dict(internal)
            for leaf in leaves:
                leaf.name = new_name
                existing = renamed.get(new_name)
                if existing is None:
                    renamed[new_name] = leaf
                    continue
                collisions += 1
                if not existing.is_leaf:
                    _nest_leaf(existing, leaf)
                elif policy == CollisionPolicy.OVERWRITE:
                    renamed[new_name] = leaf
                else:
                    _merge_nodes(existing, leaf, self.width)
            node.children = renamed

        if collisions:
            level = logging.WARNING if policy == CollisionPolicy.OVERWRITE else logging.DEBUG
            logger.log(level, "rename_leaves('%s'): %d sibling collisions (%s)", new_name, collisions, policy.value)
        return collisions

    def find(self, path: Iterable[str]) -> Node | None:
        """Return the node at path, or None."""
        current = self.root
        for name in path:
            current = current.children.get(name)
            if current is None:
                return None
        return current

    def iter_nodes(self) -> Iterator[tuple[tuple[str, ...], Node]]:
        """Yield (path, node) depth-first, root first, in insertion order."""
        stack: list[tuple[tuple[str, ...], Node]] = [((), self.root)]
        while stack:
            path, node = stack.pop()
            yield path, node
            for name, child in reversed(list(node.children.items())):
                stack.append((path + (name,), child))

    def iter_leaves(self) -> Iterator[tuple[tuple[str, ...], Node]]:
        """Yield (path, node) for childless nodes other than the root."""
        for path, node in self.iter_nodes():
            if path and node.is_leaf:
                yield path, node

    def leaf_values(self) -> dict[tuple[str, ...], list[int]]:
        """Map every leaf path to a copy of its vector."""
        return {path: list(node.values) for path, node in self.iter_leaves()}

    def node_count(self) -> int:
        """Number of nodes including the root."""
        return sum(1 for _ in self.iter_nodes())

    def __repr__(self) -> str:
        return f"AggregationTree(columns={list(self.column_names)}, totals={self.root.values})"
