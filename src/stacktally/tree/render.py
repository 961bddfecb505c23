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

"""Terminal rendering of an AggregationTree using Rich."""

import io

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from stacktally.tree.table import AggregationTree, Node


class TreeTextRenderer:
    """Renders an AggregationTree as an indented text tree.

    Children are ordered by the absolute value of one column, largest
    first, so the heaviest call paths read top to bottom.
    """

    def render(
        self,
        tree: AggregationTree,
        *,
        column: str | None = None,
        depth: int | None = None,
        top: int | None = None,
        width: int = 120,
    ) -> str:
        """Render the tree to a string.

        Args:
            tree: The tree to render
            column: Column to sort and color by (default: last column)
            depth: Maximum depth below the root to render
            top: Maximum children shown per node
            width: Console width

        Returns:
            Plain-text rendering
        """
        index = tree.column_index(column) if column else tree.width - 1

        root_label = Text()
        root_label.append("Total", style="bold")
        root_label.append_text(self._values_text(tree, tree.root, index))
        rich_tree = Tree(root_label)

        stack: list[tuple[Node, Tree, int]] = [(tree.root, rich_tree, 0)]
        while stack:
            node, branch, level = stack.pop()
            if depth is not None and level >= depth:
                continue

            children = sorted(node.children.values(), key=lambda c: abs(c.values[index]), reverse=True)
            hidden = 0
            if top is not None and len(children) > top:
                hidden = len(children) - top
                children = children[:top]

            for child in children:
                child_branch = branch.add(self._build_label(tree, child, index))
                stack.append((child, child_branch, level + 1))
            if hidden:
                branch.add(Text(f"… {hidden} more", style="dim"))

        console = Console(file=io.StringIO(), force_terminal=False, width=width, record=True)
        console.print(rich_tree)
        return console.export_text()

    def _build_label(self, tree: AggregationTree, node: Node, index: int) -> Text:
        """Build the label text for a node."""
        text = Text()
        text.append(node.name if node.name else '""', style="" if node.children else "cyan")
        text.append_text(self._values_text(tree, node, index))
        return text

    def _values_text(self, tree: AggregationTree, node: Node, index: int) -> Text:
        text = Text()
        text.append("  [", style="dim")
        for i, (name, value) in enumerate(zip(tree.column_names, node.values)):
            if i:
                text.append(", ", style="dim")
            style = self._value_style(value) if i == index else "dim"
            text.append(f"{name}={value:,}", style=style)
        text.append("]", style="dim")
        return text

    def _value_style(self, value: int) -> str:
        """Growth shows red, shrink green."""
        if value > 0:
            return "red"
        elif value < 0:
            return "green"
        return ""


def render_tree(tree: AggregationTree, **options) -> str:
    """Convenience wrapper around TreeTextRenderer.render."""
    return TreeTextRenderer().render(tree, **options)
