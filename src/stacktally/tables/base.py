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

"""Analysis table protocol, process selection and stack path rendering."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from stacktally.constants import STACK_IDLE, STACK_ROOT, STACK_UNAVAILABLE
from stacktally.errors import NoMatchingProcessError
from stacktally.lifetime.models import LifetimeRecord, StackSnapshot
from stacktally.lifetime.window import Window
from stacktally.tree.table import AggregationTree


@dataclass(frozen=True)
class ProcessInfo:
    """A traced process."""

    pid: int
    image_name: str
    command_line: str | None = None


class AnalysisTable(Protocol):
    """Maps one kind of trace data into (path, values) rows of a tree."""

    name: str
    column_names: tuple[str, ...]
    tree: AggregationTree

    def process(
        self,
        records: Iterable[LifetimeRecord],
        processes: Sequence[ProcessInfo],
        window: Window,
    ) -> int:
        """Add rows for the window and target processes; return rows added."""
        ...


def stack_path(stack: StackSnapshot | None) -> list[str]:
    """Render a stack as path segments, outermost frame first.

    Missing or empty stacks become ["N/A"], idle stacks ["[Idle]"];
    anything else is prefixed with "[Root]".
    """
    if stack is None or not stack.frames:
        return [STACK_UNAVAILABLE]
    if stack.is_idle:
        return [STACK_IDLE]
    return [STACK_ROOT, *reversed(stack.frames)]


def select_processes(processes: Iterable[ProcessInfo], pattern: str) -> list[ProcessInfo]:
    """Processes whose command line matches pattern.

    Raises:
        NoMatchingProcessError: If nothing matches
    """
    regex = re.compile(pattern)
    selected = [p for p in processes if p.command_line is not None and regex.search(p.command_line)]
    if not selected:
        raise NoMatchingProcessError(f"No processes matched the regex: {pattern}")
    return selected
