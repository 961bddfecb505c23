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

"""Heap allocation tables: net heap growth per allocating call stack."""

import logging
from collections.abc import Iterable, Sequence

from stacktally.constants import DEFAULT_HEAP_API_FRAMES
from stacktally.lifetime.models import LifetimeRecord
from stacktally.lifetime.window import Window, impact
from stacktally.tables.base import ProcessInfo, stack_path
from stacktally.tree.table import AggregationTree

logger = logging.getLogger(__name__)


class HeapAllocationsTable:
    """Charges each allocation's window impact to its allocating stack.

    Rows are [process image, [Root], outer frame, ..., heap API frame, ""]
    with values (1, impact). Frames below the first heap API frame belong
    to the allocator itself and are cut.
    """

    name = "HeapAllocations"
    column_names = ("Count", "Size")
    reverse_stack = False

    def __init__(self, heap_api_frames: Iterable[str] | None = None):
        frames = DEFAULT_HEAP_API_FRAMES if heap_api_frames is None else heap_api_frames
        self.heap_api_frames = frozenset(frames)
        self.tree = AggregationTree(self.column_names)

    def trim_stack(self, stack: list[str]) -> list[str]:
        """Cut the stack after the first heap API frame, if present."""
        for i, frame in enumerate(stack):
            if frame in self.heap_api_frames:
                return stack[: i + 1]
        return stack

    def process(
        self,
        records: Iterable[LifetimeRecord],
        processes: Sequence[ProcessInfo],
        window: Window,
    ) -> int:
        """Add one row per allocation with a non-zero window impact."""
        # First process wins when a pid is reused
        by_pid: dict[int, ProcessInfo] = {}
        for p in processes:
            by_pid.setdefault(p.pid, p)
        rows = 0

        for record in records:
            process = by_pid.get(record.owner_id)
            if process is None:
                continue

            size = impact(record.size, record.create_time, record.destroy_time, window.start, window.end)
            if size == 0:
                continue

            stack = self.trim_stack(stack_path(record.create_stack))
            if self.reverse_stack:
                stack.reverse()
            self.tree.add([process.image_name, *stack, ""], [1, size])
            rows += 1

        logger.info("%s: %d rows in window [%d, %d)", self.name, rows, window.start, window.end)
        return rows


class HeapAllocationsReverseTable(HeapAllocationsTable):
    """HeapAllocations with the stack read innermost frame first."""

    name = "HeapAllocationsReverse"
    reverse_stack = True
