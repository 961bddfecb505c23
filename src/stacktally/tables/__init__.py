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

"""Analysis tables that turn trace data into tree rows."""

import logging
from collections.abc import Iterable

from stacktally.tables.base import (
    AnalysisTable,
    ProcessInfo,
    select_processes,
    stack_path,
)
from stacktally.tables.heap import HeapAllocationsReverseTable, HeapAllocationsTable

logger = logging.getLogger(__name__)

TABLES = {
    HeapAllocationsTable.name: HeapAllocationsTable,
    HeapAllocationsReverseTable.name: HeapAllocationsReverseTable,
}


def create_tables(names: Iterable[str], heap_api_frames: Iterable[str] | None = None) -> list[AnalysisTable]:
    """Instantiate tables by name, skipping duplicates and unknown names."""
    tables: list[AnalysisTable] = []
    seen: set[str] = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        table_cls = TABLES.get(name)
        if table_cls is None:
            logger.warning("Unknown table name: %s", name)
            continue
        tables.append(table_cls(heap_api_frames=heap_api_frames))
    return tables


__all__ = [
    "AnalysisTable",
    "ProcessInfo",
    "TABLES",
    "create_tables",
    "select_processes",
    "stack_path",
    "HeapAllocationsTable",
    "HeapAllocationsReverseTable",
]
