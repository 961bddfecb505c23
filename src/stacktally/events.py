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

"""Reader for the JSON-lines events format consumed by `stacktally export`.

One JSON object per line, discriminated by "type":

    {"type": "process", "pid": 42, "image": "app.exe", "command_line": "app.exe -x"}
    {"type": "heap", "id": 33, "pid": 42, "tid": 7, "ts": 1500,
     "pointer_size": 8, "data": "<hex payload>",
     "stack": ["ntdll.dll!RtlAllocateHeap", "app.exe!main"]}
    {"type": "marker", "name": "Start", "ts": 1000}

Heap stacks are listed innermost frame first. Blank lines are skipped.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from stacktally.errors import TraceLoadError, WindowError
from stacktally.lifetime.decoding import RawHeapEvent
from stacktally.lifetime.models import StackSnapshot
from stacktally.lifetime.window import Window
from stacktally.tables.base import ProcessInfo

logger = logging.getLogger(__name__)


class ProcessLine(BaseModel):
    type: Literal["process"]
    pid: int
    image: str
    command_line: str | None = None


class HeapLine(BaseModel):
    type: Literal["heap"]
    id: int
    pid: int
    tid: int
    ts: int
    pointer_size: int = 8
    data: str = ""
    stack: list[str] | None = None
    idle: bool = False


class MarkerLine(BaseModel):
    type: Literal["marker"]
    name: str
    ts: int


EventLine = Annotated[Union[ProcessLine, HeapLine, MarkerLine], Field(discriminator="type")]
_LINE_ADAPTER = TypeAdapter(EventLine)


@dataclass(frozen=True)
class Marker:
    """A named point in time, used to bound the analysis window."""

    name: str
    timestamp: int


class MappingStackResolver:
    """Stack resolver backed by a (thread, timestamp) -> snapshot map."""

    def __init__(self) -> None:
        self._stacks: dict[tuple[int, int], StackSnapshot] = {}

    def __len__(self) -> int:
        return len(self._stacks)

    def add(self, thread_id: int, timestamp: int, stack: StackSnapshot) -> None:
        self._stacks[(thread_id, timestamp)] = stack

    def get_stack(self, thread_id: int, timestamp: int) -> StackSnapshot | None:
        return self._stacks.get((thread_id, timestamp))


@dataclass
class Trace:
    """Everything read from one events file."""

    path: Path
    processes: list[ProcessInfo] = field(default_factory=list)
    heap_events: list[RawHeapEvent] = field(default_factory=list)
    markers: list[Marker] = field(default_factory=list)
    stacks: MappingStackResolver = field(default_factory=MappingStackResolver)


def _heap_event(line: HeapLine, lineno: int, path: Path) -> RawHeapEvent:
    try:
        payload = bytes.fromhex(line.data)
    except ValueError as e:
        raise TraceLoadError(f"{path}:{lineno}: invalid hex payload: {e}") from e
    return RawHeapEvent(
        kind=line.id,
        owner_id=line.pid,
        thread_id=line.tid,
        timestamp=line.ts,
        pointer_size=line.pointer_size,
        payload=payload,
    )


def load_trace(path: str | Path) -> Trace:
    """Read an events file.

    Raises:
        TraceLoadError: If the file is missing or a line is malformed
    """
    path = Path(path)
    if not path.is_file():
        raise TraceLoadError(f"Events file not found: {path}")

    trace = Trace(path=path)
    try:
        with path.open(encoding="utf-8") as f:
            for lineno, raw in enumerate(f, start=1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    line = _LINE_ADAPTER.validate_python(json.loads(raw))
                except (ValueError, ValidationError) as e:
                    raise TraceLoadError(f"{path}:{lineno}: {e}") from e

                if isinstance(line, ProcessLine):
                    trace.processes.append(ProcessInfo(line.pid, line.image, line.command_line))
                elif isinstance(line, MarkerLine):
                    trace.markers.append(Marker(line.name, line.ts))
                else:
                    trace.heap_events.append(_heap_event(line, lineno, path))
                    if line.stack is not None or line.idle:
                        trace.stacks.add(line.tid, line.ts, StackSnapshot(tuple(line.stack or ()), line.idle))
    except OSError as e:
        raise TraceLoadError(f"Error reading {path}: {e}") from e

    logger.info(
        "Loaded %s: %d processes, %d heap events, %d markers",
        path,
        len(trace.processes),
        len(trace.heap_events),
        len(trace.markers),
    )
    return trace


def find_window(trace: Trace, start_marker: str, end_marker: str) -> Window:
    """Resolve the analysis window from named markers.

    Names match case-insensitively. When a name occurs more than once the
    first occurrence is used.

    Raises:
        WindowError: Missing markers or end not after start
    """
    starts = [m for m in trace.markers if m.name.lower() == start_marker.lower()]
    ends = [m for m in trace.markers if m.name.lower() == end_marker.lower()]

    if not starts or not ends:
        raise WindowError(f"Required markers not found (Start: {len(starts)}, End: {len(ends)})")
    if len(starts) > 1 or len(ends) > 1:
        logger.warning("Multiple markers found (Start: %d, End: %d); using the first", len(starts), len(ends))

    start, end = starts[0].timestamp, ends[0].timestamp
    if end <= start:
        raise WindowError(f"Invalid time range: end time ({end}) must be after start time ({start})")
    return Window(start, end)
