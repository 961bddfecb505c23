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

"""Signed attribution of a lifetime to an analysis window."""

from dataclasses import dataclass

from stacktally.errors import WindowError


@dataclass(frozen=True)
class Window:
    """Half-open time interval [start, end) in trace nanoseconds."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise WindowError(f"Window end ({self.end}) must be after start ({self.start})")

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end


def impact(
    size: int,
    create_time: int,
    destroy_time: int | None,
    window_start: int,
    window_end: int,
) -> int:
    """Net size change a lifetime contributes to [window_start, window_end).

    Born inside the window and still alive at its end counts +size. Born
    before the window and destroyed inside it counts -size, charged to the
    creating stack so growth and shrink of one call site net out. Anything
    else, including a resource alive across the whole window, counts 0.

    Args:
        size: Resource size in bytes
        create_time: Creation timestamp
        destroy_time: Destruction timestamp, None if never destroyed
        window_start: Inclusive window start
        window_end: Exclusive window end

    Returns:
        +size, -size or 0

    Raises:
        WindowError: If window_end is not after window_start
    """
    if window_end <= window_start:
        raise WindowError(f"Window end ({window_end}) must be after start ({window_start})")

    destroyed_at_or_after_end = destroy_time is None or destroy_time >= window_end
    if window_start <= create_time < window_end and destroyed_at_or_after_end:
        return size

    destroyed_inside = destroy_time is not None and window_start <= destroy_time < window_end
    if create_time < window_start and destroyed_inside:
        return -size

    return 0
