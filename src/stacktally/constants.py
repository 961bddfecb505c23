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

"""Constants shared by the correlator, the tree codec and the CLI."""

from typing import Final

from stacktally.errors import ValueOverflowError

# Signed 64-bit range for every value stored in a tree or a lifetime record
INT64_MIN: Final = -(2**63)
INT64_MAX: Final = 2**63 - 1

# Nesting bound for JSON tree import
MAX_JSON_DEPTH: Final = 4096

# Heap provider event ids
HEAP_ALLOC: Final = 33
HEAP_REALLOC: Final = 34
HEAP_DESTROY: Final = 35
HEAP_FREE: Final = 36

# Path segments for stacks that cannot be rendered as frames
STACK_ROOT: Final = "[Root]"
STACK_IDLE: Final = "[Idle]"
STACK_UNAVAILABLE: Final = "N/A"

# Frames at which heap allocation stacks are cut (the allocator's own
# internals below these are noise)
DEFAULT_HEAP_API_FRAMES: Final[list[str]] = [
    "ntdll.dll!RtlCreateHeap",
    "ntdll.dll!RtlAllocateHeap",
    "ntdll.dll!RtlpAllocateHeapInternal",
    "ntdll.dll!RtlReAllocateHeap",
    "ntdll.dll!RtlpReAllocateHeapInternal",
    "ntdll.dll!RtlFreeHeap",
    "ntdll.dll!RtlpFreeHeapInternal",
]


def check_int64(value: int, what: str = "value") -> int:
    """Return value unchanged if it fits signed 64-bit, else raise.

    Args:
        value: Integer to check
        what: Short description used in the error message

    Raises:
        ValueOverflowError: If value is outside [INT64_MIN, INT64_MAX]
    """
    if value < INT64_MIN or value > INT64_MAX:
        raise ValueOverflowError(f"{what} {value} does not fit in a signed 64-bit integer")
    return value
