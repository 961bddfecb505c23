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

"""Width-dependent decoding of heap event payloads.

Payloads are little-endian runs of unsigned integers whose width follows
the pointer size of the process that logged them:

    ALLOC    heap, size, address
    FREE     heap, address
    REALLOC  heap, new address, old address, new size, old size
    DESTROY  heap

Bytes past the end of a layout are ignored.
"""

import struct
from dataclasses import dataclass

from stacktally.constants import (
    HEAP_ALLOC,
    HEAP_DESTROY,
    HEAP_FREE,
    HEAP_REALLOC,
    INT64_MAX,
)
from stacktally.errors import EventDecodeError

# Struct format character per pointer size
_WIDTH_CODES = {4: "I", 8: "Q"}

# Field count per event kind
_FIELD_COUNTS = {
    HEAP_ALLOC: 3,
    HEAP_FREE: 2,
    HEAP_REALLOC: 5,
    HEAP_DESTROY: 1,
}


@dataclass(frozen=True)
class RawHeapEvent:
    """A heap provider event as it arrives from the trace."""

    kind: int
    owner_id: int
    thread_id: int
    timestamp: int
    pointer_size: int
    payload: bytes


@dataclass(frozen=True)
class AllocPayload:
    heap: int
    size: int
    address: int


@dataclass(frozen=True)
class FreePayload:
    heap: int
    address: int


@dataclass(frozen=True)
class ReallocPayload:
    heap: int
    new_address: int
    old_address: int
    new_size: int
    old_size: int


@dataclass(frozen=True)
class DestroyPayload:
    heap: int


HeapPayload = AllocPayload | FreePayload | ReallocPayload | DestroyPayload


def _signed_size(value: int, kind: int) -> int:
    """Checked cast of an unsigned size field to signed 64-bit."""
    if value > INT64_MAX:
        raise EventDecodeError(f"Size {value} in event {kind} overflows a signed 64-bit integer")
    return value


def unpack_fields(kind: int, pointer_size: int, payload: bytes) -> tuple[int, ...]:
    """Unpack the unsigned fields of a payload for the given kind and width.

    Raises:
        EventDecodeError: Unknown kind, unsupported width or short payload
    """
    count = _FIELD_COUNTS.get(kind)
    if count is None:
        raise EventDecodeError(f"Unrecognized heap event id {kind}")

    code = _WIDTH_CODES.get(pointer_size)
    if code is None:
        raise EventDecodeError(f"Unsupported pointer size {pointer_size} (expected 4 or 8)")

    fmt = "<" + code * count
    needed = struct.calcsize(fmt)
    if len(payload) < needed:
        raise EventDecodeError(
            f"Payload for event {kind} is {len(payload)} bytes, expected at least {needed}"
        )
    return struct.unpack_from(fmt, payload)


def decode_event(event: RawHeapEvent) -> HeapPayload:
    """Decode a raw heap event into its typed payload."""
    fields = unpack_fields(event.kind, event.pointer_size, event.payload)

    if event.kind == HEAP_ALLOC:
        heap, size, address = fields
        return AllocPayload(heap=heap, size=_signed_size(size, event.kind), address=address)
    if event.kind == HEAP_FREE:
        heap, address = fields
        return FreePayload(heap=heap, address=address)
    if event.kind == HEAP_REALLOC:
        heap, new_address, old_address, new_size, old_size = fields
        return ReallocPayload(
            heap=heap,
            new_address=new_address,
            old_address=old_address,
            new_size=_signed_size(new_size, event.kind),
            old_size=_signed_size(old_size, event.kind),
        )
    (heap,) = fields
    return DestroyPayload(heap=heap)


def encode_payload(kind: int, pointer_size: int, *fields: int) -> bytes:
    """Pack fields into a payload (the inverse of unpack_fields).

    Used by producers that synthesize heap events, such as converters that
    write the JSON-lines events format.
    """
    count = _FIELD_COUNTS.get(kind)
    if count is None:
        raise EventDecodeError(f"Unrecognized heap event id {kind}")
    if len(fields) != count:
        raise EventDecodeError(f"Event {kind} takes {count} fields, got {len(fields)}")
    code = _WIDTH_CODES.get(pointer_size)
    if code is None:
        raise EventDecodeError(f"Unsupported pointer size {pointer_size} (expected 4 or 8)")
    try:
        return struct.pack("<" + code * count, *fields)
    except struct.error as e:
        raise EventDecodeError(f"Cannot pack event {kind}: {e}") from e
