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

"""Lifecycle correlation: raw heap events -> lifetime records."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from stacktally.constants import check_int64
from stacktally.errors import CorrelatorDrainedError, EventDecodeError, ValueOverflowError
from stacktally.lifetime.decoding import (
    AllocPayload,
    DestroyPayload,
    FreePayload,
    RawHeapEvent,
    ReallocPayload,
    decode_event,
)
from stacktally.lifetime.models import LifetimeRecord, StackResolver

logger = logging.getLogger(__name__)


@dataclass
class CorrelatorStats:
    """Diagnostic counters for one correlation run."""

    events: int = 0
    decode_errors: int = 0
    duplicate_creates: int = 0
    unmatched_destroys: int = 0
    relocating_resizes: int = 0
    open_records: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {
            "events": self.events,
            "decode_errors": self.decode_errors,
            "duplicate_creates": self.duplicate_creates,
            "unmatched_destroys": self.unmatched_destroys,
            "relocating_resizes": self.relocating_resizes,
            "open_records": self.open_records,
        }


class LifetimeCorrelator:
    """Turns create/destroy/resize/bulk-release events into lifetime records.

    Open records are keyed by container, then address. A create at an
    address that is still open replaces the open record (last write wins);
    the replaced record is dropped and counted in stats.duplicate_creates.
    """

    def __init__(self, resolver: StackResolver | None = None):
        self._resolver = resolver
        self._open: dict[int, dict[int, LifetimeRecord]] = {}
        self._completed: list[LifetimeRecord] = []
        self._drained = False
        self.stats = CorrelatorStats()

    @property
    def completed(self) -> list[LifetimeRecord]:
        """Records terminated so far (open ones are not included)."""
        return self._completed

    def open_count(self) -> int:
        """Number of records currently open across all containers."""
        return sum(len(records) for records in self._open.values())

    def record_create(
        self,
        owner_id: int,
        container_id: int,
        address: int,
        size: int,
        thread_id: int,
        timestamp: int,
    ) -> LifetimeRecord:
        """Open a new record at (container_id, address)."""
        check_int64(size, "size")
        self._drained = False

        records = self._open.setdefault(container_id, {})
        if address in records:
            self.stats.duplicate_creates += 1
            logger.debug(
                "Create at open address %#x in container %#x replaces earlier record",
                address,
                container_id,
            )

        record = LifetimeRecord(
            owner_id=owner_id,
            container_id=container_id,
            address=address,
            size=size,
            create_thread=thread_id,
            create_time=timestamp,
            resolver=self._resolver,
        )
        records[address] = record
        return record

    def record_destroy(
        self,
        container_id: int,
        address: int,
        thread_id: int,
        timestamp: int,
    ) -> LifetimeRecord | None:
        """Complete the open record at (container_id, address), if any."""
        self._drained = False

        records = self._open.get(container_id)
        record = records.pop(address, None) if records is not None else None
        if record is None:
            self.stats.unmatched_destroys += 1
            logger.debug("Destroy of unknown address %#x in container %#x", address, container_id)
            return None

        record.close(thread_id, timestamp)
        self._completed.append(record)
        return record

    def record_resize(
        self,
        owner_id: int,
        container_id: int,
        old_address: int,
        new_address: int,
        new_size: int,
        thread_id: int,
        timestamp: int,
    ) -> LifetimeRecord | None:
        """Handle an in-place resize as destroy followed by create.

        Relocating resizes are ignored: the producer logs those as a
        separate create and destroy.
        """
        if old_address != new_address:
            self.stats.relocating_resizes += 1
            return None

        self.record_destroy(container_id, old_address, thread_id, timestamp)
        return self.record_create(owner_id, container_id, new_address, new_size, thread_id, timestamp)

    def record_bulk_release(self, container_id: int, thread_id: int, timestamp: int) -> int:
        """Complete every open record of a container.

        Returns:
            Number of records released
        """
        self._drained = False

        records = self._open.pop(container_id, None)
        if not records:
            return 0

        for record in records.values():
            record.close(thread_id, timestamp)
            self._completed.append(record)
        logger.debug("Container %#x released %d open records", container_id, len(records))
        return len(records)

    def feed(self, event: RawHeapEvent) -> None:
        """Decode one raw event and apply it.

        A malformed event is logged and counted; it never aborts the run.
        """
        self.stats.events += 1
        try:
            payload = decode_event(event)
            self._apply(event, payload)
        except (EventDecodeError, ValueOverflowError) as e:
            self.stats.decode_errors += 1
            logger.warning("Dropping heap event at %d: %s", event.timestamp, e)

    def feed_all(self, events: Iterable[RawHeapEvent]) -> "LifetimeCorrelator":
        """Feed every event and return self."""
        for event in events:
            self.feed(event)
        return self

    def _apply(self, event: RawHeapEvent, payload) -> None:
        if isinstance(payload, AllocPayload):
            self.record_create(
                event.owner_id, payload.heap, payload.address, payload.size,
                event.thread_id, event.timestamp,
            )
        elif isinstance(payload, FreePayload):
            self.record_destroy(payload.heap, payload.address, event.thread_id, event.timestamp)
        elif isinstance(payload, ReallocPayload):
            self.record_resize(
                event.owner_id, payload.heap, payload.old_address, payload.new_address,
                payload.new_size, event.thread_id, event.timestamp,
            )
        elif isinstance(payload, DestroyPayload):
            self.record_bulk_release(payload.heap, event.thread_id, event.timestamp)

    def drain(self) -> list[LifetimeRecord]:
        """Flush still-open records and return every record.

        Open records are appended without a destroy stamp. The correlator
        holds no open state afterwards.

        Raises:
            CorrelatorDrainedError: If called twice with no events in between
        """
        if self._drained:
            raise CorrelatorDrainedError("Correlator already drained; feed new events first")

        still_open = 0
        for records in self._open.values():
            still_open += len(records)
            self._completed.extend(records.values())
        self._open.clear()
        self._drained = True

        self.stats.open_records = still_open
        logger.info(
            "Correlated %d lifetime records (%d still open, %d decode errors)",
            len(self._completed),
            still_open,
            self.stats.decode_errors,
        )
        return self._completed
