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

"""Resource lifetime correlation and window attribution."""

from stacktally.lifetime.models import (
    LifetimeRecord,
    StackResolver,
    StackSnapshot,
)
from stacktally.lifetime.decoding import (
    RawHeapEvent,
    decode_event,
    encode_payload,
)
from stacktally.lifetime.correlator import (
    CorrelatorStats,
    LifetimeCorrelator,
)
from stacktally.lifetime.window import Window, impact

__all__ = [
    "LifetimeRecord",
    "StackResolver",
    "StackSnapshot",
    "RawHeapEvent",
    "decode_event",
    "encode_payload",
    "CorrelatorStats",
    "LifetimeCorrelator",
    "Window",
    "impact",
]
