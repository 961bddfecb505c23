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

"""Exception types shared across stacktally.

Library code raises these; only the CLI turns them into messages and
exit codes.
"""


class StackTallyError(Exception):
    """Base class for all stacktally errors."""

    pass


class SchemaError(StackTallyError):
    """A value vector does not fit the tree's column schema."""

    pass


class SchemaMismatchError(SchemaError):
    """Two trees with different column schemas were combined."""

    def __init__(self, left: tuple[str, ...], right: tuple[str, ...]):
        self.left = left
        self.right = right
        super().__init__(
            f"Column schemas differ: {list(left)} vs {list(right)}"
        )


class ValueOverflowError(StackTallyError):
    """A value left the signed 64-bit range."""

    pass


class TreeImportError(StackTallyError):
    """A serialized tree could not be read."""

    pass


class TreeExportError(StackTallyError):
    """A tree could not be written to disk."""

    pass


class EventDecodeError(StackTallyError):
    """A single raw event payload could not be decoded."""

    pass


class CorrelatorDrainedError(StackTallyError):
    """drain() was called again without new events."""

    pass


class TraceLoadError(StackTallyError):
    """An events file could not be read."""

    pass


class WindowError(StackTallyError):
    """The analysis window could not be resolved."""

    pass


class NoMatchingProcessError(StackTallyError):
    """No process matched the target filter."""

    pass
