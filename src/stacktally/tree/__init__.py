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

"""Path-keyed aggregation tree and its JSON form."""

from stacktally.tree.table import (
    AggregationTree,
    CollisionPolicy,
    Node,
)
from stacktally.tree.codec import (
    deserialize,
    read_tree,
    serialize,
    write_tree,
)
from stacktally.tree.render import TreeTextRenderer, render_tree

__all__ = [
    "AggregationTree",
    "CollisionPolicy",
    "Node",
    "serialize",
    "deserialize",
    "read_tree",
    "write_tree",
    "TreeTextRenderer",
    "render_tree",
]
