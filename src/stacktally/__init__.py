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

"""stacktally - attribute trace resource usage to call-stack paths.

Public API:
    - LifetimeCorrelator: raw heap events -> LifetimeRecord list
    - impact: signed contribution of one lifetime to an analysis window
    - AggregationTree: path-keyed accumulation with merge / diff
    - read_tree / write_tree: the nested JSON tree format

Example:
    from stacktally import AggregationTree, write_tree

    tree = AggregationTree(["Count", "Size"])
    tree.add(["app.exe", "[Root]", "app.exe!main", ""], [1, 4096])
    write_tree(tree, "app.HeapAllocations.json")
"""

__version__ = "0.3.0"

from stacktally.lifetime import (
    LifetimeCorrelator,
    LifetimeRecord,
    StackSnapshot,
    impact,
)
from stacktally.tree import (
    AggregationTree,
    CollisionPolicy,
    Node,
    deserialize,
    read_tree,
    serialize,
    write_tree,
)

__all__ = [
    "__version__",
    "LifetimeCorrelator",
    "LifetimeRecord",
    "StackSnapshot",
    "impact",
    "AggregationTree",
    "CollisionPolicy",
    "Node",
    "serialize",
    "deserialize",
    "read_tree",
    "write_tree",
]
