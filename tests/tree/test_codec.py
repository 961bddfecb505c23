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

"""Tests for tree/codec.py - nested JSON export and import."""

import json
import logging

import pytest

from stacktally.constants import INT64_MAX, MAX_JSON_DEPTH
from stacktally.errors import TreeExportError, TreeImportError
from stacktally.tree.codec import deserialize, nesting_depth, read_tree, serialize, write_tree
from stacktally.tree.table import AggregationTree


def test_serialize_shape():
    tree = AggregationTree(["Count", "Size"])
    tree.add(["P", "f1"], [1, 100])
    tree.add(["P", "f2"], [1, 50])

    data = json.loads(serialize(tree))
    assert data == {
        "columnNames": ["Count", "Size"],
        "treeData": [
            {"n": "P", "c": [
                {"n": "f1", "0": 1, "1": 100},
                {"n": "f2", "0": 1, "1": 50},
            ]},
        ],
    }


def test_serialize_empty_tree():
    data = json.loads(serialize(AggregationTree(["Count"])))
    assert data == {"columnNames": ["Count"], "treeData": []}


def test_serialize_escapes_names():
    tree = AggregationTree(["Count"])
    tree.add(['say "hi"\\', "ünïcode"], [1])
    restored = deserialize(serialize(tree))
    assert restored.find(['say "hi"\\', "ünïcode"]).values == [1]


def test_round_trip_preserves_leaves_and_totals(sample_tree):
    restored = deserialize(serialize(sample_tree))

    assert restored.column_names == sample_tree.column_names
    assert restored.leaf_values() == sample_tree.leaf_values()
    assert restored.totals == sample_tree.totals
    assert [p for p, _ in restored.iter_nodes()] == [p for p, _ in sample_tree.iter_nodes()]


def test_import_recomputes_internal_totals():
    text = json.dumps({
        "columnNames": ["Size"],
        "treeData": [{"n": "P", "0": 999, "c": [{"n": "a", "0": 5}, {"n": "b", "0": 7}]}],
    })
    tree = deserialize(text)
    assert tree.find(["P"]).values == [12]
    assert tree.totals == [12]


def test_import_null_name_is_empty_string():
    text = '{"columnNames": ["Count"], "treeData": [{"n": null, "0": 2}]}'
    tree = deserialize(text)
    assert tree.find([""]).values == [2]


def test_import_empty_children_is_zero_node():
    text = '{"columnNames": ["Count"], "treeData": [{"n": "P", "c": []}]}'
    tree = deserialize(text)
    assert tree.find(["P"]).values == [0]
    assert tree.find(["P"]).is_leaf


def test_import_duplicate_sibling_warns(caplog):
    text = json.dumps({
        "columnNames": ["Count"],
        "treeData": [{"n": "P", "0": 1}, {"n": "P", "0": 2}],
    })
    with caplog.at_level(logging.WARNING, logger="stacktally.tree.codec"):
        tree = deserialize(text)

    assert tree.find(["P"]).values == [2]
    assert tree.totals == [3]
    assert "Duplicate sibling" in caplog.text


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        '{"treeData": []}',
        '{"columnNames": ["Count"]}',
        '{"columnNames": [], "treeData": []}',
        '{"columnNames": ["Count"], "treeData": [{"0": 1}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": "P"}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": "P", "0": "1"}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": "P", "0": 1.5}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": "P", "0": true}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": 5, "0": 1}]}',
        '{"columnNames": ["Count"], "treeData": [{"n": "P", "c": {}}]}',
        '{"columnNames": ["Count"], "treeData": [7]}',
    ],
)
def test_malformed_input_rejected(text):
    with pytest.raises(TreeImportError):
        deserialize(text)


def test_leaf_value_outside_int64_rejected():
    text = '{"columnNames": ["Size"], "treeData": [{"n": "P", "0": %d}]}' % (INT64_MAX + 1)
    with pytest.raises(TreeImportError):
        deserialize(text)


def test_recomputed_total_overflow_rejected():
    text = json.dumps({
        "columnNames": ["Size"],
        "treeData": [{"n": "a", "0": INT64_MAX}, {"n": "b", "0": 1}],
    })
    with pytest.raises(TreeImportError):
        deserialize(text)


class TestNestingDepth:
    def test_counts_brackets(self):
        assert nesting_depth('{"a": [1, {"b": []}]}') == 4

    def test_ignores_brackets_in_strings(self):
        assert nesting_depth('{"n": "[[[{{{", "x": "\\"]]]"}') == 1

    def test_too_deep_rejected(self):
        text = "[" * (MAX_JSON_DEPTH + 1) + "]" * (MAX_JSON_DEPTH + 1)
        with pytest.raises(TreeImportError, match="depth"):
            deserialize(text)

    def test_deep_tree_round_trips(self):
        tree = AggregationTree(["Count"])
        path = [f"f{i}" for i in range(300)]
        tree.add(path, [1])

        restored = deserialize(serialize(tree))
        assert restored.find(path).values == [1]
        assert restored.node_count() == 301


class TestFiles:
    def test_write_then_read(self, tmp_path, sample_tree):
        path = write_tree(sample_tree, tmp_path / "out" / "tree.json")

        assert path.exists()
        assert read_tree(path).leaf_values() == sample_tree.leaf_values()

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(TreeImportError, match="File not found"):
            read_tree(tmp_path / "missing.json")

    def test_read_error_names_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        with pytest.raises(TreeImportError, match="bad.json"):
            read_tree(path)

    def test_write_to_directory_fails(self, tmp_path, sample_tree):
        with pytest.raises(TreeExportError, match="Error writing"):
            write_tree(sample_tree, tmp_path)

    def test_write_under_a_file_fails(self, tmp_path, sample_tree):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(TreeExportError):
            write_tree(sample_tree, blocker / "tree.json")

    def test_write_logs_info(self, tmp_path, sample_tree, caplog):
        with caplog.at_level(logging.INFO, logger="stacktally.tree.codec"):
            write_tree(sample_tree, tmp_path / "tree.json")
        assert "Wrote tree" in caplog.text
