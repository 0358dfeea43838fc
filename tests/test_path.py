"""Tests for the persistent path helpers."""

import pytest

from refrax import assoc_in, dissoc_in, get_in, update_in


class TestGetIn:
    def test_nested_lookup(self):
        tree = {"a": {"b": [10, 20]}}
        assert get_in(tree, ("a", "b", 1)) == 20

    def test_missing_returns_default(self):
        tree = {"a": {}}
        assert get_in(tree, ("a", "x")) is None
        assert get_in(tree, ("a", "x", "y"), 7) == 7
        assert get_in(None, ("a",)) is None

    def test_empty_path_is_tree(self):
        tree = {"a": 1}
        assert get_in(tree, ()) is tree

    def test_index_out_of_range(self):
        assert get_in({"xs": [1]}, ("xs", 3), "none") == "none"


class TestAssocIn:
    def test_does_not_mutate(self):
        tree = {"a": {"b": 1}, "c": {"d": 2}}
        new = assoc_in(tree, ("a", "b"), 5)
        assert tree == {"a": {"b": 1}, "c": {"d": 2}}
        assert new == {"a": {"b": 5}, "c": {"d": 2}}

    def test_shares_untouched_branches(self):
        tree = {"a": {"b": 1}, "c": {"d": 2}}
        new = assoc_in(tree, ("a", "b"), 5)
        assert new["c"] is tree["c"]
        assert new["a"] is not tree["a"]

    def test_same_value_returns_same_tree(self):
        inner = {"b": 1}
        tree = {"a": inner}
        assert assoc_in(tree, ("a", "b"), 1) is tree

    def test_creates_missing_mappings(self):
        assert assoc_in({}, ("a", "b"), 1) == {"a": {"b": 1}}

    def test_tuple_keeps_type(self):
        new = assoc_in({"xs": (1, 2)}, ("xs", 0), 9)
        assert new["xs"] == (9, 2)
        assert isinstance(new["xs"], tuple)

    def test_scalar_in_the_way(self):
        with pytest.raises(TypeError):
            assoc_in({"a": 1}, ("a", "b"), 2)


class TestUpdateAndDissoc:
    def test_update_in(self):
        tree = {"n": 1}
        assert update_in(tree, ("n",), lambda v, k: v + k, 4) == {"n": 5}
        assert tree == {"n": 1}

    def test_dissoc_in(self):
        tree = {"tasks": {1: "a", 2: "b"}, "other": {}}
        new = dissoc_in(tree, ("tasks", 1))
        assert new == {"tasks": {2: "b"}, "other": {}}
        assert tree["tasks"] == {1: "a", 2: "b"}
        assert new["other"] is tree["other"]

    def test_dissoc_missing_is_noop(self):
        tree = {"tasks": {}}
        assert dissoc_in(tree, ("tasks", 1)) is tree
        assert dissoc_in(tree, ("nope", 1)) is tree

    def test_dissoc_from_list(self):
        assert dissoc_in({"xs": [1, 2, 3]}, ("xs", 1)) == {"xs": [1, 3]}
