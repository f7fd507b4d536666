"""Unit tests for the JSON codec.

Tests cover:
- Decoding single trees and arrays of trees
- Byte-exact round trip of a multi-tree forest
- Null placeholders and both child-array names
- Error conversion for malformed, cyclic and non-JSON payloads
- Skipping invalid trees
- Trees nested past the interpreter recursion limit
"""

import json

import pytest

from depforest.graph import codec
from depforest.graph.exceptions import CircularDependencyError, DependencyDecodeError
from depforest.graph.forest import DependencyForest
from depforest.graph.node import DependencyNode
from depforest.graph.scheme import EqualityMode, SerializingScheme

CHAIN_LENGTH = 1000


def leaf(key: str) -> str:
    return f'{{"dataKey":"{key}","data":"{key} Dependency","finished":false,"dependencies":[null]}}'


def branch(key: str, *children: str) -> str:
    return (
        f'{{"dataKey":"{key}","data":"{key} Dependency","finished":false,'
        f'"dependencies":[{",".join(children)}]}}'
    )


SINGLE_TREE_JSON = branch("X", leaf("Y"))

A_TREE = branch("A", leaf("C"), leaf("D"), leaf("E"))
H_TREE = branch("H", branch("Q", A_TREE), branch("R", A_TREE), branch("S", A_TREE))
SCENARIO_JSON = "[" + ",".join([branch("Z", leaf("F")), branch("X", H_TREE), branch("Y", H_TREE)]) + "]"

CYCLIC_JSON = json.dumps(
    {
        "dataKey": "A",
        "dependencies": [{"dataKey": "B", "dependencies": [{"dataKey": "A", "dependencies": [None]}]}],
    },
)


class TestDecode:
    """Test decoding payloads into nodes."""

    def test_single_tree(self):
        """Test decoding one object into a two-node tree."""
        trees = DependencyNode.from_json(SINGLE_TREE_JSON)

        assert len(trees) == 1
        x = trees[0]
        assert x.key == "X"
        assert x.value == "X Dependency"
        assert x.finished is False
        assert len(x.dependencies) == 1
        assert x.dependencies["Y"].dependants["X"] is x
        assert x.scheme is SerializingScheme.DEPENDENCIES

    def test_single_tree_into_forest(self):
        """Test that a decoded tree forms a forest with one root."""
        forest = DependencyForest()
        forest.add_dependency(DependencyNode.from_json(SINGLE_TREE_JSON)[0])
        forest.set_serializing_scheme(SerializingScheme.DEPENDENCIES)

        assert forest.size() == 2
        assert len(forest.root_nodes) == 1
        assert forest.root_nodes[0].key == "Y"

    def test_dependants_array(self):
        """Test that a dependants array links children as dependants."""
        payload = {
            "dataKey": "Y",
            "data": "lib",
            "dependants": [{"dataKey": "X", "data": "app", "dependants": [None]}],
        }

        y = codec.decode_tree(payload)

        assert y.dependants["X"].dependencies["Y"] is y
        assert y.scheme is SerializingScheme.DEPENDANTS

    def test_null_placeholders_are_dropped(self):
        """Test that null entries in child arrays produce no nodes."""
        y = DependencyNode.from_json('{"dataKey":"Y","dependencies":[null,null]}')[0]

        assert dict(y.dependencies) == {}

    def test_missing_optional_fields(self):
        """Test defaults for a record with only a key."""
        node = codec.decode_tree({"dataKey": "K"})

        assert node.value is None
        assert node.finished is False
        assert node.scheme is SerializingScheme.DEPENDANTS

    def test_finished_flag_preserved(self):
        """Test that the finished flag survives decoding."""
        node = codec.decode_tree({"dataKey": "K", "data": "v", "finished": True})

        assert node.finished is True

    def test_numbers_coerced_to_strings(self):
        """Test that numeric keys and values decode as strings."""
        node = codec.decode_tree({"dataKey": 7, "data": 3})

        assert node.key == "7"
        assert node.value == "3"

    def test_unknown_fields_ignored(self):
        """Test that extra attributes on a record are ignored."""
        node = codec.decode_tree({"dataKey": "K", "owner": "team-a"})

        assert node.key == "K"

    def test_bytes_and_parsed_payloads(self):
        """Test that bytes and already parsed payloads are accepted."""
        from_bytes = codec.decode(SINGLE_TREE_JSON.encode())
        from_object = codec.decode(json.loads(SINGLE_TREE_JSON))

        assert from_bytes[0].key == from_object[0].key == "X"

    def test_equality_mode_applied(self):
        """Test that decoded nodes carry the requested equality mode."""
        x = codec.decode(SINGLE_TREE_JSON, equality=EqualityMode.STRICT)[0]

        assert x.equality is EqualityMode.STRICT
        assert x.dependencies["Y"].equality is EqualityMode.STRICT

    def test_sharing_not_preserved(self):
        """Test that a node repeated in the payload decodes as separate copies."""
        x = codec.decode(SCENARIO_JSON)[1]
        h = x.dependencies["H"]

        a_via_q = h.dependencies["Q"].dependencies["A"]
        a_via_r = h.dependencies["R"].dependencies["A"]

        assert a_via_q is not a_via_r
        assert a_via_q == a_via_r


class TestDecodeErrors:
    """Test error handling during decoding."""

    def test_invalid_json(self):
        """Test that unparsable text raises a decode error."""
        with pytest.raises(DependencyDecodeError, match="Invalid JSON payload") as exc_info:
            codec.decode("{not json")

        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    def test_missing_key(self):
        """Test that a record without dataKey is rejected."""
        with pytest.raises(DependencyDecodeError) as exc_info:
            codec.decode('{"data":"orphan"}')

        assert exc_info.value.key is None

    def test_non_object_entry(self):
        """Test that array entries must be objects."""
        with pytest.raises(DependencyDecodeError, match="Expected a dependency object"):
            codec.decode("[1]")

    def test_both_child_arrays(self):
        """Test that a record with both child arrays is rejected."""
        payload = {"dataKey": "A", "dependencies": [None], "dependants": [None]}

        with pytest.raises(DependencyDecodeError) as exc_info:
            codec.decode(payload)

        assert exc_info.value.key == "A"
        assert "not both" in str(exc_info.value)

    def test_cyclic_payload(self):
        """Test that a cycle in the payload surfaces the circular dependency."""
        with pytest.raises(DependencyDecodeError) as exc_info:
            codec.decode(CYCLIC_JSON)

        error = exc_info.value
        assert error.key == "A"
        assert error.node is not None
        assert error.node.key == "A"
        assert isinstance(error.__cause__, CircularDependencyError)
        assert "Circular reference adding [B] to [A]" in str(error)

    def test_child_with_own_key(self):
        """Test that a child repeating its parent's key is a self-loop."""
        payload = {"dataKey": "A", "dependencies": [{"dataKey": "A", "dependencies": [None]}]}

        with pytest.raises(DependencyDecodeError) as exc_info:
            codec.decode(payload)

        assert exc_info.value.key == "A"

    def test_skip_invalid_trees(self):
        """Test that invalid trees are dropped when skipping is enabled."""
        payload = [json.loads(SINGLE_TREE_JSON), {"data": "no key"}, json.loads(CYCLIC_JSON), {"dataKey": "W"}]

        trees = codec.decode(payload, skip_invalid=True)

        assert [tree.key for tree in trees] == ["X", "W"]

    def test_invalid_tree_aborts_by_default(self):
        """Test that one invalid tree fails the whole payload."""
        payload = [json.loads(SINGLE_TREE_JSON), {"data": "no key"}]

        with pytest.raises(DependencyDecodeError):
            codec.decode(payload)


class TestEncode:
    """Test encoding nodes and forests."""

    def test_null_placeholder_for_childless_node(self):
        """Test that a node without children writes a single null."""
        node = DependencyNode("K", "v")

        assert codec.encode_node(node) == {
            "dataKey": "K",
            "data": "v",
            "finished": False,
            "dependants": [None],
        }

    def test_none_value_written_as_null(self):
        """Test that a missing value is written as JSON null."""
        assert DependencyNode("K").to_json() == '{"dataKey":"K","data":null,"finished":false,"dependants":[null]}'

    def test_values_stringified(self):
        """Test that non-string keys and values are written as strings."""
        encoded = codec.encode_node(DependencyNode(1, 2))

        assert encoded["dataKey"] == "1"
        assert encoded["data"] == "2"

    def test_top_node_scheme_used_for_whole_tree(self):
        """Test that descendants are walked in the top node's direction."""
        x = DependencyNode("X", "X Dependency")
        y = DependencyNode("Y", "Y Dependency")
        x.add_dependency(y)
        x.set_serializing_scheme(SerializingScheme.DEPENDENCIES)
        y.set_serializing_scheme(SerializingScheme.DEPENDANTS)

        assert x.to_json() == SINGLE_TREE_JSON

    def test_multiple_nodes_encode_as_array(self):
        """Test that an iterable of nodes is written as a JSON array."""
        result = codec.to_json([DependencyNode("A"), DependencyNode("B")])

        assert [entry["dataKey"] for entry in json.loads(result)] == ["A", "B"]

    def test_indent(self):
        """Test indented output."""
        result = DependencyNode("K").to_json(indent=2)

        assert result.startswith('{\n  "dataKey": "K"')

    def test_encode_forest(self, scenario_forest_dependencies):
        """Test that a forest encodes one tree per boundary node."""
        encoded = codec.encode_forest(scenario_forest_dependencies)

        assert [tree["dataKey"] for tree in encoded] == ["Z", "X", "Y"]
        assert all("dependencies" in tree for tree in encoded)


class TestRoundTrip:
    """Test decoding a payload and serializing it back."""

    def test_scenario_round_trip_is_exact(self):
        """Test that the multi-tree payload is reproduced byte for byte."""
        forest = DependencyForest(SerializingScheme.DEPENDENCIES)
        for tree in DependencyNode.from_json(SCENARIO_JSON):
            forest.add_dependency(tree)

        assert forest.to_json() == SCENARIO_JSON

    def test_forest_from_json(self):
        """Test the forest constructor that decodes a payload directly."""
        forest = DependencyForest.from_json(SCENARIO_JSON, SerializingScheme.DEPENDENCIES)

        assert forest.size() == 12
        assert {node.key for node in forest.root_nodes} == {"C", "D", "E", "F"}
        assert forest.to_json() == SCENARIO_JSON

    def test_forest_skips_invalid_trees_when_configured(self):
        """Test that a forest configured to skip invalid trees keeps the rest."""
        payload = "[" + SINGLE_TREE_JSON + ',{"data":"no key"}]'

        forest = DependencyForest.from_json(payload, skip_invalid_trees=True)

        assert forest.size() == 2


@pytest.fixture
def scenario_forest_dependencies(scenario) -> DependencyForest:
    """Fixture providing the reference forest serialized along dependencies."""
    forest = DependencyForest(SerializingScheme.DEPENDENCIES)
    forest.add_dependency(scenario["Z"])
    forest.add_dependency(scenario["X"])
    forest.add_dependency(scenario["Y"])
    return forest


def build_chain(length: int) -> DependencyForest:
    """Build a forest holding n0 -> n1 -> ... -> n<length-1>."""
    forest = DependencyForest()
    nodes = [DependencyNode(f"n{i}", f"node {i}") for i in range(length)]
    for dependant, dependency in zip(nodes, nodes[1:]):
        dependant.add_dependency(dependency)
    forest.add_dependency(nodes[0])
    return forest


class TestDeepTrees:
    """Test trees nested deeper than the interpreter recursion limit."""

    def test_long_chain_round_trip(self):
        """Test that a long dependency chain encodes and decodes intact."""
        forest = build_chain(CHAIN_LENGTH)

        payload = forest.to_json()
        restored = DependencyForest.from_json(payload)

        assert len(restored) == CHAIN_LENGTH
        assert [node.key for node in restored.root_nodes] == [f"n{CHAIN_LENGTH - 1}"]
        assert [node.key for node in restored.leaf_nodes] == ["n0"]
        assert restored.to_json() == payload

    def test_long_chain_along_dependencies(self):
        """Test the same chain serialized from its leaf along dependencies."""
        forest = build_chain(CHAIN_LENGTH)
        forest.set_serializing_scheme(SerializingScheme.DEPENDENCIES)

        restored = DependencyForest.from_json(forest.to_json(), SerializingScheme.DEPENDENCIES)

        assert len(restored) == CHAIN_LENGTH
        assert restored.get("n0").get_dependency(f"n{CHAIN_LENGTH - 1}") is not None

    def test_long_chain_indented(self):
        """Test that indented output of a long chain reads back."""
        forest = build_chain(CHAIN_LENGTH)

        restored = DependencyForest.from_json(forest.to_json(indent=1))

        assert len(restored) == CHAIN_LENGTH

    def test_cycle_deep_in_payload(self):
        """Test that a repeated key far down a chain is still reported as a cycle."""
        depth = CHAIN_LENGTH
        opening = "".join(f'{{"dataKey":"k{i}","dependencies":[' for i in range(depth))
        payload = opening + '{"dataKey":"k0","dependencies":[null]}' + "]}" * depth

        with pytest.raises(DependencyDecodeError) as exc_info:
            codec.decode(payload)

        assert isinstance(exc_info.value.__cause__, CircularDependencyError)
        assert exc_info.value.key == "k0"
