"""Shared fixtures for graph tests."""

import pytest

from depforest.graph.node import DependencyNode


@pytest.fixture
def scenario() -> dict[str, DependencyNode]:
    """Fixture providing the reference graph, keyed by node key.

    C             Q               X
    D ->  A   ->  R   ->  H   ->  Y
    E             S

    F ------------------------>   Z
    """
    nodes = {key: DependencyNode(key, f"{key} Dependency") for key in "ACDEFHQRSXYZ"}

    for key in "CDE":
        nodes["A"].add_dependency(nodes[key])
    nodes["Z"].add_dependency(nodes["F"])
    for key in "QRS":
        nodes[key].add_dependency(nodes["A"])
        nodes["H"].add_dependency(nodes[key])
    nodes["X"].add_dependency(nodes["H"])
    nodes["Y"].add_dependency(nodes["H"])

    return nodes
