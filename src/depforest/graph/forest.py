"""Forest of dependency graphs with incrementally maintained root and leaf indices.

A DependencyForest registers every node reachable from any node added to it
and keeps two derived indices in step with the edges: root nodes (nothing to
depend on) and leaf nodes (nothing depends on them).

Example:
    >>> forest = DependencyForest()
    >>> x = DependencyNode("X", "X Dependency")
    >>> y = DependencyNode("Y", "Y Dependency")
    >>> forest.add_dependency(x)
    >>> forest.add_dependency(y)
    >>> x.add_dependency(y)
    >>> [node.key for node in forest.root_nodes]
    ['Y']
"""

import threading
from collections import deque
from collections.abc import Hashable, Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from depforest.graph import codec
from depforest.graph.node import DependencyNode
from depforest.graph.scheme import EqualityMode, SerializingScheme

if TYPE_CHECKING:
    from depforest.config import ForestConfig

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class DependencyForest(Generic[K, V]):
    """Registry of nodes reachable from any node added to it.

    Membership is transitively closed: adding one node of a pre-built graph
    absorbs every node reachable from it in either direction. Nodes only hold
    a weak reference back to the forest.

    Thread-safety:
        The member map and the root/leaf indices are guarded by a re-entrant
        lock. Indices are reconciled after each structural change, so they are
        eventually consistent under concurrent mutation of overlapping
        subgraphs rather than linearizable.
    """

    def __init__(
        self,
        scheme: SerializingScheme = SerializingScheme.DEPENDANTS,
        *,
        equality: EqualityMode = EqualityMode.KEY,
        json_indent: int | None = None,
        skip_invalid_trees: bool = False,
    ):
        """Initialize an empty forest.

        Args:
            scheme: Direction used by serialization and rendering
            equality: Equality mode for nodes created through new_node() and
                for decoded nodes
            json_indent: Default indentation for to_json()
            skip_invalid_trees: Whether load_json() drops undecodable trees
                instead of raising
        """
        self._scheme = SerializingScheme(scheme)
        self.equality = EqualityMode(equality)
        self.json_indent = json_indent
        self.skip_invalid_trees = skip_invalid_trees
        self._all_nodes: dict[K, DependencyNode[K, V]] = {}
        self._root_nodes: dict[K, DependencyNode[K, V]] = {}
        self._leaf_nodes: dict[K, DependencyNode[K, V]] = {}
        self._lock = threading.RLock()

        logger.debug(
            "dependency_forest_initialized",
            scheme=self._scheme.value,
            equality=self.equality.value,
        )

    @classmethod
    def from_config(cls, config: "ForestConfig") -> "DependencyForest[Any, Any]":
        """Create an empty forest from forest configuration settings."""
        return cls(
            config.serializing_scheme,
            equality=config.equality,
            json_indent=config.json_indent,
            skip_invalid_trees=config.skip_invalid_trees,
        )

    @classmethod
    def from_json(
        cls,
        payload: str | bytes | dict | list,
        scheme: SerializingScheme = SerializingScheme.DEPENDANTS,
        *,
        equality: EqualityMode = EqualityMode.KEY,
        skip_invalid_trees: bool = False,
    ) -> "DependencyForest[Any, Any]":
        """Decode a JSON payload and absorb every decoded tree into a new forest.

        Raises:
            DependencyDecodeError: If a tree cannot be decoded and
                skip_invalid_trees is False
        """
        forest = cls(scheme, equality=equality, skip_invalid_trees=skip_invalid_trees)
        forest.load_json(payload)
        return forest

    # Membership

    @property
    def scheme(self) -> SerializingScheme:
        return self._scheme

    @property
    def all_nodes(self) -> Mapping[K, DependencyNode[K, V]]:
        """Read-only view of every member keyed by node key."""
        return MappingProxyType(self._all_nodes)

    @property
    def root_nodes(self) -> list[DependencyNode[K, V]]:
        """Members with no dependencies."""
        with self._lock:
            return list(self._root_nodes.values())

    @property
    def leaf_nodes(self) -> list[DependencyNode[K, V]]:
        """Members with no dependants."""
        with self._lock:
            return list(self._leaf_nodes.values())

    def size(self) -> int:
        return len(self._all_nodes)

    def __len__(self) -> int:
        return len(self._all_nodes)

    def __iter__(self) -> Iterator[DependencyNode[K, V]]:
        with self._lock:
            return iter(list(self._all_nodes.values()))

    def __contains__(self, key: object) -> bool:
        return key in self._all_nodes

    def contains_key(self, key: K) -> bool:
        return key in self._all_nodes

    def get(self, key: K) -> DependencyNode[K, V] | None:
        return self._all_nodes.get(key)

    def has_dependency(self, node: DependencyNode[K, V]) -> bool:
        """Check whether a node equal to node is a member."""
        existing = self._all_nodes.get(node.key)
        return existing is not None and existing == node

    def new_node(
        self,
        key: K,
        value: V | None = None,
        *,
        finished: bool = False,
    ) -> DependencyNode[K, V]:
        """Create a node using the forest's equality mode and add it to the forest."""
        node = DependencyNode(key, value, finished=finished, equality=self.equality)
        self.add_dependency(node)
        return node

    def add_dependency(self, node: DependencyNode[K, V]) -> None:
        """Add a node and everything reachable from it to the forest.

        Skipped if an equal node is already a member. Neighbours of skipped
        nodes are not visited through them, so a duplicate copy of a member
        (same key, different object) does not pull its own subgraph in.

        Args:
            node: Node to add

        Raises:
            TypeError: If node is None
        """
        if node is None:
            msg = "Dependency cannot be None"
            raise TypeError(msg)

        if self.has_dependency(node):
            logger.debug("forest_node_already_added", key=node.key)
            return

        node.set_serializing_scheme(self._scheme)

        added = 0
        queue = deque([node])
        while queue:
            current = queue.popleft()
            if not self._admit(current):
                continue
            added += 1
            queue.extend(current.neighbours(SerializingScheme.DEPENDANTS))
            queue.extend(current.neighbours(SerializingScheme.DEPENDENCIES))

        self.update_all_dependencies()

        logger.info("forest_nodes_added", key=node.key, added=added, total=len(self._all_nodes))

    def _admit(self, node: DependencyNode[K, V]) -> bool:
        with self._lock:
            if self.has_dependency(node):
                return False
            replaced = self._all_nodes.get(node.key)
            if replaced is not None and replaced.forest is self:
                replaced._set_forest(None)
            node._set_forest(self)
            node._scheme = self._scheme
            self._all_nodes[node.key] = node

        logger.debug("forest_node_added", key=node.key)
        return True

    def _discard(self, node: DependencyNode[K, V]) -> None:
        """Drop a node from the member map and both indices."""
        with self._lock:
            if self._all_nodes.get(node.key) is node:
                del self._all_nodes[node.key]
            for index in (self._root_nodes, self._leaf_nodes):
                if index.get(node.key) is node:
                    del index[node.key]
            if node.forest is self:
                node._set_forest(None)

        logger.debug("forest_node_discarded", key=node.key)

    def remove_dependency(self, node: DependencyNode[K, V] | K) -> bool:
        """Remove a member and regraft its dependants onto its dependencies.

        Args:
            node: The node, or the key of the node, to remove

        Returns:
            True if a member was found and removed, False otherwise
        """
        key = node.key if isinstance(node, DependencyNode) else node
        stored = self.get(key)
        if stored is None:
            logger.debug("forest_node_not_found", key=key)
            return False

        stored._excise()
        return True

    # Index maintenance

    def update_dependency(self, node: DependencyNode[K, V]) -> None:
        """Reconcile the root and leaf indices for one member."""
        with self._lock:
            if self._all_nodes.get(node.key) is not node:
                return
            _reconcile(self._root_nodes, node, listed=not node.has_dependencies())
            _reconcile(self._leaf_nodes, node, listed=not node.has_dependants())

    def update_all_dependencies(self) -> None:
        """Reconcile the root and leaf indices for every member."""
        with self._lock:
            for index in (self._root_nodes, self._leaf_nodes):
                stale = [
                    key for key, node in index.items() if self._all_nodes.get(key) is not node
                ]
                for key in stale:
                    del index[key]

            for node in list(self._all_nodes.values()):
                self.update_dependency(node)

    def clear(self) -> None:
        """Forget every member. Edges between the former members are untouched."""
        with self._lock:
            for node in self._all_nodes.values():
                if node.forest is self:
                    node._set_forest(None)
            count = len(self._all_nodes)
            self._all_nodes.clear()
            self._root_nodes.clear()
            self._leaf_nodes.clear()

        logger.info("dependency_forest_cleared", removed=count)

    # Scheme, rendering and serialization

    def set_serializing_scheme(self, scheme: SerializingScheme) -> None:
        """Set the forest-wide scheme and push it onto every member."""
        scheme = SerializingScheme(scheme)
        with self._lock:
            self._scheme = scheme
            for node in self._all_nodes.values():
                node._scheme = scheme

        logger.debug("forest_scheme_changed", scheme=scheme.value)

    def boundary_nodes(self) -> list[DependencyNode[K, V]]:
        """Outer boundary opposite to the scheme direction.

        Roots when walking dependants, leaves when walking dependencies, so
        each boundary node's tree covers its part of the forest.
        """
        if self._scheme is SerializingScheme.DEPENDANTS:
            return self.root_nodes
        return self.leaf_nodes

    def all_trees_to_strings(self) -> list[str]:
        return [node.tree_to_string(self._scheme) for node in self.boundary_nodes()]

    def to_json(self, indent: int | None = None) -> str:
        """Serialize every boundary tree as a JSON array.

        Nodes reachable from several boundary nodes are written once per tree.
        """
        if indent is None:
            indent = self.json_indent
        return codec.to_json(self.boundary_nodes(), scheme=self._scheme, indent=indent)

    def load_json(self, payload: str | bytes | dict | list) -> list[DependencyNode[Any, Any]]:
        """Decode a JSON payload and add every decoded tree to this forest.

        Returns:
            The decoded top-level nodes
        """
        trees = codec.decode(
            payload,
            equality=self.equality,
            skip_invalid=self.skip_invalid_trees,
        )
        for tree in trees:
            self.add_dependency(tree)
        return trees

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the current forest state.

        Returns:
            Dictionary with total_nodes, root_nodes, leaf_nodes and total_edges
        """
        with self._lock:
            stats = {
                "total_nodes": len(self._all_nodes),
                "root_nodes": len(self._root_nodes),
                "leaf_nodes": len(self._leaf_nodes),
                "total_edges": sum(
                    len(node.dependencies) for node in self._all_nodes.values()
                ),
            }

        logger.debug("forest_stats_retrieved", **stats)

        return stats


def _reconcile(
    index: dict[Any, DependencyNode],
    node: DependencyNode,
    *,
    listed: bool,
) -> None:
    if listed:
        if index.get(node.key) is not node:
            index[node.key] = node
    elif node.key in index:
        del index[node.key]
