"""Dependency node with bidirectional edge bookkeeping and cycle-safe mutation.

A DependencyNode records the nodes it depends on (``dependencies``) and keeps
the reverse view (``dependants``) in step with it. Edges are only accepted if
they keep the dependency graph acyclic.

Example:
    >>> build = DependencyNode("build", "Compile sources")
    >>> fetch = DependencyNode("fetch", "Fetch sources")
    >>> build.add_dependency(fetch)
    >>> build.has_dependency("fetch")
    True
    >>> fetch.add_dependency(build)  # Raises CircularDependencyError
"""

import threading
import weakref
from collections import deque
from collections.abc import Callable, Hashable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from depforest.graph.exceptions import CircularDependencyError
from depforest.graph.scheme import EqualityMode, SerializingScheme

if TYPE_CHECKING:
    from depforest.graph.forest import DependencyForest

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class DependencyNode(Generic[K, V]):
    """A vertex in a dependency graph.

    The node holds a key, an opaque value and a caller-controlled finished
    flag. ``B in A.dependencies`` always implies ``A in B.dependants``.

    Thread-safety:
        Each node guards its own adjacency maps with a re-entrant lock, so
        single inserts and removals are atomic. Operations spanning several
        nodes (edge symmetry, forest membership) are not transactional; callers
        that need strict consistency must serialize mutations externally.

    Attributes:
        value: Payload associated with the key
        finished: Caller-controlled status flag
        equality: How this node compares to other nodes
    """

    def __init__(
        self,
        key: K,
        value: V | None = None,
        *,
        finished: bool = False,
        equality: EqualityMode = EqualityMode.KEY,
    ):
        """Initialize a standalone node with no edges and no forest.

        Args:
            key: Unique, immutable identity of the node
            value: Payload associated with the key
            finished: Initial finished flag
            equality: KEY to compare by key only, STRICT to also compare
                value and finished flag

        Raises:
            TypeError: If key is None
        """
        if key is None:
            msg = "Dependency key cannot be None"
            raise TypeError(msg)

        self._key = key
        self.value = value
        self.finished = finished
        self.equality = EqualityMode(equality)
        self._dependencies: dict[K, DependencyNode[K, V]] = {}
        self._dependants: dict[K, DependencyNode[K, V]] = {}
        self._forest_ref: weakref.ref | None = None
        self._scheme = SerializingScheme.DEPENDANTS
        self._lock = threading.RLock()

    @property
    def key(self) -> K:
        """Identity of the node."""
        return self._key

    @property
    def dependencies(self) -> Mapping[K, "DependencyNode[K, V]"]:
        """Read-only view of the nodes this node depends on."""
        return MappingProxyType(self._dependencies)

    @property
    def dependants(self) -> Mapping[K, "DependencyNode[K, V]"]:
        """Read-only view of the nodes that depend on this node."""
        return MappingProxyType(self._dependants)

    @property
    def scheme(self) -> SerializingScheme:
        """Direction walked by size, rendering and serialization."""
        return self._scheme

    @property
    def forest(self) -> "DependencyForest[K, V] | None":
        """The forest this node belongs to, if it is still alive."""
        if self._forest_ref is None:
            return None
        return self._forest_ref()

    def _set_forest(self, forest: "DependencyForest[K, V] | None") -> None:
        self._forest_ref = None if forest is None else weakref.ref(forest)

    def has_dependencies(self) -> bool:
        return bool(self._dependencies)

    def has_dependants(self) -> bool:
        return bool(self._dependants)

    @property
    def is_root(self) -> bool:
        """True if this node depends on nothing."""
        return not self._dependencies

    @property
    def is_leaf(self) -> bool:
        """True if nothing depends on this node."""
        return not self._dependants

    # Edge bookkeeping

    def _edges(self, scheme: SerializingScheme) -> dict[K, "DependencyNode[K, V]"]:
        if scheme is SerializingScheme.DEPENDENCIES:
            return self._dependencies
        return self._dependants

    def neighbours(self, scheme: SerializingScheme) -> list["DependencyNode[K, V]"]:
        """Snapshot of the adjacent nodes in the given direction."""
        with self._lock:
            return list(self._edges(scheme).values())

    def _put_edge(self, scheme: SerializingScheme, node: "DependencyNode[K, V]") -> None:
        with self._lock:
            self._edges(scheme)[node.key] = node

    def _drop_edge(self, scheme: SerializingScheme, node: "DependencyNode[K, V]") -> None:
        with self._lock:
            edges = self._edges(scheme)
            if edges.get(node.key) is node:
                del edges[node.key]

    def _find(
        self,
        target: Any,
        scheme: SerializingScheme,
    ) -> "DependencyNode[K, V] | None":
        """Breadth-first search for a node matching target in one direction.

        A node target matches by node equality, anything else is treated as a
        key. The nearest match wins, so a direct neighbour is always preferred
        over a deeper node with the same key.
        """
        matches = _matcher(target)
        seen: set[int] = set()
        queue = deque(self.neighbours(scheme))

        while queue:
            current = queue.popleft()
            if id(current) in seen:
                continue
            seen.add(id(current))

            if matches(current):
                return current

            queue.extend(current.neighbours(scheme))

        return None

    def _validate_new_dependency(self, candidate: "DependencyNode[K, V]") -> None:
        """Raise CircularDependencyError if self may not depend on candidate.

        Args:
            candidate: The node about to become a dependency of self

        Raises:
            CircularDependencyError: On a self-loop, or if candidate already
                reaches self through its own dependencies
        """
        if candidate is self or candidate.key == self._key:
            logger.warning("self_dependency_rejected", key=self._key)
            raise CircularDependencyError(candidate)

        if candidate._find(self, SerializingScheme.DEPENDENCIES) is not None:
            logger.warning(
                "circular_dependency_rejected",
                dependant=self._key,
                dependency=candidate.key,
            )
            raise CircularDependencyError(candidate, self)

    # Mutation

    def add_dependency(self, candidate: "DependencyNode[K, V]") -> None:
        """Declare that this node depends on candidate.

        Re-adding an equal dependency is a no-op. If a dependency with the
        same key but a different identity under STRICT equality is already
        stored, candidate replaces it.

        Args:
            candidate: The node this node depends on

        Raises:
            TypeError: If candidate is None
            CircularDependencyError: If the edge would create a cycle
        """
        if candidate is None:
            msg = "Dependency cannot be None"
            raise TypeError(msg)

        self._validate_new_dependency(candidate)

        with self._lock:
            existing = self._dependencies.get(candidate.key)
            if existing is not None and existing == candidate:
                logger.debug(
                    "dependency_already_present",
                    dependant=self._key,
                    dependency=candidate.key,
                )
                return
            self._dependencies[candidate.key] = candidate

        if existing is not None:
            existing._drop_edge(SerializingScheme.DEPENDANTS, self)
            logger.debug("dependency_replaced", dependant=self._key, dependency=candidate.key)

        candidate._put_edge(SerializingScheme.DEPENDANTS, self)
        candidate.set_serializing_scheme(self._scheme)

        logger.debug("dependency_added", dependant=self._key, dependency=candidate.key)

        forest = self.forest or candidate.forest
        if forest is not None:
            forest.add_dependency(self)
            forest.add_dependency(candidate)
            forest.update_all_dependencies()

    def remove_dependency(self, victim: "DependencyNode[K, V] | K") -> bool:
        """Remove a node from this node's dependency subgraph.

        The stored node matching victim is detached from every neighbour and
        from its forest. Its former dependants are then regrafted directly onto
        its former dependencies. A regraft that would create a cycle is skipped;
        the child is already connected to that dependency through another path.

        Args:
            victim: The node, or the key of the node, to remove

        Returns:
            True if a node was found and removed, False otherwise
        """
        stored = self._find(victim, SerializingScheme.DEPENDENCIES)
        if stored is None:
            logger.debug("dependency_not_found", dependant=self._key, target=str(victim))
            return False

        stored._excise()
        return True

    def _excise(self) -> None:
        """Detach this node from the graph and regraft its neighbours."""
        children = self.neighbours(SerializingScheme.DEPENDANTS)
        parents = self.neighbours(SerializingScheme.DEPENDENCIES)

        for child in children:
            child._drop_edge(SerializingScheme.DEPENDENCIES, self)
        for parent in parents:
            parent._drop_edge(SerializingScheme.DEPENDANTS, self)

        with self._lock:
            self._dependencies.clear()
            self._dependants.clear()

        forest = self.forest
        if forest is not None:
            forest._discard(self)

        for child in children:
            for parent in parents:
                try:
                    child.add_dependency(parent)
                except CircularDependencyError:
                    logger.debug("regraft_skipped", child=child.key, parent=parent.key)

        if forest is not None:
            forest.update_all_dependencies()

        logger.info(
            "dependency_removed",
            key=self._key,
            dependant_count=len(children),
            dependency_count=len(parents),
        )

    def set_serializing_scheme(self, scheme: SerializingScheme) -> None:
        """Set the scheme on this node and on everything it depends on.

        Propagation always follows the dependencies edges, whichever
        direction is being set.
        """
        scheme = SerializingScheme(scheme)
        seen: set[int] = set()
        stack: list[DependencyNode[K, V]] = [self]

        while stack:
            current = stack.pop()
            if id(current) in seen:
                continue
            seen.add(id(current))
            current._scheme = scheme
            stack.extend(current.neighbours(SerializingScheme.DEPENDENCIES))

    # Queries

    def has_dependency(self, other: "DependencyNode[K, V] | K") -> bool:
        """Check whether other is a direct or transitive dependency."""
        return self._find(other, SerializingScheme.DEPENDENCIES) is not None

    def has_dependant(self, other: "DependencyNode[K, V] | K") -> bool:
        """Check whether other is a direct or transitive dependant."""
        return self._find(other, SerializingScheme.DEPENDANTS) is not None

    def get_dependency(self, key: K) -> "DependencyNode[K, V] | None":
        """Return the stored dependency with the given key, searching transitively."""
        return self._find(key, SerializingScheme.DEPENDENCIES)

    def get_dependant(self, key: K) -> "DependencyNode[K, V] | None":
        """Return the stored dependant with the given key, searching transitively."""
        return self._find(key, SerializingScheme.DEPENDANTS)

    def get_root_nodes(self) -> list["DependencyNode[K, V]"]:
        """Return every reachable node that depends on nothing.

        A node without dependencies is its own root.
        """
        return self._collect_boundary(SerializingScheme.DEPENDENCIES)

    def get_leaf_nodes(self) -> list["DependencyNode[K, V]"]:
        """Return every reachable node that nothing depends on.

        A node without dependants is its own leaf.
        """
        return self._collect_boundary(SerializingScheme.DEPENDANTS)

    def _collect_boundary(self, scheme: SerializingScheme) -> list["DependencyNode[K, V]"]:
        found: list[DependencyNode[K, V]] = []
        seen: set[int] = set()
        stack: list[DependencyNode[K, V]] = [self]

        while stack:
            current = stack.pop()
            if id(current) in seen:
                continue
            seen.add(id(current))

            neighbours = current.neighbours(scheme)
            if neighbours:
                stack.extend(reversed(neighbours))
            else:
                found.append(current)

        return found

    def get_routes_to_root_nodes(self) -> list[list["DependencyNode[K, V]"]]:
        """Enumerate every path from this node to each reachable root.

        Each route starts with this node and ends with a root. A node with
        several dependencies forks the route, so shared sub-paths appear once
        per route. Routes are sorted by length, shortest first.

        Example:
            >>> # a -> b -> c, a -> c
            >>> [[n.key for n in route] for route in a.get_routes_to_root_nodes()]
            [['a', 'c'], ['a', 'b', 'c']]
        """
        routes: list[list[DependencyNode[K, V]]] = []
        self._collect_routes([self], routes)
        return sorted(routes, key=len)

    def _collect_routes(
        self,
        path: list["DependencyNode[K, V]"],
        routes: list[list["DependencyNode[K, V]"]],
    ) -> None:
        parents = self.neighbours(SerializingScheme.DEPENDENCIES)
        if not parents:
            routes.append(path)
            return

        for parent in parents:
            parent._collect_routes([*path, parent], routes)

    def size(self, scheme: SerializingScheme | None = None) -> int:
        """Count this node plus the size of every neighbour in the scheme direction.

        Shared descendants are counted once per path that reaches them, so
        this is not a unique node count.
        """
        scheme = self._scheme if scheme is None else SerializingScheme(scheme)
        return 1 + sum(child.size(scheme) for child in self.neighbours(scheme))

    # Rendering and serialization

    def tree_to_string(self, scheme: SerializingScheme | None = None) -> str:
        """Render the tree reachable in the scheme direction as indented text.

        Example:
            >>> print(x.tree_to_string(SerializingScheme.DEPENDENCIES))
            ===> [X dependencies=(1)] <===
            -Y(0)
            -<< NO DEPENDENCIES >>
        """
        scheme = self._scheme if scheme is None else SerializingScheme(scheme)
        parts: list[str] = []
        self._render(scheme, 0, parts)
        return "".join(parts)

    def dependency_tree_to_string(self) -> str:
        return self.tree_to_string(SerializingScheme.DEPENDENCIES)

    def dependant_tree_to_string(self) -> str:
        return self.tree_to_string(SerializingScheme.DEPENDANTS)

    def _render(self, scheme: SerializingScheme, depth: int, parts: list[str]) -> None:
        children = self.neighbours(scheme)
        if depth == 0:
            parts.append(f"===> [{self._key} {scheme.value}=({len(children)})] <===\n")
        else:
            parts.append(f"{'-' * depth}{self}({len(children)})\n")

        if not children:
            parts.append(f"{'-' * depth}<< NO {scheme.value.upper()} >>\n")
            return

        for child in children:
            child._render(scheme, depth + 1, parts)

    def to_json(self, indent: int | None = None) -> str:
        """Serialize this node and its tree in the current scheme direction."""
        from depforest.graph import codec

        return codec.to_json(self, indent=indent)

    @classmethod
    def from_json(
        cls,
        payload: str | bytes,
        equality: EqualityMode = EqualityMode.KEY,
    ) -> list["DependencyNode[Any, Any]"]:
        """Decode one tree or an array of trees into new nodes.

        Raises:
            DependencyDecodeError: If the payload is malformed or cyclic
        """
        from depforest.graph import codec

        return codec.decode(payload, equality=equality)

    # Identity

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, DependencyNode):
            return NotImplemented
        if self._key != other._key:
            return False
        if EqualityMode.STRICT in (self.equality, other.equality):
            return self.value == other.value and self.finished == other.finished
        return True

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return str(self._key)

    def __repr__(self) -> str:
        return (
            f"DependencyNode(key={self._key!r}, value={self.value!r}, "
            f"finished={self.finished!r})"
        )


def _matcher(target: Any) -> Callable[[DependencyNode], bool]:
    if isinstance(target, DependencyNode):
        return lambda node: node == target
    return lambda node: node.key == target
