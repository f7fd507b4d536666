"""JSON encoder and decoder for dependency trees.

Wire shape of a single node::

    {
        "dataKey": "A",
        "data": "A Dependency",
        "finished": false,
        "dependencies": [<node>, ...]
    }

The child array is named after the scheme being walked (``dependencies`` or
``dependants``). A node without children in that direction writes a single
``null`` element instead of an empty array. A payload is either one node
object or an array of them.

Trees are walked with explicit stacks in both directions, so chain depth is
not bounded by the interpreter recursion limit.

Decoding does not restore object sharing: a node reachable from two trees in
the source comes back as two independent nodes.
"""

import json
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from depforest.graph import jsontext
from depforest.graph.exceptions import CircularDependencyError, DependencyDecodeError
from depforest.graph.node import DependencyNode
from depforest.graph.scheme import EqualityMode, SerializingScheme

if TYPE_CHECKING:
    from collections.abc import Iterable

    from depforest.graph.forest import DependencyForest

logger = structlog.get_logger(__name__)


class NodeRecord(BaseModel):
    """Validated wire form of one node.

    Child entries are kept as raw objects and validated one level at a time
    when the decoder reaches them.

    Attributes:
        data_key: Key of the node (``dataKey`` on the wire)
        data: Value of the node
        finished: Finished flag
        dependencies: Raw child objects linked as dependencies, if present
        dependants: Raw child objects linked as dependants, if present
    """

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    data_key: str = Field(alias="dataKey")
    data: str | None = None
    finished: bool = False
    dependencies: list[dict[str, Any] | None] | None = None
    dependants: list[dict[str, Any] | None] | None = None

    @model_validator(mode="after")
    def check_single_direction(self) -> "NodeRecord":
        """Reject records carrying both child arrays."""
        if self.dependencies is not None and self.dependants is not None:
            msg = "A node may carry either 'dependencies' or 'dependants', not both"
            raise ValueError(msg)
        return self

    @property
    def scheme(self) -> SerializingScheme | None:
        """Direction of the child array, or None if the record has none."""
        if self.dependencies is not None:
            return SerializingScheme.DEPENDENCIES
        if self.dependants is not None:
            return SerializingScheme.DEPENDANTS
        return None

    @property
    def children(self) -> list[dict[str, Any]]:
        """Raw child objects with null placeholders removed."""
        entries = self.dependencies if self.dependencies is not None else self.dependants
        return [entry for entry in entries or [] if entry is not None]


# Encoding


def encode_node(node: DependencyNode, scheme: SerializingScheme | None = None) -> dict[str, Any]:
    """Encode a node and its tree in one direction into plain JSON types.

    Args:
        node: The top node of the tree
        scheme: Direction to walk. Defaults to the node's own scheme, and the
            same direction is used for the whole tree.

    Returns:
        Nested dictionaries ready for serialization
    """
    scheme = node.scheme if scheme is None else SerializingScheme(scheme)
    document = _encode_fields(node, scheme)
    stack = [(node, document)]

    while stack:
        current, entry = stack.pop()
        children = current.neighbours(scheme)
        if not children:
            entry[scheme.value].append(None)
            continue
        for child in children:
            child_entry = _encode_fields(child, scheme)
            entry[scheme.value].append(child_entry)
            stack.append((child, child_entry))

    return document


def _encode_fields(node: DependencyNode, scheme: SerializingScheme) -> dict[str, Any]:
    return {
        "dataKey": str(node.key),
        "data": None if node.value is None else str(node.value),
        "finished": node.finished,
        scheme.value: [],
    }


def encode_forest(forest: "DependencyForest") -> list[dict[str, Any]]:
    """Encode every boundary tree of a forest in the forest's scheme."""
    return [encode_node(node, forest.scheme) for node in forest.boundary_nodes()]


def to_json(
    target: "DependencyNode | Iterable[DependencyNode]",
    *,
    scheme: SerializingScheme | None = None,
    indent: int | None = None,
) -> str:
    """Serialize a node as a JSON object, or several nodes as a JSON array.

    Without an indent the output uses compact separators so it is stable
    byte for byte.
    """
    if isinstance(target, DependencyNode):
        document: Any = encode_node(target, scheme)
    else:
        document = [encode_node(node, scheme) for node in target]

    return jsontext.dumps(document, indent=indent)


# Decoding


def decode(
    payload: str | bytes | dict | list,
    *,
    equality: EqualityMode = EqualityMode.KEY,
    skip_invalid: bool = False,
) -> list[DependencyNode[str, str | None]]:
    """Decode one tree or an array of trees into new nodes.

    Args:
        payload: JSON text, or an already parsed object or array
        equality: Equality mode given to every decoded node
        skip_invalid: If True, a top-level tree that fails to decode is logged
            and left out instead of aborting the whole payload

    Returns:
        The top node of every decoded tree, in payload order

    Raises:
        DependencyDecodeError: If the payload is not valid JSON, or a tree is
            malformed or cyclic and skip_invalid is False
    """
    document = _load(payload)
    entries = document if isinstance(document, list) else [document]

    trees: list[DependencyNode[str, str | None]] = []
    for index, entry in enumerate(entries):
        try:
            trees.append(decode_tree(entry, equality=equality))
        except DependencyDecodeError as e:
            if not skip_invalid:
                raise
            logger.warning("invalid_tree_skipped", index=index, key=e.key, error=e.message)

    logger.debug("payload_decoded", tree_count=len(trees), entry_count=len(entries))

    return trees


def decode_tree(
    entry: Any,
    *,
    equality: EqualityMode = EqualityMode.KEY,
) -> DependencyNode[str, str | None]:
    """Decode a single tree object.

    Children are rebuilt depth first and each subtree is linked to its parent
    once it is complete, so a key repeated along one path is caught as a
    cycle.

    Raises:
        DependencyDecodeError: If an object is malformed or the tree is cyclic
    """
    record = _validate(entry)
    top = _new_node(record, equality)
    # Frames: (node, record scheme, iterator over raw children)
    stack = [(top, record.scheme, iter(record.children))]

    while stack:
        node, scheme, pending = stack[-1]
        child_entry = next(pending, None)
        if child_entry is None:
            stack.pop()
            if stack:
                parent, parent_scheme, _ = stack[-1]
                _link(parent, parent_scheme, node)
            continue

        child_record = _validate(child_entry)
        stack.append(
            (_new_node(child_record, equality), child_record.scheme, iter(child_record.children)),
        )

    if record.scheme is not None:
        top.set_serializing_scheme(record.scheme)
    return top


def _load(payload: str | bytes | dict | list) -> Any:
    if not isinstance(payload, (str, bytes, bytearray)):
        return payload

    try:
        text = payload if isinstance(payload, str) else bytes(payload).decode("utf-8-sig")
        return jsontext.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("invalid_json_payload", error=str(e))
        msg = f"Invalid JSON payload: {e}"
        raise DependencyDecodeError(msg) from e


def _validate(entry: Any) -> NodeRecord:
    if not isinstance(entry, dict):
        msg = f"Expected a dependency object, got {type(entry).__name__}"
        raise DependencyDecodeError(msg)

    try:
        return NodeRecord.model_validate(entry)
    except ValidationError as e:
        key = entry.get("dataKey")
        logger.warning("invalid_dependency_record", key=key, error_count=e.error_count())
        msg = f"Invalid dependency tree: {e}"
        raise DependencyDecodeError(msg, key=key) from e


def _new_node(record: NodeRecord, equality: EqualityMode) -> DependencyNode[str, str | None]:
    return DependencyNode(record.data_key, record.data, finished=record.finished, equality=equality)


def _link(
    parent: DependencyNode[str, str | None],
    scheme: SerializingScheme | None,
    child: DependencyNode[str, str | None],
) -> None:
    """Link a completed child subtree to its parent.

    A cycle leaves the partially built parent as it is; nothing is rolled back.
    """
    try:
        if scheme is SerializingScheme.DEPENDENCIES:
            parent.add_dependency(child)
        else:
            child.add_dependency(parent)
    except CircularDependencyError as e:
        logger.warning("circular_dependency_in_payload", key=child.key, parent=parent.key)
        msg = f"Circular reference adding [{child.key}] to [{parent.key}]"
        raise DependencyDecodeError(msg, key=parent.key, node=parent) from e
