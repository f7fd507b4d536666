"""Exceptions raised by dependency nodes, forests and the JSON codec."""

from typing import Any


class DependencyForestError(Exception):
    """Base exception for dependency forest errors."""


class CircularDependencyError(DependencyForestError):
    """Exception raised when accepting an edge would create a cycle.

    Attributes:
        node: The candidate dependency that would have closed the cycle
        dependant: The node the candidate was being added to, if known
    """

    def __init__(self, node: Any, dependant: Any = None):
        """Initialize the exception with the offending node.

        Args:
            node: The node that cannot be accepted as a dependency
            dependant: The node that attempted to depend on it
        """
        self.node = node
        self.dependant = dependant
        if dependant is None or dependant is node:
            message = f"[{node}] cannot depend on itself"
        else:
            message = f"[{dependant}] cannot depend on [{node}]: circular dependency"
        super().__init__(message)
        self.message = message


class DependencyDecodeError(DependencyForestError):
    """Exception raised when a JSON payload cannot be turned back into nodes.

    Attributes:
        key: Key of the node being rebuilt when decoding failed, if known
        node: The partially built node, if any. It is left as it was.
    """

    def __init__(self, message: str, key: Any = None, node: Any = None):
        super().__init__(message)
        self.message = message
        self.key = key
        self.node = node
