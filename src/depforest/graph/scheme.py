"""Traversal direction and equality settings shared by nodes, forests and the codec."""

from enum import Enum


class SerializingScheme(str, Enum):
    """Direction that recursive operations walk.

    The value doubles as the JSON field name of the child array written by
    the codec.
    """

    DEPENDENCIES = "dependencies"
    DEPENDANTS = "dependants"

    @property
    def opposite(self) -> "SerializingScheme":
        """Return the other direction."""
        if self is SerializingScheme.DEPENDENCIES:
            return SerializingScheme.DEPENDANTS
        return SerializingScheme.DEPENDENCIES


class EqualityMode(str, Enum):
    """How two nodes are compared.

    KEY compares keys only. STRICT also requires equal values and equal
    finished flags.
    """

    KEY = "key"
    STRICT = "strict"
