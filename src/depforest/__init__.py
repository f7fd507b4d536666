"""Mutable, multi-rooted dependency forests with a JSON interchange format."""

from depforest.graph import (
    CircularDependencyError,
    DependencyDecodeError,
    DependencyForest,
    DependencyForestError,
    DependencyNode,
    EqualityMode,
    ForestValidator,
    SerializingScheme,
    ValidationReport,
    validate_forest,
)

__version__ = "0.1.0"

__all__ = [
    "CircularDependencyError",
    "DependencyDecodeError",
    "DependencyForest",
    "DependencyForestError",
    "DependencyNode",
    "EqualityMode",
    "ForestValidator",
    "SerializingScheme",
    "ValidationReport",
    "validate_forest",
]
