"""Forest validation with detailed invariant checks and reporting.

This module audits a DependencyForest against the invariants the node and
forest operations maintain: edge symmetry, acyclicity, membership closure and
root/leaf index correctness. It also renders the forest for visual inspection.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from depforest.graph.scheme import SerializingScheme

if TYPE_CHECKING:
    from depforest.graph.forest import DependencyForest
    from depforest.graph.node import DependencyNode

logger = structlog.get_logger(__name__)


@dataclass
class ValidationReport:
    """Report containing validation results for a dependency forest.

    Attributes:
        is_valid: Whether the forest passed all validation checks
        errors: List of error messages (critical issues)
        warnings: List of warning messages (potential issues)
        cycles: List of detected cycles, each represented as a list of keys
        asymmetric_edges: (dependant, dependency) key pairs recorded on one side only
        missing_members: Keys reachable from members but not registered
        stale_roots: Keys whose root index entry disagrees with the edges
        stale_leaves: Keys whose leaf index entry disagrees with the edges
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    asymmetric_edges: list[tuple[str, str]] = field(default_factory=list)
    missing_members: set[str] = field(default_factory=set)
    stale_roots: set[str] = field(default_factory=set)
    stale_leaves: set[str] = field(default_factory=set)

    def add_error(self, message: str) -> None:
        """Add an error message and mark validation as failed."""
        self.errors.append(message)
        self.is_valid = False
        logger.error("validation_error", message=message)

    def add_warning(self, message: str) -> None:
        """Add a warning message without failing validation."""
        self.warnings.append(message)
        logger.warning("validation_warning", message=message)

    def summary(self) -> str:
        """Generate a human-readable summary of the validation report."""
        lines = []
        lines.append(f"Validation Status: {'PASS' if self.is_valid else 'FAIL'}")
        lines.append(f"Errors: {len(self.errors)}")
        lines.append(f"Warnings: {len(self.warnings)}")
        lines.append(f"Cycles: {len(self.cycles)}")
        lines.append(f"Asymmetric Edges: {len(self.asymmetric_edges)}")
        lines.append(f"Missing Members: {len(self.missing_members)}")

        if self.errors:
            lines.append("\nErrors:")
            lines.extend(f"  - {error}" for error in self.errors)

        if self.warnings:
            lines.append("\nWarnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)

        if self.cycles:
            lines.append("\nCycles Detected:")
            for i, cycle in enumerate(self.cycles, 1):
                lines.append(f"  {i}. {' -> '.join(cycle)}")

        if self.missing_members:
            lines.append(f"\nMissing Members: {', '.join(sorted(self.missing_members))}")

        return "\n".join(lines)


class ForestValidator:
    """Validator for dependency forests with detailed error reporting.

    Checks performed:
    - Edge symmetry between dependencies and dependants
    - Cycle detection with the complete cycle path
    - Membership closure (everything reachable is registered)
    - Root and leaf index correctness
    """

    def validate(self, forest: "DependencyForest") -> ValidationReport:
        """Validate a dependency forest and generate a detailed report.

        Args:
            forest: The DependencyForest to validate

        Returns:
            ValidationReport containing all validation results
        """
        members = list(forest)
        logger.info("starting_forest_validation", node_count=len(members))

        report = ValidationReport()

        self._check_symmetry(members, report)

        cycles = self._detect_cycles(members)
        if cycles:
            report.cycles = cycles
            for cycle in cycles:
                report.add_error(f"Cycle detected: {' -> '.join(cycle)}")

        self._check_closure(forest, members, report)
        self._check_indices(forest, members, report)

        logger.info(
            "forest_validation_complete",
            is_valid=report.is_valid,
            error_count=len(report.errors),
            warning_count=len(report.warnings),
        )

        return report

    def _check_symmetry(self, members: list["DependencyNode"], report: ValidationReport) -> None:
        for node in members:
            for dependency in node.neighbours(SerializingScheme.DEPENDENCIES):
                if dependency.dependants.get(node.key) is not node:
                    report.asymmetric_edges.append((str(node.key), str(dependency.key)))
                    report.add_error(
                        f"[{node.key}] depends on [{dependency.key}] "
                        "but is not listed as its dependant",
                    )
            for dependant in node.neighbours(SerializingScheme.DEPENDANTS):
                if dependant.dependencies.get(node.key) is not node:
                    report.asymmetric_edges.append((str(dependant.key), str(node.key)))
                    report.add_error(
                        f"[{dependant.key}] is listed as a dependant of [{node.key}] "
                        "but does not depend on it",
                    )

    def _detect_cycles(self, members: list["DependencyNode"]) -> list[list[str]]:
        """Detect cycles along dependency edges using iterative DFS.

        Returns:
            List of cycles, each a list of keys starting and ending with the
            same key
        """
        visited: set[int] = set()
        cycles: list[list[str]] = []

        for start in members:
            if id(start) in visited:
                continue

            path: list[DependencyNode] = []
            on_path: set[int] = set()
            stack: list[tuple[DependencyNode, list[DependencyNode]]] = [
                (start, start.neighbours(SerializingScheme.DEPENDENCIES)),
            ]
            visited.add(id(start))
            path.append(start)
            on_path.add(id(start))

            while stack:
                node, pending = stack[-1]
                if not pending:
                    stack.pop()
                    path.pop()
                    on_path.discard(id(node))
                    continue

                dependency = pending.pop()
                if id(dependency) in on_path:
                    cycle_start = next(
                        i for i, item in enumerate(path) if item is dependency
                    )
                    cycle = [str(item.key) for item in path[cycle_start:]]
                    cycles.append([*cycle, str(dependency.key)])
                elif id(dependency) not in visited:
                    visited.add(id(dependency))
                    path.append(dependency)
                    on_path.add(id(dependency))
                    stack.append(
                        (dependency, dependency.neighbours(SerializingScheme.DEPENDENCIES)),
                    )

        return cycles

    def _check_closure(
        self,
        forest: "DependencyForest",
        members: list["DependencyNode"],
        report: ValidationReport,
    ) -> None:
        """Check that every neighbour of a member is itself registered.

        A neighbour that is a different object with a registered key is only a
        warning; decoding produces such copies for nodes shared between trees.
        """
        duplicates: set[str] = set()

        for node in members:
            for scheme in SerializingScheme:
                for neighbour in node.neighbours(scheme):
                    registered = forest.get(neighbour.key)
                    if registered is neighbour:
                        continue
                    if registered is None:
                        report.missing_members.add(str(neighbour.key))
                    else:
                        duplicates.add(str(neighbour.key))

        if report.missing_members:
            missing = ", ".join(sorted(report.missing_members))
            report.add_error(f"Nodes reachable from the forest but not registered: {missing}")

        if duplicates:
            report.add_warning(
                f"Nodes shadowed by a registered copy with the same key: {', '.join(sorted(duplicates))}",
            )

    def _check_indices(
        self,
        forest: "DependencyForest",
        members: list["DependencyNode"],
        report: ValidationReport,
    ) -> None:
        expected_roots = {id(node) for node in members if node.is_root}
        expected_leaves = {id(node) for node in members if node.is_leaf}
        actual_roots = {id(node): node for node in forest.root_nodes}
        actual_leaves = {id(node): node for node in forest.leaf_nodes}
        by_id = {id(node): node for node in members}

        for node_id in expected_roots ^ actual_roots.keys():
            node = by_id.get(node_id) or actual_roots[node_id]
            report.stale_roots.add(str(node.key))
        for node_id in expected_leaves ^ actual_leaves.keys():
            node = by_id.get(node_id) or actual_leaves[node_id]
            report.stale_leaves.add(str(node.key))

        if report.stale_roots:
            report.add_error(f"Root index out of date for: {', '.join(sorted(report.stale_roots))}")
        if report.stale_leaves:
            report.add_error(f"Leaf index out of date for: {', '.join(sorted(report.stale_leaves))}")

    def generate_visualization(
        self,
        forest: "DependencyForest",
        output_format: str = "mermaid",
    ) -> str:
        """Generate a visual representation of the forest's dependency edges.

        Args:
            forest: The DependencyForest to visualize
            output_format: Output format ('mermaid' or 'dot')

        Returns:
            String representation of the forest in the requested format

        Raises:
            ValueError: If an unsupported format is requested
        """
        output_format = output_format.lower().strip()
        edges = self._edges(forest)
        keys = sorted(str(node.key) for node in forest)

        if output_format == "mermaid":
            return self._generate_mermaid(keys, edges)
        if output_format == "dot":
            return self._generate_graphviz(keys, edges)
        error_msg = f"Unsupported format: {output_format}. Use 'mermaid' or 'dot'."
        raise ValueError(error_msg)

    @staticmethod
    def _edges(forest: "DependencyForest") -> list[tuple[str, str]]:
        """Return sorted (dependency, dependant) key pairs."""
        pairs: list[tuple[str, str]] = []
        for node in forest:
            pairs.extend(
                (str(dependency.key), str(node.key))
                for dependency in node.neighbours(SerializingScheme.DEPENDENCIES)
            )
        return sorted(pairs)

    def _generate_mermaid(self, keys: list[str], edges: list[tuple[str, str]]) -> str:
        """Generate a Mermaid flowchart; arrows point from dependency to dependant."""
        lines = ["graph TD"]

        if not keys:
            lines.append("    Empty[Empty Forest]")
            return "\n".join(lines)

        def sanitize(key: str) -> str:
            return "".join(ch if ch.isalnum() else "_" for ch in key)

        lines.extend(f"    {sanitize(key)}[{key}]" for key in keys)
        lines.extend(f"    {sanitize(dep)} --> {sanitize(dependant)}" for dep, dependant in edges)

        return "\n".join(lines)

    def _generate_graphviz(self, keys: list[str], edges: list[tuple[str, str]]) -> str:
        """Generate a Graphviz DOT representation."""

        def escape_dot_string(s: str) -> str:
            return s.replace('"', '\\"')

        lines = ["digraph DependencyForest {"]
        lines.append("    rankdir=LR;")
        lines.append("    node [shape=box, style=rounded];")

        if not keys:
            lines.append('    Empty [label="Empty Forest"];')
        else:
            lines.extend(f'    "{escape_dot_string(key)}";' for key in keys)
            lines.extend(
                f'    "{escape_dot_string(dep)}" -> "{escape_dot_string(dependant)}";'
                for dep, dependant in edges
            )

        lines.append("}")
        return "\n".join(lines)


def validate_forest(forest: "DependencyForest") -> ValidationReport:
    """Validate a forest with a fresh ForestValidator."""
    return ForestValidator().validate(forest)


