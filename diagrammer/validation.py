"""
Topology validation - Check one canvas for structural issues.

Used to gate the Source confirmation and the migration kickoff. Each phase
is validated on its own; Source and Target nodes are never mixed.

Checks for:
- Nodes whose checklist is incomplete - one WARNING for the whole set
- Isolated nodes (no connection in their phase) - one ERROR for the whole
  set, only when the set has more than one node
- Empty canvas - INFO
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .models import ArchitectureDocument, Connection, Node, Phase


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Blocks confirmation and kickoff
    WARNING = "warning"  # Also blocks, but points at missing checklist data
    INFO = "info"        # Informational, never blocks


@dataclass
class ValidationIssue:
    """A single validation issue found on a canvas."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        return result


@dataclass
class TopologyReport:
    """Outcome of validating one phase."""
    warnings: int = 0
    errors: int = 0
    isolated_node_ids: list[str] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.warnings == 0 and self.errors == 0

    def summary(self) -> dict:
        return {
            "total": len(self.issues),
            "errors": self.errors,
            "warnings": self.warnings,
            "info": len([i for i in self.issues if i.severity == IssueSeverity.INFO]),
            "is_complete": self.is_complete,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "warnings": self.warnings,
            "errors": self.errors,
            "isolated_node_ids": list(self.isolated_node_ids),
            "is_complete": self.is_complete,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def validate(nodes: Iterable[Node], connections: Iterable[Connection]) -> TopologyReport:
    """
    Validate a node set against the connections of the same phase.

    Args:
        nodes: Nodes of a single phase
        connections: Connections of that same phase

    Returns:
        A TopologyReport; counts are per check, not per node
    """
    nodes = list(nodes)
    report = TopologyReport()

    if not nodes:
        report.issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Canvas has no components"
        ))
        return report

    # Find connected nodes
    node_ids = {n.id for n in nodes}
    connected: set[str] = set()
    for connection in connections:
        if connection.source_id in node_ids and connection.target_id in node_ids:
            connected.add(connection.source_id)
            connected.add(connection.target_id)

    # Incomplete checklists
    undetailed = [n for n in nodes if not n.is_detailed]
    if undetailed:
        report.warnings += 1
        for node in undetailed:
            report.issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Checklist incomplete for {node.name or node.id}",
                node_id=node.id
            ))

    # Isolated nodes; a lone node has nothing to connect to
    report.isolated_node_ids = [n.id for n in nodes if n.id not in connected]
    if report.isolated_node_ids and len(nodes) > 1:
        report.errors += 1
        labels = [f"{n.name} ({n.id})" for n in nodes if n.id in report.isolated_node_ids]
        report.issues.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            message=f"Isolated components (no connections): {', '.join(labels)}"
        ))

    return report


def validate_phase(document: ArchitectureDocument, phase: Phase) -> TopologyReport:
    """Validate the nodes and active connections of one canvas."""
    return validate(document.nodes_in_phase(phase), document.connections_in_phase(phase))
