"""
Core data models for migration diagrams.

These models define the canonical schema of an architecture document:
- Nodes placed on either the Source ("before") or Target ("after") canvas
- Undirected connections between two nodes of the same phase
- Document counters and the Source confirmation flag
- Migration jobs created at kickoff

Positions are stored as percentages of the canvas (0-100 on both axes) and
are only used for hit-testing and wire endpoints, never for business rules.
"""

import copy
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .catalog import CATALOG


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    """Which canvas a node or connection belongs to."""
    SOURCE = "Source"
    TARGET = "Target"

    @property
    def other(self) -> "Phase":
        return Phase.TARGET if self is Phase.SOURCE else Phase.SOURCE


class NodeStatus(str, Enum):
    """Cosmetic mirror of the newest migration job for a node."""
    IDLE = "Idle"
    MIGRATING = "Migrating"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class JobStatus(str, Enum):
    """Lifecycle of a migration job."""
    INITIATING = "Initiating"
    REPLICATING = "Replicating"
    CUTOVER_PENDING = "CutoverPending"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Position(BaseModel):
    """Percentage-of-canvas coordinate."""
    x: float = 0.0
    y: float = 0.0


class Node(BaseModel):
    """A component placed on one of the canvases."""
    id: str
    component_type: str
    name: str = ""
    phase: Phase = Phase.SOURCE
    position: Position = Field(default_factory=Position)
    details: dict[str, Any] = Field(default_factory=dict)
    is_detailed: bool = False
    migration_status: NodeStatus = NodeStatus.IDLE

    @field_validator("component_type")
    @classmethod
    def check_component_type(cls, value: str) -> str:
        if value not in CATALOG:
            raise ValueError(f"Unknown component type: {value}")
        return value


class Connection(BaseModel):
    """
    An undirected edge between two nodes of the same phase.

    `source_id`/`target_id` record the click order only; {a, b} and {b, a}
    are the same connection.
    """
    id: str
    source_id: str
    target_id: str
    phase: Phase

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.source_id, self.target_id))

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_id, self.target_id)


class ArchitectureDocument(BaseModel):
    """
    The full diagram state.
    This is what gets written to and received from the realtime store.
    """
    id: str = Field(default_factory=lambda: f"diagram-{uuid.uuid4().hex[:8]}")
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    next_node_id: int = 1
    next_connection_id: int = 1
    source_confirmed: bool = False
    updated_at: datetime = Field(default_factory=utcnow)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")

    @classmethod
    def from_json_dict(cls, data: dict) -> "ArchitectureDocument":
        """Create a document from a JSON dict, tolerating missing fields."""
        return cls.model_validate(data)

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by ID (O(n) - documents are small)."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_in_phase(self, phase: Phase) -> list[Node]:
        return [n for n in self.nodes if n.phase == phase]

    def connections_in_phase(self, phase: Phase) -> list[Connection]:
        """
        Active connections of a phase.

        A connection whose endpoint has since moved to the other canvas stays
        recorded but is left out until both endpoints are back.
        """
        in_phase = {n.id for n in self.nodes if n.phase == phase}
        return [
            c for c in self.connections
            if c.phase == phase and c.source_id in in_phase and c.target_id in in_phase
        ]

    def find_connection(self, phase: Phase, node_a: str, node_b: str) -> Optional[Connection]:
        """Find a recorded connection for an unordered pair in a phase."""
        pair = frozenset((node_a, node_b))
        for connection in self.connections:
            if connection.phase == phase and connection.pair == pair:
                return connection
        return None


class MigrationJob(BaseModel):
    """One simulated migration work item created at kickoff."""
    id: str = Field(default_factory=lambda: f"job-{uuid.uuid4().hex[:8]}")
    source_component_id: str
    source_component_name: str
    source_details: dict[str, Any] = Field(default_factory=dict)
    target_component_name: str
    status: JobStatus = JobStatus.INITIATING
    requested_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    external_job_id: str = Field(default_factory=lambda: f"mgn-{uuid.uuid4().hex[:12]}")

    @field_validator("source_details", mode="before")
    @classmethod
    def freeze_details(cls, value: Any) -> Any:
        # The snapshot must never alias the live node's details
        return copy.deepcopy(value)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")


JOB_TO_NODE_STATUS = {
    JobStatus.INITIATING: NodeStatus.MIGRATING,
    JobStatus.REPLICATING: NodeStatus.MIGRATING,
    JobStatus.CUTOVER_PENDING: NodeStatus.MIGRATING,
    JobStatus.COMPLETED: NodeStatus.SUCCEEDED,
    JobStatus.FAILED: NodeStatus.FAILED,
}
