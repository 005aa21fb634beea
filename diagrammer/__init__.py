"""
Migration Diagrammer core - catalog, models, validation, placement and the
migration state machine.

This package is the single source of truth for diagram rules; the HTTP
backend in `diagrammer_server` only translates requests into calls here.
"""

from .catalog import (
    AttributeKind,
    ComponentCategory,
    ComponentType,
    RequiredAttribute,
    CATALOG,
    get_component_type,
    list_component_types,
)
from .config import PhasePolicy, Settings, settings
from .errors import (
    DiagramError,
    UnknownNodeError,
    UnknownComponentTypeError,
    UnknownJobError,
)
from .models import (
    Phase,
    NodeStatus,
    JobStatus,
    Position,
    Node,
    Connection,
    ArchitectureDocument,
    MigrationJob,
)
from .checklist import compute_is_detailed, missing_attributes, coerce_details
from .validation import validate, validate_phase, TopologyReport, ValidationIssue, IssueSeverity
from .placement import (
    CanvasRect,
    DropPoint,
    PhaseChange,
    Rejection,
    RejectionReason,
    ConnectionSelector,
    ClickOutcome,
    ClickKind,
    place_node,
    move_node,
    connect,
    confirm_source,
    reset_document,
    to_canvas_position,
)
from .migration import MigrationOrchestrator, advance, plan_kickoff, check_kickoff
from .notices import Notice, NoticeBoard, NoticeLevel
from .store import DiagramStore
from .sync import DocumentKey, DocumentSync, JobSync
from .session import EditorSession

__all__ = [
    # Catalog
    "AttributeKind",
    "ComponentCategory",
    "ComponentType",
    "RequiredAttribute",
    "CATALOG",
    "get_component_type",
    "list_component_types",
    # Config
    "PhasePolicy",
    "Settings",
    "settings",
    # Errors
    "DiagramError",
    "UnknownNodeError",
    "UnknownComponentTypeError",
    "UnknownJobError",
    # Models
    "Phase",
    "NodeStatus",
    "JobStatus",
    "Position",
    "Node",
    "Connection",
    "ArchitectureDocument",
    "MigrationJob",
    # Validation
    "compute_is_detailed",
    "missing_attributes",
    "coerce_details",
    "validate",
    "validate_phase",
    "TopologyReport",
    "ValidationIssue",
    "IssueSeverity",
    # Placement
    "CanvasRect",
    "DropPoint",
    "PhaseChange",
    "Rejection",
    "RejectionReason",
    "ConnectionSelector",
    "ClickOutcome",
    "ClickKind",
    "place_node",
    "move_node",
    "connect",
    "confirm_source",
    "reset_document",
    "to_canvas_position",
    # Migration
    "MigrationOrchestrator",
    "advance",
    "plan_kickoff",
    "check_kickoff",
    # Runtime
    "Notice",
    "NoticeBoard",
    "NoticeLevel",
    "DiagramStore",
    "DocumentKey",
    "DocumentSync",
    "JobSync",
    "EditorSession",
]
