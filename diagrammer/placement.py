"""
Placement & connection engine.

Maps drop events to canvas coordinates, creates and moves nodes, and creates
or rejects connections. All functions take the document they act on
explicitly and mutate it in place; user-triggerable rule violations come back
as `Rejection` values with the document left unchanged.

Rejection priority for connections:
1. Endpoints on different canvases   -> CROSS_PHASE
2. Target canvas still locked        -> SOURCE_NOT_CONFIRMED
3. Pair already connected (any order) -> DUPLICATE
4. Node connected to itself          -> SELF_LOOP

Under the confirm-first policy every Target action (placing, moving,
saving details, connecting) waits for a confirmed Source architecture.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .catalog import get_component_type
from .checklist import compute_is_detailed
from .config import PhasePolicy
from .errors import UnknownNodeError
from .models import ArchitectureDocument, Connection, Node, NodeStatus, Phase, Position, utcnow
from .validation import TopologyReport, validate_phase

logger = logging.getLogger(__name__)

# Reset layout parameters (percent of canvas)
RESET_START = 10.0
RESET_SPACING_X = 25.0
RESET_SPACING_Y = 20.0


class RejectionReason(str, Enum):
    """Why a user action was refused."""
    CROSS_PHASE = "CrossPhaseRejected"
    DUPLICATE = "DuplicateRejected"
    SELF_LOOP = "SelfLoopRejected"
    SOURCE_NOT_CONFIRMED = "SourceNotConfirmed"
    SOURCE_INCOMPLETE = "SourceIncomplete"
    KICKOFF_PRECONDITION = "KickoffPreconditionFailed"
    NOT_READY = "EditorNotReady"


@dataclass
class Rejection:
    """A refused action. The document is unchanged."""
    reason: RejectionReason
    message: str
    report: Optional[TopologyReport] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {"reason": self.reason.value, "message": self.message}
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


@dataclass(frozen=True)
class CanvasRect:
    """Bounding rectangle of a drop target, in client pixels."""
    left: float
    top: float
    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Canvas must have a positive size, got {self.width}x{self.height}")


@dataclass(frozen=True)
class DropPoint:
    """Pointer location of a drop, in client pixels."""
    client_x: float
    client_y: float


@dataclass
class PhaseChange:
    """Emitted whenever a node is moved to the other canvas."""
    node_id: str
    from_phase: Phase
    to_phase: Phase

    @property
    def is_migration(self) -> bool:
        return self.from_phase == Phase.SOURCE and self.to_phase == Phase.TARGET

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "from_phase": self.from_phase.value,
            "to_phase": self.to_phase.value,
        }


def to_canvas_position(
    drop_point: DropPoint,
    canvas: CanvasRect,
    node_width_pct: float = 0.0,
    node_height_pct: float = 0.0
) -> Position:
    """
    Convert a drop point to a percentage-of-canvas position.

    Clamped to be non-negative and to keep the node's footprint inside the
    canvas.
    """
    x = (drop_point.client_x - canvas.left) / canvas.width * 100
    y = (drop_point.client_y - canvas.top) / canvas.height * 100
    return Position(
        x=min(max(x, 0.0), max(100.0 - node_width_pct, 0.0)),
        y=min(max(y, 0.0), max(100.0 - node_height_pct, 0.0)),
    )


def _require_node(document: ArchitectureDocument, node_id: str) -> Node:
    node = document.get_node(node_id)
    if node is None:
        raise UnknownNodeError(node_id)
    return node


def _target_locked(document: ArchitectureDocument, phase: Phase, policy: PhasePolicy) -> Optional[Rejection]:
    if phase == Phase.TARGET and policy == PhasePolicy.CONFIRM_FIRST and not document.source_confirmed:
        return Rejection(
            RejectionReason.SOURCE_NOT_CONFIRMED,
            "Confirm the Source architecture before working on the Target canvas"
        )
    return None


def _touch(document: ArchitectureDocument, *phases: Phase):
    """Record a mutation; any Source change withdraws the confirmation."""
    if Phase.SOURCE in phases and document.source_confirmed:
        logger.info("Source architecture changed, confirmation withdrawn")
        document.source_confirmed = False
    document.updated_at = utcnow()


# --- Nodes ---

def place_node(
    document: ArchitectureDocument,
    component_type: str,
    phase: Phase,
    position: Position,
    policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
) -> Union[Node, Rejection]:
    """Create a node of a catalog type on a canvas."""
    type_info = get_component_type(component_type)

    rejection = _target_locked(document, phase, policy)
    if rejection:
        return rejection

    number = document.next_node_id
    node = Node(
        id=f"n{number}",
        component_type=type_info.key,
        name=f"{type_info.name}-{number}",
        phase=phase,
        position=position,
        details={},
    )
    node.is_detailed = compute_is_detailed(node)

    document.nodes.append(node)
    document.next_node_id += 1
    _touch(document, phase)
    return node


def move_node(
    document: ArchitectureDocument,
    node_id: str,
    new_phase: Phase,
    new_position: Position,
    policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
) -> Union[PhaseChange, Rejection, None]:
    """
    Move a node, possibly onto the other canvas.

    Returns a PhaseChange when the node switched canvases, None for a move
    within the same canvas.
    """
    node = _require_node(document, node_id)

    rejection = _target_locked(document, new_phase, policy)
    if rejection:
        return rejection

    if new_phase == node.phase:
        node.position = new_position
        document.updated_at = utcnow()
        return None

    change = PhaseChange(node_id=node.id, from_phase=node.phase, to_phase=new_phase)
    node.phase = new_phase
    node.position = new_position
    _touch(document, change.from_phase, change.to_phase)
    logger.info("Node %s moved from %s to %s", node.id, change.from_phase.value, change.to_phase.value)
    return change


def save_details(
    document: ArchitectureDocument,
    node_id: str,
    details: dict,
    policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
) -> Union[Node, Rejection]:
    """Replace a node's checklist values and recompute `is_detailed`."""
    node = _require_node(document, node_id)
    rejection = _target_locked(document, node.phase, policy)
    if rejection:
        return rejection

    node.details = dict(details)
    node.is_detailed = compute_is_detailed(node)
    _touch(document, node.phase)
    return node


def reset_document(document: ArchitectureDocument) -> ArchitectureDocument:
    """
    Put every node back on the Source canvas, idle, laid out on a grid.

    Connections are kept; Target connections go dormant.
    """
    columns = max(1, int((100 - RESET_START) // RESET_SPACING_X))
    for i, node in enumerate(document.nodes):
        row = i // columns
        col = i % columns
        node.phase = Phase.SOURCE
        node.migration_status = NodeStatus.IDLE
        node.position = Position(
            x=RESET_START + col * RESET_SPACING_X,
            y=min(RESET_START + row * RESET_SPACING_Y, 100.0),
        )
    _touch(document, Phase.SOURCE)
    return document


def confirm_source(document: ArchitectureDocument) -> Union[TopologyReport, Rejection]:
    """Mark the Source architecture as final, if it validates."""
    report = validate_phase(document, Phase.SOURCE)
    if not document.nodes_in_phase(Phase.SOURCE):
        return Rejection(RejectionReason.SOURCE_INCOMPLETE, "Add at least one Source component first", report)
    if not report.is_complete:
        return Rejection(
            RejectionReason.SOURCE_INCOMPLETE,
            f"Source architecture has {report.errors} error(s) and {report.warnings} warning(s)",
            report
        )
    document.source_confirmed = True
    document.updated_at = utcnow()
    return report


# --- Connections ---

def connect(
    document: ArchitectureDocument,
    node_a_id: str,
    node_b_id: str,
    policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
) -> Union[Connection, Rejection]:
    """Connect two nodes on the same canvas."""
    node_a = _require_node(document, node_a_id)
    node_b = _require_node(document, node_b_id)

    if node_a.phase != node_b.phase:
        return Rejection(
            RejectionReason.CROSS_PHASE,
            "Components on different canvases cannot be connected"
        )
    rejection = _target_locked(document, node_a.phase, policy)
    if rejection:
        return rejection
    if document.find_connection(node_a.phase, node_a.id, node_b.id) is not None:
        return Rejection(
            RejectionReason.DUPLICATE,
            f"{node_a.name} and {node_b.name} are already connected"
        )
    if node_a.id == node_b.id:
        return Rejection(RejectionReason.SELF_LOOP, "A component cannot be connected to itself")

    connection = Connection(
        id=f"c{document.next_connection_id}",
        source_id=node_a.id,
        target_id=node_b.id,
        phase=node_a.phase,
    )
    document.connections.append(connection)
    document.next_connection_id += 1
    _touch(document, connection.phase)
    return connection


class ClickKind(str, Enum):
    ARMED = "armed"
    DISARMED = "disarmed"
    CONNECTED = "connected"
    REJECTED = "rejected"


@dataclass
class ClickOutcome:
    kind: ClickKind
    node_id: str
    connection: Optional[Connection] = None
    rejection: Optional[Rejection] = None

    def to_dict(self) -> dict:
        result = {"kind": self.kind.value, "node_id": self.node_id}
        if self.connection is not None:
            result["connection"] = self.connection.model_dump(mode="json")
        if self.rejection is not None:
            result["rejection"] = self.rejection.to_dict()
        return result


class ConnectionSelector:
    """
    Two-click connection protocol.

    The first click arms a node as pending source. Clicking the same node
    again disarms it; clicking another node attempts a connection and
    disarms regardless of the outcome.
    """

    def __init__(self):
        self._armed: Optional[str] = None

    @property
    def armed_node_id(self) -> Optional[str]:
        return self._armed

    def disarm(self):
        self._armed = None

    def click(
        self,
        document: ArchitectureDocument,
        node_id: str,
        policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
    ) -> ClickOutcome:
        _require_node(document, node_id)

        # A remote update may have replaced the document under the armed node
        if self._armed is not None and document.get_node(self._armed) is None:
            self._armed = None

        if self._armed is None:
            self._armed = node_id
            return ClickOutcome(ClickKind.ARMED, node_id)

        if self._armed == node_id:
            self._armed = None
            return ClickOutcome(ClickKind.DISARMED, node_id)

        armed, self._armed = self._armed, None
        result = connect(document, armed, node_id, policy)
        if isinstance(result, Rejection):
            return ClickOutcome(ClickKind.REJECTED, node_id, rejection=result)
        return ClickOutcome(ClickKind.CONNECTED, node_id, connection=result)
