"""
Diagram Store - owns the architecture document of one editor.

This module implements:
- The single canonical document (both canvases, counters, confirmation flag)
- Named operations delegating to the placement engine
- Change callbacks for persistence and real-time sync
- Phase change callbacks so crossing canvases is never silent
"""

import logging
from typing import Any, Callable, Optional, Union

from .catalog import get_component_type
from .checklist import coerce_details
from .config import PhasePolicy
from .errors import UnknownNodeError
from .models import ArchitectureDocument, Connection, Node, NodeStatus, Phase, Position
from .placement import (
    CanvasRect, ClickOutcome, ConnectionSelector, DropPoint, PhaseChange, Rejection,
    confirm_source, connect, move_node, place_node, reset_document, save_details,
    to_canvas_position,
)
from .validation import TopologyReport, validate_phase

logger = logging.getLogger(__name__)


class DiagramStore:
    """
    Holds one ArchitectureDocument and applies user operations to it.

    Every successful mutation notifies the change callbacks exactly once;
    rejected operations leave the document and callbacks untouched.
    """

    def __init__(
        self,
        document: Optional[ArchitectureDocument] = None,
        policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST,
        node_width_pct: float = 0.0,
        node_height_pct: float = 0.0
    ):
        self._document = document or ArchitectureDocument()
        self._policy = policy
        self._node_width_pct = node_width_pct
        self._node_height_pct = node_height_pct
        self._selector = ConnectionSelector()
        self._editing_node_id: Optional[str] = None
        self._on_change_callbacks: list[Callable[[], None]] = []
        self._on_phase_change_callbacks: list[Callable[[PhaseChange], None]] = []

    # --- Properties ---

    @property
    def document(self) -> ArchitectureDocument:
        return self._document

    @property
    def policy(self) -> PhasePolicy:
        return self._policy

    @property
    def editing_node_id(self) -> Optional[str]:
        """Node waiting for its checklist to be filled in (set right after placement)."""
        return self._editing_node_id

    @property
    def armed_node_id(self) -> Optional[str]:
        return self._selector.armed_node_id

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for document changes."""
        self._on_change_callbacks.append(callback)

    def on_phase_change(self, callback: Callable[[PhaseChange], None]):
        """Register a callback for nodes crossing canvases."""
        self._on_phase_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    # --- Document ---

    def replace_document(self, document: ArchitectureDocument):
        """Swap in a whole document (remote update or load)."""
        self._document = document
        if self._editing_node_id and document.get_node(self._editing_node_id) is None:
            self._editing_node_id = None
        self._notify_change()

    def new_document(self) -> ArchitectureDocument:
        """Start an empty document; id counters carry over so ids are never reused."""
        self._selector.disarm()
        self._editing_node_id = None
        self.replace_document(ArchitectureDocument(
            next_node_id=self._document.next_node_id,
            next_connection_id=self._document.next_connection_id,
        ))
        return self._document

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._document.get_node(node_id)

    def require_node(self, node_id: str) -> Node:
        node = self._document.get_node(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node

    def _position(self, drop_point: DropPoint, canvas: CanvasRect) -> Position:
        return to_canvas_position(drop_point, canvas, self._node_width_pct, self._node_height_pct)

    # --- Node Operations ---

    def place_node(
        self,
        component_type: str,
        phase: Phase,
        drop_point: DropPoint,
        canvas: CanvasRect
    ) -> Union[Node, Rejection]:
        """Drop a new catalog component onto a canvas."""
        result = place_node(self._document, component_type, phase, self._position(drop_point, canvas), self._policy)
        if isinstance(result, Rejection):
            return result

        self._editing_node_id = result.id
        logger.info("Placed %s on %s canvas", result.id, phase.value)
        self._notify_change()
        return result

    def move_node(
        self,
        node_id: str,
        phase: Phase,
        drop_point: DropPoint,
        canvas: CanvasRect
    ) -> Union[PhaseChange, Rejection, None]:
        """Drop an existing node at a new spot, possibly on the other canvas."""
        result = move_node(self._document, node_id, phase, self._position(drop_point, canvas), self._policy)
        if isinstance(result, Rejection):
            return result

        if isinstance(result, PhaseChange):
            if self._selector.armed_node_id == node_id:
                self._selector.disarm()
            for callback in self._on_phase_change_callbacks:
                callback(result)

        self._notify_change()
        return result

    def save_details(self, node_id: str, raw_details: dict[str, Any]) -> Union[Node, Rejection]:
        """Store checklist values from the edit form."""
        node = self.require_node(node_id)
        details = coerce_details(get_component_type(node.component_type), raw_details)
        result = save_details(self._document, node_id, details, self._policy)
        if isinstance(result, Rejection):
            return result

        if self._editing_node_id == node_id:
            self._editing_node_id = None
        self._notify_change()
        return node

    def close_editor(self):
        self._editing_node_id = None

    def set_migration_status(self, node_id: str, status: NodeStatus) -> Optional[Node]:
        """Mirror a job status onto its node; skipped if the node is gone."""
        node = self._document.get_node(node_id)
        if node is None:
            logger.debug("Status update for missing node %s ignored", node_id)
            return None
        if node.migration_status != status:
            node.migration_status = status
            self._notify_change()
        return node

    def reset(self) -> ArchitectureDocument:
        """Move everything back to the Source canvas."""
        self._selector.disarm()
        reset_document(self._document)
        self._notify_change()
        return self._document

    # --- Connection Operations ---

    def connect(self, node_a_id: str, node_b_id: str) -> Union[Connection, Rejection]:
        result = connect(self._document, node_a_id, node_b_id, self._policy)
        if not isinstance(result, Rejection):
            self._notify_change()
        return result

    def click_node(self, node_id: str) -> ClickOutcome:
        """Feed one click into the two-click connection protocol."""
        outcome = self._selector.click(self._document, node_id, self._policy)
        if outcome.connection is not None:
            self._notify_change()
        return outcome

    # --- Validation ---

    def validate(self, phase: Phase) -> TopologyReport:
        return validate_phase(self._document, phase)

    def confirm_source(self) -> Union[TopologyReport, Rejection]:
        result = confirm_source(self._document)
        if not isinstance(result, Rejection):
            self._notify_change()
        return result

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "document": self._document.to_json_dict(),
            "policy": self._policy.value,
            "editing_node_id": self._editing_node_id,
            "armed_node_id": self._selector.armed_node_id,
            "validation": {
                phase.value: self.validate(phase).to_dict() for phase in Phase
            },
        }
