"""
Request models for the HTTP API.
"""
from typing import Any

from pydantic import BaseModel, Field

from diagrammer.models import Phase
from diagrammer.placement import CanvasRect, DropPoint


class CanvasModel(BaseModel):
    """Bounding rectangle of the canvas the drop happened on."""
    left: float = 0
    top: float = 0
    width: float = Field(gt=0)
    height: float = Field(gt=0)

    def to_rect(self) -> CanvasRect:
        return CanvasRect(left=self.left, top=self.top, width=self.width, height=self.height)


class DropRequest(BaseModel):
    """Common fields of a drop event."""
    phase: Phase
    client_x: float
    client_y: float
    canvas: CanvasModel

    def drop_point(self) -> DropPoint:
        return DropPoint(client_x=self.client_x, client_y=self.client_y)


class PlaceNodeRequest(DropRequest):
    """Drop a new catalog component."""
    component_type: str


class MoveNodeRequest(DropRequest):
    """Drop an existing node at a new spot."""


class SaveDetailsRequest(BaseModel):
    """Checklist form values keyed by attribute name."""
    details: dict[str, Any] = Field(default_factory=dict)


class ConnectRequest(BaseModel):
    """Connect two nodes directly."""
    source_id: str
    target_id: str


class ClickNodeRequest(BaseModel):
    """One click of the two-click connection protocol."""
    node_id: str
