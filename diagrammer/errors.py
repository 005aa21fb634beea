"""
Error hierarchy for the diagram engine.

Only programming-invariant violations are raised as exceptions. Rule
violations a user can trigger (connection rules, kickoff preconditions) are
returned as `Rejection` values instead, see `diagrammer.placement`.
"""


class DiagramError(Exception):
    """Base for all diagram engine errors."""


class UnknownNodeError(DiagramError, KeyError):
    """An operation referenced a node id that is not in the document."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class UnknownComponentTypeError(DiagramError, KeyError):
    """A component type key is not part of the catalog."""

    def __init__(self, type_key: str):
        super().__init__(type_key)
        self.type_key = type_key

    def __str__(self) -> str:
        return f"Unknown component type: {self.type_key}"


class UnknownJobError(DiagramError, KeyError):
    """A job id is not owned by the orchestrator."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Migration job not found: {self.job_id}"
