"""Tests for the placement and connection engine."""
import pytest

from diagrammer.config import PhasePolicy
from diagrammer.errors import UnknownComponentTypeError, UnknownNodeError
from diagrammer.models import Connection, NodeStatus, Phase, Position
from diagrammer.placement import (
    RESET_START, CanvasRect, ClickKind, ConnectionSelector, DropPoint, PhaseChange,
    Rejection, RejectionReason, confirm_source, connect, move_node, place_node,
    reset_document, save_details, to_canvas_position,
)


class TestCanvasPosition:
    """Test drop point to percentage conversion."""

    def test_center_of_canvas(self, canvas):
        position = to_canvas_position(DropPoint(500, 250), canvas)
        assert (position.x, position.y) == (50.0, 50.0)

    def test_offset_canvas(self):
        canvas = CanvasRect(left=100, top=50, width=400, height=200)
        position = to_canvas_position(DropPoint(200, 100), canvas)
        assert (position.x, position.y) == (25.0, 25.0)

    def test_clamped_to_origin(self, canvas):
        position = to_canvas_position(DropPoint(-40, -10), canvas)
        assert (position.x, position.y) == (0.0, 0.0)

    def test_clamped_to_footprint(self, canvas):
        """Test the node's footprint stays inside the canvas."""
        position = to_canvas_position(DropPoint(990, 499), canvas, node_width_pct=12, node_height_pct=10)
        assert (position.x, position.y) == (88.0, 90.0)

    @pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-5, 10)])
    def test_degenerate_canvas(self, width, height):
        with pytest.raises(ValueError):
            CanvasRect(left=0, top=0, width=width, height=height)


class TestPlaceNode:
    """Test node creation."""

    def test_ids_and_names_monotonic(self, document):
        first = place_node(document, "server_vm", Phase.SOURCE, Position())
        second = place_node(document, "database_vm", Phase.SOURCE, Position())

        assert (first.id, first.name) == ("n1", "On-Prem Server (VM)-1")
        assert (second.id, second.name) == ("n2", "Database (VM)-2")
        assert document.next_node_id == 3
        assert first.migration_status == NodeStatus.IDLE

    def test_unknown_type(self, document):
        with pytest.raises(UnknownComponentTypeError):
            place_node(document, "mainframe", Phase.SOURCE, Position())
        assert document.nodes == []

    def test_target_locked_until_confirmed(self, document):
        """Test confirm-first keeps the Target canvas closed."""
        before = document.model_dump()

        result = place_node(document, "cloud_compute", Phase.TARGET, Position())

        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.SOURCE_NOT_CONFIRMED
        assert document.model_dump() == before

    def test_target_open_under_auto_kickoff(self, document):
        result = place_node(
            document, "cloud_compute", Phase.TARGET, Position(), policy=PhasePolicy.AUTO_KICKOFF
        )
        assert result.phase == Phase.TARGET

    def test_target_open_after_confirmation(self, document, builder):
        builder.add("server_vm")
        assert not isinstance(confirm_source(document), Rejection)

        result = place_node(document, "cloud_compute", Phase.TARGET, Position())
        assert result.phase == Phase.TARGET

    def test_source_placement_withdraws_confirmation(self, document, builder):
        builder.add("server_vm")
        confirm_source(document)

        place_node(document, "server_vm", Phase.SOURCE, Position())
        assert document.source_confirmed is False


class TestMoveNode:
    """Test moving nodes within and between canvases."""

    def test_move_within_phase(self, document, builder):
        node = builder.add("server_vm")
        result = move_node(document, node.id, Phase.SOURCE, Position(x=40, y=60))

        assert result is None
        assert (node.position.x, node.position.y) == (40, 60)

    def test_move_within_source_keeps_confirmation(self, document, builder):
        node = builder.add("server_vm")
        confirm_source(document)

        move_node(document, node.id, Phase.SOURCE, Position(x=40, y=60))
        assert document.source_confirmed is True

    def test_move_to_target_emits_phase_change(self, document, builder):
        node = builder.add("server_vm")

        result = move_node(document, node.id, Phase.TARGET, Position(), policy=PhasePolicy.AUTO_KICKOFF)

        assert isinstance(result, PhaseChange)
        assert result.is_migration
        assert result.to_dict() == {"node_id": node.id, "from_phase": "Source", "to_phase": "Target"}
        assert node.phase == Phase.TARGET

    def test_move_back_is_not_migration(self, document, builder):
        node = builder.add("cloud_compute", Phase.TARGET)

        result = move_node(document, node.id, Phase.SOURCE, Position(), policy=PhasePolicy.AUTO_KICKOFF)
        assert isinstance(result, PhaseChange)
        assert not result.is_migration

    def test_move_to_locked_target(self, document, builder):
        node = builder.add("server_vm")
        result = move_node(document, node.id, Phase.TARGET, Position(x=5, y=5))

        assert result.reason == RejectionReason.SOURCE_NOT_CONFIRMED
        assert node.phase == Phase.SOURCE
        assert (node.position.x, node.position.y) == (10, 10)

    def test_leaving_source_withdraws_confirmation(self, document, builder):
        first, second = builder.complete_source(2)
        confirm_source(document)

        move_node(document, first.id, Phase.TARGET, Position())
        assert document.source_confirmed is False

    def test_unknown_node(self, document):
        with pytest.raises(UnknownNodeError):
            move_node(document, "n99", Phase.SOURCE, Position())


class TestConnect:
    """Test connection creation and rejection."""

    def test_connect_same_phase(self, document, builder):
        a = builder.add("server_vm")
        b = builder.add("database_vm")

        connection = connect(document, a.id, b.id)

        assert isinstance(connection, Connection)
        assert connection.id == "c1"
        assert connection.phase == Phase.SOURCE
        assert document.next_connection_id == 2

    @pytest.mark.parametrize("reverse", [False, True])
    def test_duplicate_in_either_order(self, document, builder, reverse):
        a = builder.add("server_vm")
        b = builder.add("database_vm")
        connect(document, a.id, b.id)

        args = (b.id, a.id) if reverse else (a.id, b.id)
        result = connect(document, *args)

        assert result.reason == RejectionReason.DUPLICATE
        assert len(document.connections) == 1

    def test_cross_phase(self, document, builder):
        source = builder.add("server_vm")
        target = builder.add("cloud_compute", Phase.TARGET)

        result = connect(document, source.id, target.id)
        assert result.reason == RejectionReason.CROSS_PHASE
        assert connect(document, target.id, source.id).reason == RejectionReason.CROSS_PHASE
        assert document.connections == []

    def test_self_loop(self, document, builder):
        node = builder.add("server_vm")
        result = connect(document, node.id, node.id)
        assert result.reason == RejectionReason.SELF_LOOP
        assert document.connections == []

    def test_unknown_node(self, document, builder):
        node = builder.add("server_vm")
        with pytest.raises(UnknownNodeError):
            connect(document, node.id, "n42")

    def test_connection_goes_dormant_when_endpoint_leaves(self, document, builder):
        """Test a connection stays recorded but inactive across a phase move."""
        a, b = builder.complete_source(2)
        move_node(document, b.id, Phase.TARGET, Position(), policy=PhasePolicy.AUTO_KICKOFF)

        assert len(document.connections) == 1
        assert document.connections_in_phase(Phase.SOURCE) == []
        assert document.connections_in_phase(Phase.TARGET) == []

        move_node(document, b.id, Phase.SOURCE, Position(), policy=PhasePolicy.AUTO_KICKOFF)
        assert len(document.connections_in_phase(Phase.SOURCE)) == 1


class TestConnectionSelector:
    """Test the two-click protocol."""

    def test_arm_then_connect(self, document, builder):
        a = builder.add("server_vm")
        b = builder.add("database_vm")
        selector = ConnectionSelector()

        assert selector.click(document, a.id).kind == ClickKind.ARMED
        assert selector.armed_node_id == a.id

        outcome = selector.click(document, b.id)
        assert outcome.kind == ClickKind.CONNECTED
        assert outcome.connection.pair == frozenset((a.id, b.id))
        assert selector.armed_node_id is None

    def test_click_same_node_disarms(self, document, builder):
        a = builder.add("server_vm")
        selector = ConnectionSelector()

        selector.click(document, a.id)
        outcome = selector.click(document, a.id)

        assert outcome.kind == ClickKind.DISARMED
        assert selector.armed_node_id is None
        assert document.connections == []

    def test_rejected_attempt_disarms(self, document, builder):
        source = builder.add("server_vm")
        target = builder.add("cloud_compute", Phase.TARGET)
        selector = ConnectionSelector()

        selector.click(document, source.id)
        outcome = selector.click(document, target.id)

        assert outcome.kind == ClickKind.REJECTED
        assert outcome.to_dict()["rejection"]["reason"] == "CrossPhaseRejected"
        assert selector.armed_node_id is None

    def test_vanished_armed_node_rearms(self, document, builder):
        a = builder.add("server_vm")
        b = builder.add("server_vm")
        selector = ConnectionSelector()
        selector.click(document, a.id)

        document.nodes.remove(a)
        outcome = selector.click(document, b.id)

        assert outcome.kind == ClickKind.ARMED
        assert selector.armed_node_id == b.id


class TestConfirmAndReset:
    """Test Source confirmation and reset."""

    def test_confirm_requires_nodes(self, document):
        result = confirm_source(document)
        assert result.reason == RejectionReason.SOURCE_INCOMPLETE
        assert document.source_confirmed is False

    def test_confirm_requires_complete_topology(self, document, builder):
        builder.add("server_vm")
        builder.add("server_vm")

        result = confirm_source(document)
        assert result.reason == RejectionReason.SOURCE_INCOMPLETE
        assert result.report.errors == 1

    def test_confirm_single_detailed_node(self, document, builder):
        builder.add("server_vm")
        report = confirm_source(document)
        assert report.is_complete
        assert document.source_confirmed is True

    def test_reset(self, document, builder):
        source = builder.add("server_vm")
        target = builder.add("cloud_compute", Phase.TARGET)
        target.migration_status = NodeStatus.SUCCEEDED
        document.source_confirmed = True

        reset_document(document)

        assert all(n.phase == Phase.SOURCE for n in document.nodes)
        assert all(n.migration_status == NodeStatus.IDLE for n in document.nodes)
        assert (source.position.x, source.position.y) == (RESET_START, RESET_START)
        assert target.position.x > source.position.x
        assert document.source_confirmed is False
        assert target.details != {}


class TestTargetLock:
    """Test every Target action waits for the Source confirmation."""

    def _withdrawn(self, document, builder):
        """Confirm Source, open two Target nodes, then edit Source again."""
        source = builder.add("server_vm")
        assert not isinstance(confirm_source(document), Rejection)
        first = place_node(document, "cloud_compute", Phase.TARGET, Position())
        second = place_node(document, "virtual_network", Phase.TARGET, Position())

        save_details(document, source.id, {})
        assert document.source_confirmed is False
        return first, second

    def test_target_connect_locked(self, document, builder):
        first, second = self._withdrawn(document, builder)

        result = connect(document, first.id, second.id)

        assert result.reason == RejectionReason.SOURCE_NOT_CONFIRMED
        assert document.connections == []

    def test_target_details_locked(self, document, builder, valid_details):
        first, _ = self._withdrawn(document, builder)

        result = save_details(document, first.id, valid_details["cloud_compute"])

        assert result.reason == RejectionReason.SOURCE_NOT_CONFIRMED
        assert first.details == {}
        assert first.is_detailed is False

    def test_target_reposition_locked(self, document, builder):
        first, _ = self._withdrawn(document, builder)

        result = move_node(document, first.id, Phase.TARGET, Position(x=70, y=70))

        assert result.reason == RejectionReason.SOURCE_NOT_CONFIRMED
        assert (first.position.x, first.position.y) == (0, 0)

    def test_moving_back_to_source_allowed(self, document, builder):
        first, _ = self._withdrawn(document, builder)

        result = move_node(document, first.id, Phase.SOURCE, Position())
        assert isinstance(result, PhaseChange)

    def test_selector_respects_lock(self, document, builder):
        first, second = self._withdrawn(document, builder)
        selector = ConnectionSelector()

        selector.click(document, first.id)
        outcome = selector.click(document, second.id)

        assert outcome.kind == ClickKind.REJECTED
        assert outcome.rejection.reason == RejectionReason.SOURCE_NOT_CONFIRMED

    def test_auto_kickoff_never_locks(self, document, builder):
        first, second = self._withdrawn(document, builder)

        result = connect(document, first.id, second.id, policy=PhasePolicy.AUTO_KICKOFF)
        assert isinstance(result, Connection)
