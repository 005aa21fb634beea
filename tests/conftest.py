"""
Test configuration and fixtures for migration diagrammer tests.
"""
import copy
import random

import pytest

from diagrammer.config import PhasePolicy, Settings
from diagrammer.models import ArchitectureDocument, Node, Phase, Position
from diagrammer.placement import CanvasRect, connect, place_node, save_details


VALID_DETAILS = {
    "server_vm": {
        "Hostname": "app01.corp.local",
        "Operating System": "RHEL 8.6",
        "vCPU Count": 4,
        "Memory GB": 16,
        "Production Workload": True,
    },
    "database_vm": {
        "Engine": "PostgreSQL",
        "Engine Version": "13.4",
        "Storage GB": 250,
        "Peak Connections": 300,
        "High Availability": False,
    },
    "load_balancer": {"Listener Port": 443, "Protocol": "HTTPS", "Health Check Path": "/health"},
    "network_gateway": {"CIDR Block": "10.0.0.0/16", "Firewall Enabled": True},
    "cloud_compute": {"Instance Type": "m5.large", "Image ID": "ami-0abc1234", "vCPU Count": 2},
    "managed_database": {
        "Engine": "aurora-postgresql",
        "Instance Class": "db.r6g.large",
        "Allocated Storage GB": 100,
        "Multi-AZ": True,
    },
    "lb_target": {"Target Port": 8080, "Protocol": "HTTP"},
    "virtual_network": {"CIDR Block": "10.1.0.0/16", "Subnet Count": 4},
    "internet": {},
}


class DiagramBuilder:
    """Builds documents directly through the engine, without phase gating."""

    def __init__(self, document: ArchitectureDocument):
        self.document = document

    def add(self, component_type: str, phase: Phase = Phase.SOURCE, detailed: bool = True) -> Node:
        node = place_node(
            self.document, component_type, phase, Position(x=10, y=10),
            policy=PhasePolicy.AUTO_KICKOFF
        )
        if detailed:
            save_details(
                self.document, node.id, dict(VALID_DETAILS[component_type]),
                policy=PhasePolicy.AUTO_KICKOFF
            )
        return node

    def link(self, node_a: Node, node_b: Node):
        return connect(self.document, node_a.id, node_b.id, policy=PhasePolicy.AUTO_KICKOFF)

    def complete_source(self, count: int = 3) -> list[Node]:
        """A chain of detailed Source servers."""
        nodes = [self.add("server_vm") for _ in range(count)]
        for a, b in zip(nodes, nodes[1:]):
            self.link(a, b)
        return nodes

    def complete_target(self) -> list[Node]:
        """A detailed compute instance behind a virtual network."""
        compute = self.add("cloud_compute", Phase.TARGET)
        network = self.add("virtual_network", Phase.TARGET)
        self.link(compute, network)
        return [compute, network]


@pytest.fixture
def document():
    """A fresh, empty document."""
    return ArchitectureDocument()


@pytest.fixture
def builder(document):
    return DiagramBuilder(document)


@pytest.fixture
def canvas():
    """A 1000x500 canvas at the page origin."""
    return CanvasRect(left=0, top=0, width=1000, height=500)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def test_settings():
    """Settings with a fast tick and no save debounce."""
    return Settings(
        tick_interval_seconds=0.01,
        save_debounce_seconds=0,
        failure_probability=0.1,
        phase_policy=PhasePolicy.CONFIRM_FIRST,
    )


@pytest.fixture
def valid_details():
    """A fresh copy of the complete sample checklist values per component type."""
    return copy.deepcopy(VALID_DETAILS)
