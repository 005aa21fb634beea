"""
Component catalog - the closed set of boxes a user can place.

Each component type declares the ordered checklist of attributes that must be
filled in before a node of that type counts as "detailed". The required
fields are always taken from here, never inferred from stored node data.
"""

from dataclasses import dataclass, field
from enum import Enum

from .errors import UnknownComponentTypeError


class AttributeKind(str, Enum):
    """Value kinds a checklist attribute can hold."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"


class ComponentCategory(str, Enum):
    """Visual grouping for the toolbox (cosmetic only)."""
    SERVER = "server"
    DATABASE = "database"
    NETWORK = "network"
    CLOUD = "cloud"


@dataclass(frozen=True)
class RequiredAttribute:
    """One checklist entry."""
    name: str
    help_text: str
    kind: AttributeKind


@dataclass(frozen=True)
class ComponentType:
    """A catalog entry."""
    key: str
    name: str
    category: ComponentCategory
    required_attributes: tuple[RequiredAttribute, ...] = field(default_factory=tuple)
    is_compute: bool = False  # Eligible as the nominal destination of a migration job

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "name": self.name,
            "category": self.category.value,
            "is_compute": self.is_compute,
            "required_attributes": [
                {"name": a.name, "help_text": a.help_text, "kind": a.kind.value}
                for a in self.required_attributes
            ],
        }


def _text(name: str, help_text: str) -> RequiredAttribute:
    return RequiredAttribute(name, help_text, AttributeKind.TEXT)


def _number(name: str, help_text: str) -> RequiredAttribute:
    return RequiredAttribute(name, help_text, AttributeKind.NUMBER)


def _boolean(name: str, help_text: str) -> RequiredAttribute:
    return RequiredAttribute(name, help_text, AttributeKind.BOOLEAN)


CATALOG: dict[str, ComponentType] = {
    t.key: t for t in (
        ComponentType(
            key="server_vm",
            name="On-Prem Server (VM)",
            category=ComponentCategory.SERVER,
            required_attributes=(
                _text("Hostname", "Fully qualified host name"),
                _text("Operating System", "Distribution and version, e.g. RHEL 8.6"),
                _number("vCPU Count", "Allocated virtual CPUs"),
                _number("Memory GB", "Allocated memory in GiB"),
                _boolean("Production Workload", "Does this host serve production traffic?"),
            ),
        ),
        ComponentType(
            key="database_vm",
            name="Database (VM)",
            category=ComponentCategory.DATABASE,
            required_attributes=(
                _text("Engine", "Database engine, e.g. PostgreSQL"),
                _text("Engine Version", "Major and minor version"),
                _number("Storage GB", "Used storage in GiB"),
                _number("Peak Connections", "Highest observed concurrent connections"),
                _boolean("High Availability", "Is a replica or cluster configured?"),
            ),
        ),
        ComponentType(
            key="load_balancer",
            name="Load Balancer",
            category=ComponentCategory.NETWORK,
            required_attributes=(
                _number("Listener Port", "Port the balancer accepts traffic on"),
                _text("Protocol", "HTTP, HTTPS or TCP"),
                _text("Health Check Path", "Path probed on each backend"),
            ),
        ),
        ComponentType(
            key="network_gateway",
            name="Network Gateway",
            category=ComponentCategory.NETWORK,
            required_attributes=(
                _text("CIDR Block", "Address range routed through the gateway"),
                _boolean("Firewall Enabled", "Is traffic filtered at the gateway?"),
            ),
        ),
        ComponentType(
            key="cloud_compute",
            name="Cloud Compute Instance",
            category=ComponentCategory.CLOUD,
            is_compute=True,
            required_attributes=(
                _text("Instance Type", "Instance size, e.g. m5.large"),
                _text("Image ID", "Machine image the instance boots from"),
                _number("vCPU Count", "Virtual CPUs of the instance type"),
            ),
        ),
        ComponentType(
            key="managed_database",
            name="Managed Database",
            category=ComponentCategory.DATABASE,
            required_attributes=(
                _text("Engine", "Managed engine, e.g. aurora-postgresql"),
                _text("Instance Class", "Instance class, e.g. db.r6g.large"),
                _number("Allocated Storage GB", "Provisioned storage in GiB"),
                _boolean("Multi-AZ", "Deployed across availability zones?"),
            ),
        ),
        ComponentType(
            key="lb_target",
            name="Load Balancer Target",
            category=ComponentCategory.CLOUD,
            required_attributes=(
                _number("Target Port", "Port traffic is forwarded to"),
                _text("Protocol", "Protocol used towards the targets"),
            ),
        ),
        ComponentType(
            key="virtual_network",
            name="Virtual Network",
            category=ComponentCategory.NETWORK,
            required_attributes=(
                _text("CIDR Block", "Address range of the network"),
                _number("Subnet Count", "Number of subnets"),
            ),
        ),
        ComponentType(
            key="internet",
            name="Internet / Users",
            category=ComponentCategory.NETWORK,
        ),
    )
}


def get_component_type(type_key: str) -> ComponentType:
    """Look up a catalog entry, raising for unknown keys."""
    try:
        return CATALOG[type_key]
    except KeyError:
        raise UnknownComponentTypeError(type_key) from None


def list_component_types() -> list[ComponentType]:
    """All catalog entries in declaration order."""
    return list(CATALOG.values())
