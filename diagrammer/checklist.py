"""
Checklist validation - is a node's attribute set complete?

A node is "detailed" when every required attribute of its component type
holds a present, kind-valid value:
- boolean: explicitly set (True or False), not merely absent
- number: present, not blank, parses to a finite number
- text: a string that is non-empty after trimming
"""

import math
from typing import Any, Mapping

from .catalog import AttributeKind, ComponentType, RequiredAttribute, get_component_type
from .models import Node


def _is_finite_number(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def attribute_satisfied(attribute: RequiredAttribute, details: Mapping[str, Any]) -> bool:
    """Check a single checklist entry against a details mapping."""
    if attribute.name not in details:
        return False
    value = details[attribute.name]

    if attribute.kind == AttributeKind.BOOLEAN:
        return isinstance(value, bool)
    if attribute.kind == AttributeKind.NUMBER:
        return _is_finite_number(value)
    return isinstance(value, str) and bool(value.strip())


def details_complete(component_type: ComponentType, details: Mapping[str, Any]) -> bool:
    return all(attribute_satisfied(a, details) for a in component_type.required_attributes)


def compute_is_detailed(node: Node) -> bool:
    """
    Derive `is_detailed` for a node.

    Pure: the result only depends on the node's type and details, so it is
    safe to call on every detail save.
    """
    return details_complete(get_component_type(node.component_type), node.details)


def missing_attributes(node: Node) -> list[str]:
    """Names of the checklist entries the node still lacks, in catalog order."""
    component_type = get_component_type(node.component_type)
    return [
        a.name for a in component_type.required_attributes
        if not attribute_satisfied(a, node.details)
    ]


def coerce_details(component_type: ComponentType, raw: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize form input for a component type.

    Boolean fields accept "true"/"false" strings; anything else stays
    unset. Numbers that parse are stored as floats, otherwise the raw input
    is kept so the node stays visibly incomplete. Non-string text values are
    stored as strings. Keys outside the checklist are preserved unchanged.
    """
    kinds = {a.name: a.kind for a in component_type.required_attributes}
    result: dict[str, Any] = {}

    for name, value in raw.items():
        kind = kinds.get(name)
        if kind == AttributeKind.BOOLEAN:
            if isinstance(value, bool):
                result[name] = value
            elif isinstance(value, str) and value.strip().lower() in ("true", "false"):
                result[name] = value.strip().lower() == "true"
            # Anything else leaves the boolean unset
        elif kind == AttributeKind.NUMBER:
            result[name] = float(value) if _is_finite_number(value) else value
        elif kind == AttributeKind.TEXT and value is not None and not isinstance(value, str):
            result[name] = str(value)
        else:
            result[name] = value

    return result
