"""Flatten the Realpad building -> floor -> flat hierarchy into unit records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, cast

if TYPE_CHECKING:
    from devcms.realpad.xml_tree import AttributedNode

ResourceType = Literal["pdf", "plan", "image", "other"]
RESOURCE_TYPES: frozenset[str] = frozenset({"pdf", "plan", "image", "other"})

DEFAULT_RESOURCE_SUFFIXES: dict[str, ResourceType] = {
    "Pdf": "pdf",
    "Plan": "plan",
    "Image": "image",
}

FLAT_ATTRIBUTE_TAG = "flat-attribute"


@dataclass(frozen=True)
class ResourceReference:
    """An external resource UID together with its declared type."""

    uid: str
    type: ResourceType = "other"


@dataclass
class ExtractedFlat:
    """One flat with its normalized attributes and resource references."""

    building_id: str
    floor_id: str
    flat_id: str
    attributes: dict[str, str] = field(default_factory=dict)
    resources: list[ResourceReference] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def coerce_resource_type(value: str) -> ResourceType:
    """Return ``value`` as a resource type, falling back to ``other``."""
    candidate = value.strip().lower()
    if candidate in RESOURCE_TYPES:
        return cast(ResourceType, candidate)
    return "other"


def resource_type_for_key(key: str, suffixes: Mapping[str, str]) -> ResourceType | None:
    """Infer a resource type from an attribute key's suffix.

    The longest matching suffix wins so that e.g. ``FloorPlan`` and ``Plan``
    can map to different types. Returns None when no suffix matches.
    """
    for suffix in sorted(suffixes, key=len, reverse=True):
        if suffix and key.endswith(suffix):
            return coerce_resource_type(suffixes[suffix])
    return None


def flat_attributes(flat: AttributedNode, warnings: list[str] | None = None) -> dict[str, str]:
    """Merge a flat's ``flat-attribute`` children into one mapping.

    A key that appears more than once keeps its last value.
    """
    out: dict[str, str] = {}
    for position, attr in enumerate(flat.find_all(FLAT_ATTRIBUTE_TAG)):
        key = attr.get("key")
        if not key:
            if warnings is not None:
                warnings.append(f"flat-attribute #{position} has no key")
            continue
        out[key] = attr.get("value")
    return out


def resource_references(
    flat: AttributedNode,
    attributes: Mapping[str, str],
    suffixes: Mapping[str, str],
) -> list[ResourceReference]:
    """Collect resource references from attribute values and child elements.

    References are unique per UID; the first type seen for a UID is kept.
    """
    found: dict[str, ResourceReference] = {}
    for key, value in attributes.items():
        uid = value.strip()
        if not uid:
            continue
        resource_type = resource_type_for_key(key, suffixes)
        if resource_type is not None and uid not in found:
            found[uid] = ResourceReference(uid=uid, type=resource_type)

    for child in flat.children:
        if child.tag == FLAT_ATTRIBUTE_TAG:
            continue
        uid = child.get("uid").strip()
        if not uid or uid in found:
            continue
        declared = child.get("type") or child.tag
        found[uid] = ResourceReference(uid=uid, type=coerce_resource_type(declared))
    return list(found.values())


def _projects(root: AttributedNode) -> list[AttributedNode]:
    if root.tag == "project":
        return [root]
    return root.find_all("project")


def extract_flats(
    root: AttributedNode,
    suffixes: Mapping[str, str] = DEFAULT_RESOURCE_SUFFIXES,
) -> list[ExtractedFlat]:
    """Walk every building, floor and flat under ``root``.

    Problems with a single flat are recorded on that flat's ``warnings`` and
    never discard its siblings.
    """
    flats: list[ExtractedFlat] = []
    for project in _projects(root):
        for building in project.find_all("building"):
            building_id = building.get("id")
            for floor in building.find_all("floor"):
                floor_id = floor.get("id")
                for flat in floor.find_all("flat"):
                    warnings: list[str] = []
                    if not building_id:
                        warnings.append("building has no id")
                    if not floor_id:
                        warnings.append("floor has no id")
                    flat_id = flat.get("id")
                    if not flat_id:
                        warnings.append("flat has no id")
                    attributes = flat_attributes(flat, warnings)
                    flats.append(
                        ExtractedFlat(
                            building_id=building_id,
                            floor_id=floor_id,
                            flat_id=flat_id,
                            attributes=attributes,
                            resources=resource_references(flat, attributes, suffixes),
                            warnings=warnings,
                        )
                    )
    return flats
