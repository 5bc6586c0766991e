"""
Relationship identity and matching.

Relationships are stored positionally (source, target) but callers may
name the two endpoints in either order. Everything that looks up an
existing relationship goes through find_matching_relationship, which
checks both orientations.

Invariants:
    - level is ATTRIBUTE iff both attribute ids are present
    - build_relationship_key is pure and direction-sensitive; direction
      insensitivity is provided by the matcher, not the key
    - In the reversed orientation the attribute ids swap together with
      the endpoints
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar

from ..schema.types import (
    ModelAttribute,
    RelationshipKeyParts,
    RelationshipLevel,
    RelationshipType,
)


class KeyedRelationship(Protocol):
    def key_parts(self) -> RelationshipKeyParts: ...


R = TypeVar("R", bound=KeyedRelationship)


def determine_relationship_level(
    source_attribute_id: int | None, target_attribute_id: int | None
) -> RelationshipLevel:
    """Attribute level iff both attribute ids are present."""
    if source_attribute_id is not None and target_attribute_id is not None:
        return RelationshipLevel.ATTRIBUTE
    return RelationshipLevel.OBJECT


def reverse_relationship_type(type: RelationshipType) -> RelationshipType:
    """1:N and N:1 swap when the endpoints do; the rest are symmetric."""
    return type.reversed()


def build_relationship_key(
    source_id: int,
    target_id: int,
    level: RelationshipLevel,
    source_attribute_id: int | None = None,
    target_attribute_id: int | None = None,
) -> str:
    """Build the identity key of a relationship in the given orientation."""
    source_attr = "null" if source_attribute_id is None else str(source_attribute_id)
    target_attr = "null" if target_attribute_id is None else str(target_attribute_id)
    return f"{source_id}|{target_id}|{level.value}|{source_attr}|{target_attr}"


def relationship_key(relationship: KeyedRelationship) -> str:
    return build_relationship_key(*relationship.key_parts())


def _matches(
    parts: RelationshipKeyParts,
    source_id: int,
    target_id: int,
    level: RelationshipLevel,
    source_attribute_id: int | None,
    target_attribute_id: int | None,
) -> bool:
    return parts == (source_id, target_id, level, source_attribute_id, target_attribute_id)


def is_reversed_match(
    relationship: KeyedRelationship,
    source_id: int,
    target_id: int,
    level: RelationshipLevel,
    source_attribute_id: int | None = None,
    target_attribute_id: int | None = None,
) -> bool:
    """True when the relationship matches only with endpoints swapped."""
    parts = relationship.key_parts()
    if _matches(parts, source_id, target_id, level, source_attribute_id, target_attribute_id):
        return False
    return _matches(parts, target_id, source_id, level, target_attribute_id, source_attribute_id)


def find_matching_relationship(
    relationships: Iterable[R],
    source_id: int,
    target_id: int,
    level: RelationshipLevel,
    source_attribute_id: int | None = None,
    target_attribute_id: int | None = None,
) -> R | None:
    """Find a relationship matching in either orientation.

    The direct orientation is checked across all candidates before the
    reversed one, so an exact match always wins.
    """
    candidates = list(relationships)
    for relationship in candidates:
        if _matches(
            relationship.key_parts(),
            source_id,
            target_id,
            level,
            source_attribute_id,
            target_attribute_id,
        ):
            return relationship
    for relationship in candidates:
        if _matches(
            relationship.key_parts(),
            target_id,
            source_id,
            level,
            target_attribute_id,
            source_attribute_id,
        ):
            return relationship
    return None


def find_all_matching_relationships(
    relationships: Iterable[R],
    source_id: int,
    target_id: int,
    level: RelationshipLevel,
    source_attribute_id: int | None = None,
    target_attribute_id: int | None = None,
) -> list[R]:
    """Every relationship matching in either orientation."""
    return [
        relationship
        for relationship in relationships
        if _matches(
            relationship.key_parts(),
            source_id,
            target_id,
            level,
            source_attribute_id,
            target_attribute_id,
        )
        or _matches(
            relationship.key_parts(),
            target_id,
            source_id,
            level,
            target_attribute_id,
            source_attribute_id,
        )
    ]


def find_model_attribute_id(
    model_attributes: Iterable[ModelAttribute],
    model_id: int,
    model_object_id: int,
    attribute_id: int,
) -> int | None:
    """Find the attribute projection for (model, object projection, attribute)."""
    for entry in model_attributes:
        if (
            entry.model_id == model_id
            and entry.model_object_id == model_object_id
            and entry.attribute_id == attribute_id
        ):
            return entry.id
    return None
