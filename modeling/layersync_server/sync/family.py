"""
Model family resolution.

A family is derived on every call: the conceptual root reached by walking
parent pointers from any member, plus every model whose own root is that
same root. Membership can change between calls, so it is never stored.

Invariants:
    - The root walk is iterative and bounded by a visited set; a malformed
      parent chain yields a best-effort root instead of an error
    - Members are ordered conceptual, logical, physical, then by id
    - A logical or physical model always wins its own layer slot
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..schema.types import DataModel, ModelLayer
from .cache import SyncCache

logger = logging.getLogger(__name__)


@dataclass
class ModelFamily:
    """The models representing one business model at each layer.

    Attributes:
        conceptual: Resolved root (conceptual unless the chain is broken)
        logical: Logical member, if any
        physical: Physical member, if any
        members: Every model sharing the root
    """

    conceptual: DataModel
    logical: DataModel | None = None
    physical: DataModel | None = None
    members: list[DataModel] = field(default_factory=list)

    def member_ids(self) -> list[int]:
        return [member.id for member in self.members]

    def for_layer(self, layer: ModelLayer) -> DataModel | None:
        if layer is ModelLayer.CONCEPTUAL:
            return self.conceptual if self.conceptual.layer is ModelLayer.CONCEPTUAL else None
        if layer is ModelLayer.LOGICAL:
            return self.logical
        return self.physical

    def to_dict(self) -> dict:
        return {
            "conceptual": self.conceptual.to_dict(),
            "logical": self.logical.to_dict() if self.logical else None,
            "physical": self.physical.to_dict() if self.physical else None,
            "member_ids": self.member_ids(),
        }


def find_conceptual_root(model: DataModel, models_by_id: dict[int, DataModel]) -> DataModel:
    """Walk parent pointers until a conceptual model is reached.

    Stops early when a parent is missing or an id recurs, returning the
    model reached so far.
    """
    current = model
    visited = {model.id}

    while current.layer is not ModelLayer.CONCEPTUAL and current.parent_model_id is not None:
        parent_id = current.parent_model_id
        if parent_id in visited:
            logger.warning(
                "Cycle in model parent chain",
                extra={"model_id": model.id, "parent_model_id": parent_id},
            )
            break
        visited.add(parent_id)

        parent = models_by_id.get(parent_id)
        if parent is None:
            break
        current = parent

    return current


def _member_sort_key(model: DataModel) -> tuple[int, int]:
    return (model.layer.rank, model.id)


def build_family(model: DataModel, all_models: list[DataModel]) -> ModelFamily:
    """Resolve a family from an already loaded model list."""
    models_by_id = {entry.id: entry for entry in all_models}
    models_by_id.setdefault(model.id, model)
    root = find_conceptual_root(model, models_by_id)

    members = [
        candidate
        for candidate in models_by_id.values()
        if find_conceptual_root(candidate, models_by_id).id == root.id
    ]
    members.sort(key=_member_sort_key)

    logical = next((m for m in members if m.layer is ModelLayer.LOGICAL), None)
    physical = next((m for m in members if m.layer is ModelLayer.PHYSICAL), None)

    if model.layer is ModelLayer.LOGICAL:
        logical = model
    elif model.layer is ModelLayer.PHYSICAL:
        physical = model

    return ModelFamily(conceptual=root, logical=logical, physical=physical, members=members)


async def resolve_family(cache: SyncCache, model: DataModel) -> ModelFamily:
    """Resolve the family of ``model`` from the current set of models."""
    return build_family(model, await cache.models())
