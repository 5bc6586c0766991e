"""
Unit tests for model family resolution.

Tests cover:
- Root walk through parent pointers
- Member ordering and layer slots
- Malformed parent chains (missing parents, cycles)
"""

from modeling.layersync_server.schema.types import DataModel, ModelLayer
from modeling.layersync_server.sync.family import build_family, find_conceptual_root


def _model(model_id, layer, parent=None):
    return DataModel(id=model_id, name=f"m{model_id}", layer=layer, parent_model_id=parent)


class TestFindConceptualRoot:
    """Tests for the parent walk."""

    def test_conceptual_is_own_root(self):
        conceptual = _model(1, ModelLayer.CONCEPTUAL)
        assert find_conceptual_root(conceptual, {1: conceptual}).id == 1

    def test_walks_through_logical_parent(self):
        models = {
            1: _model(1, ModelLayer.CONCEPTUAL),
            2: _model(2, ModelLayer.LOGICAL, parent=1),
            3: _model(3, ModelLayer.PHYSICAL, parent=2),
        }
        assert find_conceptual_root(models[3], models).id == 1

    def test_missing_parent_returns_model_reached(self):
        logical = _model(2, ModelLayer.LOGICAL, parent=99)
        assert find_conceptual_root(logical, {2: logical}).id == 2

    def test_cycle_does_not_loop(self):
        models = {
            2: _model(2, ModelLayer.LOGICAL, parent=3),
            3: _model(3, ModelLayer.PHYSICAL, parent=2),
        }
        root = find_conceptual_root(models[2], models)
        assert root.id in (2, 3)


class TestBuildFamily:
    """Tests for build_family."""

    def test_full_family_from_any_member(self):
        models = [
            _model(1, ModelLayer.CONCEPTUAL),
            _model(2, ModelLayer.LOGICAL, parent=1),
            _model(3, ModelLayer.PHYSICAL, parent=1),
        ]
        for member in models:
            family = build_family(member, models)
            assert family.conceptual.id == 1
            assert family.logical.id == 2
            assert family.physical.id == 3
            assert family.member_ids() == [1, 2, 3]

    def test_unrelated_models_excluded(self):
        models = [
            _model(1, ModelLayer.CONCEPTUAL),
            _model(2, ModelLayer.LOGICAL, parent=1),
            _model(5, ModelLayer.CONCEPTUAL),
            _model(6, ModelLayer.LOGICAL, parent=5),
        ]
        family = build_family(models[0], models)
        assert family.member_ids() == [1, 2]
        assert family.physical is None

    def test_members_ordered_by_layer_then_id(self):
        models = [
            _model(9, ModelLayer.PHYSICAL, parent=1),
            _model(4, ModelLayer.LOGICAL, parent=1),
            _model(1, ModelLayer.CONCEPTUAL),
            _model(7, ModelLayer.LOGICAL, parent=1),
        ]
        family = build_family(models[2], models)
        assert family.member_ids() == [1, 4, 7, 9]

    def test_requesting_model_wins_its_layer_slot(self):
        models = [
            _model(1, ModelLayer.CONCEPTUAL),
            _model(2, ModelLayer.LOGICAL, parent=1),
            _model(4, ModelLayer.LOGICAL, parent=1),
        ]
        assert build_family(models[0], models).logical.id == 2
        assert build_family(models[2], models).logical.id == 4

    def test_model_missing_from_list_is_included(self):
        conceptual = _model(1, ModelLayer.CONCEPTUAL)
        logical = _model(2, ModelLayer.LOGICAL, parent=1)
        family = build_family(logical, [conceptual])
        assert family.member_ids() == [1, 2]

    def test_broken_chain_has_no_conceptual_slot(self):
        logical = _model(2, ModelLayer.LOGICAL, parent=99)
        family = build_family(logical, [logical])
        assert family.conceptual.id == 2
        assert family.for_layer(ModelLayer.CONCEPTUAL) is None
        assert family.for_layer(ModelLayer.LOGICAL).id == 2

    def test_to_dict(self):
        models = [_model(1, ModelLayer.CONCEPTUAL), _model(2, ModelLayer.LOGICAL, parent=1)]
        data = build_family(models[0], models).to_dict()
        assert data["conceptual"]["layer"] == "conceptual"
        assert data["logical"]["id"] == 2
        assert data["physical"] is None
        assert data["member_ids"] == [1, 2]
