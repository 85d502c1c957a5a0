"""Tests for ContainerTemplate validation."""

import dataclasses

import pytest

from nestfx import ContainerTemplate, DefinitionError, provide_state


class TestTemplate:
    def test_missing_initial_state(self):
        with pytest.raises(DefinitionError):
            ContainerTemplate(initial_state=None)

    def test_initial_state_not_callable(self):
        with pytest.raises(DefinitionError):
            provide_state({"a": 1})

    def test_initial_state_requires_arguments(self):
        with pytest.raises(DefinitionError, match="without arguments"):
            provide_state(lambda seed: {"n": seed})

    def test_initial_state_optional_arguments(self):
        template = provide_state(lambda seed=3: {"n": seed})
        assert template.build_state() == {"n": 3}

    def test_effect_not_callable(self):
        with pytest.raises(DefinitionError):
            provide_state(lambda: {}, effects={"go": "nope"})

    def test_computed_not_callable(self):
        with pytest.raises(DefinitionError):
            provide_state(lambda: {}, computed={"total": 3})

    def test_empty_name(self):
        with pytest.raises(DefinitionError):
            provide_state(lambda: {}, effects={"": lambda e: None})

    def test_state_computed_collision(self):
        template = provide_state(lambda: {"total": 1}, computed={"total": lambda v: 2})
        with pytest.raises(DefinitionError, match="total"):
            template.build_state()

    def test_definition_error_is_value_error(self):
        with pytest.raises(ValueError):
            provide_state(None)

    def test_immutable(self):
        template = provide_state(lambda: {}, effects={"go": lambda e: None})
        with pytest.raises(dataclasses.FrozenInstanceError):
            template.name = "other"
        with pytest.raises(TypeError):
            template.effects["more"] = lambda e: None

    def test_source_dict_copied(self):
        effects = {"go": lambda e: None}
        template = provide_state(lambda: {}, effects=effects)
        effects["later"] = lambda e: None
        assert "later" not in template.effects

    def test_options(self):
        template = provide_state(lambda: {}, serialize_effects=True, name="cart")
        assert template.serialize_effects is True
        assert template.name == "cart"
        assert template.middleware == ()
        assert "cart" in repr(template)
