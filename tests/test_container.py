"""Tests for ContainerInstance, attach and detach."""

import asyncio
import logging

import pytest

from nestfx import ABSENT, DefinitionError, PatchError, attach, detach, provide_state, subscribe


class TestAttach:
    def test_initial_state_called_once(self):
        calls = []

        def initial():
            calls.append(1)
            return {"n": 0}

        template = provide_state(initial)
        c = attach(template)
        c.get_state("n")
        c.apply_patch({"n": 1})
        assert calls == [1]

        attach(template)  # each instance seeds its own state
        assert calls == [1, 1]

    def test_instances_are_isolated(self):
        template = provide_state(lambda: {"n": 0})
        a, b = attach(template), attach(template)
        a.apply_patch({"n": 5})
        assert b.get_state("n") == 0
        assert a.id != b.id

    def test_hydrate(self):
        calls = []
        template = provide_state(lambda: calls.append(1) or {"n": 0})
        c = attach(template, initial={"n": 42})
        assert c.get_state("n") == 42
        assert calls == []  # initial_state not invoked

    def test_hydrated_state_checked(self):
        template = provide_state(lambda: {}, computed={"x": lambda v: 1})
        with pytest.raises(DefinitionError):
            attach(template, initial={"x": 5})

    def test_non_mapping_initial_state(self):
        with pytest.raises(DefinitionError):
            attach(provide_state(lambda: [1, 2]))

    def test_children_linked(self):
        root = attach(provide_state(lambda: {}))
        child = attach(provide_state(lambda: {}), root)
        assert child.parent is root
        assert root.children == [child]

    def test_cannot_attach_under_destroyed(self):
        root = attach(provide_state(lambda: {}))
        detach(root)
        with pytest.raises(DefinitionError):
            attach(provide_state(lambda: {}), root)


class TestApplyPatch:
    def test_last_write_wins_per_key(self):
        c = attach(provide_state(lambda: {"a": 0, "b": 0, "c": 0}))
        c.apply_patch({"a": 1})
        c.apply_patch({"a": 2, "b": 5})
        c.apply_patch({"b": 6})
        assert dict(c.state) == {"a": 2, "b": 6, "c": 0}

    def test_shallow_merge(self):
        c = attach(provide_state(lambda: {"user": {"name": "a", "age": 1}}))
        c.apply_patch({"user": {"name": "b"}})
        assert c.get_state("user") == {"name": "b"}  # replaced, not deep-merged

    def test_new_keys_added(self):
        c = attach(provide_state(lambda: {}))
        c.apply_patch({"fresh": True})
        assert c.get_state("fresh") is True

    def test_state_replaced_not_mutated(self):
        c = attach(provide_state(lambda: {"a": 1}))
        before = c.state
        after = c.apply_patch({"a": 2})
        assert before["a"] == 1
        assert after["a"] == 2
        assert c.state is after

    def test_state_is_read_only(self):
        c = attach(provide_state(lambda: {"a": 1}))
        with pytest.raises(TypeError):
            c.state["a"] = 2

    def test_rejects_non_mapping(self):
        c = attach(provide_state(lambda: {"a": 1}))
        with pytest.raises(PatchError):
            c.apply_patch([("a", 2)])

    def test_rejects_computed_keys(self):
        c = attach(provide_state(lambda: {"count": 2}, computed={"doubled": lambda v: v["count"] * 2}))
        before = c.state
        with pytest.raises(PatchError, match="doubled"):
            c.apply_patch({"doubled": "hijacked", "count": 3})
        assert c.state is before

        c.apply_patch({"count": 5})
        assert c.get_state("doubled") == 10

    def test_absent_key(self):
        c = attach(provide_state(lambda: {}))
        assert c.get_state("missing") is ABSENT


class TestDetach:
    def test_detach_drops_patches(self, caplog):
        c = attach(provide_state(lambda: {"n": 0}))
        detach(c)
        with caplog.at_level(logging.WARNING, logger="nestfx.container"):
            assert c.apply_patch({"n": 1}) is None
        assert c.get_state("n") == 0
        assert "destroyed container" in caplog.text

    def test_detach_subtree(self):
        root = attach(provide_state(lambda: {}))
        child = attach(provide_state(lambda: {}), root)
        grandchild = attach(provide_state(lambda: {}), child)
        detach(child)
        assert child.destroyed and grandchild.destroyed
        assert not root.destroyed
        assert root.children == []

    def test_detach_clears_subscriptions(self):
        c = attach(provide_state(lambda: {"n": 0}))
        log = []
        sub = subscribe(c, log.append)
        sub.track("n")
        detach(c)
        assert sub.disposed

    def test_detach_idempotent(self):
        c = attach(provide_state(lambda: {}))
        detach(c)
        detach(c)  # should not raise

    @pytest.mark.asyncio
    async def test_in_flight_effect_after_detach(self, caplog):
        gate = asyncio.Event()

        async def slow(effects):
            await gate.wait()
            return lambda s: {"n": 1}

        c = attach(provide_state(lambda: {"n": 0}, effects={"slow": slow}))
        task = c.effects.slow()
        await asyncio.sleep(0)
        detach(c)
        gate.set()
        with caplog.at_level(logging.WARNING, logger="nestfx.container"):
            result = await task
        assert c.get_state("n") == 0
        assert dict(result) == {"n": 0}
        assert "Dropping patch" in caplog.text

    @pytest.mark.asyncio
    async def test_effect_on_destroyed_container(self, caplog):
        calls = []

        async def record(effects):
            calls.append(1)

        c = attach(provide_state(lambda: {}, effects={"record": record}))
        detach(c)
        with caplog.at_level(logging.WARNING, logger="nestfx.effects"):
            assert await c.effects.record() is None
        assert calls == []
        assert "destroyed container" in caplog.text
