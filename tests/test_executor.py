"""
Step executor and registry tests
"""
import asyncio

import pytest

from stepflow.core import FunctionStep, StepExecutor, StepRegistry, invoke_step
from stepflow.exceptions import StepError
from stepflow.models import Failure


class TestInvokeStep:
    """Failure classification of a single attempt"""

    @pytest.mark.asyncio
    async def test_step_error_becomes_failure(self):
        def fail(payload):
            raise StepError("ErrorB", "rejected", {"total": 1200})

        outcome = await invoke_step(FunctionStep(fail), {})

        assert outcome == Failure("ErrorB", "rejected", {"total": 1200})

    @pytest.mark.asyncio
    async def test_generic_exception_uses_class_name(self):
        def fail(payload):
            raise KeyError("missing")

        outcome = await invoke_step(FunctionStep(fail), {})

        assert isinstance(outcome, Failure)
        assert outcome.kind == "KeyError"

    @pytest.mark.asyncio
    async def test_returned_failure_is_kept(self):
        outcome = await invoke_step(FunctionStep(lambda p: Failure("Declined")), {})
        assert outcome == Failure("Declined")

    @pytest.mark.asyncio
    async def test_non_mapping_output_is_invalid(self):
        outcome = await invoke_step(FunctionStep(lambda p: [1, 2]), {})

        assert isinstance(outcome, Failure)
        assert outcome.kind == "InvalidStepOutput"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def hang(payload):
            await asyncio.sleep(30)

        outcome = await invoke_step(FunctionStep(hang), {}, timeout=0.05)

        assert outcome.kind == "StepTimeout"

    @pytest.mark.asyncio
    async def test_timeout_raised_by_step_keeps_its_class_name(self):
        async def remote_call(payload):
            raise asyncio.TimeoutError()

        outcome = await invoke_step(FunctionStep(remote_call), {}, timeout=10)

        assert outcome.kind == "TimeoutError"

    @pytest.mark.asyncio
    async def test_sync_and_async_callables(self):
        async def async_step(payload):
            return {"async": True}

        assert await invoke_step(FunctionStep(lambda p: {"sync": True}), {}) == {"sync": True}
        assert await invoke_step(FunctionStep(async_step), {}) == {"async": True}

    @pytest.mark.asyncio
    async def test_step_gets_a_copy(self):
        def mutate(payload):
            payload["nested"]["x"] = 1
            return payload

        original = {"nested": {}}
        await invoke_step(FunctionStep(mutate), original)

        assert original == {"nested": {}}

    @pytest.mark.asyncio
    async def test_executor_subclass(self):
        class Echo(StepExecutor):
            async def execute(self, payload):
                return {"echo": payload["value"]}

        assert await invoke_step(Echo(), {"value": 3}) == {"echo": 3}

    def test_base_executor_is_abstract(self):
        with pytest.raises(TypeError):
            StepExecutor()


class TestStepRegistry:
    """Resource registry"""

    def test_register_and_resolve(self):
        registry = StepRegistry()
        registry.register("echo", lambda p: p)

        assert "echo" in registry
        assert isinstance(registry.resolve("echo"), FunctionStep)

    def test_decorator(self):
        registry = StepRegistry()

        @registry.step("double")
        async def double(payload):
            return {"value": payload["value"] * 2}

        assert registry.names() == ["double"]
        assert registry.resolve("double").name == "double"

    def test_unknown_resource(self):
        with pytest.raises(KeyError):
            StepRegistry().resolve("missing")

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            StepRegistry().register("bad", 42)
