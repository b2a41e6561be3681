"""
Test the step simulator backends.
"""
import math

import pytest

from gensyn_playground.core.jobs.catalog import JOB_TEMPLATES
from gensyn_playground.core.node.errors import StepExecutionFailure
from gensyn_playground.core.training.simulator import (
    ScriptedStepSimulator,
    TorchStepSimulator,
    create_step_simulator,
    simulator_factory,
)


def run_steps(event_loop, simulator, steps):
    async def collect():
        return [await simulator.next_metric(step) for step in range(1, steps + 1)]

    return event_loop.run_until_complete(collect())


class TestScriptedSimulator:

    def test_default_losses_decay(self, event_loop):
        sim = ScriptedStepSimulator(12)
        losses = run_steps(event_loop, sim, 12)
        assert losses[0] == pytest.approx(2.25)
        assert losses == sorted(losses, reverse=True)
        assert sim.calls == list(range(1, 13))

    def test_loss_floor(self, event_loop):
        sim = ScriptedStepSimulator(3, start_loss=0.2, decay=1.0)
        assert run_steps(event_loop, sim, 3) == [0.01, 0.01, 0.01]

    def test_explicit_losses(self, event_loop):
        sim = ScriptedStepSimulator(3, losses=[0.9, 0.7, 0.4])
        assert run_steps(event_loop, sim, 3) == [0.9, 0.7, 0.4]

    def test_fail_at(self, event_loop):
        sim = ScriptedStepSimulator(5, fail_at={2})
        with pytest.raises(StepExecutionFailure) as exc_info:
            run_steps(event_loop, sim, 5)
        assert exc_info.value.step == 2
        assert sim.calls == [1, 2]

    def test_close_is_idempotent(self):
        sim = ScriptedStepSimulator(4)
        assert not sim.closed
        sim.close()
        sim.close()
        assert sim.closed
        assert sim.release_count == 1

    def test_total_steps_must_be_positive(self):
        with pytest.raises(ValueError):
            ScriptedStepSimulator(0)


class TestTorchSimulator:

    def test_losses_are_finite(self, event_loop):
        sim = TorchStepSimulator(3, seed=1)
        losses = run_steps(event_loop, sim, 3)
        assert len(losses) == 3
        assert all(isinstance(v, float) and math.isfinite(v) for v in losses)
        # BCE on random labels starts near ln(2)
        assert 0.3 < losses[0] < 1.5
        sim.close()

    def test_seed_reproduces_losses(self, event_loop):
        first = run_steps(event_loop, TorchStepSimulator(4, seed=123), 4)
        second = run_steps(event_loop, TorchStepSimulator(4, seed=123), 4)
        assert first == pytest.approx(second)

    def test_close_releases_model(self, event_loop):
        sim = TorchStepSimulator(2, seed=5)
        sim.close()
        sim.close()
        assert sim.model is None
        assert sim.release_count == 1
        with pytest.raises(StepExecutionFailure):
            run_steps(event_loop, sim, 1)


class TestFactory:

    def test_create_by_backend(self):
        job = JOB_TEMPLATES[0]
        assert isinstance(create_step_simulator("scripted", job, 12), ScriptedStepSimulator)
        assert isinstance(create_step_simulator("torch", job, 12, seed=1), TorchStepSimulator)

    def test_factory_signature(self):
        factory = simulator_factory("scripted")
        sim = factory(JOB_TEMPLATES[1], 6, 99)
        assert sim.total_steps == 6

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            simulator_factory("tpu")
        with pytest.raises(ValueError):
            create_step_simulator("tpu", JOB_TEMPLATES[0], 12)
