"""
Shared pytest fixtures for test suite.

Provides:
- Event loop for driving the async job loop
- Scripted step simulator factory (records every simulator it builds)
- Fast controller factory (no pacing delay, seeded catalog)
- Event recorder and polling helper
"""

import pytest
import asyncio
import os
import sys
from typing import Dict, List, Optional

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from gensyn_playground.config import NodeConfig
from gensyn_playground.core.jobs.catalog import JobCatalog, JobTemplate
from gensyn_playground.core.node.controller import NodeController
from gensyn_playground.core.node.events import EventType, NodeEvent
from gensyn_playground.core.training.simulator import ScriptedStepSimulator


# =============================================================================
# SCRIPTED SIMULATOR FACTORY
# =============================================================================

class ScriptedFactory:
    """
    Builds ScriptedStepSimulators for a controller and keeps them.

    `per_job` maps the index of a created simulator (0 = first job) to extra
    ScriptedStepSimulator kwargs, e.g. {0: {"fail_at": {3}}}.
    """

    def __init__(self, per_job: Optional[Dict[int, dict]] = None, **kwargs):
        self.kwargs = kwargs
        self.per_job = per_job or {}
        self.created: List[ScriptedStepSimulator] = []

    def __call__(self, job, total_steps, seed):
        kwargs = dict(self.kwargs)
        kwargs.update(self.per_job.get(len(self.created), {}))
        simulator = ScriptedStepSimulator(total_steps, **kwargs)
        self.created.append(simulator)
        return simulator


# =============================================================================
# EVENT RECORDER
# =============================================================================

class EventRecorder:
    """Collects every event a controller emits."""

    def __init__(self):
        self.events: List[NodeEvent] = []

    def __call__(self, event: NodeEvent):
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[NodeEvent]:
        return [e for e in self.events if e.type is event_type]

    def payloads(self, event_type: EventType, key: str) -> list:
        return [e.payload[key] for e in self.of_type(event_type)]


# =============================================================================
# FIXTURES
# =============================================================================

RESNET = JobTemplate("Train ResNet-18 on CIFAR-10", base_reward=1.2)
LLAMA = JobTemplate("Fine-tune Llama-7B", base_reward=2.8)


@pytest.fixture
def event_loop():
    """Create an event loop for async tests."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def scripted_factory():
    return ScriptedFactory


@pytest.fixture
def make_controller():
    """Factory for fast, deterministic controllers."""

    def create_controller(
        templates: Optional[List[JobTemplate]] = None,
        device: str = "A100",
        factory: Optional[ScriptedFactory] = None,
        **config_overrides,
    ):
        settings = dict(
            steps_per_job=12,
            step_delay=0.0,
            celebrate_seconds=0.05,
            backend="scripted",
            device=device,
            seed=7,
        )
        settings.update(config_overrides)
        config = NodeConfig(**settings)

        factory = factory or ScriptedFactory()
        catalog = JobCatalog(seed=7, templates=templates or [RESNET])
        node = NodeController(config, catalog=catalog, simulator_factory=factory)

        recorder = EventRecorder()
        node.events.subscribe(recorder)
        return node, factory, recorder

    return create_controller


@pytest.fixture
def wait_for():
    """Poll a predicate from inside the event loop."""

    async def _wait_for(predicate, timeout: float = 2.0, interval: float = 0.001):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Timed out waiting for condition")
            await asyncio.sleep(interval)

    return _wait_for


def stop_on(node: NodeController, event_type: EventType, count: int = 1):
    """Subscribe a callback that stops `node` on the `count`-th event of a type."""
    seen = []

    def callback(event: NodeEvent):
        if event.type is event_type:
            seen.append(event)
            if len(seen) == count and node.state.is_active:
                node.stop()

    return node.events.subscribe(callback)


@pytest.fixture
def stop_after():
    return stop_on
