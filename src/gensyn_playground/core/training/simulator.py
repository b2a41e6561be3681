"""
Training Step Simulators

The node controller does not know how a "training step" is computed. It asks
a StepSimulator for the metric of step N and awaits the answer. Whatever
happens behind that call is a backend detail:

- TorchStepSimulator: trains a tiny real network (10 -> 32 -> 1, Adam, BCE)
  on random data, one full-batch epoch per step. The numbers are real
  losses, the "job" is not.
- ScriptedStepSimulator: deterministic losses with optional latency and
  injected failures. Used by tests and by the `scripted` backend for demos
  on machines without torch acceleration.

A simulator holds resources for exactly one job. The controller closes it
when the job completes, fails or is abandoned; close() is idempotent so the
release happens exactly once.
"""

import asyncio
import logging
import math
import threading
from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Iterable, List, Optional, Sequence

import torch
import torch.nn as nn

from gensyn_playground.config import SIMULATOR_BACKENDS as BACKENDS
from gensyn_playground.core.node.errors import StepExecutionFailure

logger = logging.getLogger(__name__)


class StepSimulator(ABC):
    """Per-job source of step metrics."""

    def __init__(self, total_steps: int):
        if total_steps <= 0:
            raise ValueError(f"total_steps must be positive, got {total_steps}")
        self.total_steps = total_steps
        self.release_count = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def next_metric(self, step: int) -> float:
        """
        Produce the metric (loss) for a step.

        Args:
            step: 1-based step number within the job

        Raises:
            StepExecutionFailure: if the backend cannot produce a metric
        """

    def close(self):
        """Release backend resources. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.release_count += 1
        self._release()

    def _release(self):
        pass


class TorchStepSimulator(StepSimulator):
    """
    One tiny binary classifier per job.

    Each step is a single full-batch epoch run in the default thread
    executor, so the event loop keeps serving commands while torch works.
    """

    def __init__(
        self,
        total_steps: int,
        seed: Optional[int] = None,
        input_dim: int = 10,
        hidden_dim: int = 32,
        num_samples: int = 100,
        learning_rate: float = 1e-3,
    ):
        super().__init__(total_steps)
        self._lock = threading.Lock()

        generator = torch.Generator()
        if seed is not None:
            generator.manual_seed(seed)
        else:
            generator.seed()

        # Weight init draws from the global RNG; fork it so seeding stays local
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(int(torch.randint(0, 2**31 - 1, (1,), generator=generator)))
            self.model = nn.Sequential(
                nn.Linear(input_dim, hidden_dim),
                nn.ReLU(),
                nn.Linear(hidden_dim, 1),
                nn.Sigmoid(),
            )

        self.optimizer = torch.optim.Adam(self.model.parameters(), lr=learning_rate)
        self.loss_fn = nn.BCELoss()
        self.xs = torch.randn(num_samples, input_dim, generator=generator)
        self.ys = (torch.rand(num_samples, 1, generator=generator) > 0.5).float()

    def _train_epoch(self, step: int) -> float:
        with self._lock:
            if self._closed:
                raise StepExecutionFailure("simulator already released", step=step)
            model, optimizer, xs, ys = self.model, self.optimizer, self.xs, self.ys

        try:
            optimizer.zero_grad()
            loss = self.loss_fn(model(xs), ys)
            loss.backward()
            optimizer.step()
            value = loss.item()
        except RuntimeError as e:
            raise StepExecutionFailure(f"torch error: {e}", step=step) from e

        if not math.isfinite(value):
            raise StepExecutionFailure(f"numeric divergence (loss={value})", step=step)
        return value

    async def next_metric(self, step: int) -> float:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._train_epoch, step)

    def _release(self):
        with self._lock:
            self.model = None
            self.optimizer = None
            self.xs = None
            self.ys = None


class ScriptedStepSimulator(StepSimulator):
    """
    Deterministic losses.

    Loss for step N is `losses[N-1]` when a list is given, otherwise
    `start_loss - decay * N` floored at 0.01. Steps listed in `fail_at`
    raise StepExecutionFailure instead.
    """

    MIN_LOSS = 0.01

    def __init__(
        self,
        total_steps: int,
        losses: Optional[Sequence[float]] = None,
        start_loss: float = 2.4,
        decay: float = 0.15,
        latency: float = 0.0,
        fail_at: Iterable[int] = (),
    ):
        super().__init__(total_steps)
        self.losses = list(losses) if losses is not None else None
        self.start_loss = start_loss
        self.decay = decay
        self.latency = latency
        self.fail_at = set(fail_at)
        self.calls: List[int] = []

    async def next_metric(self, step: int) -> float:
        self.calls.append(step)
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        if step in self.fail_at:
            raise StepExecutionFailure(f"numeric divergence at step {step}", step=step)
        if self.losses is not None:
            return float(self.losses[step - 1])
        return max(self.start_loss - self.decay * step, self.MIN_LOSS)


SimulatorFactory = Callable[..., StepSimulator]


def create_step_simulator(backend: str, job, total_steps: int, seed: Optional[int] = None) -> StepSimulator:
    """
    Build the simulator for one job.

    Args:
        backend: "torch" or "scripted"
        job: JobTemplate being run (unused by the built-in backends)
        total_steps: Number of steps in the job
        seed: Seed for the backend's randomness

    Returns:
        A fresh StepSimulator
    """
    if backend == "torch":
        return TorchStepSimulator(total_steps, seed=seed)
    elif backend == "scripted":
        return ScriptedStepSimulator(total_steps)
    raise ValueError(f"Unknown simulator backend: {backend} (expected one of {BACKENDS})")


def simulator_factory(backend: str) -> SimulatorFactory:
    """Factory with the controller's (job, total_steps, seed) signature."""
    if backend not in BACKENDS:
        raise ValueError(f"Unknown simulator backend: {backend} (expected one of {BACKENDS})")
    return partial(create_step_simulator, backend)
