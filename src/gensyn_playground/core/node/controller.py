"""
Node Controller - the playground's job loop

This module owns a node's lifecycle and drives its work:

    IDLE --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING/PAUSED --stop--> STOPPED --start--> RUNNING (fresh session)

LOOP:
=====
One asyncio task per run. Each iteration:
1. Wait while paused (an asyncio.Event, no polling)
2. No job? Pick one from the catalog and build its step simulator
3. Job finished? Verify the proof, pay the reward, celebrate
4. Otherwise await one step's metric, log it, advance progress
5. Sleep the pacing delay (base delay / device speed)

Every await is a point where stop() can land. stop() cancels the task and
bumps the run generation, so a step result that arrives after a stop is
never applied. A job interrupted by stop or by a failing step pays nothing.

All commands are plain methods and must be called from the event loop the
node runs on (FastAPI handlers, tests).
"""

import asyncio
import logging
import math
from functools import partial
from typing import Callable, Optional, Union

from gensyn_playground.config import NodeConfig
from gensyn_playground.core.consensus.verifier import ProofVerifier
from gensyn_playground.core.economics.constants import (
    CURRENCY_SYMBOL,
    JOB_STARTED_CUE_HZ,
    PROOF_VERIFIED_CUE_HZ,
    REWARD_DECIMALS,
    compute_reward,
    format_earnings,
    share_message,
)
from gensyn_playground.core.jobs.catalog import Device, JobCatalog
from gensyn_playground.core.node.errors import InvalidTransition, StepExecutionFailure
from gensyn_playground.core.node.events import EventBus, EventType
from gensyn_playground.core.node.state import NodeState, RunningJob, Session

logger = logging.getLogger(__name__)


class NodeController:
    """
    A single playground node.

    Usage:
        node = NodeController(config)
        node.set_device("H100")
        node.start()            # inside a running event loop
        ...
        node.pause(); node.resume()
        node.stop()
        await node.aclose()
    """

    def __init__(
        self,
        config: Optional[NodeConfig] = None,
        catalog: Optional[JobCatalog] = None,
        simulator_factory: Optional[Callable] = None,
        events: Optional[EventBus] = None,
        verifier: Optional[ProofVerifier] = None,
    ):
        """
        Args:
            config: Node settings (defaults to NodeConfig())
            catalog: Job/device source; seeded from config.seed when omitted
            simulator_factory: Callable (job, total_steps, seed) -> StepSimulator.
                               Defaults to the backend named in config.
            events: Event bus shared with the dashboard
            verifier: Proof verifier run before each payout
        """
        self.config = config or NodeConfig()
        self.catalog = catalog or JobCatalog(seed=self.config.seed)
        if simulator_factory is None:
            from gensyn_playground.core.training.simulator import simulator_factory as make_factory
            simulator_factory = make_factory(self.config.backend)
        self.simulator_factory = simulator_factory
        self.events = events or EventBus(buffer_size=self.config.event_buffer_size)
        self.verifier = verifier or ProofVerifier()

        self.session = Session(device=self.catalog.get_device(self.config.device))

        # Run bookkeeping
        self._run_id = 0
        self._task: Optional[asyncio.Task] = None
        self._simulator = None
        self._resume_event: Optional[asyncio.Event] = None
        self._consecutive_failures = 0
        self._celebrate_handle: Optional[asyncio.TimerHandle] = None

    # =========================================================================
    # COMMANDS
    # =========================================================================

    @property
    def state(self) -> NodeState:
        return self.session.state

    @property
    def loop_alive(self) -> bool:
        """Whether the job loop task of the current run is still running."""
        return self._task is not None and not self._task.done()

    def start(self):
        """Start a fresh run. Clears the log and earnings of any previous run."""
        if self.session.state.is_active:
            raise InvalidTransition("start", self.session.state)

        loop = asyncio.get_running_loop()

        self._run_id += 1
        run_id = self._run_id
        self._discard_job()
        self.session.reset()
        self._consecutive_failures = 0
        self._resume_event = asyncio.Event()
        self._resume_event.set()

        self._set_state(NodeState.RUNNING)
        self.events.emit(EventType.EARNINGS_CHANGED, total=0.0)
        self.events.emit(EventType.PROGRESS, percent=0.0)
        self._log("🚀 Starting GenSyn node...")
        self._log(f"GPU: {self.session.device.label}")

        self._task = loop.create_task(self._run(run_id))
        self._task.add_done_callback(partial(self._on_task_done, run_id))

    def pause(self):
        """Park the loop before its next step. Current job progress is kept."""
        if self.session.state is not NodeState.RUNNING:
            raise InvalidTransition("pause", self.session.state)
        self._resume_event.clear()
        self._set_state(NodeState.PAUSED)

    def resume(self):
        """Continue from the last completed step."""
        if self.session.state is not NodeState.PAUSED:
            raise InvalidTransition("resume", self.session.state)
        self._set_state(NodeState.RUNNING)
        self._resume_event.set()

    def stop(self):
        """End the run. The job in flight is abandoned without reward."""
        if not self.session.state.is_active:
            raise InvalidTransition("stop", self.session.state)
        self._end_run("🛑 Node stopped", cancel=True)

    def set_device(self, device: Union[Device, str]) -> Device:
        """Pick the GPU for the next run. Only allowed while idle or stopped."""
        if self.session.state.is_active:
            raise InvalidTransition("change device", self.session.state)
        if isinstance(device, str):
            device = self.catalog.get_device(device)
        self.session.device = device
        logger.info(f"Device set to {device.label}")
        return device

    async def aclose(self):
        """Stop any active run and wait for its task to unwind."""
        if self.session.state.is_active:
            self.stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        if self._celebrate_handle is not None:
            self._celebrate_handle.cancel()
            self._celebrate_handle = None

    def share_message(self) -> str:
        return share_message(self.session.earnings, url=self.config.share_url)

    def snapshot(self) -> dict:
        status = self.session.to_dict()
        status["share_message"] = self.share_message()
        status["latest_event_id"] = self.events.latest_id
        return status

    # =========================================================================
    # JOB LOOP
    # =========================================================================

    async def _run(self, run_id: int):
        while self._run_id == run_id:
            await self._resume_event.wait()
            if self._run_id != run_id:
                return

            job = self.session.current_job
            try:
                if job is None:
                    await self._begin_job(run_id)
                    continue

                if job.is_complete:
                    self._complete_job(job)
                    continue

                await self._run_step(run_id, job)
            except StepExecutionFailure as e:
                if not self._fail_job(run_id, e):
                    return
                continue

            await asyncio.sleep(self._step_delay())

    async def _begin_job(self, run_id: int):
        template = self.catalog.pick_job()
        seed = self.catalog.rng.randrange(2**31)
        job = RunningJob(template=template, total_steps=self.config.steps_per_job)
        self.session.current_job = job

        self._log(f"📦 New job: {template.name}")
        self.events.emit(EventType.JOB_STARTED, name=template.name, total_steps=job.total_steps)
        self.events.emit(EventType.PROGRESS, percent=0.0)
        self.events.emit(EventType.CUE, frequency=JOB_STARTED_CUE_HZ)

        try:
            simulator = self.simulator_factory(template, job.total_steps, seed)
        except Exception as e:
            raise StepExecutionFailure(f"backend setup failed: {e}", step=0) from e

        # A subscriber may have stopped the node while the job was announced
        if self._run_id != run_id:
            simulator.close()
            return
        self._simulator = simulator

        if self.config.bid_delay > 0:
            self._log("Bidding...")
            await asyncio.sleep(self.config.bid_delay)
            await self._resume_event.wait()
            if self._run_id != run_id:
                return
            self._log("Bid won!")

    async def _run_step(self, run_id: int, job: RunningJob):
        step = job.completed_steps + 1
        simulator = self._simulator

        try:
            metric = float(await simulator.next_metric(step))
        except StepExecutionFailure:
            raise
        except Exception as e:
            raise StepExecutionFailure(f"{type(e).__name__}: {e}", step=step) from e

        # Stopped (or restarted) while the step was in flight
        if self._run_id != run_id or self.session.current_job is not job:
            logger.debug(f"Discarding stale result for step {step} of {job.template.name}")
            return

        if not math.isfinite(metric):
            raise StepExecutionFailure(f"numeric divergence (loss={metric})", step=step)

        step = job.record_step(metric)
        self._log(f"   Epoch {step}/{job.total_steps} → loss: {metric:.4f}")
        self.events.emit(EventType.PROGRESS, percent=job.progress_percent)

    def _complete_job(self, job: RunningJob):
        is_valid, reason = self.verifier.verify_job(job)
        if not is_valid:
            raise StepExecutionFailure(f"proof rejected: {reason}", step=job.completed_steps)

        reward = compute_reward(job.template, self.session.device)
        self.session.earnings = round(self.session.earnings + reward, REWARD_DECIMALS)
        self.session.jobs_completed += 1
        self._consecutive_failures = 0

        self._log(f"✅ Proof verified! +{format_earnings(reward)} {CURRENCY_SYMBOL} earned")
        self.events.emit(EventType.JOB_COMPLETED, name=job.template.name, reward=reward)
        self.events.emit(EventType.EARNINGS_CHANGED, total=self.session.earnings)
        self.events.emit(EventType.CUE, frequency=PROOF_VERIFIED_CUE_HZ)

        self._discard_job()
        self._celebrate()

    def _fail_job(self, run_id: int, error: StepExecutionFailure) -> bool:
        """Abort the current job. Returns False when the run should end."""
        if self._run_id != run_id:
            return False

        job = self.session.current_job
        name = job.template.name if job else "unknown job"
        self.session.jobs_failed += 1
        self._consecutive_failures += 1

        logger.warning(f"Job '{name}' failed at step {error.step}: {error.reason}")
        self._log(f"⚠️ Step {error.step} failed: {error.reason}")
        self.events.emit(EventType.JOB_FAILED, name=name, reason=error.reason)
        self._discard_job()

        if self._consecutive_failures >= self.config.max_consecutive_failures:
            self._end_run("🛑 Too many failed jobs, stopping node", cancel=False)
            return False
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _step_delay(self) -> float:
        return self.config.step_delay / self.session.device.relative_speed

    def _end_run(self, message: str, cancel: bool):
        self._run_id += 1
        if cancel and self._task is not None and not self._task.done():
            self._task.cancel()

        job = self.session.current_job
        if job is not None and not job.is_complete:
            logger.info(f"Abandoning '{job.template.name}' at step {job.completed_steps}/{job.total_steps}")
        self._discard_job()

        self._set_state(NodeState.STOPPED)
        self._log(message)

    def _discard_job(self):
        """Release the job's simulator (once) and forget the job."""
        simulator, self._simulator = self._simulator, None
        if simulator is not None:
            simulator.close()
        self.session.current_job = None

    def _celebrate(self):
        self.session.celebrating = True
        self.events.emit(EventType.CELEBRATE, active=True)

        if self._celebrate_handle is not None:
            self._celebrate_handle.cancel()
        loop = asyncio.get_running_loop()
        self._celebrate_handle = loop.call_later(self.config.celebrate_seconds, self._clear_celebration)

    def _clear_celebration(self):
        self._celebrate_handle = None
        self.session.celebrating = False
        self.events.emit(EventType.CELEBRATE, active=False)

    def _set_state(self, state: NodeState):
        if self.session.state is state:
            return
        previous, self.session.state = self.session.state, state
        logger.info(f"Node state: {previous.value} -> {state.value}")
        self.events.emit(EventType.STATE_CHANGED, state=state.value)

    def _log(self, text: str):
        self.session.log.append(text)
        logger.info(text)
        self.events.emit(EventType.LOG, text=text)

    def _on_task_done(self, run_id: int, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error(f"Job loop crashed: {exc}", exc_info=exc)
        if run_id == self._run_id and self.session.state.is_active:
            self._end_run(f"❌ Node error: {exc}", cancel=False)
