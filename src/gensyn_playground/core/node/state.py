"""
Node session data model.

A Session is everything a dashboard needs to draw a node: its state, the
device it runs on, the job in flight, the running $SY total and the log.
It is owned by a single NodeController and reset on every start().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from gensyn_playground.core.jobs.catalog import DEFAULT_DEVICE, Device, JobTemplate


class NodeState(Enum):
    """Lifecycle state of a node."""
    IDLE = "idle"           # Never started
    RUNNING = "running"     # Job loop is executing steps
    PAUSED = "paused"       # Job loop is parked before the next step
    STOPPED = "stopped"     # Run ended; earnings and log still visible

    @property
    def is_active(self) -> bool:
        """Whether a run is in progress (RUNNING or PAUSED)."""
        return self in (NodeState.RUNNING, NodeState.PAUSED)


@dataclass
class RunningJob:
    """A job in flight on the node."""
    template: JobTemplate
    total_steps: int
    completed_steps: int = 0
    metrics: List[float] = field(default_factory=list)

    def __post_init__(self):
        if self.total_steps <= 0:
            raise ValueError(f"total_steps must be positive, got {self.total_steps}")

    @property
    def is_complete(self) -> bool:
        return self.completed_steps >= self.total_steps

    @property
    def progress_percent(self) -> float:
        return 100.0 * self.completed_steps / self.total_steps

    def record_step(self, metric: float) -> int:
        """Record the metric of the next step and return that step's number (1-based)."""
        if self.is_complete:
            raise ValueError(f"Job '{self.template.name}' already completed {self.total_steps} steps")
        self.metrics.append(metric)
        self.completed_steps += 1
        return self.completed_steps

    def to_dict(self) -> dict:
        return {
            "name": self.template.name,
            "base_reward": self.template.base_reward,
            "total_steps": self.total_steps,
            "completed_steps": self.completed_steps,
            "progress_percent": self.progress_percent,
        }


@dataclass
class Session:
    """Everything a node shows to its user during (and after) a run."""
    state: NodeState = NodeState.IDLE
    device: Device = DEFAULT_DEVICE
    current_job: Optional[RunningJob] = None
    earnings: float = 0.0
    log: List[str] = field(default_factory=list)
    celebrating: bool = False
    jobs_completed: int = 0
    jobs_failed: int = 0

    @property
    def progress_percent(self) -> float:
        """Progress of the current job, 0 when no job is active."""
        if self.current_job is None:
            return 0.0
        return self.current_job.progress_percent

    def reset(self):
        """Clear per-run data. Device and state are left to the controller."""
        self.current_job = None
        self.earnings = 0.0
        self.log = []
        self.jobs_completed = 0
        self.jobs_failed = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "device": self.device.to_dict(),
            "current_job": self.current_job.to_dict() if self.current_job else None,
            "earnings": self.earnings,
            "progress_percent": self.progress_percent,
            "celebrating": self.celebrating,
            "jobs_completed": self.jobs_completed,
            "jobs_failed": self.jobs_failed,
            "log": list(self.log),
        }
