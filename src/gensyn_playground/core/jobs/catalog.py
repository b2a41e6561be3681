"""
Job and Device Catalog

Static registries for the playground node:

- DEVICES: the simulated GPUs a user can pick before starting a node.
  `relative_speed` scales both the pacing between epochs and the payout.
- JOB_TEMPLATES: the fake training jobs a node can be handed. One is drawn
  uniformly at random every time the node goes looking for work.

All random draws go through a `random.Random` owned by the JobCatalog so a
seeded catalog always hands out the same job sequence (tests rely on this).
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Device:
    """A simulated GPU."""
    name: str
    relative_speed: float
    power_watts: int = 0

    def __post_init__(self):
        if self.relative_speed <= 0:
            raise ValueError(f"relative_speed must be positive, got {self.relative_speed}")

    @property
    def label(self) -> str:
        """Name as shown in the device picker, e.g. 'H100 (700W)'."""
        return f"{self.name} ({self.power_watts}W)"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "relative_speed": self.relative_speed,
            "power_watts": self.power_watts,
            "label": self.label,
        }


@dataclass(frozen=True)
class JobTemplate:
    """A kind of training job and what it pays on a speed-1.0 device."""
    name: str
    base_reward: float

    def __post_init__(self):
        if self.base_reward < 0:
            raise ValueError(f"base_reward must be non-negative, got {self.base_reward}")

    def to_dict(self) -> dict:
        return {"name": self.name, "base_reward": self.base_reward}


# =============================================================================
# REGISTRIES
# =============================================================================

DEVICES: Tuple[Device, ...] = (
    Device("RTX 4090", relative_speed=1.2, power_watts=450),
    Device("H100", relative_speed=1.8, power_watts=700),
    Device("A100", relative_speed=1.0, power_watts=400),
    Device("RTX 3090", relative_speed=0.9, power_watts=350),
    Device("M2 MacBook", relative_speed=0.3, power_watts=30),
)

JOB_TEMPLATES: Tuple[JobTemplate, ...] = (
    JobTemplate("Train ResNet-18 on CIFAR-10", base_reward=1.2),
    JobTemplate("Fine-tune Llama-7B", base_reward=2.8),
    JobTemplate("Stable Diffusion Proof", base_reward=0.9),
    JobTemplate("GPT-2 from scratch", base_reward=1.6),
)

DEFAULT_DEVICE = DEVICES[0]

_DEVICES_BY_NAME: Dict[str, Device] = {d.name: d for d in DEVICES}


def get_device(name: str) -> Device:
    """
    Look up a catalog device by name.

    Accepts either the bare name ("H100") or the picker label ("H100 (700W)").

    Raises:
        KeyError: if no device matches
    """
    device = _DEVICES_BY_NAME.get(name)
    if device is None:
        for candidate in DEVICES:
            if candidate.label == name:
                return candidate
        raise KeyError(f"Unknown device: {name}")
    return device


class JobCatalog:
    """
    Seedable source of jobs.

    Usage:
        catalog = JobCatalog(seed=42)
        job = catalog.pick_job()
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        templates: Optional[List[JobTemplate]] = None,
    ):
        self.rng = rng if rng is not None else random.Random(seed)
        self._templates = list(templates) if templates is not None else list(JOB_TEMPLATES)
        if not self._templates:
            raise ValueError("JobCatalog needs at least one job template")

    def pick_job(self) -> JobTemplate:
        """Draw a job template uniformly at random."""
        return self.rng.choice(self._templates)

    def jobs(self) -> List[JobTemplate]:
        return list(self._templates)

    def devices(self) -> List[Device]:
        return list(DEVICES)

    def get_device(self, name: str) -> Device:
        return get_device(name)
