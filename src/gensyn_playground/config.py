# gensyn_playground/config.py
"""
Node configuration.

Defaults come from the environment (GENSYN_* variables) and can be
overridden per call, which is what the runner's CLI flags do:

    config = load_config(port=9000, backend="scripted")
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional

from gensyn_playground.core.economics.constants import CELEBRATE_SECONDS, SHARE_URL
from gensyn_playground.core.jobs.catalog import DEFAULT_DEVICE, get_device

SIMULATOR_BACKENDS = ("torch", "scripted")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class NodeConfig:
    # Job loop
    steps_per_job: int = 12
    step_delay: float = 0.4             # seconds between epochs at relative_speed 1.0
    bid_delay: float = 0.0              # 0 skips the "Bidding..." preamble
    celebrate_seconds: float = CELEBRATE_SECONDS
    max_consecutive_failures: int = 3
    backend: str = "torch"
    seed: Optional[int] = None
    device: str = DEFAULT_DEVICE.name

    # Dashboard
    share_url: str = SHARE_URL
    event_buffer_size: int = 1000

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "NodeConfig":
        return cls(
            steps_per_job=_env_int("GENSYN_STEPS_PER_JOB", 12),
            step_delay=_env_float("GENSYN_STEP_DELAY", 0.4),
            bid_delay=_env_float("GENSYN_BID_DELAY", 0.0),
            celebrate_seconds=_env_float("GENSYN_CELEBRATE_SECONDS", CELEBRATE_SECONDS),
            max_consecutive_failures=_env_int("GENSYN_MAX_FAILURES", 3),
            backend=os.getenv("GENSYN_BACKEND", "torch"),
            seed=_env_int("GENSYN_SEED", None),
            device=os.getenv("GENSYN_DEVICE", DEFAULT_DEVICE.name),
            share_url=os.getenv("GENSYN_SHARE_URL", SHARE_URL),
            event_buffer_size=_env_int("GENSYN_EVENT_BUFFER", 1000),
            host=os.getenv("GENSYN_HOST", "0.0.0.0"),
            port=_env_int("GENSYN_PORT", 8000),
            cors_origins=_env_list("GENSYN_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"),
            log_level=os.getenv("GENSYN_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self):
        """Raise ValueError on settings the node cannot run with."""
        if self.steps_per_job <= 0:
            raise ValueError(f"steps_per_job must be positive, got {self.steps_per_job}")
        if self.step_delay < 0 or self.bid_delay < 0 or self.celebrate_seconds < 0:
            raise ValueError("Delays must be non-negative")
        if self.max_consecutive_failures <= 0:
            raise ValueError(f"max_consecutive_failures must be positive, got {self.max_consecutive_failures}")
        if self.backend not in SIMULATOR_BACKENDS:
            raise ValueError(f"Unknown backend '{self.backend}' (expected one of {SIMULATOR_BACKENDS})")
        if self.event_buffer_size <= 0:
            raise ValueError(f"event_buffer_size must be positive, got {self.event_buffer_size}")
        try:
            get_device(self.device)
        except KeyError as e:
            raise ValueError(str(e)) from e


def load_config(**overrides) -> NodeConfig:
    """
    Build a validated NodeConfig from the environment plus overrides.

    Overrides set to None are ignored so argparse defaults can be passed
    straight through.
    """
    known = {f.name for f in fields(NodeConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise TypeError(f"Unknown config fields: {sorted(unknown)}")

    config = replace(NodeConfig.from_env(), **{k: v for k, v in overrides.items() if v is not None})
    config.validate()
    return config
