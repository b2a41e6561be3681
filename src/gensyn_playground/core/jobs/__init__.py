from gensyn_playground.core.jobs.catalog import (
    DEFAULT_DEVICE,
    DEVICES,
    JOB_TEMPLATES,
    Device,
    JobCatalog,
    JobTemplate,
    get_device,
)

__all__ = [
    "DEFAULT_DEVICE",
    "DEVICES",
    "JOB_TEMPLATES",
    "Device",
    "JobCatalog",
    "JobTemplate",
    "get_device",
]
