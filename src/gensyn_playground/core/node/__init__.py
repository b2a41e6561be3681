"""
Playground node lifecycle.

- state: NodeState, RunningJob, Session
- events: EventBus, EventType, NodeEvent
- errors: InvalidTransition, StepExecutionFailure
- controller: NodeController (the job loop)
"""

from gensyn_playground.core.node.controller import NodeController
from gensyn_playground.core.node.errors import InvalidTransition, StepExecutionFailure
from gensyn_playground.core.node.events import EventBus, EventType, NodeEvent
from gensyn_playground.core.node.state import NodeState, RunningJob, Session

__all__ = [
    "NodeController",
    "InvalidTransition",
    "StepExecutionFailure",
    "EventBus",
    "EventType",
    "NodeEvent",
    "NodeState",
    "RunningJob",
    "Session",
]
