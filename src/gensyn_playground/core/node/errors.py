"""Errors raised by the node controller and its step simulators."""


class InvalidTransition(Exception):
    """Raised when a command is not allowed in the node's current state."""

    def __init__(self, command: str, state):
        self.command = command
        self.state = state
        state_name = getattr(state, "value", state)
        super().__init__(f"Cannot {command} while node is {state_name}")


class StepExecutionFailure(Exception):
    """Raised when a step simulator fails to produce a metric for a step."""

    def __init__(self, reason: str, step: int = 0):
        self.reason = reason
        self.step = step
        super().__init__(reason)
