"""
Event Entity
The reported outcome of one phase of an action's execution.
"""

from dataclasses import dataclass
from enum import Enum

from tink_agent.domain.entities.action import Action


class State(str, Enum):
    """Lifecycle states of one action's execution."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Only RUNNING is non-terminal."""
        return self is not State.RUNNING


@dataclass(frozen=True)
class Event:
    """Status report for an action, created by the agent loop."""

    action: Action
    message: str
    state: State

    def __str__(self) -> str:
        return f"action: {self.action}, message: {self.message}, state: {self.state.value}"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "action": self.action.to_dict(),
            "message": self.message,
            "state": self.state.value,
        }
