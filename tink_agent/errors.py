"""
Agent Errors
Exception types shared by the loop, transports and runtime executors.
"""

from typing import Optional


class TinkAgentError(Exception):
    """Base class for all agent errors."""


class TransportError(TinkAgentError):
    """A transport could not supply an action or deliver an event."""


class ActionDecodeError(TransportError):
    """An action batch or record could not be decoded."""


class ActionExecutionError(TinkAgentError):
    """
    An action's workload failed to run to a clean exit.

    Carries the failing operation and the action identity so a log line
    is enough to tell what broke.
    """

    def __init__(
        self,
        operation: str,
        action_id: str,
        message: str,
        action_name: Optional[str] = None,
    ):
        self.operation = operation
        self.action_id = action_id
        self.action_name = action_name
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        ident = self.action_id
        if self.action_name:
            ident = f"{self.action_id}/{self.action_name}"
        return f"{self.operation} [{ident}]: {self.message}"


class ImagePullError(ActionExecutionError):
    """The action image could not be pulled and is not present locally."""


class CleanupError(TinkAgentError):
    """Teardown of a container, task or snapshot failed."""


class BootstrapError(TinkAgentError):
    """A client or connection could not be constructed at start-up."""

    def __init__(self, message: str, exit_code: int = 1):
        self.exit_code = exit_code
        super().__init__(message)
