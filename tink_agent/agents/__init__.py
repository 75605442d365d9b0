"""
Tink Agent Loop Layer
The action execution loop and the interfaces it drives.
"""

from tink_agent.agents.loop import (
    AgentLoop,
    RuntimeExecutor,
    TransportReader,
    TransportWriter,
)

__all__ = [
    "AgentLoop",
    "RuntimeExecutor",
    "TransportReader",
    "TransportWriter",
]
