"""
Transports
Sources of actions and sinks for events.
"""

from tink_agent.transport.file import FileTransport
from tink_agent.transport.handoff import Handoff
from tink_agent.transport.nats import NATSTransport

__all__ = [
    "FileTransport",
    "Handoff",
    "NATSTransport",
]
