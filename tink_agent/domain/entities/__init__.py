"""Domain Entities - Core provisioning objects."""

from tink_agent.domain.entities.action import Action, Env, Namespaces
from tink_agent.domain.entities.event import Event, State

__all__ = [
    "Action",
    "Env",
    "Namespaces",
    "Event",
    "State",
]
