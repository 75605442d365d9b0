"""
Tink Agent Domain Layer
Actions, events and their wire encoding.
"""

from tink_agent.domain.entities import Action, Env, Event, Namespaces, State
from tink_agent.domain.serialization import decode_actions, encode_actions

__all__ = [
    # Entities
    "Action",
    "Env",
    "Namespaces",
    "Event",
    "State",
    # Serialization
    "decode_actions",
    "encode_actions",
]
