"""
Action Batch Serialization
YAML codec for the action batches delivered by the file and pub/sub transports.
"""

from typing import Union

import yaml

from tink_agent.domain.entities.action import Action
from tink_agent.errors import ActionDecodeError


def decode_actions(data: Union[bytes, str]) -> list[Action]:
    """
    Decode an ordered batch of actions.

    JSON documents are accepted too, as JSON is a subset of YAML.

    Args:
        data: Encoded batch

    Returns:
        Actions in document order (empty for an empty document)

    Raises:
        ActionDecodeError: If the document is not a list of action records
    """
    try:
        records = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ActionDecodeError(f"unable to parse action batch: {e}") from e

    if records is None:
        return []
    if not isinstance(records, list):
        raise ActionDecodeError(
            f"action batch must be a list, got {type(records).__name__}"
        )

    return [Action.from_dict(record) for record in records]


def encode_actions(actions: list[Action]) -> str:
    """Encode actions as a YAML list, preserving order."""
    return yaml.safe_dump(
        [action.to_dict() for action in actions],
        sort_keys=False,
        default_flow_style=False,
    )
