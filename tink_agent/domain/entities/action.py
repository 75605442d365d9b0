"""
Action Entity
A single provisioning step: run one image with a command, args and environment.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from tink_agent.errors import ActionDecodeError


@dataclass(frozen=True)
class Env:
    """One environment variable passed to an action's container."""

    key: str
    value: str = ""

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}


@dataclass(frozen=True)
class Namespaces:
    """
    Linux namespaces the action's container should join.

    An empty string leaves the runtime default in place; "host" shares
    the host namespace.
    """

    network: str = ""
    pid: str = ""

    def to_dict(self) -> dict:
        data = {}
        if self.network:
            data["network"] = self.network
        if self.pid:
            data["pid"] = self.pid
        return data


@dataclass(frozen=True)
class Action:
    """
    Entity representing one workflow action.

    Actions are created by a transport and consumed once by the agent loop.
    They are never mutated; all sequence fields are tuples so two actions
    compare equal field-for-field.

    Volumes are raw ``src:dst[:opts]`` strings, e.g. ``/etc/data:/data:ro``
    or ``shared_volume:/data``.
    """

    id: str
    name: str = ""
    image: str = ""
    task_name: str = ""
    cmd: str = ""
    args: tuple[str, ...] = ()
    env: tuple[Env, ...] = ()
    volumes: tuple[str, ...] = ()
    namespaces: Namespaces = field(default_factory=Namespaces)
    retries: int = 0
    timeout_seconds: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "Action":
        """
        Build an Action from one wire record.

        Args:
            data: Mapping using the wire field names (``timeoutSeconds`` etc.)

        Returns:
            Action instance

        Raises:
            ActionDecodeError: If the record is not a mapping or a field has
                the wrong shape
        """
        if not isinstance(data, dict):
            raise ActionDecodeError(f"action record must be a mapping, got {type(data).__name__}")

        try:
            env = tuple(
                Env(key=str(item.get("key", "")), value=_as_str(item.get("value")))
                for item in data.get("env") or []
            )
            namespaces = data.get("namespaces") or {}
            return cls(
                id=_as_str(data.get("id")),
                name=_as_str(data.get("name")),
                image=_as_str(data.get("image")),
                task_name=_as_str(data.get("taskName")),
                cmd=_as_str(data.get("cmd")),
                args=tuple(_as_str(a) for a in data.get("args") or []),
                env=env,
                volumes=tuple(_as_str(v) for v in data.get("volumes") or []),
                namespaces=Namespaces(
                    network=_as_str(namespaces.get("network")),
                    pid=_as_str(namespaces.get("pid")),
                ),
                retries=int(data.get("retries") or 0),
                timeout_seconds=int(data.get("timeoutSeconds") or 0),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ActionDecodeError(f"invalid action record: {e}") from e

    def to_dict(self) -> dict:
        """Convert to the wire representation, omitting empty optional fields."""
        data: dict[str, Any] = {"id": self.id, "name": self.name, "image": self.image}
        if self.task_name:
            data["taskName"] = self.task_name
        if self.cmd:
            data["cmd"] = self.cmd
        if self.args:
            data["args"] = list(self.args)
        if self.env:
            data["env"] = [e.to_dict() for e in self.env]
        if self.volumes:
            data["volumes"] = list(self.volumes)
        namespaces = self.namespaces.to_dict()
        if namespaces:
            data["namespaces"] = namespaces
        data["retries"] = self.retries
        data["timeoutSeconds"] = self.timeout_seconds
        return data


def _as_str(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return str(value)
