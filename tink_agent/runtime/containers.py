"""
Container Helpers
Naming, environment, volume and image reference handling shared by the
runtime executors.
"""

import re
import secrets
import string
from dataclasses import dataclass
from typing import Iterable

from tink_agent.domain.entities.action import Env

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

DEFAULT_REGISTRY = "docker.io"


def container_name(action_id: str, name: str, suffix_length: int = 6) -> str:
    """
    Build a unique container name for an action.

    The ``tinkerbell_`` prefix guarantees a valid first character; the
    random suffix keeps names of repeated runs apart.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(suffix_length))
    return "tinkerbell_{}_{}_{}".format(
        _INVALID_NAME_CHARS.sub("_", name),
        _INVALID_NAME_CHARS.sub("_", action_id),
        suffix,
    )


def flatten_env(env: Iterable[Env]) -> list[str]:
    """Convert env entries to ``K=V`` strings, keeping order and duplicates."""
    return [f"{e.key}={e.value}" for e in env]


@dataclass(frozen=True)
class VolumeMount:
    """A parsed ``src:dst[:opts]`` volume string."""

    source: str
    target: str
    options: tuple[str, ...] = ()

    @property
    def read_only(self) -> bool:
        return "ro" in self.options

    @property
    def is_bind(self) -> bool:
        """Host path mounts start with '/'; anything else is a named volume."""
        return self.source.startswith("/")


def parse_volume(raw: str) -> VolumeMount:
    """
    Parse a raw volume string.

    Raises:
        ValueError: If source or target is missing
    """
    parts = raw.split(":")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"invalid volume {raw!r}: expected src:dst[:opts]")
    options = tuple(o for o in ",".join(parts[2:]).split(",") if o)
    return VolumeMount(source=parts[0], target=parts[1], options=options)


def with_default_tag(reference: str) -> str:
    """Append ``:latest`` when a reference has neither tag nor digest."""
    if "@" in reference or ":" in reference.rsplit("/", 1)[-1]:
        return reference
    return f"{reference}:latest"


def resolve_image(reference: str, registry: str = DEFAULT_REGISTRY) -> str:
    """
    Fully qualify a possibly-short image reference.

    ``alpine`` becomes ``docker.io/library/alpine:latest`` with the default
    registry; references that already name a registry host are only
    given a tag when they have neither tag nor digest.
    """
    name, _, digest = reference.partition("@")
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        domain, path = first, rest
    else:
        domain, path = registry or DEFAULT_REGISTRY, name

    if domain == DEFAULT_REGISTRY and "/" not in path:
        path = f"library/{path}"
    if not digest and ":" not in path.rsplit("/", 1)[-1]:
        path = f"{path}:latest"

    resolved = f"{domain}/{path}"
    if digest:
        resolved = f"{resolved}@{digest}"
    return resolved
