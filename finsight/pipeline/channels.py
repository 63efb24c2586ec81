"""
State Channel Store

Pipeline state is a set of named channels, each declared with a static merge
policy and a default value. Stages never mutate state: they return partial
updates which the store merges channel by channel.

Merge policies:
    REPLACE        last write wins
    APPEND         concatenate in insertion order (duplicates kept)
    SHALLOW_MERGE  field-wise union of two mappings, new wins on key conflict

Usage::

    from finsight.pipeline.channels import Channel, MergePolicy, PipelineSchema

    schema = PipelineSchema([
        Channel("health_score", MergePolicy.REPLACE),
        Channel("alerts", MergePolicy.APPEND),
        Channel("execution_metadata", MergePolicy.SHALLOW_MERGE),
    ])
    store = schema.build_store()
    store.commit({"alerts": [alert]})
    snapshot = store.snapshot()     # read-only view, every channel present
"""

import copy
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

ERRORS_CHANNEL = "errors"


class ChannelError(Exception):
    """Raised for unregistered channels, duplicate registration, or values a policy cannot merge."""


class MergePolicy(Enum):
    REPLACE = "replace"
    APPEND = "append"
    SHALLOW_MERGE = "shallow_merge"

    def default(self) -> Any:
        """Default value for a channel that declares no default factory."""
        if self is MergePolicy.APPEND:
            return []
        if self is MergePolicy.SHALLOW_MERGE:
            return {}
        return None

    def accepts(self, value: Any) -> bool:
        """Whether ``value`` can be merged under this policy."""
        if self is MergePolicy.SHALLOW_MERGE:
            return value is None or isinstance(value, Mapping)
        return True

    def merge(self, old: Any, new: Any) -> Any:
        """
        Merge ``new`` into ``old`` without mutating either.

        Total for ``old = default``. Callers check ``accepts(new)`` first.
        """
        if self is MergePolicy.REPLACE:
            return new

        if self is MergePolicy.APPEND:
            current = list(old) if isinstance(old, list | tuple) else []
            if new is None:
                return current
            if isinstance(new, list | tuple):
                return current + list(new)
            return current + [new]

        # SHALLOW_MERGE
        current = dict(old) if isinstance(old, Mapping) else {}
        if new is None:
            return current
        current.update(new)
        return current


@dataclass(frozen=True)
class Channel:
    """Static declaration of one state channel."""

    name: str
    policy: MergePolicy = MergePolicy.REPLACE
    default_factory: Callable[[], Any] | None = None

    def default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.policy.default()


class ChannelStore:
    """
    Holds the current value of every registered channel.

    Only the stage executor calls ``commit``; stages see ``snapshot()`` views.
    """

    def __init__(self) -> None:
        self._channels: dict[str, Channel] = {}
        self._values: dict[str, Any] = {}

    def register(
        self,
        name: str,
        policy: MergePolicy = MergePolicy.REPLACE,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        """
        Register a channel before first use.

        Raises:
            ChannelError: If the name is already registered
        """
        if name in self._channels:
            raise ChannelError(f"Channel already registered: {name}")
        channel = Channel(name, policy, default_factory)
        self._channels[name] = channel
        self._values[name] = channel.default()

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    @property
    def channel_names(self) -> list[str]:
        return list(self._channels)

    def policy_of(self, name: str) -> MergePolicy:
        if name not in self._channels:
            raise ChannelError(f"Unknown channel: {name}")
        return self._channels[name].policy

    def snapshot(self) -> Mapping[str, Any]:
        """
        Read-only view of the full state; every registered channel is present.

        Values are deep copies, so changes a stage makes to a list or dict it was
        handed never reach the store.
        """
        return MappingProxyType(copy.deepcopy(self._values))

    def commit(self, partial: Mapping[str, Any]) -> None:
        """
        Merge a partial update into the store.

        The whole update is validated before any channel changes, so a rejected
        update leaves the store untouched.

        Raises:
            ChannelError: If a key is unregistered or a value does not fit its channel's policy
        """
        for name, value in partial.items():
            if name not in self._channels:
                raise ChannelError(f"Unknown channel: {name}")
            policy = self._channels[name].policy
            if not policy.accepts(value):
                raise ChannelError(
                    f"Channel {name} ({policy.value}) cannot merge a value of type {type(value).__name__}"
                )

        for name, value in partial.items():
            self._values[name] = self._channels[name].policy.merge(self._values[name], value)


class PipelineSchema:
    """
    Static channel declarations for one workflow.

    An ``errors`` channel (APPEND) is always present.
    """

    def __init__(self, channels: Iterable[Channel]):
        self.channels: tuple[Channel, ...] = tuple(channels)
        names = [channel.name for channel in self.channels]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ChannelError(f"Duplicate channel declarations: {sorted(duplicates)}")

        errors = next((channel for channel in self.channels if channel.name == ERRORS_CHANNEL), None)
        if errors is None:
            self.channels += (Channel(ERRORS_CHANNEL, MergePolicy.APPEND),)
        elif errors.policy is not MergePolicy.APPEND:
            raise ChannelError(f"The {ERRORS_CHANNEL} channel must use the append policy")

    @property
    def channel_names(self) -> list[str]:
        return [channel.name for channel in self.channels]

    def build_store(self) -> ChannelStore:
        """Fresh store with every declared channel registered."""
        store = ChannelStore()
        for channel in self.channels:
            store.register(channel.name, channel.policy, channel.default_factory)
        return store
