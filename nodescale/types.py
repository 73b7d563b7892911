"""Core data types for nodescale."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TypeAlias

from nodescale.constants import DEFAULT_SSH_PORT, Direction

VmId: TypeAlias = str
NetworkName: TypeAlias = str | None


def is_resolved(name: NetworkName) -> bool:
    """Whether a network name is usable; blank and None are unresolved."""
    return name is not None and bool(name.strip())


def resolved_names(names: Iterable[NetworkName]) -> set[str]:
    """Return the usable names, dropping blank and None entries."""
    return {name for name in names if name is not None and name.strip()}


def unresolved_vm_ids(vm_ids: Iterable[VmId], name_map: Mapping[VmId, NetworkName]) -> set[VmId]:
    """VMs whose name is blank, None or missing from the mapping."""
    return {vm_id for vm_id in vm_ids if not is_resolved(name_map.get(vm_id))}


@dataclass(frozen=True, slots=True)
class ClusterRoute:
    """How to reach a cluster's coordinator.

    Attributes:
        coordinator_address: Host of the coordinator, or None when the
            cluster has no reachable master yet.
        cluster_id: Cluster identifier.
        ssh_port: SSH port on the coordinator.
    """

    coordinator_address: str | None
    cluster_id: str
    ssh_port: int = DEFAULT_SSH_PORT

    @property
    def is_reachable(self) -> bool:
        return bool(self.coordinator_address)


@dataclass(frozen=True, slots=True)
class Credentials:
    """SSH login material. The private key wins over the password."""

    username: str
    password: str | None = field(default=None, repr=False)
    private_key_file: str | None = None

    @property
    def uses_key(self) -> bool:
        return self.private_key_file is not None


@dataclass(frozen=True, slots=True)
class ScalingRequest:
    """A scale directive for one cluster."""

    vm_ids: frozenset[VmId]
    total_target_enabled: int
    cluster_id: str
    direction: Direction = Direction.ENABLE

    def __post_init__(self) -> None:
        if self.vm_ids is None:
            raise ValueError("vm_ids must not be None")
        if not isinstance(self.vm_ids, frozenset):
            object.__setattr__(self, "vm_ids", frozenset(self.vm_ids))
        if self.total_target_enabled < 0:
            raise ValueError(f"total_target_enabled must be >= 0, got {self.total_target_enabled}")
