"""Collaborator protocols consumed by the scaling orchestrator.

The topology store, the power-control API and the coordinator membership
commands live outside this package. These protocols pin down exactly what
the orchestrator needs from them.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Mapping, Set
from typing import ClassVar, Protocol, runtime_checkable

from nodescale.constants import VerifyMode
from nodescale.status import OperationStatus
from nodescale.types import ClusterRoute, NetworkName, VmId

__all__ = [
    "ClusterView",
    "TopologyStore",
    "PowerControl",
    "Membership",
    "read_locked",
]


# =============================================================================
# Topology
# =============================================================================


class ClusterView(Protocol):
    """Read access to the topology store, valid only while the lock is held."""

    def route_for_cluster(self, cluster_id: str) -> ClusterRoute | None: ...

    def names_for_vm_ids(self, vm_ids: Set[VmId]) -> Mapping[VmId, NetworkName] | None:
        """Current network names; None when the VMs are no longer known."""
        ...

    def vm_ids_for_names(self, names: Set[str]) -> Mapping[str, VmId] | None: ...


@runtime_checkable
class TopologyStore(Protocol):
    def lock_for_read(self) -> ClusterView: ...

    def unlock(self, view: ClusterView) -> None: ...


@contextlib.contextmanager
def read_locked(store: TopologyStore) -> Iterator[ClusterView]:
    """Hold the store's read lock for the duration of the block only.

    Never block on remote calls or sleep inside it.
    """
    view = store.lock_for_read()
    try:
        yield view
    finally:
        store.unlock(view)


# =============================================================================
# Power control
# =============================================================================


@runtime_checkable
class PowerControl(Protocol):
    """VM power-state changes on the virtualization platform.

    Implementations record the outcome of powering on under
    ``POWER_ON_STATUS_KEY`` in the status they are given.
    """

    POWER_ON_STATUS_KEY: ClassVar[str]

    def set_power(self, vm_ids: Set[VmId], power_on: bool, status: OperationStatus) -> object | None:
        """Request a power change; returns None if the request could not be issued.

        Powering off does not wait for completion.
        """
        ...


# =============================================================================
# Membership
# =============================================================================


@runtime_checkable
class Membership(Protocol):
    """Coordinator membership commands."""

    def recommission(self, vm_ids: Set[VmId], route: ClusterRoute, status: OperationStatus) -> None: ...

    def decommission(self, names: Set[str], route: ClusterRoute, status: OperationStatus) -> None:
        """Remove workers; outcome recorded under ``DECOMMISSION_STATUS_KEY``."""
        ...

    def verify_active(
        self,
        mode: VerifyMode,
        names: Set[str],
        target_count: int,
        route: ClusterRoute,
        status: OperationStatus,
    ) -> set[str] | None:
        """Wait for the coordinator to report ``target_count`` active workers.

        Returns:
            The members of ``names`` the coordinator reports as active, or
            None when the active set could not be determined.
        """
        ...

    def active_nodes(self, route: ClusterRoute) -> set[str] | None: ...
