"""Enable/disable policy for cluster worker nodes.

Three views of a node change independently: its VM power state on the
virtualization platform, its network name in the topology store, and its
membership on the coordinator. The orchestrator sequences changes to all
three and reports which nodes actually converged.

Both entry points block: enabling waits for DNS names (``dns_timeout``)
and for the coordinator to confirm membership; every remote command may
block up to the transport's idle timeout.

Example:
    >>> orchestrator = ScalingOrchestrator(topology, power, membership)
    >>> orchestrator.enable_nodes({"vm-1", "vm-2"}, 6, "cluster-a")
    {'vm-1', 'vm-2'}
"""

from __future__ import annotations

from collections.abc import Set

from loguru import logger

from nodescale.config import ScalingSettings
from nodescale.constants import DECOMMISSION_STATUS_KEY, Direction, VerifyMode
from nodescale.protocols import Membership, PowerControl, TopologyStore, read_locked
from nodescale.scaling.dns import DnsConvergenceWaiter
from nodescale.status import OperationStatus
from nodescale.types import ClusterRoute, ScalingRequest, VmId, unresolved_vm_ids


def _plural(count: int, noun: str = "node") -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def summarize(change_membership: int, change_power: int, decommission: bool) -> str:
    """User-facing description of what a scaling step is about to do."""
    parts: list[str] = []
    if change_membership:
        prefix = "de" if decommission else "re"
        parts.append(f"{prefix}commissioning {_plural(change_membership)}")
    if change_power:
        parts.append(f"powering {'off' if decommission else 'on'} {_plural(change_power)}")
    return "; ".join(parts) or "nothing to do"


class ScalingOrchestrator:
    """Executes scale directives against one topology store.

    Holds no per-operation state: each call builds its own
    ``OperationStatus``, so independent clusters may be scaled from
    separate threads.
    """

    def __init__(
        self,
        topology: TopologyStore,
        power: PowerControl,
        membership: Membership,
        settings: ScalingSettings | None = None,
    ) -> None:
        self._topology = topology
        self._power = power
        self._membership = membership
        self._settings = settings or ScalingSettings()
        self._dns = DnsConvergenceWaiter(topology, self._settings.dns_poll_interval)

    # -------------------------------------------------------------------------
    # Topology lookups (lock held only for the lookup itself)
    # -------------------------------------------------------------------------

    def _route(self, cluster_id: str) -> ClusterRoute | None:
        with read_locked(self._topology) as view:
            return view.route_for_cluster(cluster_id)

    def _vm_ids_for(self, names: Set[str] | None) -> set[VmId] | None:
        if names is None:
            return None
        with read_locked(self._topology) as view:
            mapping = view.vm_ids_for_names(names)
        return None if mapping is None else set(mapping.values())

    # -------------------------------------------------------------------------
    # Enable
    # -------------------------------------------------------------------------

    def enable_nodes(self, vm_ids: Set[VmId], total_target_enabled: int, cluster_id: str) -> set[VmId] | None:
        """Power on and recommission ``vm_ids``.

        Returns:
            The VMs the coordinator reports active, or None when the cluster
            has no coordinator or any stage short-circuited.
        """
        log = logger.bind(cluster=cluster_id)
        route = self._route(cluster_id)
        if route is None or not route.is_reachable:
            log.debug(f"<{cluster_id}> no coordinator address; nothing to enable")
            return None

        status = OperationStatus("enableNodes")
        log.info(f"<{cluster_id}> {summarize(len(vm_ids), 0, decommission=False)}")

        # Only clears any stale exclusion list; safe to repeat
        self._membership.recommission(vm_ids, route, status)

        if self._power.set_power(vm_ids, True, status) is None:
            status.register_step_failed(False, "Failed to change VM power state")
            log.warning(f"<{cluster_id}> Failed to power on nodes")
            return None

        if not status.screen_failures([self._power.POWER_ON_STATUS_KEY]):
            log.warning(f"<{cluster_id}> Unexpected error powering on nodes: {status.first_failure_message}")
            return None

        names = self._dns.wait_for_names(vm_ids, self._settings.dns_timeout)
        if names is None:
            log.warning(f"<{cluster_id}> No DNS names resolved for powered-on nodes")
            return None

        active_names = self._membership.verify_active(
            VerifyMode.RECOMMISSION, names, total_target_enabled, route, status
        )
        active = self._vm_ids_for(active_names)
        if active is not None and len(active) < len(vm_ids):
            log.info(f"<{cluster_id}> {len(active)} of {len(vm_ids)} nodes became active")
        return active

    # -------------------------------------------------------------------------
    # Disable
    # -------------------------------------------------------------------------

    def disable_nodes(self, vm_ids: Set[VmId], total_target_enabled: int, cluster_id: str) -> set[VmId] | None:
        """Decommission ``vm_ids`` and power every one of them off.

        VMs without a network name cannot be decommissioned through the
        coordinator; they are only powered off, and the target count the
        coordinator is checked against is raised by their number.

        Returns:
            VMs verified as no longer active (never the unverifiable ones),
            or None when the cluster has no coordinator or names are unknown.
        """
        log = logger.bind(cluster=cluster_id)
        with read_locked(self._topology) as view:
            route = view.route_for_cluster(cluster_id)
            name_map = view.names_for_vm_ids(vm_ids)

        if route is None or not route.is_reachable or name_map is None:
            log.debug(f"<{cluster_id}> no coordinator address or names; nothing to disable")
            return None

        status = OperationStatus("disableNodes")
        invalid = unresolved_vm_ids(vm_ids, name_map)
        valid_ids = set(vm_ids) - invalid
        valid_names = {name for vm_id in valid_ids if (name := name_map.get(vm_id)) is not None}
        adjusted_target = total_target_enabled + len(invalid)

        log.info(f"<{cluster_id}> {summarize(len(valid_names), len(invalid), decommission=True)}")

        if valid_names:
            self._membership.decommission(valid_names, route, status)

        successful: set[VmId] = set()
        if status.screen_failures([DECOMMISSION_STATUS_KEY]):
            active_names = self._membership.verify_active(
                VerifyMode.DECOMMISSION, valid_names, adjusted_target, route, status
            )
            still_active = self._vm_ids_for(active_names)
            if still_active is not None:
                successful = valid_ids - still_active
            unsuccessful = set(vm_ids) - successful
            if unsuccessful:
                log.info(f"The following nodes failed to decommission cleanly: {sorted(unsuccessful)}")
        else:
            log.warning(f"<{cluster_id}> Decommission failed: {status.first_failure_message}")

        # Power off everything, decommissioned or not; does not block
        if self._power.set_power(vm_ids, False, status) is None:
            status.register_step_failed(False, "Failed to change VM power state")
            log.warning(f"<{cluster_id}> Unexpected error powering off nodes")

        return successful

    # -------------------------------------------------------------------------
    # Queries and dispatch
    # -------------------------------------------------------------------------

    def active_nodes(self, cluster_id: str) -> set[str] | None:
        """Names the coordinator currently reports as active workers."""
        route = self._route(cluster_id)
        if route is None or not route.is_reachable:
            return None
        return self._membership.active_nodes(route)

    def apply(self, request: ScalingRequest) -> set[VmId] | None:
        """Execute ``request`` in its direction."""
        match request.direction:
            case Direction.ENABLE:
                return self.enable_nodes(request.vm_ids, request.total_target_enabled, request.cluster_id)
            case Direction.DISABLE:
                return self.disable_nodes(request.vm_ids, request.total_target_enabled, request.cluster_id)
