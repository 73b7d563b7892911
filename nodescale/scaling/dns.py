"""Wait for powered-on VMs to acquire network names."""

from __future__ import annotations

import time
from collections.abc import Set

from loguru import logger

from nodescale.constants import DEFAULT_DNS_POLL_INTERVAL
from nodescale.protocols import TopologyStore, read_locked
from nodescale.types import VmId, is_resolved, resolved_names, unresolved_vm_ids


class DnsConvergenceWaiter:
    """Bounded poll of the topology store for VM network names.

    Names are wiped when a VM powers off, so freshly powered-on VMs have
    none until the platform reports them. VMs that still have a cached
    name resolve on the first poll.
    """

    def __init__(self, topology: TopologyStore, poll_interval: float = DEFAULT_DNS_POLL_INTERVAL) -> None:
        self._topology = topology
        self._poll_interval = poll_interval

    def wait_for_names(self, vm_ids: Set[VmId], timeout: float) -> set[str] | None:
        """Block until every VM has a name or ``timeout`` seconds pass.

        Returns:
            All names when every VM resolved; on timeout the names that did
            resolve, or None if none did. None as well, immediately, when
            the VMs are no longer known to the store (e.g. deleted).
        """
        deadline = time.monotonic() + timeout
        names: list[str | None] = []

        while True:
            with read_locked(self._topology) as view:
                name_map = view.names_for_vm_ids(vm_ids)
            if name_map is None:
                logger.info(f"VMs are no longer known to the topology store: {sorted(vm_ids)}")
                return None

            names = [name_map.get(vm_id) for vm_id in vm_ids]
            if all(is_resolved(name) for name in names):
                logger.info("Found valid DNS names for all VMs")
                return resolved_names(names)

            logger.info(f"Looking for valid DNS names for {sorted(unresolved_vm_ids(vm_ids, name_map))}")
            time.sleep(self._poll_interval)
            if time.monotonic() > deadline:
                break

        found = resolved_names(names)
        logger.warning(
            f"Timed out after {timeout:.0f}s waiting for DNS names; "
            f"{len(found)} of {len(vm_ids)} resolved"
        )
        return found or None
