"""Coordinator membership changes driven over SSH.

The coordinator reads an exclusion file listing the workers it must stop
scheduling on. Decommissioning pushes that file and asks the coordinator to
refresh; recommissioning pushes an empty one. Verification polls the
coordinator's list of active workers until it reaches the expected count.

Every remote step opens and releases its own channel.
"""

from __future__ import annotations

import io
import time
from collections.abc import Set

from loguru import logger

from nodescale.config import MembershipSettings, SshSettings
from nodescale.constants import DECOMMISSION_STATUS_KEY, SUCCESS, VERIFY_STATUS_KEY, VerifyMode
from nodescale.errors import ConnectionFailure
from nodescale.status import OperationStatus
from nodescale.transport import exec_command, open_channel, scp_bytes
from nodescale.types import ClusterRoute, Credentials, VmId


def parse_active_listing(output: bytes) -> set[str]:
    """Worker names from the coordinator's listing, one per line.

    Lines may carry a ``tracker_`` prefix and a ``:port`` suffix, e.g.
    ``tracker_host1.example.com:localhost/127.0.0.1:40811``.
    """
    names: set[str] = set()
    for raw in output.decode("utf-8", errors="replace").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("tracker_")
        names.add(line.split(":", 1)[0])
    return names


class SshMembership:
    """``Membership`` implementation for a coordinator reachable over SSH."""

    def __init__(
        self,
        credentials: Credentials,
        membership: MembershipSettings | None = None,
        ssh: SshSettings | None = None,
    ) -> None:
        self._credentials = credentials
        self._settings = membership or MembershipSettings()
        self._ssh = ssh or SshSettings()

    # -------------------------------------------------------------------------
    # Remote primitives
    # -------------------------------------------------------------------------

    def _push(self, route: ClusterRoute, payload: bytes) -> int:
        assert route.coordinator_address is not None
        with open_channel(self._credentials, route.coordinator_address, route.ssh_port, self._ssh) as channel:
            return scp_bytes(
                channel,
                payload,
                self._settings.remote_dir,
                self._settings.exclude_file,
                self._settings.exclude_perms,
            )

    def _run(self, route: ClusterRoute, command: str, out: io.BytesIO | None = None) -> int:
        assert route.coordinator_address is not None
        with open_channel(self._credentials, route.coordinator_address, route.ssh_port, self._ssh) as channel:
            return exec_command(channel, command, out, self._ssh)

    def _update_exclusions(
        self, route: ClusterRoute, names: Set[str], status: OperationStatus, key: str | None
    ) -> None:
        payload = "".join(f"{name}\n" for name in sorted(names)).encode()
        try:
            rc = self._push(route, payload)
            if rc == SUCCESS:
                rc = self._run(route, self._settings.refresh_command)
        except ConnectionFailure as e:
            status.register_step_failed(False, str(e), key=key)
            logger.error(f"Could not reach coordinator for cluster {route.cluster_id}: {e}")
            return

        if rc != SUCCESS:
            status.register_step_failed(False, f"Refreshing exclusions returned {rc}", key=key)
            logger.error(f"Updating exclusions on {route.coordinator_address} failed with status {rc}")
            return
        status.register_step_ok(key=key)

    def _list_active(self, route: ClusterRoute) -> set[str] | None:
        out = io.BytesIO()
        try:
            rc = self._run(route, self._settings.list_active_command, out)
        except ConnectionFailure as e:
            logger.error(f"Could not list active nodes on {route.coordinator_address}: {e}")
            return None
        if rc != SUCCESS:
            logger.warning(f"Listing active nodes on {route.coordinator_address} returned {rc}")
            return None
        return parse_active_listing(out.getvalue())

    # -------------------------------------------------------------------------
    # Membership protocol
    # -------------------------------------------------------------------------

    def recommission(self, vm_ids: Set[VmId], route: ClusterRoute, status: OperationStatus) -> None:
        logger.debug(f"Clearing exclusion list for cluster {route.cluster_id} ({len(vm_ids)} nodes)")
        self._update_exclusions(route, set(), status, key=None)

    def decommission(self, names: Set[str], route: ClusterRoute, status: OperationStatus) -> None:
        logger.debug(f"Excluding {sorted(names)} from cluster {route.cluster_id}")
        self._update_exclusions(route, names, status, key=DECOMMISSION_STATUS_KEY)

    def verify_active(
        self,
        mode: VerifyMode,
        names: Set[str],
        target_count: int,
        route: ClusterRoute,
        status: OperationStatus,
    ) -> set[str] | None:
        deadline = time.monotonic() + self._settings.verify_timeout
        active: set[str] | None = None
        while True:
            active = self._list_active(route)
            if active is not None and len(active) == target_count:
                logger.info(f"{mode} reached target of {target_count} active nodes")
                return active & set(names)
            if time.monotonic() >= deadline:
                break
            time.sleep(self._settings.verify_poll_interval)

        if active is None:
            status.register_step_failed(False, "Could not list active nodes", key=VERIFY_STATUS_KEY)
            return None
        status.register_step_failed(
            False,
            f"{mode} expected {target_count} active nodes, coordinator reports {len(active)}",
            key=VERIFY_STATUS_KEY,
        )
        logger.warning(f"{mode} did not converge: {len(active)} active, target {target_count}")
        return active & set(names)

    def active_nodes(self, route: ClusterRoute) -> set[str] | None:
        return self._list_active(route)
