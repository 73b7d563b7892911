"""nodescale - elastic enable/disable of cluster worker VMs.

Example:

    from nodescale import ScalingOrchestrator, SshMembership, load_settings

    settings = load_settings()
    membership = SshMembership(settings.credentials, settings.membership, settings.ssh)
    orchestrator = ScalingOrchestrator(topology, power, membership, settings.scaling)

    active = orchestrator.enable_nodes({"vm-7", "vm-8"}, 8, "cluster-a")
    released = orchestrator.disable_nodes({"vm-3"}, 7, "cluster-a")
"""

from nodescale.config import (
    MembershipSettings,
    ScalingSettings,
    Settings,
    SshSettings,
    load_settings,
)
from nodescale.constants import (
    DECOMMISSION_STATUS_KEY,
    POWER_ON_STATUS_KEY,
    SUCCESS,
    UNKNOWN_ERROR,
    Direction,
    VerifyMode,
)
from nodescale.errors import (
    ChannelValidityFailure,
    ConfigError,
    ConnectionFailure,
    ExecutionIdleTimeout,
    NodescaleError,
    TransferProtocolFailure,
    TransportError,
)
from nodescale.logging import LogConfig, setup_logging, teardown_logging
from nodescale.protocols import ClusterView, Membership, PowerControl, TopologyStore, read_locked
from nodescale.scaling import DnsConvergenceWaiter, ScalingOrchestrator, SshMembership
from nodescale.status import OperationStatus, StepOutcome
from nodescale.types import ClusterRoute, Credentials, ScalingRequest, is_resolved

__all__ = [
    "MembershipSettings",
    "ScalingSettings",
    "Settings",
    "SshSettings",
    "load_settings",
    "DECOMMISSION_STATUS_KEY",
    "POWER_ON_STATUS_KEY",
    "SUCCESS",
    "UNKNOWN_ERROR",
    "Direction",
    "VerifyMode",
    "ChannelValidityFailure",
    "ConfigError",
    "ConnectionFailure",
    "ExecutionIdleTimeout",
    "NodescaleError",
    "TransferProtocolFailure",
    "TransportError",
    "LogConfig",
    "setup_logging",
    "teardown_logging",
    "ClusterView",
    "Membership",
    "PowerControl",
    "TopologyStore",
    "read_locked",
    "DnsConvergenceWaiter",
    "ScalingOrchestrator",
    "SshMembership",
    "OperationStatus",
    "StepOutcome",
    "ClusterRoute",
    "Credentials",
    "ScalingRequest",
    "is_resolved",
]
