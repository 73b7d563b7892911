"""Node enable/disable orchestration."""

from .dns import DnsConvergenceWaiter
from .membership import SshMembership, parse_active_listing
from .orchestrator import ScalingOrchestrator, summarize

__all__ = [
    "DnsConvergenceWaiter",
    "ScalingOrchestrator",
    "SshMembership",
    "parse_active_listing",
    "summarize",
]
