"""Centralized constants for nodescale.

Result codes, status keys and timing defaults shared by the transport
and the scaling orchestrator.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Result Codes
# =============================================================================

SUCCESS: Final = 0
UNKNOWN_ERROR: Final = -1


# =============================================================================
# Status Keys
# =============================================================================

POWER_ON_STATUS_KEY: Final = "powerOn"
DECOMMISSION_STATUS_KEY: Final = "decomRecomNodes"
VERIFY_STATUS_KEY: Final = "verifyActive"


class VerifyMode(StrEnum):
    """Direction of a membership verification."""

    RECOMMISSION = "Recommission"
    DECOMMISSION = "Decommission"


class Direction(StrEnum):
    """Direction of a scaling request."""

    ENABLE = "enable"
    DISABLE = "disable"


# =============================================================================
# Transport Defaults
# =============================================================================

SCP_COMMAND: Final = "scp -t"
SUDO_PREFIX: Final = "sudo"
DEFAULT_SSH_PORT: Final = 22
DEFAULT_CONNECT_TIMEOUT: Final = 15.0
DEFAULT_CONNECT_ATTEMPTS: Final = 2
DEFAULT_CONNECT_RETRY_DELAY: Final = 5.0
DEFAULT_IDLE_TIMEOUT: Final = 100.0
DEFAULT_POLL_INTERVAL: Final = 1.0
READ_CHUNK: Final = 1024


# =============================================================================
# Scaling Defaults
# =============================================================================

DEFAULT_DNS_TIMEOUT: Final = 120.0
DEFAULT_DNS_POLL_INTERVAL: Final = 5.0
DEFAULT_VERIFY_TIMEOUT: Final = 60.0
DEFAULT_VERIFY_POLL_INTERVAL: Final = 5.0
