"""Remote shell transport: sessions, privileged exec and scp push."""

from .session import RemoteChannel, cleanup, create_channel, open_channel, test_channel
from .executor import exec_command
from .scp import scp_bytes

__all__ = [
    "RemoteChannel",
    "cleanup",
    "create_channel",
    "open_channel",
    "test_channel",
    "exec_command",
    "scp_bytes",
]
