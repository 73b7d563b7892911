"""Exception hierarchy for nodescale.

Transport entry points translate these into sentinel result codes;
they only escape from scoped helpers such as ``open_channel``.
"""

from __future__ import annotations


class NodescaleError(Exception):
    """Base class for nodescale errors."""


class ConfigError(NodescaleError):
    """Invalid or unreadable configuration."""


class TransportError(NodescaleError):
    """Remote shell transport failure."""

    def __init__(self, host: str, message: str) -> None:
        self.host = host
        super().__init__(f"{host}: {message}")


class ConnectionFailure(TransportError):
    """Connect retries exhausted."""


class ChannelValidityFailure(TransportError):
    """Channel liveness check or reconnect failed."""


class TransferProtocolFailure(TransportError):
    """File push handshake received a non-zero acknowledgement."""

    def __init__(self, host: str, ack: int | None, detail: str = "") -> None:
        self.ack = ack
        self.detail = detail
        shown = "EOF" if ack is None else str(ack)
        super().__init__(host, f"copy handshake failed (ack={shown}) {detail}".rstrip())


class ExecutionIdleTimeout(TransportError):
    """No remote output within the idle bound."""

    def __init__(self, host: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(host, f"no input was received for {timeout:.0f}s")
