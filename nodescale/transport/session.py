"""SSH session and channel lifecycle.

A ``RemoteChannel`` pairs one paramiko client with one exec channel and
belongs to exactly one in-flight operation. It is never pooled or shared:
build a fresh one per logical operation and hand it to ``cleanup`` (or use
``open_channel``) when done. Once cleaned up it refuses reuse.

Example:
    >>> with open_channel(creds, "10.0.0.5", 22) as channel:
    ...     status = exec_command(channel, "service tasktracker restart")
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import Iterator
from typing import IO, Any

import paramiko
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from nodescale.config import SshSettings
from nodescale.constants import DEFAULT_SSH_PORT
from nodescale.errors import ChannelValidityFailure, ConnectionFailure
from nodescale.types import Credentials

_CONNECT_ERRORS = (paramiko.SSHException, OSError)


class RemoteChannel:
    """One SSH session plus its exec channel.

    Not thread-safe by construction: ownership is exclusive to the
    operation that created it.
    """

    __slots__ = ("host", "port", "_client", "_channel", "_connect_kwargs", "_open_timeout", "_released")

    def __init__(
        self,
        host: str,
        port: int,
        client: paramiko.SSHClient,
        channel: paramiko.Channel,
        connect_kwargs: dict[str, Any],
        open_timeout: float,
    ) -> None:
        self.host = host
        self.port = port
        self._client = client
        self._channel: paramiko.Channel | None = channel
        self._connect_kwargs: dict[str, Any] | None = connect_kwargs
        self._open_timeout = open_timeout
        self._released = False

    def __repr__(self) -> str:
        state = "released" if self._released else ("connected" if self.is_connected else "idle")
        return f"RemoteChannel({self.host}:{self.port}, {state})"

    @property
    def released(self) -> bool:
        return self._released

    @property
    def session_active(self) -> bool:
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    @property
    def is_connected(self) -> bool:
        return (
            not self._released
            and self._channel is not None
            and not self._channel.closed
            and self.session_active
        )

    @property
    def channel(self) -> paramiko.Channel:
        if self._released or self._channel is None:
            raise ChannelValidityFailure(self.host, "channel has been released")
        return self._channel

    def reconnect(self) -> None:
        """Reconnect the session if needed, then open a fresh exec channel."""
        if self._released or self._connect_kwargs is None:
            raise ChannelValidityFailure(self.host, "channel has been released")
        if not self.session_active:
            self._client.connect(**self._connect_kwargs)
        transport = self._client.get_transport()
        if transport is None:
            raise paramiko.SSHException("SSH transport not available")
        self._channel = transport.open_session(timeout=self._open_timeout)

    def release(self, stream: IO[bytes] | None = None) -> None:
        """Tear down stream, channel, session and cached credentials, in that order."""
        if stream is not None:
            try:
                stream.flush()
                stream.close()
            except (OSError, ValueError) as e:
                logger.warning(f"{self.host} - unexpected exception in ssh stream cleanup: {e}")

        if self._channel is not None:
            try:
                self._channel.close()
            except (paramiko.SSHException, OSError) as e:
                logger.warning(f"{self.host} - unexpected exception in ssh channel cleanup: {e}")
            self._channel = None

        if self.session_active:
            self._client.close()

        self._connect_kwargs = None
        self._released = True


# =============================================================================
# Session creation
# =============================================================================


def _connect_kwargs(credentials: Credentials, host: str, port: int, settings: SshSettings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "hostname": host,
        "port": port,
        "username": credentials.username,
        "timeout": settings.connect_timeout,
        "banner_timeout": settings.connect_timeout,
        "auth_timeout": settings.connect_timeout,
        "allow_agent": False,
        "look_for_keys": False,
    }
    if credentials.uses_key:
        kwargs["key_filename"] = credentials.private_key_file
    else:
        # paramiko falls back to keyboard-interactive, answering with the password
        kwargs["password"] = credentials.password
    return kwargs


def _new_client(host: str, settings: SshSettings) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    if settings.strict_host_key_checking:
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())
    else:
        logger.warning(f"{host} - host key verification disabled by configuration")
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    return client


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


def create_channel(
    credentials: Credentials,
    host: str,
    port: int = DEFAULT_SSH_PORT,
    settings: SshSettings | None = None,
) -> RemoteChannel | None:
    """Connect to ``host`` and open an exec channel.

    Makes ``settings.connect_attempts`` attempts with a fixed
    ``connect_retry_delay`` between them.

    Returns:
        A connected channel, or None once every attempt has failed.
        Callers treat None as a hard stop and do not retry further.
    """
    settings = settings or SshSettings()
    kwargs = _connect_kwargs(credentials, host, port, settings)

    def _log_retry(state: RetryCallState) -> None:
        logger.warning(
            f"{host} - retrying ssh connection to host after {settings.connect_retry_delay:.0f}s "
            f"(attempt {state.attempt_number}/{settings.connect_attempts})"
        )

    def _attempt() -> RemoteChannel:
        client = _new_client(host, settings)
        try:
            client.connect(**kwargs)
            transport = client.get_transport()
            if transport is None:
                raise paramiko.SSHException("SSH transport not available")
            channel = transport.open_session(timeout=settings.connect_timeout)
        except _CONNECT_ERRORS as e:
            logger.warning(f"{host} - could not create ssh channel to host - {e}")
            client.close()
            raise
        return RemoteChannel(host, port, client, channel, kwargs, settings.connect_timeout)

    retrying = Retrying(
        stop=stop_after_attempt(settings.connect_attempts),
        wait=wait_fixed(settings.connect_retry_delay),
        retry=retry_if_exception_type(_CONNECT_ERRORS),
        before_sleep=_log_retry,
        sleep=_sleep,
        reraise=True,
    )
    try:
        return retrying(_attempt)
    except _CONNECT_ERRORS:
        logger.error(
            f"{host} - could not create ssh channel to host "
            "(e.g., wrong ip addr/username/password/prvkey)"
        )
        return None


# =============================================================================
# Lifecycle
# =============================================================================


def test_channel(channel: RemoteChannel | None) -> bool:
    """Return whether ``channel`` is usable, reconnecting it lazily."""
    if channel is None or channel.released:
        return False
    if channel.is_connected:
        return True
    try:
        channel.reconnect()
    except _CONNECT_ERRORS as e:
        logger.error(f"{channel.host} - ssh channel failed validity test - could not connect: {e}")
    return channel.is_connected


def cleanup(channel: RemoteChannel | None, stream: IO[bytes] | None = None) -> None:
    """Release ``channel`` and any attached output stream. Safe to call twice."""
    if channel is None:
        if stream is not None:
            with contextlib.suppress(OSError, ValueError):
                stream.flush()
                stream.close()
        return
    if channel.released:
        return
    channel.release(stream)


@contextlib.contextmanager
def open_channel(
    credentials: Credentials,
    host: str,
    port: int = DEFAULT_SSH_PORT,
    settings: SshSettings | None = None,
) -> Iterator[RemoteChannel]:
    """Scoped channel: cleanup runs exactly once however the block exits.

    Raises:
        ConnectionFailure: If no channel could be created.
    """
    channel = create_channel(credentials, host, port, settings)
    if channel is None:
        raise ConnectionFailure(host, "could not create ssh channel")
    try:
        yield channel
    finally:
        cleanup(channel)
