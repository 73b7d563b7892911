"""Privileged command execution over an established channel."""

from __future__ import annotations

import contextlib
import time
from typing import IO

import paramiko
from loguru import logger

from nodescale.config import SshSettings
from nodescale.constants import READ_CHUNK, SUDO_PREFIX, UNKNOWN_ERROR
from nodescale.errors import ExecutionIdleTimeout
from nodescale.transport.session import RemoteChannel, test_channel


def _drain(channel: paramiko.Channel, out: IO[bytes] | None) -> int:
    """Copy whatever output is buffered right now. Returns bytes read."""
    total = 0
    while channel.recv_ready():
        data = channel.recv(READ_CHUNK)
        if not data:
            break
        total += len(data)
        if out is not None:
            out.write(data)
    while channel.recv_stderr_ready():
        data = channel.recv_stderr(READ_CHUNK)
        if not data:
            break
        total += len(data)
        if out is not None:
            out.write(data)
    return total


def _pump(channel: paramiko.Channel, host: str, out: IO[bytes] | None, settings: SshSettings) -> int:
    """Stream output until the remote exits or goes idle for too long.

    Raises:
        ExecutionIdleTimeout: If no bytes arrive within ``settings.idle_timeout``.
    """
    last_progress = time.monotonic()
    while True:
        if _drain(channel, out):
            last_progress = time.monotonic()

        if channel.exit_status_ready():
            _drain(channel, out)
            return channel.recv_exit_status()

        time.sleep(settings.poll_interval)

        if time.monotonic() - last_progress >= settings.idle_timeout:
            raise ExecutionIdleTimeout(host, settings.idle_timeout)


def exec_command(
    channel: RemoteChannel | None,
    command: str,
    out: IO[bytes] | None = None,
    settings: SshSettings | None = None,
) -> int:
    """Run ``command`` as root on the channel's host.

    Output (stdout and stderr) is copied to ``out`` as it arrives. A
    nonzero exit status is logged and returned; it is up to the caller to
    decide whether it means failure.

    Args:
        channel: Channel from ``create_channel``. Not reusable afterwards.
        command: Shell command, run under ``sudo``.
        out: Optional binary sink for remote output.
        settings: Idle timeout and poll interval.

    Returns:
        The remote exit status, or ``UNKNOWN_ERROR`` if the channel was
        unusable, an SSH error occurred, or the command went idle.
    """
    settings = settings or SshSettings()
    logger.debug(f"About to execute: {command}")

    if not test_channel(channel):
        return UNKNOWN_ERROR
    assert channel is not None
    chan = channel.channel

    exit_status = UNKNOWN_ERROR
    try:
        chan.get_pty()  # to enable sudo
        chan.exec_command(f"{SUDO_PREFIX} {command}")
        # Nothing is ever sent to the remote process' stdin
        chan.shutdown_write()
        logger.debug("Finished channel connection in exec")

        exit_status = _pump(chan, channel.host, out, settings)
        if exit_status != 0:
            logger.info(
                f"{channel.host} - execution of command on remote host: {command}, "
                f"returned exit status - {exit_status}"
            )
    except ExecutionIdleTimeout as e:
        logger.error(f"{e} while executing command on remote host")
        exit_status = UNKNOWN_ERROR
    except (paramiko.SSHException, OSError):
        logger.exception(f"{channel.host} - unexpected error executing command on remote host (SSH)")
        exit_status = UNKNOWN_ERROR
    finally:
        with contextlib.suppress(Exception):
            chan.shutdown_read()

    logger.debug(f"Exit status from exec is: {exit_status}")
    return exit_status
