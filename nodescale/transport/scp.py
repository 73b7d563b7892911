"""Push an in-memory payload with the scp sink protocol.

The remote side runs ``scp -t <target>`` and acknowledges each step with a
single byte: ``\\0`` for success, anything else followed by a diagnostic
line. The exchange is::

    <- \\0                                 (sink ready)
    -> C0<perms> <length> <name>\\n
    <- \\0
    -> <payload>\\0
    <- \\0
"""

from __future__ import annotations

import contextlib
import posixpath
from typing import IO

import paramiko
from loguru import logger

from nodescale.constants import SCP_COMMAND, SUCCESS, UNKNOWN_ERROR
from nodescale.errors import TransferProtocolFailure
from nodescale.transport.session import RemoteChannel, test_channel


def _wait_for_ack(host: str, inp: IO[bytes]) -> None:
    """Consume one acknowledgement.

    Raises:
        TransferProtocolFailure: On EOF or a non-zero ack byte.
    """
    first = inp.read(1)
    if not first:
        raise TransferProtocolFailure(host, None)
    if first == b"\0":
        return
    detail = inp.readline().decode("utf-8", errors="replace").strip()
    raise TransferProtocolFailure(host, first[0], detail)


def _header(data: bytes, remote_file_name: str, perms: str) -> bytes:
    return f"C0{perms} {len(data)} {remote_file_name}\n".encode()


def scp_bytes(
    channel: RemoteChannel | None,
    data: bytes,
    remote_path: str,
    remote_file_name: str,
    perms: str = "644",
) -> int:
    """Write ``data`` to ``remote_path/remote_file_name`` on the channel's host.

    Any failed acknowledgement stops the transfer before more bytes are sent.

    Returns:
        ``SUCCESS`` or ``UNKNOWN_ERROR``.
    """
    if not test_channel(channel):
        return UNKNOWN_ERROR
    assert channel is not None
    chan = channel.channel

    target = posixpath.join(remote_path, remote_file_name)
    command = f"{SCP_COMMAND} {target}"
    out: IO[bytes] | None = None
    inp: IO[bytes] | None = None
    try:
        chan.exec_command(command)
        out = chan.makefile_stdin("wb")
        inp = chan.makefile("rb")

        _wait_for_ack(channel.host, inp)

        out.write(_header(data, remote_file_name, perms))
        out.flush()
        _wait_for_ack(channel.host, inp)

        out.write(data)
        out.write(b"\0")
        out.flush()
        _wait_for_ack(channel.host, inp)
    except TransferProtocolFailure as e:
        logger.info(f"{channel.host} - error copying data to remote host: {command}")
        logger.error(f"{e}")
        return UNKNOWN_ERROR
    except (paramiko.SSHException, OSError):
        logger.exception(f"{channel.host} - unexpected exception copying data to remote host")
        return UNKNOWN_ERROR
    finally:
        for stream in (out, inp):
            if stream is not None:
                with contextlib.suppress(Exception):
                    stream.close()

    logger.debug(f"{channel.host} - pushed {len(data)} bytes to {target}")
    return SUCCESS
