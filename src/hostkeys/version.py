"""Read the identification banner an SSH server sends before key exchange."""

from __future__ import annotations

import logging
import socket
from typing import Optional

from .cancel import CancelScope
from .errors import HostConnectError, ScanTimeout

logger = logging.getLogger(__name__)

# Single read budget and the first byte value treated as a terminator.
MAX_BANNER_BYTES = 255
_CONTROL_THRESHOLD = 0x20

UNKNOWN_VERSION = "unknown"


def retrieve_version(
    host: str,
    port: int = 22,
    timeout: float = 10.0,
    *,
    scope: Optional[CancelScope] = None,
) -> str:
    """Brief: Return the raw version string an SSH server announces.

    Inputs:
      - host: Remote SSH server hostname or IP.
      - port: Remote SSH port (default 22).
      - timeout: Deadline in seconds for dialling and reading.
      - scope: Optional cancellation scope; cancelling it closes the socket.

    Outputs:
      - str: Bytes up to the first control byte (< 0x20), decoded as latin-1,
        e.g. ``SSH-2.0-OpenSSH_9.6``. ``"unknown"`` when the first read holds
        no control byte.

    Raises:
      - HostConnectError: dial or read failure, or EOF before any data.
      - ScanTimeout: the deadline expired.
      - ScanCancelled: ``scope`` was cancelled for another reason.
    """

    name = f"version probe {host}:{port}"
    with CancelScope(parent=scope, timeout=timeout, name=name) as probe_scope:
        try:
            sock = socket.create_connection((host, int(port)), timeout=timeout)
        except socket.timeout as exc:
            raise ScanTimeout(f"connecting to {host}:{port} timed out") from exc
        except OSError as exc:
            raise HostConnectError(f"cannot connect to {host}:{port}: {exc}") from exc

        def _abort() -> None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        handle = probe_scope.on_cancel(_abort)
        try:
            data = sock.recv(MAX_BANNER_BYTES)
        except OSError as exc:
            if probe_scope.cancelled:
                raise probe_scope.failure() from exc
            if isinstance(exc, socket.timeout):
                raise ScanTimeout(f"reading banner from {host}:{port} timed out") from exc
            raise HostConnectError(f"reading banner from {host}:{port}: {exc}") from exc
        finally:
            probe_scope.remove(handle)
            sock.close()

        if probe_scope.cancelled and not data:
            raise probe_scope.failure()

    if not data:
        raise HostConnectError(f"{host}:{port} closed the connection before sending a banner")

    version = parse_version(data)
    logger.debug("%s: %s", name, version)
    return version


def parse_version(data: bytes) -> str:
    """Brief: Extract the version prefix from raw banner bytes.

    Inputs:
      - data: Bytes from a single read.

    Outputs:
      - str: Prefix before the first byte below 0x20, or ``"unknown"``.

    Example:
      >>> parse_version(b"SSH-2.0-Test\\r\\n")
      'SSH-2.0-Test'
    """

    for i, value in enumerate(data):
        if value < _CONTROL_THRESHOLD:
            return data[:i].decode("latin-1")
    return UNKNOWN_VERSION
