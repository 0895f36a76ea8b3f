from __future__ import annotations

"""Single-algorithm host key prober.

Brief:
  ``probe_algorithm`` opens one TCP connection, runs a paramiko client
  handshake that offers exactly one host key algorithm, captures the key the
  server presents through ``KeyCaptureHook`` and tears the connection down
  before authentication. The outcome is a ``ProbeResult``: a captured key, an
  "unsupported" verdict, or a real error.

Inputs:
  - See ``probe_algorithm``.

Outputs:
  - ``ProbeResult`` values consumed by the worker pool in ``hostkeys.pool``.
"""

import logging
import socket
from dataclasses import dataclass
from typing import Optional

import paramiko

from .algorithms import negotiable_algorithms
from .cancel import CancelScope
from .capture import HostKeyCaptured, KeyCaptureHook
from .errors import (
    HandshakeError,
    HostConnectError,
    HostKeyError,
    ProtocolContractError,
    ScanTimeout,
)

logger = logging.getLogger(__name__)

# Paramiko's own timers are pushed past the probe deadline so that expiry is
# always reported through the probe scope as ScanTimeout.
_LIBRARY_TIMEOUT_GRACE = 1.0


class _IgnoreIncompatiblePeerLog(logging.Filter):
    """Brief: Drop Paramiko 'Incompatible ssh peer' log records.

    Inputs:
      - record: A logging.LogRecord from the paramiko transport logger.

    Outputs:
      - bool: True if the record should be emitted, False if it should be
        dropped. Unsupported algorithms are an expected outcome here, not an
        error worth a traceback.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return "Incompatible ssh peer" not in msg


_paramiko_transport_logger = logging.getLogger("paramiko.transport")
_paramiko_transport_logger.addFilter(_IgnoreIncompatiblePeerLog())
# Aborted handshakes make paramiko log socket errors and tracebacks at ERROR.
logging.getLogger("paramiko").setLevel(logging.CRITICAL)


@dataclass(frozen=True)
class ProbeResult:
    """Brief: Outcome of probing one algorithm.

    Inputs:
      - algorithm: The host key algorithm that was offered.
      - key: Captured ``paramiko.PKey`` or None.
      - error: Real error or None.

    Outputs:
      - Immutable record. ``key`` and ``error`` are never both set; neither
        set means the server does not support ``algorithm``.
    """

    algorithm: str
    key: Optional[paramiko.PKey] = None
    error: Optional[HostKeyError] = None

    def __post_init__(self) -> None:
        if self.key is not None and self.error is not None:
            raise ValueError("ProbeResult cannot carry both a key and an error")

    @property
    def captured(self) -> bool:
        return self.key is not None

    @property
    def unsupported(self) -> bool:
        return self.key is None and self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None


def probe_algorithm(
    host: str,
    port: int,
    algorithm: str,
    timeout: float,
    *,
    scope: Optional[CancelScope] = None,
) -> ProbeResult:
    """Brief: Fetch the host key a server presents for one algorithm.

    Inputs:
      - host: Remote SSH server hostname or IP.
      - port: Remote SSH server port.
      - algorithm: Host key algorithm to offer, e.g. ``ssh-ed25519``.
      - timeout: Deadline in seconds for this probe (dial, banner and key
        exchange together).
      - scope: Optional shared cancellation scope; cancelling it closes the
        probe's connection immediately.

    Outputs:
      - ProbeResult: captured key, unsupported verdict (no key, no error), or
        the real error. Errors are returned, not raised, so the caller decides
        how to fail.
    """

    if algorithm not in negotiable_algorithms():
        logger.debug("Skipping %s for %s:%d: not offered by paramiko", algorithm, host, port)
        return ProbeResult(algorithm)

    name = f"probe {algorithm}@{host}:{port}"
    with CancelScope(parent=scope, timeout=timeout, name=name) as probe_scope:
        try:
            key = _fetch_key(host, int(port), algorithm, float(timeout), probe_scope)
        except HostKeyError as exc:
            logger.debug("%s failed: %s", name, exc)
            return ProbeResult(algorithm, error=exc)

    if key is None:
        logger.debug("%s: algorithm not supported by server", name)
        return ProbeResult(algorithm)

    logger.debug("%s: captured %s key", name, key.get_name())
    return ProbeResult(algorithm, key=key)


def _fetch_key(
    host: str, port: int, algorithm: str, timeout: float, scope: CancelScope
) -> Optional[paramiko.PKey]:
    """Brief: Run the restricted handshake; return the key or None.

    Inputs:
      - host, port, algorithm, timeout: As for ``probe_algorithm``.
      - scope: The probe's own cancellation scope.

    Outputs:
      - paramiko.PKey when captured, None when the server has no key for
        ``algorithm``.

    Raises:
      - HostKeyError subclasses for every other outcome.
    """

    if scope.cancelled:
        raise scope.failure()

    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout as exc:
        raise ScanTimeout(f"connecting to {host}:{port} timed out") from exc
    except OSError as exc:
        if scope.cancelled:
            raise scope.failure() from exc
        raise HostConnectError(f"cannot connect to {host}:{port}: {exc}") from exc

    hook = KeyCaptureHook()
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(hook)

    handle = scope.on_cancel(lambda: _shutdown_quietly(sock))
    library_timeout = timeout + _LIBRARY_TIMEOUT_GRACE
    try:
        client.connect(
            host,
            port=port,
            sock=sock,
            timeout=library_timeout,
            banner_timeout=library_timeout,
            auth_timeout=library_timeout,
            allow_agent=False,
            look_for_keys=False,
            disabled_algorithms={
                "keys": [k for k in negotiable_algorithms() if k != algorithm]
            },
        )
    except HostKeyCaptured as signal:
        if hook.is_own_signal(signal):
            return hook.key
        raise ProtocolContractError(
            f"capture signal {signal.token} does not belong to probe {hook.token}"
        ) from signal
    except paramiko.ssh_exception.IncompatiblePeer:
        return None
    except (paramiko.SSHException, EOFError, OSError) as exc:
        if scope.cancelled:
            raise scope.failure() from exc
        if isinstance(exc, paramiko.SSHException):
            raise HandshakeError(f"{host}:{port} ({algorithm}): {exc}") from exc
        raise HostConnectError(
            f"{host}:{port} ({algorithm}): {str(exc) or 'connection closed'}"
        ) from exc
    except HostKeyError:
        raise
    except Exception as exc:
        # Paramiko re-raises whatever its transport thread hit, e.g. a
        # ValueError from nacl/cryptography parsing a malformed host key.
        if scope.cancelled:
            raise scope.failure() from exc
        raise HandshakeError(
            f"{host}:{port} ({algorithm}): {type(exc).__name__}: {exc}"
        ) from exc
    finally:
        scope.remove(handle)
        client.close()
        _close_quietly(sock)

    raise ProtocolContractError(
        f"{host}:{port} ({algorithm}): session established without host key capture"
    )


def _shutdown_quietly(sock: socket.socket) -> None:
    # shutdown() wakes up a recv() blocked in paramiko's reader thread.
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:  # pragma: no cover - close errors are not actionable
        pass
