"""Error taxonomy for host key retrieval.

Brief:
  Every failure that can reach a caller of ``retrieve_host_keys`` or
  ``retrieve_version`` derives from ``HostKeyError``. An algorithm the server
  does not support is not an error and has no exception type here.
"""

from __future__ import annotations


class HostKeyError(Exception):
    """Base class for host key retrieval failures."""


class HostConnectError(HostKeyError):
    """Brief: TCP connection to the target could not be used.

    Raised for dial failures, resets and a peer closing the socket before it
    sent anything useful.
    """


class HandshakeError(HostKeyError):
    """Brief: The SSH handshake failed for a reason other than key capture."""


class ProtocolContractError(HandshakeError):
    """Brief: The handshake layer bypassed or misused the capture hook.

    Raised when a session is established without the hook ever being invoked,
    when the hook is invoked twice, or when an abort signal carries a token
    that does not belong to the probe that received it.
    """


class ScanTimeout(HostKeyError, TimeoutError):
    """Brief: A per-probe or overall deadline expired."""


class ScanCancelled(HostKeyError):
    """Brief: The shared scan was cancelled before this probe could finish."""
