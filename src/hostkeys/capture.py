"""Key-capture hook used to intercept a server's host key mid-handshake.

Brief:
  Paramiko's ``SSHClient.connect`` consults its missing-host-key policy as
  soon as key exchange has produced the server's host key and before any
  authentication is attempted. ``KeyCaptureHook`` is such a policy: it records
  the key and aborts the connect by raising ``HostKeyCaptured``. The signal is
  a dedicated exception type carrying a per-probe token, so a probe can tell
  its own capture apart from any genuine failure without looking at message
  text.
"""

from __future__ import annotations

import threading
import uuid
from typing import Optional

import paramiko

from .errors import ProtocolContractError


class HostKeyCaptured(Exception):
    """Brief: Abort signal raised once the host key has been recorded.

    Inputs:
      - token: Correlation token of the hook that captured the key.

    Outputs:
      - Exception instance; never propagated past the prober.
    """

    def __init__(self, token: str) -> None:
        super().__init__(f"host key captured ({token})")
        self.token = token


class KeyCaptureHook(paramiko.MissingHostKeyPolicy):
    """Brief: One-shot missing-host-key policy that captures the offered key.

    Inputs:
      - token: Optional correlation token; a random UUID hex string is used
        when omitted.

    Outputs:
      - Policy instance suitable for ``SSHClient.set_missing_host_key_policy``.
    """

    def __init__(self, token: Optional[str] = None) -> None:
        self.token: str = token or uuid.uuid4().hex
        self._key: Optional[paramiko.PKey] = None
        self._hostname: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def key(self) -> Optional[paramiko.PKey]:
        return self._key

    @property
    def hostname(self) -> Optional[str]:
        return self._hostname

    @property
    def captured(self) -> bool:
        return self._key is not None

    def missing_host_key(self, client, hostname, key) -> None:
        """Brief: Record ``key`` and abort the handshake.

        Inputs:
          - client: The ``SSHClient`` performing the connect (unused).
          - hostname: Host key lookup name used by paramiko.
          - key: ``paramiko.PKey`` presented by the server.

        Outputs:
          - Never returns normally; raises ``HostKeyCaptured`` on the first
            call and ``ProtocolContractError`` on any later call.
        """

        with self._lock:
            if self._key is not None:
                raise ProtocolContractError(
                    f"capture hook {self.token} invoked more than once"
                )
            self._key = key
            self._hostname = hostname
        raise HostKeyCaptured(self.token)

    def is_own_signal(self, exc: BaseException) -> bool:
        """Return True when ``exc`` is this hook's capture signal."""
        return (
            isinstance(exc, HostKeyCaptured)
            and exc.token == self.token
            and self._key is not None
        )
