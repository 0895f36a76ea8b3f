from __future__ import annotations

"""Host key algorithm catalogue.

Brief:
  ``DEFAULT_KEY_ALGORITHMS`` is the ordered set of host key algorithms probed
  when a caller does not name any. It covers the plain key types, their
  SHA-2 RSA signature variants and the OpenSSH certificate variants.
"""

from typing import Iterable, List, Optional, Tuple

import paramiko

DEFAULT_KEY_ALGORITHMS: Tuple[str, ...] = (
    "ssh-rsa",
    "ssh-dss",
    "ecdsa-sha2-nistp256",
    "sk-ecdsa-sha2-nistp256@openssh.com",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "ssh-ed25519",
    "sk-ssh-ed25519@openssh.com",
    "rsa-sha2-256",
    "rsa-sha2-512",
    "ssh-rsa-cert-v01@openssh.com",
    "ssh-dss-cert-v01@openssh.com",
    "ecdsa-sha2-nistp256-cert-v01@openssh.com",
    "ecdsa-sha2-nistp384-cert-v01@openssh.com",
    "ecdsa-sha2-nistp521-cert-v01@openssh.com",
    "sk-ecdsa-sha2-nistp256-cert-v01@openssh.com",
    "ssh-ed25519-cert-v01@openssh.com",
    "sk-ssh-ed25519-cert-v01@openssh.com",
    "rsa-sha2-256-cert-v01@openssh.com",
    "rsa-sha2-512-cert-v01@openssh.com",
)


def default_algorithms() -> List[str]:
    """Brief: Return a fresh, mutable copy of the default algorithm list.

    Inputs:
      - None.

    Outputs:
      - list[str]: ``DEFAULT_KEY_ALGORITHMS`` in catalogue order.
    """

    return list(DEFAULT_KEY_ALGORITHMS)


def negotiable_algorithms() -> Tuple[str, ...]:
    """Brief: Host key types paramiko is able to offer during key exchange.

    Inputs:
      - None.

    Outputs:
      - tuple[str, ...]: Paramiko's preferred host key list. Algorithms outside
        this set can never be negotiated by the client.
    """

    return tuple(paramiko.Transport._preferred_keys)


def normalize_algorithms(algorithms: Optional[Iterable[str]]) -> List[str]:
    """Brief: Clean a caller-supplied algorithm list.

    Inputs:
      - algorithms: Iterable of algorithm names, or None.

    Outputs:
      - list[str]: Names stripped of whitespace with blanks and duplicates
        removed (first occurrence wins). Falls back to the defaults when
        nothing usable remains.

    Example:
      >>> normalize_algorithms([" ssh-ed25519", "", "ssh-ed25519", "ssh-rsa"])
      ['ssh-ed25519', 'ssh-rsa']
    """

    out: List[str] = []
    seen = set()
    for raw in algorithms or ():
        name = str(raw or "").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        out.append(name)
    if not out:
        return default_algorithms()
    return out
