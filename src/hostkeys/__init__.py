"""hostkeys: discover the SSH host keys a server offers, without logging in."""

__version__ = "1.0.0"

from .algorithms import DEFAULT_KEY_ALGORITHMS, default_algorithms
from .errors import (
    HandshakeError,
    HostConnectError,
    HostKeyError,
    ProtocolContractError,
    ScanCancelled,
    ScanTimeout,
)
from .fingerprint import (
    Digest,
    Encoding,
    render_authorized_key_line,
    render_fingerprint,
)
from .pool import retrieve_host_keys, scan_host
from .version import retrieve_version

__all__ = [
    "DEFAULT_KEY_ALGORITHMS",
    "Digest",
    "Encoding",
    "HandshakeError",
    "HostConnectError",
    "HostKeyError",
    "ProtocolContractError",
    "ScanCancelled",
    "ScanTimeout",
    "default_algorithms",
    "render_authorized_key_line",
    "render_fingerprint",
    "retrieve_host_keys",
    "retrieve_version",
    "scan_host",
]
