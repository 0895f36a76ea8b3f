"""Render host keys as fingerprints, authorized_keys lines and SSHFP records.

Brief:
  Stateless helpers shared by the CLI and the scripts. Fingerprints hash the
  key's wire blob (``PKey.asbytes()``), matching what ``ssh-keygen -l`` and
  SSHFP records hash.
"""

from __future__ import annotations

import base64
import enum
import hashlib
from typing import Dict, Iterable, List, Set, Tuple, Union

import paramiko


class Digest(str, enum.Enum):
    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"


class Encoding(str, enum.Enum):
    HEX = "hex"
    BASE32 = "base32"
    BASE64 = "base64"


# Mapping from key type names to SSHFP algorithm numbers (RFC 4255 / 6594 / 7479 / 8709).
SSHFP_ALG_NUMBERS: Dict[str, int] = {
    "ssh-rsa": 1,
    "rsa-sha2-256": 1,
    "rsa-sha2-512": 1,
    "ssh-dss": 2,
    "ecdsa-sha2-nistp256": 3,
    "ecdsa-sha2-nistp384": 3,
    "ecdsa-sha2-nistp521": 3,
    "ssh-ed25519": 4,
    "ssh-ed448": 6,
}

# SSHFP fingerprint types.
SSHFP_SHA1 = 1
SSHFP_SHA256 = 2


def sum_to_hex(digest: bytes) -> str:
    """Brief: Format digest bytes as lowercase ``aa:bb:cc`` pairs.

    Inputs:
      - digest: Raw digest bytes.

    Outputs:
      - str: 2N hex characters separated by N-1 colons for an N-byte digest.

    Example:
      >>> sum_to_hex(bytes([0, 171, 255]))
      '00:ab:ff'
    """

    return ":".join(f"{b:02x}" for b in digest)


def _encode(encoding: Encoding, digest: bytes) -> str:
    if encoding is Encoding.HEX:
        return sum_to_hex(digest)
    if encoding is Encoding.BASE32:
        return base64.b32encode(digest).decode("ascii").rstrip("=")
    return base64.b64encode(digest).decode("ascii").rstrip("=")


def render_fingerprint(
    digest: Union[Digest, str],
    encoding: Union[Encoding, str],
    key: paramiko.PKey,
) -> str:
    """Brief: Fingerprint ``key`` with ``digest`` and render it as text.

    Inputs:
      - digest: ``Digest`` member or its value (md5, sha1, sha256).
      - encoding: ``Encoding`` member or its value (hex, base32, base64).
        Base32 and base64 use the standard alphabets without padding.
      - key: Public key; anything with ``asbytes()``.

    Outputs:
      - str: Deterministic fingerprint text.

    Raises:
      - ValueError: unknown digest or encoding.
    """

    digest = Digest(digest)
    encoding = Encoding(encoding)
    blob = key.asbytes()
    # md5/sha1 are identification digests here, not security primitives.
    raw = hashlib.new(digest.value, blob).digest()
    return _encode(encoding, raw)


def render_authorized_key_line(key: paramiko.PKey) -> str:
    """Brief: Render ``key`` as an ``authorized_keys`` style line.

    Inputs:
      - key: Public key.

    Outputs:
      - str: ``"<key-type> <base64-blob>"`` without trailing newline.
    """

    return f"{key.get_name()} {key.get_base64()}".strip()


def sshfp_records_for_key(key: paramiko.PKey) -> List[Tuple[int, int, str]]:
    """Brief: Compute SSHFP records (algorithm, fptype, hex) for a single key.

    Inputs:
      - key: Public key from a host key scan.

    Outputs:
      - list[(algorithm_number, fptype, hex_fingerprint)]:
          * fptype 1: SHA-1
          * fptype 2: SHA-256
        Returns an empty list if the key type is not mapped to an SSHFP
        algorithm.
    """

    alg_num = SSHFP_ALG_NUMBERS.get(key.get_name())
    if alg_num is None:
        return []

    blob = key.asbytes()
    return [
        (alg_num, SSHFP_SHA1, hashlib.sha1(blob).hexdigest()),
        (alg_num, SSHFP_SHA256, hashlib.sha256(blob).hexdigest()),
    ]


def render_sshfp_lines(hostname: str, keys: Iterable[paramiko.PKey]) -> List[str]:
    """Brief: Render DNS SSHFP lines for a host, dropping duplicates.

    Inputs:
      - hostname: Owner name written at the start of each line.
      - keys: Keys in the order they should be emitted. The RSA key reached
        through ``ssh-rsa`` and ``rsa-sha2-*`` is the same key and is emitted
        once.

    Outputs:
      - list[str]: ``"<hostname> IN SSHFP <alg> <fptype> <fingerprint>"``.
    """

    seen: Set[Tuple[int, int, str]] = set()
    lines: List[str] = []
    for key in keys:
        for record in sshfp_records_for_key(key):
            if record in seen:
                continue
            seen.add(record)
            alg_num, fptype, fp_hex = record
            lines.append(f"{hostname} IN SSHFP {alg_num} {fptype} {fp_hex}")
    return lines
