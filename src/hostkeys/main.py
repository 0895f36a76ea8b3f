"""Command-line entry point: print the host keys an SSH server offers.

Brief:
  ``hostkeys [options] <host>`` probes every requested host key algorithm and
  prints the keys as authorized_keys lines, fingerprints or SSHFP records, on
  the console or as a JSON document.

Inputs:
  - Command-line arguments; see ``build_parser``.

Outputs:
  - Exit status 0 on success, 1 on invalid host, invalid duration, invalid
    configuration or retrieval failure.
"""

from __future__ import annotations

import argparse
import ipaddress
import json
import logging
import math
import re
import sys
from typing import Any, Dict, List, Optional, Tuple

import paramiko

from . import __version__
from .config.config_parser import ScanSettings, load_config, load_scan_settings
from .config.logging_config import init_logging
from .fingerprint import (
    Digest,
    Encoding,
    render_authorized_key_line,
    render_fingerprint,
    render_sshfp_lines,
)
from .pool import HostKeyScan, scan_host

logger = logging.getLogger("hostkeys.main")

FORMAT_AUTHORIZED_KEYS = "authorized_keys"
FORMAT_SHA256 = "sha256"
FORMAT_SHA1 = "sha1"
FORMAT_MD5 = "md5"
FORMAT_SSHFP = "sshfp"

OUTPUT_CONSOLE = "console"
OUTPUT_JSON = "json"

_FORMAT_ALIASES: Dict[str, str] = {
    "authorized_keys": FORMAT_AUTHORIZED_KEYS,
    "authorizedkeys": FORMAT_AUTHORIZED_KEYS,
    "authorized": FORMAT_AUTHORIZED_KEYS,
    "4716": FORMAT_AUTHORIZED_KEYS,
    "rfc4716": FORMAT_AUTHORIZED_KEYS,
    "rfc-4716": FORMAT_AUTHORIZED_KEYS,
    "fingerprint-sha256": FORMAT_SHA256,
    "sha256": FORMAT_SHA256,
    "fingerprint": FORMAT_SHA1,
    "fingerprint-sha1": FORMAT_SHA1,
    "sha1": FORMAT_SHA1,
    "fingerprint-legacy": FORMAT_MD5,
    "fingerprint-md5": FORMAT_MD5,
    "md5": FORMAT_MD5,
    "sshfp": FORMAT_SSHFP,
}

_DEFAULT_ENCODINGS = {
    FORMAT_SHA256: Encoding.BASE64,
    FORMAT_SHA1: Encoding.HEX,
    FORMAT_MD5: Encoding.HEX,
}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_HOSTNAME_LABEL = re.compile(r"(?!-)[A-Za-z0-9_-]{1,63}(?<!-)")


def parse_duration(text: str) -> float:
    """Brief: Parse a duration such as ``60s``, ``1m30s`` or ``500ms``.

    Inputs:
      - text: Sequence of ``<number><unit>`` parts; units are ns, us, ms, s,
        m and h. A bare number is taken as seconds.

    Outputs:
      - float: Positive number of seconds.

    Raises:
      - ValueError: malformed, zero or negative durations.

    Example:
      >>> parse_duration("1m30s")
      90.0
    """

    raw = str(text or "").strip()
    if not raw:
        raise ValueError("empty duration")
    try:
        seconds = float(raw)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(raw):
            if match.start() != pos:
                raise ValueError(f"invalid duration {raw!r}") from None
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(raw):
            raise ValueError(f"invalid duration {raw!r}") from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive, got {raw!r}")
    return seconds


def _is_hostname(name: str) -> bool:
    name = name.rstrip(".")
    if not name or len(name) > 253:
        return False
    return all(_HOSTNAME_LABEL.fullmatch(label) for label in name.split("."))


def parse_host(text: str, default_port: int = 22) -> Tuple[str, int]:
    """Brief: Split and validate ``host``, ``host:port`` or ``[v6]:port``.

    Inputs:
      - text: Host string from the command line.
      - default_port: Port used when ``text`` carries none.

    Outputs:
      - (host, port): Host without brackets and an integer port.

    Raises:
      - ValueError: invalid hostname, address or port.
    """

    raw = str(text or "").strip()
    host, port_text = raw, None

    if raw.startswith("["):
        end = raw.find("]")
        if end < 0:
            raise ValueError(f"'{raw}' is not a valid hostname")
        host, rest = raw[1:end], raw[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise ValueError(f"'{raw}' is not a valid hostname")
            port_text = rest[1:]
    elif raw.count(":") == 1:
        host, port_text = raw.split(":", 1)

    port = default_port
    if port_text is not None:
        if not port_text.isdigit() or not 0 < int(port_text) < 65536:
            raise ValueError(f"'{raw}' does not carry a valid port")
        port = int(port_text)

    try:
        ipaddress.ip_address(host)
    except ValueError:
        if not _is_hostname(host):
            raise ValueError(f"'{raw}' is not a valid hostname") from None
    return host, port


def parse_format(value: str) -> str:
    """Resolve a ``--format`` alias; unknown values fall back to authorized_keys."""
    return _FORMAT_ALIASES.get(str(value or "").strip().lower(), FORMAT_AUTHORIZED_KEYS)


def parse_output(value: str) -> str:
    """Resolve an ``--output`` mode; unknown values fall back to console."""
    if str(value or "").strip().lower() == OUTPUT_JSON:
        return OUTPUT_JSON
    return OUTPUT_CONSOLE


def render_key(key: paramiko.PKey, fmt: str, encoding: Optional[str] = None) -> str:
    """Brief: Render one key in a CLI output format.

    Inputs:
      - key: Public key.
      - fmt: A canonical format name from ``parse_format`` (not sshfp).
      - encoding: Optional fingerprint encoding override.

    Outputs:
      - str: authorized_keys line or fingerprint text.
    """

    if fmt == FORMAT_AUTHORIZED_KEYS:
        return render_authorized_key_line(key)
    enc = encoding or _DEFAULT_ENCODINGS[fmt]
    return render_fingerprint(Digest(fmt), enc, key)


def render_scan(scan: HostKeyScan, fmt: str, encoding: Optional[str] = None) -> List[str]:
    """Render every distinct key of a successful scan as output lines."""
    keys = scan.unique_keys()
    if fmt == FORMAT_SSHFP:
        return render_sshfp_lines(scan.host, keys)
    return [render_key(key, fmt, encoding) for key in keys]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostkeys",
        description="Print the SSH host keys a server offers "
        "(similar to ssh-keyscan), without authenticating.",
    )
    parser.add_argument("host", help="Host, host:port or [ipv6]:port to scan.")
    parser.add_argument(
        "-f",
        "--format",
        default="authorized_keys",
        help=(
            "Key output format: authorized_keys (authorizedkeys, authorized, "
            "rfc4716), fingerprint-sha256/sha256, fingerprint/fingerprint-sha1/sha1, "
            "fingerprint-legacy/fingerprint-md5/md5, sshfp "
            "(default: authorized_keys)."
        ),
    )
    parser.add_argument(
        "-e",
        "--encoding",
        choices=[e.value for e in Encoding],
        default=None,
        help="Fingerprint encoding (default: base64 for sha256, hex otherwise).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=parse_output,
        default=OUTPUT_CONSOLE,
        help="Output mode: console or json; anything else means console.",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        default=None,
        help="Per-probe timeout as a duration such as 60s or 1m30s (default: 60s).",
    )
    parser.add_argument(
        "--overall-timeout",
        default=None,
        help="Deadline for the whole scan as a duration (default: none).",
    )
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of simultaneous connections (default: 4).",
    )
    parser.add_argument(
        "-a",
        "--algorithms",
        default=None,
        help="Comma-separated host key algorithms to probe (default: all known).",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="SSH port used when the host carries none (default: 22).",
    )
    parser.add_argument(
        "--banner",
        action="store_true",
        default=None,
        help="Also report the server's version banner.",
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file.")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set a config variable (overrides HOSTKEYS_<KEY> and config vars).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level: debug, info, warn, error, crit (default: warn).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _emit_error(output: str, host: str, message: str) -> int:
    if output == OUTPUT_JSON:
        json.dump({"Host": host, "Error": message}, sys.stdout)
        sys.stdout.write("\n")
    else:
        print(message, file=sys.stderr)
    return 1


def _effective_settings(args: argparse.Namespace, settings: ScanSettings) -> Dict[str, Any]:
    """Brief: Overlay CLI flags on config-file settings.

    Inputs:
      - args: Parsed CLI namespace.
      - settings: ScanSettings from the config file (or defaults).

    Outputs:
      - dict of keyword arguments for ``scan_host`` (minus the host).

    Raises:
      - ValueError: invalid duration strings.
    """

    timeout = settings.timeout_seconds
    if args.timeout is not None:
        timeout = parse_duration(args.timeout)
    overall = settings.overall_timeout_seconds
    if args.overall_timeout is not None:
        overall = parse_duration(args.overall_timeout)
    algorithms = list(settings.algorithms)
    if args.algorithms:
        algorithms = [a.strip() for a in args.algorithms.split(",") if a.strip()]
    return {
        "algorithms": algorithms,
        "concurrency": args.concurrency if args.concurrency is not None else settings.concurrency,
        "timeout": timeout,
        "overall_timeout": overall,
        "banner": bool(args.banner if args.banner is not None else settings.banner),
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point: parse arguments, scan the host and print its keys.

    Inputs:
      - argv: Optional list of CLI arguments (defaults to ``sys.argv[1:]``).

    Outputs:
      - int: Zero on success, one on any error.
    """

    args = build_parser().parse_args(argv)
    host_arg = str(args.host).strip()

    try:
        cfg = load_config(args.config, cli_vars=args.var)
        settings = load_scan_settings(cfg)
    except (OSError, ValueError) as exc:
        return _emit_error(args.output, host_arg, str(exc))

    log_cfg = dict(cfg.get("logging") or {})
    if args.log_level:
        log_cfg["level"] = args.log_level
    init_logging(log_cfg)

    try:
        host, port = parse_host(host_arg, args.port or settings.port)
    except ValueError as exc:
        return _emit_error(args.output, host_arg, str(exc))

    try:
        options = _effective_settings(args, settings)
    except ValueError as exc:
        return _emit_error(args.output, host_arg, str(exc))

    fmt = parse_format(args.format)
    logger.info("Scanning %s:%d for %d algorithms", host, port, len(options["algorithms"]))
    scan = scan_host(host, port=port, **options)

    if scan.error is not None:
        return _emit_error(args.output, host_arg, str(scan.error))
    if scan.version_error is not None:
        return _emit_error(args.output, host_arg, str(scan.version_error))

    lines = render_scan(scan, fmt, args.encoding)
    if args.output == OUTPUT_JSON:
        doc: Dict[str, Any] = {"Host": host_arg}
        if options["banner"]:
            doc["Version"] = scan.version
        doc["PublicKeys"] = lines
        json.dump(doc, sys.stdout)
        sys.stdout.write("\n")
        return 0

    if options["banner"]:
        print(f"# {host_arg} {scan.version}")
    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
