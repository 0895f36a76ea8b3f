#!/usr/bin/env python3
"""SSHFP record scanner built on the hostkeys worker pool.

Brief:
  Given one or more hostnames, IPs or CIDRs such as ``192.0.2.0/24``, probes
  every host key algorithm on each host and prints SSHFP records equivalent to
  ``ssh-keyscan -D <host>``.

Inputs:
  - Command-line arguments; see ``parse_args`` for details.

Outputs:
  - Prints ``<hostname> IN SSHFP <alg> <fptype> <fingerprint>`` lines (or
    ``<domain>|SSHFP|<ttl>|<value>`` zone-record lines) to stdout and returns
    an exit status code.
"""

import argparse
import ipaddress
import sys
from pathlib import Path
from typing import List, Optional

# Allow running from a source checkout without installing the package.
_SRC_DIR = Path(__file__).resolve().parent.parent / "src"
if _SRC_DIR.is_dir() and str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from hostkeys import pool
from hostkeys.errors import HostKeyError
from hostkeys.fingerprint import render_sshfp_lines


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Inputs:
      argv: Optional list of argument strings (defaults to sys.argv[1:]).

    Outputs:
      An argparse.Namespace with attributes: targets, port, timeout,
      concurrency, zone_record_format, zone_ttl.
    """
    parser = argparse.ArgumentParser(
        description="Scan SSH host keys and print DNS SSHFP records "
        "(similar to ssh-keyscan -D).",
    )
    parser.add_argument(
        "targets",
        nargs="+",
        help=(
            "One or more hostnames, IP addresses, or CIDR ranges "
            "(e.g. host.example, 192.0.2.10, 192.0.2.0/24)."
        ),
    )
    parser.add_argument("-p", "--port", type=int, default=22, help="SSH port (default: 22).")
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=5.0,
        help="Per-probe timeout in seconds (default: 5.0).",
    )
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=4,
        help="Simultaneous probes per host (default: 4).",
    )
    parser.add_argument(
        "--zone-record-format",
        action="store_true",
        help=(
            'When set, print records as "<domain>|SSHFP|<ttl>|<value>" lines '
            'where <value> is "<alg> <fptype> <fingerprint>" and <ttl> comes '
            "from --zone-ttl."
        ),
    )
    parser.add_argument(
        "--zone-ttl",
        type=int,
        default=300,
        help="TTL to use for --zone-record-format output (default: 300).",
    )
    return parser.parse_args(argv)


def expand_targets(raw_targets: List[str]) -> List[str]:
    """Brief: Expand CIDR targets into host addresses, keeping order.

    Inputs:
      - raw_targets: Hostnames, IPs and CIDRs.

    Outputs:
      - list[str]: One entry per host to scan.

    Raises:
      - ValueError: malformed CIDR or a CIDR without host addresses.
    """

    targets: List[str] = []
    for raw_arg in raw_targets:
        raw = str(raw_arg)
        if "/" not in raw:
            targets.append(raw)
            continue
        network = ipaddress.ip_network(raw, strict=False)
        hosts = [str(ip) for ip in network.hosts()]
        if not hosts:
            raise ValueError(f"CIDR {raw!r} did not contain any host addresses")
        targets.extend(hosts)
    return targets


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point: parse arguments, collect SSHFP records, print them.

    Inputs:
      - argv: Optional list of CLI arguments (defaults to ``sys.argv[1:]``).

    Outputs:
      - int: Zero when at least one record was printed, non-zero otherwise.
    """

    args = parse_args(argv)

    try:
        targets = expand_targets(args.targets)
    except ValueError as exc:
        print(f"Invalid target: {exc}", file=sys.stderr)
        return 2

    any_records = False
    for host in targets:
        try:
            keys = pool.retrieve_host_keys(
                host,
                concurrency=int(args.concurrency),
                timeout=float(args.timeout),
                port=int(args.port),
            )
        except HostKeyError as exc:
            print(f"{host}: {exc}", file=sys.stderr)
            continue

        records = render_sshfp_lines(host, keys.values())
        if not records:
            print(f"No SSHFP records found for {host}", file=sys.stderr)
            continue

        any_records = True
        for line in records:
            if not args.zone_record_format:
                print(line)
                continue
            # "<hostname> IN SSHFP <alg> <fptype> <fingerprint>"
            parts = line.split()
            domain = parts[0].rstrip(".").lower()
            rdata = " ".join(parts[3:])
            print(f"{domain}|SSHFP|{int(args.zone_ttl)}|{rdata}")

    return 0 if any_records else 1


if __name__ == "__main__":
    raise SystemExit(main())
