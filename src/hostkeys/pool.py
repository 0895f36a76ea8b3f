"""Worker pool that fans probes out over a list of host key algorithms.

Brief:
  ``retrieve_host_keys`` fills a work queue with algorithms and runs a fixed
  number of worker threads that drain it, each calling ``probe_algorithm``
  sequentially. Results land in an unbounded collector queue. The first real
  error cancels the shared scope, which closes every in-flight connection and
  stops the remaining workers; that error is then raised. The call returns
  only after every worker has exited.
"""

from __future__ import annotations

import concurrent.futures
import logging
import queue
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

import paramiko

from . import prober
from .algorithms import normalize_algorithms
from .cancel import CancelScope
from .errors import HandshakeError, HostKeyError
from .prober import ProbeResult
from .version import retrieve_version

logger = logging.getLogger(__name__)

KeySet = Mapping[str, paramiko.PKey]


def retrieve_host_keys(
    host: str,
    algorithms: Optional[Iterable[str]] = None,
    concurrency: int = 4,
    timeout: float = 60.0,
    *,
    port: int = 22,
    overall_timeout: Optional[float] = None,
    scope: Optional[CancelScope] = None,
) -> KeySet:
    """Brief: Collect the host keys a server offers for each algorithm.

    Inputs:
      - host: Remote SSH server hostname or IP.
      - algorithms: Algorithms to probe; None or empty uses
        ``DEFAULT_KEY_ALGORITHMS``.
      - concurrency: Maximum number of simultaneous connections; values below
        1 are treated as 1.
      - timeout: Deadline in seconds for each individual probe.
      - port: Remote SSH port (default 22).
      - overall_timeout: Optional deadline in seconds for the whole call.
      - scope: Optional caller scope; cancelling it aborts the call.

    Outputs:
      - Read-only mapping of algorithm name to ``paramiko.PKey``. Algorithms
        the server does not support are absent.

    Raises:
      - HostKeyError: the first real error from any probe (connection failure,
        handshake failure, protocol contract violation), ``ScanTimeout`` when
        ``overall_timeout`` expires, or the caller scope's error. No partial
        result accompanies an error.

    Example:
      >>> keys = retrieve_host_keys("192.0.2.10", concurrency=4, timeout=10)
      >>> for alg, key in keys.items():
      ...     print(alg, key.get_base64())
    """

    algs = normalize_algorithms(algorithms)
    workers = max(1, int(concurrency))

    work: "queue.Queue[str]" = queue.Queue()
    for alg in algs:
        work.put(alg)
    results: "queue.Queue[ProbeResult]" = queue.Queue()

    logger.debug(
        "Probing %s:%d for %d algorithms with %d workers",
        host,
        port,
        len(algs),
        workers,
    )

    with CancelScope(
        parent=scope, timeout=overall_timeout, name=f"host key scan of {host}:{port}"
    ) as shared:
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(workers, len(algs)),
            thread_name_prefix="hostkeys-probe",
        ) as pool:
            futures = [
                pool.submit(_worker, host, port, timeout, work, results, shared)
                for _ in range(min(workers, len(algs)))
            ]
        # Leaving the executor block joins every worker.
        for fut in futures:
            fut.result()

    # The scope's deadline is disarmed here; only cancellations that happened
    # while probes were running count.
    if shared.cancelled:
        error = shared.error
        logger.info("Host key scan of %s:%d failed: %s", host, port, error)
        raise error if error is not None else HostKeyError("scan cancelled")

    keys = _collect(results)
    logger.debug("Host key scan of %s:%d found %d keys", host, port, len(keys))
    return MappingProxyType(keys)


def _worker(
    host: str,
    port: int,
    timeout: float,
    work: "queue.Queue[str]",
    results: "queue.Queue[ProbeResult]",
    shared: CancelScope,
) -> None:
    """Brief: Drain ``work`` until empty or until the shared scope is cancelled.

    Inputs:
      - host, port, timeout: Passed through to ``probe_algorithm``.
      - work: Queue of algorithm names, produced once before workers start.
      - results: Unbounded collector queue; ``put`` never blocks.
      - shared: Scope cancelled on the first real error.

    Outputs:
      - None; every dequeued algorithm yields exactly one ProbeResult.
    """

    while not shared.cancelled:
        try:
            alg = work.get_nowait()
        except queue.Empty:
            return
        try:
            result = prober.probe_algorithm(host, port, alg, timeout, scope=shared)
        except Exception as exc:
            logger.debug("Probe %s of %s:%d raised %r", alg, host, port, exc)
            error = HandshakeError(f"{host}:{port} ({alg}): {type(exc).__name__}: {exc}")
            error.__cause__ = exc
            result = ProbeResult(alg, error=error)
        results.put(result)
        if result.error is not None:
            # First caller wins; later errors are side effects of cancellation.
            shared.cancel(result.error)


def _collect(results: "queue.Queue[ProbeResult]") -> Dict[str, paramiko.PKey]:
    keys: Dict[str, paramiko.PKey] = {}
    while True:
        try:
            result = results.get_nowait()
        except queue.Empty:
            return keys
        if result.key is not None:
            keys[result.algorithm] = result.key


@dataclass
class HostKeyScan:
    """Brief: Presentation-friendly outcome of scanning one host.

    Inputs:
      - host: Host as given by the caller.
      - port: SSH port that was scanned.
      - keys: Algorithm to key mapping (empty on failure).
      - version: Banner version string when requested and available.
      - error: Error that failed the key retrieval, if any.
      - version_error: Error that failed the banner read, if any.

    Outputs:
      - Dataclass used by the CLI and scripts to render results.
    """

    host: str
    port: int
    keys: Dict[str, paramiko.PKey] = field(default_factory=dict)
    version: Optional[str] = None
    error: Optional[HostKeyError] = None
    version_error: Optional[HostKeyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.version_error is None

    def unique_keys(self) -> List[paramiko.PKey]:
        """Keys in algorithm order with identical key blobs collapsed."""
        seen = set()
        out: List[paramiko.PKey] = []
        for key in self.keys.values():
            blob = key.asbytes()
            if blob in seen:
                continue
            seen.add(blob)
            out.append(key)
        return out


def scan_host(
    host: str,
    *,
    port: int = 22,
    algorithms: Optional[Iterable[str]] = None,
    concurrency: int = 4,
    timeout: float = 60.0,
    overall_timeout: Optional[float] = None,
    banner: bool = False,
) -> HostKeyScan:
    """Brief: Retrieve keys and, optionally, the banner version for one host.

    Inputs:
      - host, port, algorithms, concurrency, timeout, overall_timeout: As for
        ``retrieve_host_keys``.
      - banner: When True, also read the server's version string. The two
        retrievals fail independently.

    Outputs:
      - HostKeyScan with errors captured instead of raised.
    """

    scan = HostKeyScan(host=host, port=port)
    try:
        keys = retrieve_host_keys(
            host,
            algorithms,
            concurrency,
            timeout,
            port=port,
            overall_timeout=overall_timeout,
        )
        scan.keys = dict(keys)
    except HostKeyError as exc:
        scan.error = exc

    if banner:
        try:
            scan.version = retrieve_version(host, port=port, timeout=timeout)
        except HostKeyError as exc:
            scan.version_error = exc

    return scan
