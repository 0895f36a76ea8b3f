"""
Brief: Global pytest configuration and shared SSH test fixtures.

Inputs:
  - None

Outputs:
  - Fixtures: ``server_host_keys`` (session-wide RSA + ECDSA-256 keys),
    ``ssh_server`` (in-process paramiko server), ``connection_counter``
    (client-side open-connection accounting).
"""

import os
import signal
import socket
import sys
import threading
import time
from typing import List, Optional

import paramiko
import pytest

# Ensure 'src' is on sys.path so the 'hostkeys' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from hostkeys import prober as prober_mod  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 20 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 20-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(20)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class SSHTestServer:
    """Brief: Minimal threaded paramiko SSH server for host key probing.

    Inputs:
      - host_keys: Private keys the server presents.
      - silent: When True, accept connections but never speak (a tarpit).
      - banner: Optional raw bytes sent instead of running SSH.
      - hangup: When True, close each connection as soon as it is accepted.

    Outputs:
      - Listening server on 127.0.0.1 with ``port`` and ``connections``
        (total accepted) attributes.
    """

    def __init__(
        self,
        host_keys: List[paramiko.PKey],
        *,
        silent: bool = False,
        banner: Optional[bytes] = None,
        hangup: bool = False,
    ) -> None:
        self.host_keys = list(host_keys)
        self.silent = silent
        self.banner = banner
        self.hangup = hangup
        self.connections = 0
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(64)
        self._listener.settimeout(0.05)
        self.port = self._listener.getsockname()[1]
        self._accept_thread = threading.Thread(target=self._accept_loop, daemon=True)

    def start(self) -> "SSHTestServer":
        self._accept_thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        self._accept_thread.join(2)
        self._listener.close()
        for t in self._threads:
            t.join(2)

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _addr = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self.connections += 1
            t = threading.Thread(target=self._handle, args=(conn,), daemon=True)
            self._threads.append(t)
            t.start()

    def _wait_for_peer_close(self, conn: socket.socket) -> None:
        conn.settimeout(0.05)
        while not self._stop.is_set():
            try:
                if not conn.recv(4096):
                    return
            except socket.timeout:
                continue
            except OSError:
                return

    def _handle(self, conn: socket.socket) -> None:
        try:
            if self.hangup:
                return
            if self.banner is not None:
                conn.sendall(self.banner)
                self._wait_for_peer_close(conn)
                return
            if self.silent:
                self._wait_for_peer_close(conn)
                return

            transport = paramiko.Transport(conn)
            for key in self.host_keys:
                transport.add_server_key(key)
            try:
                transport.start_server(server=paramiko.ServerInterface())
                while transport.is_active() and not self._stop.is_set():
                    time.sleep(0.01)
            except (paramiko.SSHException, EOFError, OSError):
                pass
            finally:
                transport.close()
        finally:
            conn.close()


class ConnectionCounter:
    """Brief: Track client connections opened through ``create_connection``.

    Inputs:
      - None.

    Outputs:
      - ``open`` (currently open), ``max_open`` and ``total`` counters.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.open = 0
        self.max_open = 0
        self.total = 0
        self._real = socket.create_connection

    def create_connection(self, address, timeout=None, *args, **kwargs):
        sock = self._real(address, timeout, *args, **kwargs)
        counting = _CountingSocket(fileno=sock.detach())
        counting.settimeout(timeout)
        counting.counter = self
        with self.lock:
            self.open += 1
            self.total += 1
            self.max_open = max(self.max_open, self.open)
        return counting

    def released(self) -> None:
        with self.lock:
            self.open -= 1


class _CountingSocket(socket.socket):
    counter: Optional[ConnectionCounter] = None
    released = False

    def close(self) -> None:
        if self.counter is not None and not self.released:
            self.released = True
            self.counter.released()
        super().close()


@pytest.fixture(scope="session")
def server_host_keys():
    """Brief: Generate one RSA and one ECDSA-256 host key for the session."""
    return {
        "rsa": paramiko.RSAKey.generate(2048),
        "ecdsa": paramiko.ECDSAKey.generate(),
    }


@pytest.fixture
def ssh_server(server_host_keys):
    """Brief: Running SSH server presenting the RSA and ECDSA-256 host keys."""
    server = SSHTestServer(
        [server_host_keys["rsa"], server_host_keys["ecdsa"]]
    ).start()
    yield server
    server.stop()


@pytest.fixture
def make_server():
    """Brief: Factory for custom test servers, stopped after the test."""
    servers: List[SSHTestServer] = []

    def _make(*args, **kwargs) -> SSHTestServer:
        server = SSHTestServer(*args, **kwargs).start()
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.stop()


@pytest.fixture
def connection_counter(monkeypatch):
    """Brief: Count client connections opened by probes and version reads."""
    counter = ConnectionCounter()
    monkeypatch.setattr(
        prober_mod.socket, "create_connection", counter.create_connection
    )
    return counter


@pytest.fixture
def closed_port():
    """Brief: A localhost port with no listener."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
