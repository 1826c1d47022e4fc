from __future__ import annotations

import socket
import threading

import pytest

from banknode.config import IpRange, NodeConfig, PortRange


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class LineServer:
    """Loopback listener answering every received line with respond(line)."""

    def __init__(self, respond):
        self.respond = respond
        self.received = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen()
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]
        self.running = True
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        while self.running:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                continue
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn):
        with conn:
            f = conn.makefile("rwb")
            try:
                for raw in f:
                    line = raw.decode().rstrip("\r\n")
                    self.received.append(line)
                    answer = self.respond(line)
                    if answer is None:
                        return
                    f.write((answer + "\n").encode())
                    f.flush()
            except OSError:
                pass
            finally:
                f.close()

    def close(self):
        self.running = False
        self.thread.join(1.0)
        self.sock.close()


@pytest.fixture
def line_server():
    servers = []

    def start(respond):
        server = LineServer(respond)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


@pytest.fixture
def node_config(tmp_path):
    return NodeConfig(
        ip_address="127.0.0.1",
        app_port=65525,
        timeout_ms=500,
        max_connections=2,
        scan_ip_ranges=[IpRange("127.0.0.1", "127.0.0.1")],
        scan_port_ranges=[PortRange(65525, 65535)],
        accounts_file=str(tmp_path / "accounts.json"),
        log_dir=None,
    )
