from __future__ import annotations

import socket
import threading
import time

import pytest

from banknode.peer.peer import BankNode
from banknode.peer.server import CAPACITY_MESSAGE, ConnectionServer
from banknode.peer.session import Session, SessionState
from banknode.protocol.line_handler import LineReader

from conftest import free_port


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class EchoDispatcher:
    def handle_line(self, line):
        if not line.strip():
            return None
        return f"OK {line}"


class Client:
    def __init__(self, port):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=2.0)
        self.reader = LineReader(self.sock)

    def ask(self, line):
        self.sock.sendall((line + "\n").encode())
        return self.reader.readline()

    def close(self):
        self.sock.close()


@pytest.fixture
def make_server():
    servers = []

    def start(max_connections=2, grace=0.3, dispatcher=None):
        server = ConnectionServer("127.0.0.1", 0, dispatcher or EchoDispatcher(), max_connections,
                                  timeout_ms=1000, reject_grace_s=grace)
        server.start()
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


def test_request_response_on_one_connection(make_server):
    server = make_server()
    client = Client(server.port)
    assert client.ask("first") == "OK first"
    assert client.ask("second") == "OK second"
    session = server.sessions()[0]
    assert session.sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE) != 0
    assert not session.closed
    client.close()


def test_blank_line_gets_no_answer(make_server):
    server = make_server()
    client = Client(server.port)
    client.sock.sendall(b"\r\n")
    assert client.ask("next") == "OK next"
    client.close()


def test_registry_tracks_connect_and_disconnect(make_server):
    server = make_server()
    events = []
    server.add_observer(lambda event, session: events.append(event))
    client = Client(server.port)
    assert client.ask("hi") == "OK hi"
    assert server.active_count == 1
    client.close()
    assert wait_for(lambda: server.active_count == 0)
    assert wait_for(lambda: events == ["connected", "disconnected"])


def test_faulting_observer_does_not_break_server(make_server):
    server = make_server()

    def broken(event, session):
        raise ValueError("observer bug")

    server.add_observer(broken)
    client = Client(server.port)
    assert client.ask("still") == "OK still"
    client.close()


def test_connection_over_capacity_is_rejected(make_server):
    server = make_server(max_connections=1, grace=0.3)
    first = Client(server.port)
    assert first.ask("in") == "OK in"

    second = Client(server.port)
    assert second.reader.readline() == CAPACITY_MESSAGE
    assert server.active_count == 1
    # forced close after the grace delay
    second.sock.settimeout(2.0)
    assert second.reader.readline() is None
    assert server.active_count == 1
    assert first.ask("still here") == "OK still here"
    first.close()
    second.close()


def test_stop_closes_sessions_and_listener(make_server):
    server = make_server(max_connections=3)
    clients = [Client(server.port) for _ in range(2)]
    for c in clients:
        assert c.ask("x") == "OK x"
    sessions = server.sessions()
    server.stop()
    for c in clients:
        assert c.reader.readline() is None
        c.close()
    assert all(s.closed for s in sessions)
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", server.port), timeout=0.5)


def socket_pair_session(dispatcher=None, on_close=None):
    left, right = socket.socketpair()
    return Session(left, ("127.0.0.1", 1), dispatcher or EchoDispatcher(), on_close=on_close), right


class CountingSocket:
    def __init__(self, sock):
        self._sock = sock
        self.close_calls = 0

    def close(self):
        self.close_calls += 1
        self._sock.close()

    def __getattr__(self, name):
        return getattr(self._sock, name)


def test_session_stop_twice_closes_once():
    left, right = socket.socketpair()
    counting = CountingSocket(left)
    session = Session(counting, ("127.0.0.1", 1), EchoDispatcher())
    session.stop()
    session.stop()
    assert counting.close_calls == 1
    assert session.state is SessionState.CLOSED
    right.close()


def test_session_stop_races_with_eof():
    left, right = socket.socketpair()
    counting = CountingSocket(left)
    closed = []
    session = Session(counting, ("127.0.0.1", 1), EchoDispatcher(), on_close=closed.append)
    session.start()
    assert wait_for(lambda: session.state is SessionState.RUNNING)

    barrier = threading.Barrier(2)

    def stop_from_outside():
        barrier.wait()
        session.stop()

    t = threading.Thread(target=stop_from_outside)
    t.start()
    barrier.wait()
    right.close()  # EOF drives the session's own shutdown path
    t.join(2.0)
    session.join(2.0)

    assert session.state is SessionState.CLOSED
    assert counting.close_calls == 1
    assert closed == [session]


def test_session_answers_pipelined_lines():
    session, peer = socket_pair_session()
    session.start()
    peer.sendall(b"a\nb\n")
    reader = LineReader(peer)
    assert reader.readline() == "OK a"
    assert reader.readline() == "OK b"
    session.stop()
    session.join(2.0)
    peer.close()


def test_bank_node_end_to_end(node_config):
    node_config.app_port = free_port()
    node = BankNode(node_config)
    node.start_service()
    try:
        client = Client(node.server.port)
        assert client.ask("BC") == "BC 127.0.0.1"
        created = client.ask("ac")
        ref = created.split()[1]
        assert client.ask(f"AD {ref} 500") == "AD"
        assert client.ask(f"AB {ref}") == "AB 500"
        assert client.ask("BA") == "BA 500"
        assert client.ask("BN") == "BN 1"
        assert client.ask("XY") == "ER command not found: XY"
        assert node.status().endswith("bank amount: 500 | clients: 1")
        client.close()
    finally:
        node.shutdown()
