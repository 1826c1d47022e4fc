from __future__ import annotations

import time

import pytest

from banknode.peer.discovery import NO_PORT, PeerLocator
from banknode.peer.proxy import PeerProxy
from banknode.protocol.errors import NetworkError

from conftest import free_port

IP = "127.0.0.1"


def bank_peer(line):
    if line == "BC":
        return f"BC {IP}"
    return f"{line.split()[0]} ok"


def test_finds_handshaking_port(line_server):
    server = line_server(bank_peer)
    port = PeerLocator(500).find_port(IP, [free_port(), server.port, free_port()])
    assert port == server.port
    assert server.received[0] == "BC"


def test_rejects_listener_with_wrong_answer(line_server):
    impostor = line_server(lambda line: "HTTP/1.1 400 Bad Request")
    wrong_ip = line_server(lambda line: "BC 10.9.9.9")
    assert PeerLocator(500).find_port(IP, [impostor.port, wrong_ip.port]) == NO_PORT


def test_rejects_listener_that_never_answers(line_server):
    silent = line_server(lambda line: time.sleep(2) or "BC 127.0.0.1")
    started = time.monotonic()
    assert PeerLocator(200).find_port(IP, [silent.port]) == NO_PORT
    assert time.monotonic() - started < 1.5


def test_no_listener_returns_sentinel():
    assert PeerLocator(300).find_port(IP, [free_port(), free_port()]) == NO_PORT
    assert PeerLocator(300).find_port(IP, []) == NO_PORT


def test_impostor_next_to_real_peer(line_server):
    impostor = line_server(lambda line: "SSH-2.0-OpenSSH")
    server = line_server(bank_peer)
    assert PeerLocator(500).find_port(IP, [impostor.port, server.port]) == server.port


def test_proxy_forwards_one_line(line_server):
    server = line_server(bank_peer)
    proxy = PeerProxy(IP, [server.port], 500)
    assert proxy.port == server.port
    assert proxy.forward_request("BA") == "BA ok"
    assert proxy.forward_request("AD 12345/127.0.0.1 5") == "AD ok"
    assert server.received[-2:] == ["BA", "AD 12345/127.0.0.1 5"]


def test_proxy_without_port_does_no_io():
    proxy = PeerProxy(IP, [free_port()], 300)
    assert proxy.port == NO_PORT
    assert proxy.forward_request("BA") == f"ER Unable to connect to {IP}: no open port found"


def test_proxy_reports_connection_fault(line_server):
    server = line_server(bank_peer)
    proxy = PeerProxy(IP, [server.port], 300)
    server.close()
    response = proxy.forward_request("BA")
    assert response.startswith(f"ER Unable to connect to {IP}:{server.port} - ")


def test_proxy_reports_peer_closing_without_answer(line_server):
    def closes_after_handshake(line):
        return f"BC {IP}" if line == "BC" else None

    server = line_server(closes_after_handshake)
    proxy = PeerProxy(IP, [server.port], 500)
    response = proxy.forward_request("BN")
    assert response.startswith(f"ER Unable to connect to {IP}:{server.port} - ")


def test_exchange_raises_network_error_when_peer_is_gone(line_server):
    server = line_server(bank_peer)
    proxy = PeerProxy(IP, [server.port], 300)
    server.close()
    with pytest.raises(NetworkError) as excinfo:
        proxy.exchange("BA")
    assert str(excinfo.value).startswith(f"{IP}:{server.port} - ")
    assert isinstance(excinfo.value.__cause__, OSError)
