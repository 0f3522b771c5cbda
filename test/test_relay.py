import socket
import threading

import pytest
from helpers import recv_all

from gnet_proxy.core.lib.events import EventLog, MemoryLogSink, Severity
from gnet_proxy.core.lib.proxy_stats import ProxyStats
from gnet_proxy.core.lib.relay import pipe, relay


@pytest.fixture
def sink():
    return MemoryLogSink()


@pytest.fixture
def log(sink):
    return EventLog(sink)


def _pairs():
    client_app, client_proxy = socket.socketpair()
    target_proxy, target_app = socket.socketpair()
    for s in (client_app, client_proxy, target_proxy, target_app):
        s.settimeout(5.0)
    return client_app, client_proxy, target_proxy, target_app


def _start_relay(client_proxy, target_proxy, log, stats):
    thread = threading.Thread(
        target=relay,
        args=(client_proxy, target_proxy),
        kwargs={"log": log, "stats": stats, "name": "test"},
        daemon=True,
    )
    thread.start()
    return thread


def test_pipe_copies_until_eof(log):
    src_app, src = socket.socketpair()
    dst, dst_app = socket.socketpair()
    stats = ProxyStats()

    src_app.sendall(b"a" * 10000)
    src_app.shutdown(socket.SHUT_WR)

    copied = pipe(src, dst, log=log, stats=stats)
    dst.shutdown(socket.SHUT_WR)

    assert copied == 10000
    assert recv_all(dst_app) == b"a" * 10000
    assert stats.snapshot().bytes_sent == 10000
    assert stats.snapshot().bytes_received == 0

    for s in (src_app, src, dst, dst_app):
        s.close()


def test_pipe_counts_downstream_bytes(log):
    src_app, src = socket.socketpair()
    dst, dst_app = socket.socketpair()
    stats = ProxyStats()

    src_app.sendall(b"response")
    src_app.close()
    pipe(src, dst, log=log, stats=stats, upstream=False)

    assert stats.snapshot().bytes_received == 8
    assert stats.snapshot().bytes_sent == 0

    for s in (src, dst, dst_app):
        s.close()


def test_pipe_peer_reset_is_not_an_error(log, sink):
    src_app, src = socket.socketpair()
    dst, dst_app = socket.socketpair()
    dst_app.close()

    src_app.sendall(b"x" * 4096)
    src_app.shutdown(socket.SHUT_WR)
    pipe(src, dst, log=log, stats=ProxyStats())

    assert not sink.messages(Severity.ERROR)

    for s in (src_app, src, dst):
        s.close()


def test_relay_both_directions(log, sink):
    client_app, client_proxy, target_proxy, target_app = _pairs()
    stats = ProxyStats()
    thread = _start_relay(client_proxy, target_proxy, log, stats)

    client_app.sendall(b"request bytes")
    assert target_app.recv(4096) == b"request bytes"
    target_app.sendall(b"response bytes")
    assert client_app.recv(4096) == b"response bytes"

    client_app.shutdown(socket.SHUT_WR)
    assert recv_all(target_app) == b""
    target_app.shutdown(socket.SHUT_WR)
    assert recv_all(client_app) == b""

    thread.join(timeout=5.0)
    assert not thread.is_alive()
    snapshot = stats.snapshot()
    assert (snapshot.bytes_sent, snapshot.bytes_received) == (13, 14)
    assert not sink.messages(Severity.ERROR)

    for s in (client_app, client_proxy, target_proxy, target_app):
        s.close()


def test_relay_half_close_keeps_other_direction_open(log):
    client_app, client_proxy, target_proxy, target_app = _pairs()
    thread = _start_relay(client_proxy, target_proxy, log, ProxyStats())

    client_app.sendall(b"question")
    client_app.shutdown(socket.SHUT_WR)
    assert recv_all(target_app) == b"question"

    # The client has stopped writing but still reads the answer
    target_app.sendall(b"late answer")
    target_app.close()
    assert recv_all(client_app) == b"late answer"

    thread.join(timeout=5.0)
    assert not thread.is_alive()

    for s in (client_app, client_proxy, target_proxy):
        s.close()


def test_relay_ends_when_sockets_are_shut_down(log, sink):
    client_app, client_proxy, target_proxy, target_app = _pairs()
    thread = _start_relay(client_proxy, target_proxy, log, ProxyStats())

    for s in (client_proxy, target_proxy):
        s.shutdown(socket.SHUT_RDWR)

    thread.join(timeout=5.0)
    assert not thread.is_alive()
    assert not sink.messages(Severity.ERROR)

    for s in (client_app, client_proxy, target_proxy, target_app):
        s.close()
