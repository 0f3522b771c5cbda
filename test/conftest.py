import pytest
from helpers import EchoServer, ProxyFixture, start_origin

from gnet_proxy.core.config import ProxyKind


@pytest.fixture
def echo_server():
    server = EchoServer()
    yield server
    server.close()


@pytest.fixture
def origin():
    httpd = start_origin()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def http_proxy():
    proxy = ProxyFixture(ProxyKind.HTTP)
    yield proxy
    proxy.stop()


@pytest.fixture
def socks_proxy():
    proxy = ProxyFixture(ProxyKind.SOCKS5)
    yield proxy
    proxy.stop()
