import socket
import threading
from types import SimpleNamespace

import dns.exception
import dns.resolver
import pytest

from gnet_proxy.core import network
from gnet_proxy.core.exceptions import DNSResolutionError, UpstreamConnectError
from gnet_proxy.core.lib.dns_handler import DNSResolver
from gnet_proxy.core.network import LocalAddress, list_local_addresses, open_connection
from gnet_proxy.core.utils import format_bytes, format_endpoint


class StaticResolver:
    def __init__(self, answers):
        self.answers = answers
        self.asked = []

    def resolve(self, domain):
        self.asked.append(domain)
        if domain not in self.answers:
            raise DNSResolutionError(f"Could not resolve {domain}")
        return self.answers[domain]


def test_open_connection_resolves_hostname(echo_server):
    resolver = StaticResolver({"echo.test": "127.0.0.1"})
    with open_connection("echo.test", echo_server.port, resolver=resolver) as sock:
        sock.sendall(b"hi")
        assert sock.recv(2) == b"hi"
    assert resolver.asked == ["echo.test"]


def test_open_connection_skips_resolver_for_ip_literal(echo_server):
    resolver = StaticResolver({})
    with open_connection("127.0.0.1", echo_server.port, resolver=resolver):
        pass
    assert resolver.asked == []


def test_open_connection_dns_failure():
    with pytest.raises(UpstreamConnectError):
        open_connection("nowhere.test", 80, resolver=StaticResolver({}))


def test_open_connection_refused():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    with pytest.raises(UpstreamConnectError, match="Could not connect"):
        open_connection("127.0.0.1", port)


def test_dns_resolver_uses_system_then_caches(monkeypatch):
    DNSResolver.clear_cache()
    calls = []

    def fake_gethostbyname(domain):
        calls.append(domain)
        return "10.0.0.7"

    monkeypatch.setattr(socket, "gethostbyname", fake_gethostbyname)
    resolver = DNSResolver()
    assert resolver.resolve("cached.test") == "10.0.0.7"
    assert resolver.resolve("cached.test") == "10.0.0.7"
    assert calls == ["cached.test"]
    DNSResolver.clear_cache()


def _no_system_dns(domain):
    raise socket.gaierror("no system resolver")


def test_dns_resolver_falls_back_to_nameservers(monkeypatch):
    DNSResolver.clear_cache()
    tried = []

    def fake_resolve(self, domain, rdtype="A"):
        tried.append((list(self.nameservers), self.timeout, self.lifetime))
        if self.nameservers == ["192.0.2.1"]:
            raise dns.exception.Timeout()
        return ["203.0.113.5"]

    monkeypatch.setattr(socket, "gethostbyname", _no_system_dns)
    monkeypatch.setattr(dns.resolver.Resolver, "resolve", fake_resolve)

    resolver = DNSResolver(nameservers=["192.0.2.1", "192.0.2.2"])
    assert resolver.resolve("fallback.test") == "203.0.113.5"
    assert tried == [(["192.0.2.1"], 1.0, 3.0), (["192.0.2.2"], 1.0, 3.0)]
    DNSResolver.clear_cache()


def test_dns_resolver_concurrent_lookups_use_their_own_nameserver(monkeypatch):
    DNSResolver.clear_cache()
    barrier = threading.Barrier(2, timeout=5.0)
    mismatches = []

    def fake_resolve(self, domain, rdtype="A"):
        before = list(self.nameservers)
        # Both lookups are inside a query at the same time here
        barrier.wait()
        if list(self.nameservers) != before:
            mismatches.append((domain, before, list(self.nameservers)))
        if before == ["192.0.2.1"]:
            raise dns.exception.Timeout()
        return ["203.0.113.9"]

    monkeypatch.setattr(socket, "gethostbyname", _no_system_dns)
    monkeypatch.setattr(dns.resolver.Resolver, "resolve", fake_resolve)

    resolver = DNSResolver(nameservers=["192.0.2.1", "192.0.2.2"])
    results = {}

    def lookup(domain):
        results[domain] = resolver.resolve(domain)

    threads = [threading.Thread(target=lookup, args=(d,)) for d in ("a.test", "b.test")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert results == {"a.test": "203.0.113.9", "b.test": "203.0.113.9"}
    assert mismatches == []
    assert resolver.nameservers == ("192.0.2.1", "192.0.2.2")
    DNSResolver.clear_cache()


def test_dns_resolver_gives_up(monkeypatch):
    DNSResolver.clear_cache()

    def always_timeout(self, domain, rdtype="A"):
        raise dns.exception.Timeout()

    monkeypatch.setattr(socket, "gethostbyname", _no_system_dns)
    monkeypatch.setattr(dns.resolver.Resolver, "resolve", always_timeout)
    with pytest.raises(DNSResolutionError):
        DNSResolver(nameservers=["192.0.2.1"]).resolve("missing.test")


def test_list_local_addresses_filters(monkeypatch):
    def addr(family, address):
        return SimpleNamespace(family=family, address=address)

    monkeypatch.setattr(
        network.psutil,
        "net_if_addrs",
        lambda: {
            "lo": [addr(socket.AF_INET, "127.0.0.1")],
            "wlan0": [addr(socket.AF_INET, "192.168.43.10"), addr(socket.AF_INET6, "fe80::1")],
            "eth0": [addr(socket.AF_INET, "169.254.3.3")],
            "docker0": [addr(socket.AF_INET, "172.17.0.1")],
            "eth1": [addr(socket.AF_INET, "10.1.2.3")],
        },
    )
    monkeypatch.setattr(
        network.psutil,
        "net_if_stats",
        lambda: {
            "lo": SimpleNamespace(isup=True),
            "wlan0": SimpleNamespace(isup=True),
            "eth0": SimpleNamespace(isup=True),
            "docker0": SimpleNamespace(isup=True),
            "eth1": SimpleNamespace(isup=False),
        },
    )

    assert list_local_addresses() == [LocalAddress(interface="wlan0", ip="192.168.43.10")]


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, "0.0 B"), (1023, "1023.0 B"), (1536, "1.5 KB"), (5 * 1024**3, "5.0 GB")],
)
def test_format_bytes(value, expected):
    assert format_bytes(value) == expected


def test_format_endpoint():
    assert format_endpoint("192.168.1.2", 8080) == "192.168.1.2:8080"
    assert format_endpoint("fe80::1", 1080) == "[fe80::1]:1080"
