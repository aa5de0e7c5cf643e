"""Tests for the pinned-certificate HTTPS client against an in-process TLS server"""

from __future__ import annotations

import select
import socket
import socketserver
import ssl
import threading
from datetime import UTC, datetime, timedelta
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from mcp_core_server.api.client import (
    HTTPClientFactory,
    PinnedSession,
    build_client_for_pinned_certificate,
    peer_certificate_chain,
)
from mcp_core_server.core.exceptions import CertificateParseError, ConfigurationError


class _CompanionHandler(BaseHTTPRequestHandler):
    """/login sets a session cookie, /echo returns the Cookie header it received"""

    def do_GET(self):
        if self.path == "/login":
            body = b"ok"
            self.send_response(200)
            self.send_header("Set-Cookie", "session=abc123; Path=/")
        elif self.path == "/echo":
            body = (self.headers.get("Cookie") or "").encode()
            self.send_response(200)
        else:
            body = b"not found"
            self.send_response(404)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class _QuietServer(ThreadingHTTPServer):
    def handle_error(self, request, client_address):
        # Clients that reject the certificate drop the connection mid-request
        pass


def _valid_now(**overrides):
    now = datetime.now(UTC)
    validity = {"not_before": now - timedelta(hours=1), "not_after": now + timedelta(days=1)}
    validity.update(overrides)
    return validity


@pytest.fixture
def companion_server(tmp_path):
    """Start TLS servers presenting a given certificate; returns their base URL"""
    servers = []

    def _start(issued):
        cert_file = tmp_path / f"server-{len(servers)}.pem"
        key_file = tmp_path / f"server-{len(servers)}.key"
        cert_file.write_bytes(issued.pem)
        key_file.write_bytes(issued.key_pem)

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(cert_file, key_file)

        server = _QuietServer(("127.0.0.1", 0), _CompanionHandler)
        server.socket = context.wrap_socket(server.socket, server_side=True)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append((server, thread))
        return f"https://127.0.0.1:{server.server_address[1]}"

    yield _start

    for server, thread in servers:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


class _ConnectProxyHandler(socketserver.StreamRequestHandler):
    """Minimal CONNECT tunnel that records each requested target"""

    def handle(self):
        request_line = self.rfile.readline().decode("latin-1").strip()
        while self.rfile.readline() not in (b"\r\n", b"\n", b""):
            pass
        self.server.tunnels.append(request_line)
        method, target, _ = request_line.split(" ", 2)
        if method != "CONNECT":
            self.wfile.write(b"HTTP/1.1 405 Method Not Allowed\r\n\r\n")
            return
        host, port = target.rsplit(":", 1)
        with socket.create_connection((host, int(port)), timeout=5) as upstream:
            self.wfile.write(b"HTTP/1.1 200 Connection established\r\n\r\n")
            self.wfile.flush()
            sockets = [self.connection, upstream]
            while True:
                readable, _, _ = select.select(sockets, [], [], 5)
                if not readable:
                    return
                for sock in readable:
                    data = sock.recv(65536)
                    if not data:
                        return
                    (upstream if sock is self.connection else self.connection).sendall(data)


class _ConnectProxy(socketserver.ThreadingTCPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _ConnectProxyHandler)
        self.tunnels = []

    def handle_error(self, request, client_address):
        pass


@pytest.fixture
def connect_proxy():
    """CONNECT proxy on localhost; yields the server so tests can inspect its tunnels"""
    proxy = _ConnectProxy()
    thread = threading.Thread(target=proxy.serve_forever, daemon=True)
    thread.start()
    yield proxy
    proxy.shutdown()
    proxy.server_close()
    thread.join(timeout=5)


class TestPinnedRequests:
    """Test requests against a server presenting a self-signed certificate"""

    def test_request_succeeds_with_pinned_certificate(self, cert_factory, companion_server):
        issued = cert_factory("companion", **_valid_now())
        base_url = companion_server(issued)

        with HTTPClientFactory().new_client_for_self_signed_tls_server(issued.pem) as client:
            response = client.do(requests.Request("GET", f"{base_url}/login"))

        assert response.status_code == 200
        assert response.text == "ok"

    def test_cookies_persist_within_client(self, cert_factory, companion_server):
        issued = cert_factory("companion", **_valid_now())
        base_url = companion_server(issued)

        with build_client_for_pinned_certificate(issued.pem) as client:
            client.do(requests.Request("GET", f"{base_url}/login"))
            echoed = client.do(requests.Request("GET", f"{base_url}/echo"))

        assert echoed.text == "session=abc123"

    def test_cookies_are_isolated_between_clients(self, cert_factory, companion_server):
        issued = cert_factory("companion", **_valid_now())
        base_url = companion_server(issued)
        factory = HTTPClientFactory()

        with factory.new_client_for_self_signed_tls_server(issued.pem) as first:
            with factory.new_client_for_self_signed_tls_server(issued.pem) as second:
                first.do(requests.Request("GET", f"{base_url}/login"))
                echoed = second.do(requests.Request("GET", f"{base_url}/echo"))

                assert echoed.text == ""
                assert first.cookies is not second.cookies

    def test_rejects_server_with_other_certificate(self, cert_factory, companion_server):
        served = cert_factory("companion", **_valid_now())
        pinned = cert_factory("companion", **_valid_now())
        base_url = companion_server(served)

        with build_client_for_pinned_certificate(pinned.pem) as client:
            with pytest.raises(requests.exceptions.SSLError):
                client.do(requests.Request("GET", f"{base_url}/login"))

    def test_rejects_certificate_expired_beyond_tolerance(self, cert_factory, companion_server):
        now = datetime.now(UTC)
        issued = cert_factory("companion", not_before=now - timedelta(days=10), not_after=now - timedelta(days=3))
        base_url = companion_server(issued)

        with build_client_for_pinned_certificate(issued.pem) as client:
            with pytest.raises(requests.exceptions.SSLError):
                client.do(requests.Request("GET", f"{base_url}/login"))

    def test_accepts_certificate_from_server_clock_ahead(self, cert_factory, companion_server):
        now = datetime.now(UTC)
        issued = cert_factory("companion", not_before=now + timedelta(hours=12), not_after=now + timedelta(days=2))
        base_url = companion_server(issued)

        with build_client_for_pinned_certificate(issued.pem) as client:
            response = client.do(requests.Request("GET", f"{base_url}/login"))

        assert response.ok

    def test_per_request_verify_does_not_enable_system_trust(self, cert_factory, companion_server):
        issued = cert_factory("companion", **_valid_now())
        base_url = companion_server(issued)

        with build_client_for_pinned_certificate(issued.pem) as client:
            response = client.get(f"{base_url}/login", verify=True)

        assert response.ok

    def test_session_proxy_is_refused(self, cert_factory, companion_server, connect_proxy):
        served = cert_factory("companion", **_valid_now())
        pinned = cert_factory("companion", **_valid_now())
        base_url = companion_server(served)

        with build_client_for_pinned_certificate(pinned.pem) as client:
            client.proxies = {"https": f"http://127.0.0.1:{connect_proxy.server_address[1]}"}
            with pytest.raises(ConfigurationError, match="Proxies are not supported"):
                client.do(requests.Request("GET", f"{base_url}/login"))

        assert connect_proxy.tunnels == []

    def test_per_request_proxy_is_refused(self, cert_factory, companion_server, connect_proxy):
        issued = cert_factory("companion", **_valid_now())
        base_url = companion_server(issued)
        proxies = {"https": f"http://127.0.0.1:{connect_proxy.server_address[1]}"}

        with build_client_for_pinned_certificate(issued.pem) as client:
            with pytest.raises(ConfigurationError):
                client.get(f"{base_url}/login", proxies=proxies)

        assert connect_proxy.tunnels == []


class TestClientFactory:
    """Test client construction and configuration errors"""

    def test_client_settings(self, cert_factory):
        client = build_client_for_pinned_certificate(cert_factory("companion").pem)
        try:
            assert isinstance(client, PinnedSession)
            assert client.verify is False
            assert client.trust_env is False
            assert len(client.cookies) == 0
        finally:
            client.close()

    @pytest.mark.parametrize("data", [b"", b"garbage", b"\x30\x03abc"])
    def test_invalid_pem(self, data):
        with pytest.raises(CertificateParseError, match="Failed to append certificate to pool") as exc_info:
            HTTPClientFactory().new_client_for_self_signed_tls_server(data)
        assert isinstance(exc_info.value, ConfigurationError)

    @pytest.mark.parametrize("version", ["TLSv1", "TLSv1_1", "SSLv9"])
    def test_rejects_weak_or_unknown_tls_version(self, version):
        with pytest.raises(ConfigurationError):
            HTTPClientFactory(minimum_tls_version=version)

    def test_accepts_tls_1_3_minimum(self):
        factory = HTTPClientFactory(minimum_tls_version="TLSv1_3")
        assert factory.minimum_tls_version == ssl.TLSVersion.TLSv1_3


class _FakeSocket:
    def __init__(self, chain=None, leaf=None):
        self._leaf = leaf
        if chain is not None:
            self.get_unverified_chain = lambda: chain

    def getpeercert(self, binary_form=False):
        return self._leaf


class TestPeerCertificateChain:
    """Test extraction of the presented chain from a TLS socket"""

    def test_uses_full_chain_when_available(self):
        assert peer_certificate_chain(_FakeSocket(chain=[b"leaf", b"intermediate"], leaf=b"leaf")) == [
            b"leaf",
            b"intermediate",
        ]

    def test_falls_back_to_leaf(self):
        assert peer_certificate_chain(_FakeSocket(leaf=b"leaf")) == [b"leaf"]

    def test_empty_chain_falls_back_to_leaf(self):
        assert peer_certificate_chain(_FakeSocket(chain=[], leaf=b"leaf")) == [b"leaf"]

    def test_no_certificate(self):
        assert peer_certificate_chain(_FakeSocket()) == []
