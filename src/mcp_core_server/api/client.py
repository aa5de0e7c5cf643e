"""HTTPS client factory for companion processes with self-signed certificates."""

from __future__ import annotations

import logging
import ssl
from datetime import timedelta
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from requests.cookies import RequestsCookieJar
from urllib3.connection import HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.util.ssl_ import create_urllib3_context

from mcp_core_server.api.verification import PinnedCertificateVerifier
from mcp_core_server.core.constants import CLOCK_SKEW_TOLERANCE
from mcp_core_server.core.exceptions import (
    CertificateParseError,
    ConfigurationError,
    CookieStoreInitError,
    VerificationFailure,
)

logger = logging.getLogger(__name__)


class HttpClient(Protocol):
    """Minimal capability: perform one HTTP request, get one response or an error."""

    def do(self, request: requests.Request) -> requests.Response: ...


def peer_certificate_chain(sock: Any) -> list[bytes]:
    """Return the DER chain the peer presented, leaf first."""
    # Python 3.13+ exposes the full unverified chain
    get_chain = getattr(sock, "get_unverified_chain", None)
    if get_chain is not None:
        chain = get_chain()
        if chain and all(isinstance(cert, bytes) for cert in chain):
            return list(chain)
    leaf = sock.getpeercert(binary_form=True)
    return [leaf] if leaf else []


class PinnedHTTPSConnection(HTTPSConnection):
    """HTTPS connection that verifies the peer chain right after the handshake."""

    peer_verifier: PinnedCertificateVerifier | None = None

    def connect(self) -> None:
        super().connect()
        if self.peer_verifier is None:
            self.close()
            raise ssl.SSLCertVerificationError("no peer verifier configured for pinned connection")
        try:
            self.peer_verifier.verify(peer_certificate_chain(self.sock))
        except (VerificationFailure, CertificateParseError) as e:
            logger.warning("Rejected peer certificate for %s:%s: %s", self.host, self.port, e)
            self.close()
            raise ssl.SSLCertVerificationError(str(e)) from e
        self.is_verified = True


class PinnedCertificateAdapter(HTTPAdapter):
    """Transport adapter whose HTTPS pools only accept the pinned certificate."""

    def __init__(self, verifier: PinnedCertificateVerifier, ssl_context: ssl.SSLContext, **kwargs):
        self.verifier = verifier
        self.ssl_context = ssl_context
        connection_cls = type("PinnedHTTPSConnection", (PinnedHTTPSConnection,), {"peer_verifier": verifier})
        self._https_pool_cls = type(
            "PinnedHTTPSConnectionPool", (HTTPSConnectionPool,), {"ConnectionCls": connection_cls}
        )
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["ssl_context"] = self.ssl_context
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": HTTPConnectionPool,
            "https": self._https_pool_cls,
        }

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        # Proxied pools use stock HTTPS connections that never see the pinned verifier
        raise ConfigurationError(
            "Proxies are not supported for pinned HTTPS clients", field="proxies", details=f"proxy {proxy!r}"
        )

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        # System trust stores never apply; the pinned connection verifies every handshake
        return super().send(request, stream=stream, timeout=timeout, verify=False, cert=cert, proxies=proxies)


class PinnedSession(requests.Session):
    """requests session bound to one pinned certificate and its own cookie jar."""

    def do(self, request: requests.Request, **kwargs) -> requests.Response:
        """Send a single request, attaching and collecting session cookies."""
        return self.send(self.prepare_request(request), **kwargs)


def create_ssl_context(minimum_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2) -> ssl.SSLContext:
    """TLS context with library verification disabled; PinnedHTTPSConnection verifies instead."""
    return create_urllib3_context(cert_reqs=ssl.CERT_NONE, ssl_minimum_version=minimum_version)


class HTTPClientFactory:
    """Builds HTTPS clients that trust exactly one caller-supplied certificate."""

    def __init__(
        self,
        *,
        clock_skew_tolerance: timedelta = CLOCK_SKEW_TOLERANCE,
        minimum_tls_version: str = "TLSv1_2",
    ):
        self.clock_skew_tolerance = clock_skew_tolerance
        try:
            self.minimum_tls_version = ssl.TLSVersion[minimum_tls_version]
        except KeyError as e:
            raise ConfigurationError(
                f"Unsupported TLS version '{minimum_tls_version}'", field="minimum_tls_version"
            ) from e
        if self.minimum_tls_version < ssl.TLSVersion.TLSv1_2:
            raise ConfigurationError("Minimum TLS version must be TLSv1_2 or newer", field="minimum_tls_version")

    def new_client_for_self_signed_tls_server(self, certificate_pem: bytes) -> PinnedSession:
        """Create a client pinned to ``certificate_pem``.

        Raises:
            CertificateParseError: ``certificate_pem`` holds no valid certificate.
            CookieStoreInitError: The session cookie store could not be created.
        """
        verifier = PinnedCertificateVerifier.from_pem(certificate_pem, clock_skew_tolerance=self.clock_skew_tolerance)
        adapter = PinnedCertificateAdapter(verifier, create_ssl_context(self.minimum_tls_version))

        session = PinnedSession()
        session.verify = False
        session.trust_env = False
        session.mount("https://", adapter)

        try:
            session.cookies = RequestsCookieJar()
        except Exception as e:
            session.close()
            raise CookieStoreInitError("Failed to create cookie jar", details=str(e)) from e

        logger.debug("Created pinned HTTPS client (trust pool size %d)", len(verifier.trust_anchors))
        return session


def build_client_for_pinned_certificate(certificate_pem: bytes) -> PinnedSession:
    """Build a client with default settings for a self-signed companion server."""
    return HTTPClientFactory().new_client_for_self_signed_tls_server(certificate_pem)
