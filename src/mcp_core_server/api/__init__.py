"""Pinned-certificate HTTPS transport for talking to companion processes."""

from mcp_core_server.api.client import (
    HTTPClientFactory,
    HttpClient,
    PinnedCertificateAdapter,
    PinnedSession,
    build_client_for_pinned_certificate,
)
from mcp_core_server.api.verification import PinnedCertificateVerifier, load_trust_anchors

__all__ = [
    "HTTPClientFactory",
    "HttpClient",
    "PinnedCertificateAdapter",
    "PinnedCertificateVerifier",
    "PinnedSession",
    "build_client_for_pinned_certificate",
    "load_trust_anchors",
]
