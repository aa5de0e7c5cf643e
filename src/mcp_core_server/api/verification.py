"""Peer certificate verification against a single pinned trust anchor.

The standard TLS verification path is replaced by this check: the peer
chain must lead to a certificate in the pinned pool, and every link must
be valid at one of three reference times (now, now + tolerance,
now - tolerance). Host names are not checked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import ExtendedKeyUsageOID

from mcp_core_server.core.constants import CLOCK_SKEW_TOLERANCE, MAX_CHAIN_DEPTH
from mcp_core_server.core.exceptions import CertificateParseError, VerificationFailure

logger = logging.getLogger(__name__)

_SERVER_AUTH_USAGES = {ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def load_trust_anchors(certificate_pem: bytes) -> tuple[x509.Certificate, ...]:
    """Parse PEM bytes into a trust pool.

    Raises:
        CertificateParseError: No certificate could be parsed.
    """
    if not certificate_pem:
        raise CertificateParseError("Failed to append certificate to pool", details="no PEM data supplied")
    try:
        anchors = x509.load_pem_x509_certificates(certificate_pem)
    except ValueError as e:
        raise CertificateParseError("Failed to append certificate to pool", details=str(e), original_error=e) from e
    if not anchors:
        raise CertificateParseError("Failed to append certificate to pool", details="no certificates found")
    return tuple(anchors)


def parse_peer_chain(raw_chain: Sequence[bytes]) -> list[x509.Certificate]:
    """Parse DER certificates presented by the peer, leaf first."""
    certs = []
    for raw_cert in raw_chain:
        try:
            certs.append(x509.load_der_x509_certificate(raw_cert))
        except ValueError as e:
            raise CertificateParseError("Failed to parse certificate", details=str(e), original_error=e) from e
    return certs


def _valid_at(cert: x509.Certificate, when: datetime) -> bool:
    return cert.not_valid_before_utc <= when <= cert.not_valid_after_utc


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return constraints.ca


def _allows_server_auth(cert: x509.Certificate) -> bool:
    try:
        usages = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return True
    return any(usage in _SERVER_AUTH_USAGES for usage in usages)


def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    if cert.issuer != issuer.subject:
        return False
    try:
        cert.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True


class PinnedCertificateVerifier:
    """Verify peer chains against a pinned pool with clock skew tolerance.

    Args:
        trust_anchors: Certificates trusted as roots for this verifier only
        clock_skew_tolerance: Allowed disagreement between client and server clocks
        clock: Returns the verification-time timestamp (timezone-aware)
    """

    def __init__(
        self,
        trust_anchors: Sequence[x509.Certificate],
        *,
        clock_skew_tolerance: timedelta = CLOCK_SKEW_TOLERANCE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not trust_anchors:
            raise CertificateParseError("Trust pool is empty")
        self.trust_anchors = tuple(trust_anchors)
        self.clock_skew_tolerance = clock_skew_tolerance
        self._clock = clock

    @classmethod
    def from_pem(cls, certificate_pem: bytes, **kwargs) -> PinnedCertificateVerifier:
        return cls(load_trust_anchors(certificate_pem), **kwargs)

    def verify(self, raw_chain: Sequence[bytes]) -> None:
        """Verify a DER-encoded peer chain (leaf first).

        Raises:
            CertificateParseError: A presented certificate is malformed.
            VerificationFailure: The chain is empty, outside the tolerance
                window, or does not validate at any reference time.
        """
        certs = parse_peer_chain(raw_chain)
        if not certs:
            raise VerificationFailure("No certificates provided")

        now = self._clock()
        tolerance = self.clock_skew_tolerance
        earliest_valid = now - tolerance
        latest_valid = now + tolerance

        for cert in certs:
            if cert.not_valid_before_utc > latest_valid:
                raise VerificationFailure(
                    "Certificate not yet valid",
                    details=(
                        f"NotBefore {cert.not_valid_before_utc.isoformat()} is after "
                        f"{latest_valid.isoformat()} (clock skew tolerance: {tolerance})"
                    ),
                )
            if cert.not_valid_after_utc < earliest_valid:
                raise VerificationFailure(
                    "Certificate expired",
                    details=(
                        f"NotAfter {cert.not_valid_after_utc.isoformat()} is before "
                        f"{earliest_valid.isoformat()} (clock skew tolerance: {tolerance})"
                    ),
                )

        last_error: VerificationFailure | None = None
        for check_time in (now, latest_valid, earliest_valid):
            try:
                self.verify_chain_at(certs, check_time)
                return
            except VerificationFailure as e:
                logger.debug("Chain verification at %s failed: %s", check_time.isoformat(), e)
                last_error = e

        raise VerificationFailure(
            "Certificate verification failed",
            details=str(last_error),
            check_time=last_error.check_time if last_error else None,
        ) from last_error

    def verify_chain_at(self, certs: Sequence[x509.Certificate], check_time: datetime) -> None:
        """Verify that ``certs[0]`` chains to a trust anchor with every link valid at ``check_time``."""
        leaf = certs[0]
        stamp = check_time.isoformat()

        if not _valid_at(leaf, check_time):
            raise VerificationFailure(
                "Certificate has expired or is not yet valid",
                details=f"current time {stamp} is outside {leaf.not_valid_before_utc.isoformat()} - "
                f"{leaf.not_valid_after_utc.isoformat()}",
                check_time=stamp,
            )
        if not _allows_server_auth(leaf):
            raise VerificationFailure("Certificate specifies an incompatible key usage", check_time=stamp)
        if leaf in self.trust_anchors:
            return

        intermediates = [cert for cert in certs[1:] if cert != leaf]
        if not self._build_path(leaf, intermediates, check_time, depth=0, visited=[leaf]):
            raise VerificationFailure(
                "Certificate signed by unknown authority",
                details=f"issuer {leaf.issuer.rfc4514_string()!r} is not trusted at {stamp}",
                check_time=stamp,
            )

    def _build_path(
        self,
        cert: x509.Certificate,
        intermediates: list[x509.Certificate],
        check_time: datetime,
        depth: int,
        visited: list[x509.Certificate],
    ) -> bool:
        if depth >= MAX_CHAIN_DEPTH:
            return False

        for anchor in self.trust_anchors:
            if _valid_at(anchor, check_time) and _issued_by(cert, anchor):
                return True

        for candidate in intermediates:
            if candidate in visited:
                continue
            if not _is_ca(candidate) or not _valid_at(candidate, check_time):
                continue
            if not _issued_by(cert, candidate):
                continue
            if self._build_path(candidate, intermediates, check_time, depth + 1, [*visited, candidate]):
                return True
        return False
