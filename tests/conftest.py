"""Pytest configuration and fixtures for MCP Core Server tests"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from mcp_core_server.core.locks.backends import PidFileBackend

BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


class FakeProcessController:
    """In-memory stand-in for OS process primitives.

    Args:
        alive: PIDs that currently exist
        kill_error: Raised from kill() when set
        checks_until_death: Liveness checks a killed PID keeps reporting alive
        survives_kill: Killed PIDs never die
    """

    def __init__(
        self,
        alive=(),
        *,
        kill_error: OSError | None = None,
        checks_until_death: int = 0,
        survives_kill: bool = False,
    ):
        self.alive = set(alive)
        self.kill_error = kill_error
        self.checks_until_death = checks_until_death
        self.survives_kill = survives_kill
        self.killed: list[int] = []
        self.checks: list[int] = []
        self._dying: dict[int, int] = {}

    def is_running(self, pid: int) -> bool:
        self.checks.append(pid)
        if pid in self._dying:
            if self._dying[pid] <= 0:
                self.alive.discard(pid)
                del self._dying[pid]
            else:
                self._dying[pid] -= 1
        return pid in self.alive

    def kill(self, pid: int) -> None:
        self.killed.append(pid)
        if self.kill_error is not None:
            raise self.kill_error
        if not self.survives_kill:
            self._dying[pid] = self.checks_until_death


@pytest.fixture
def lock_path(tmp_path):
    """Lock file location inside a per-test temp directory"""
    return tmp_path / "matlab-mcp-core-server.lock"


@pytest.fixture(autouse=True)
def fast_lock_reads(monkeypatch):
    """Skip the re-read pause for empty/corrupt lock files"""
    monkeypatch.setattr(PidFileBackend, "unreadable_retry_sleep_seconds", 0)


@pytest.fixture
def fake_processes():
    return FakeProcessController


@dataclass
class IssuedCertificate:
    cert: x509.Certificate
    key: ec.EllipticCurvePrivateKey

    @property
    def pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.DER)

    @property
    def key_pem(self) -> bytes:
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )


def make_certificate(
    common_name: str,
    *,
    issuer: IssuedCertificate | None = None,
    not_before: datetime = BASE_TIME,
    not_after: datetime = BASE_TIME + timedelta(days=1),
    ca: bool = False,
    extended_key_usage: list | None = None,
) -> IssuedCertificate:
    """Build a certificate; self-signed unless `issuer` is given"""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.cert.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
    )
    if extended_key_usage is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage(extended_key_usage), critical=False)
    signing_key = issuer.key if issuer else key
    return IssuedCertificate(cert=builder.sign(signing_key, hashes.SHA256()), key=key)


@pytest.fixture
def cert_factory():
    """Factory for test certificates"""
    return make_certificate
