"""Test fixtures for piv_ca tests."""

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from piv_ca.lib.cert_utils import serialize_certificate
from piv_ca.lib.config import IssuerConfig
from piv_ca.lib.secrets_lifecycle import MemorySecretSink
from piv_ca.lib.signer import SoftwareSigner


@pytest.fixture
def temp_output_dir(tmp_path: Path) -> Path:
    """Return temporary directory for test output artifacts."""
    return tmp_path


@pytest.fixture(scope="session")
def ca_key() -> RSAPrivateKey:
    """Generate RSA private key for the test CA."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed CA certificate with a subjectKeyIdentifier."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test PIV CA")])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False
        )
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture
def ca_files_on_disk(
    temp_output_dir: Path, ca_key: RSAPrivateKey, ca_cert: x509.Certificate
) -> tuple[Path, Path]:
    """Write CA cert and key to disk and return (cert_path, key_path).

    Creates:
        {temp_dir}/ca/TestCA.crt
        {temp_dir}/ca/TestCA.key
    """
    ca_dir = temp_output_dir / "ca"
    ca_dir.mkdir(parents=True, exist_ok=True)
    cert_path = ca_dir / "TestCA.crt"
    key_path = ca_dir / "TestCA.key"
    cert_path.write_bytes(serialize_certificate(ca_cert))
    key_path.write_bytes(
        ca_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return cert_path, key_path


@pytest.fixture
def work_dir(temp_output_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Run the test from an empty directory; outputs land in <CN>/ below it."""
    work = temp_output_dir / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    yield work


@pytest.fixture
def issuer_config(ca_files_on_disk: tuple[Path, Path]) -> IssuerConfig:
    """Return config using the on-disk software CA and a short validity."""
    cert_path, key_path = ca_files_on_disk
    return IssuerConfig(ca_cert=cert_path, validity_days=30, ca_key_uri=f"file:{key_path}")


@pytest.fixture
def software_signer(ca_cert: x509.Certificate, ca_key: RSAPrivateKey) -> SoftwareSigner:
    return SoftwareSigner(ca_cert, ca_key)


@pytest.fixture
def secret_sink() -> MemorySecretSink:
    return MemorySecretSink()
