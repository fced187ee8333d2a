"""Tests for CertificateIssuer end-to-end issuance with a software CA."""

import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from piv_ca.lib.cert_utils import deserialize_certificate, serialize_certificate
from piv_ca.lib.config import IssuerConfig
from piv_ca.lib.errors import SigningFailure
from piv_ca.lib.issuer import CertificateIssuer
from piv_ca.lib.keys import ECKeyAlgorithm, RSAKeyAlgorithm
from piv_ca.lib.models import IdentityRequest
from piv_ca.lib.profiles import ClientProfile, ServerProfile
from piv_ca.lib.secrets_lifecycle import MemorySecretSink
from piv_ca.lib.serial_store import FileSerialStore
from piv_ca.lib.signer import SoftwareSigner


def _issuer(
    config: IssuerConfig, signer: SoftwareSigner, sink: MemorySecretSink
) -> CertificateIssuer:
    return CertificateIssuer(config, signer, FileSerialStore(config.serial_path), sink)


def _pem_certs(data: bytes) -> list[x509.Certificate]:
    return x509.load_pem_x509_certificates(data)


class TestClientScenario:
    """identity=alice, no email, RSA 2048."""

    @pytest.fixture
    def issued(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ):
        request = IdentityRequest("alice", ClientProfile(), RSAKeyAlgorithm(bits=2048))
        return _issuer(issuer_config, software_signer, secret_sink).issue(request)

    def test_output_files(self, issued, work_dir: Path) -> None:
        out = work_dir / "alice"
        assert issued.output_dir == Path("alice")
        assert sorted(p.name for p in out.iterdir()) == [
            "alice.crt",
            "alice.fullchain.pem",
            "alice.p12",
            "alice.zip",
        ]

    def test_certificate_identity(self, issued) -> None:
        cert = deserialize_certificate(issued.cert_path.read_bytes())
        assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "alice"
        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        assert list(eku) == [ExtendedKeyUsageOID.CLIENT_AUTH]
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["alice"]
        assert san.get_values_for_type(x509.RFC822Name) == []

    def test_bundle_opens_with_displayed_password(
        self, issued, secret_sink: MemorySecretSink
    ) -> None:
        password = secret_sink.get("PKCS#12 password")
        assert len(password) == 16

        key, cert, additional = pkcs12.load_key_and_certificates(
            issued.bundle_path.read_bytes(), password
        )

        assert key is not None and cert is not None
        spki = serialization.PublicFormat.SubjectPublicKeyInfo
        assert key.public_key().public_bytes(
            serialization.Encoding.DER, spki
        ) == cert.public_key().public_bytes(serialization.Encoding.DER, spki)
        assert cert == deserialize_certificate(issued.cert_path.read_bytes())
        assert len(additional) == 1

    def test_fullchain_verifies_and_leaf_matches(self, issued, ca_cert: x509.Certificate) -> None:
        chain_bytes = issued.fullchain_path.read_bytes()
        leaf_bytes = issued.cert_path.read_bytes()
        assert chain_bytes.startswith(leaf_bytes)

        leaf, ca = _pem_certs(chain_bytes)
        assert ca == ca_cert
        leaf.verify_directly_issued_by(ca)
        assert serialize_certificate(leaf) == leaf_bytes

    def test_scratch_files_removed(self, issued, work_dir: Path) -> None:
        """Should remove the key, CSR and extension file."""
        out = work_dir / "alice"
        assert not (out / "alice.key").exists()
        assert not (out / "alice.csr").exists()
        assert not (out / "alice.ext").exists()

    def test_archive_contents(self, issued) -> None:
        with zipfile.ZipFile(issued.archive_path) as zf:
            assert sorted(zf.namelist()) == ["alice.crt", "alice.fullchain.pem", "alice.p12"]

    def test_no_secret_left_on_disk(self, issued, secret_sink: MemorySecretSink, work_dir: Path) -> None:
        """Should leave neither the password nor a private key in any file."""
        password = secret_sink.get("PKCS#12 password")
        for path in work_dir.rglob("*"):
            if path.is_file():
                data = path.read_bytes()
                assert password not in data
                assert b"PRIVATE KEY" not in data

    def test_only_password_shown_by_default(self, issued, secret_sink: MemorySecretSink) -> None:
        assert [label for label, _ in secret_sink.shown] == ["PKCS#12 password (printed once)"]

    def test_metadata(self, issued) -> None:
        assert issued.metadata["commonName"] == "alice"
        assert issued.metadata["profile"] == "client"
        assert issued.metadata["extendedKeyUsage"] == ["clientAuth"]
        assert issued.metadata["subjectAltName"] == ["DNS:alice"]
        assert "email" not in issued.metadata

    def test_serial_file_advanced(self, issued, issuer_config: IssuerConfig) -> None:
        assert issued.serial_number == 2
        assert issuer_config.serial_path.read_text() == "02\n"


class TestServerScenario:
    """identity=svc.example.com, IP=10.0.0.5, EC secp384r1."""

    def test_server_ec_certificate(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ) -> None:
        request = IdentityRequest(
            "svc.example.com",
            ServerProfile.from_argument("10.0.0.5"),
            ECKeyAlgorithm(curve="secp384r1"),
        )

        result = _issuer(issuer_config, software_signer, secret_sink).issue(request)

        assert result.bundle_path == Path("svc.example.com") / "svc.example.com.pfx"
        cert = deserialize_certificate(result.cert_path.read_bytes())
        assert cert.signature_hash_algorithm is not None
        assert cert.signature_hash_algorithm.name == "sha384"
        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        assert list(eku) == [ExtendedKeyUsageOID.SERVER_AUTH]
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["svc.example.com"]
        assert [str(ip) for ip in san.get_values_for_type(x509.IPAddress)] == ["10.0.0.5"]
        assert result.metadata["subjectAltName"] == ["DNS:svc.example.com", "IP:10.0.0.5"]


class TestIssuerBehaviour:
    """Cross-cutting issuance properties."""

    def test_client_email_in_san_and_dn(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ) -> None:
        request = IdentityRequest(
            "alice", ClientProfile(email="alice@example.com"), RSAKeyAlgorithm()
        )
        result = _issuer(issuer_config, software_signer, secret_sink).issue(request)

        cert = deserialize_certificate(result.cert_path.read_bytes())
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.RFC822Name) == ["alice@example.com"]
        assert san.get_values_for_type(x509.DNSName) == []
        emails = cert.subject.get_attributes_for_oid(NameOID.EMAIL_ADDRESS)
        assert emails[0].value == "alice@example.com"
        assert result.metadata["email"] == "alice@example.com"

    def test_repeat_issuance_differs_only_in_serial_and_validity(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ) -> None:
        """Should give identical extensions with consecutive serials."""
        request = IdentityRequest("svc.example.com", ServerProfile(), RSAKeyAlgorithm())
        issuer = _issuer(issuer_config, software_signer, secret_sink)

        first = deserialize_certificate(issuer.issue(request).cert_path.read_bytes())
        second = deserialize_certificate(issuer.issue(request).cert_path.read_bytes())

        assert second.serial_number == first.serial_number + 1
        assert first.subject == second.subject
        assert first.issuer == second.issuer

        def comparable(cert: x509.Certificate) -> list[tuple]:
            # SKI is a hash of the fresh key, so only its presence is compared
            return [
                (ext.oid, ext.critical, None if isinstance(ext.value, x509.SubjectKeyIdentifier) else ext.value)
                for ext in cert.extensions
            ]

        assert comparable(first) == comparable(second)

    def test_print_key_shows_decrypted_key_once(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ) -> None:
        issuer_config.print_key = True
        request = IdentityRequest("svc.example.com", ServerProfile(), RSAKeyAlgorithm())

        result = _issuer(issuer_config, software_signer, secret_sink).issue(request)

        key_pem = secret_sink.get("Private key")
        key = serialization.load_pem_private_key(key_pem, password=None)
        cert = deserialize_certificate(result.cert_path.read_bytes())
        assert key.public_key().public_numbers() == cert.public_key().public_numbers()  # type: ignore[union-attr]
        for path in work_dir.rglob("*"):
            if path.is_file():
                assert key_pem not in path.read_bytes()

    def test_explicit_output_dir(
        self,
        temp_output_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
        secret_sink: MemorySecretSink,
    ) -> None:
        issuer_config.output_dir = temp_output_dir / "custom-out"
        request = IdentityRequest("alice", ClientProfile(), RSAKeyAlgorithm())

        result = _issuer(issuer_config, software_signer, secret_sink).issue(request)

        assert result.cert_path == temp_output_dir / "custom-out" / "alice.crt"
        assert result.cert_path.exists()

    def test_signing_failure_cleans_up_key_and_temp_files(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        secret_sink: MemorySecretSink,
    ) -> None:
        """Should remove every scratch file when signing fails."""
        failing_signer = MagicMock()
        failing_signer.sign.side_effect = SigningFailure("PIN verification failed")
        issuer = CertificateIssuer(
            issuer_config, failing_signer, FileSerialStore(issuer_config.serial_path), secret_sink
        )
        request = IdentityRequest("alice", ClientProfile(), RSAKeyAlgorithm())

        with pytest.raises(SigningFailure, match="PIN verification failed"):
            issuer.issue(request)

        signing_request = failing_signer.sign.call_args[0][0]
        assert signing_request.csr_path.name == "alice.csr"
        assert list((work_dir / "alice").iterdir()) == []
        assert secret_sink.shown == []

    def test_certificate_from_other_ca_rejected(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        secret_sink: MemorySecretSink,
    ) -> None:
        """Should reject and remove a certificate that does not chain to the CA."""
        rogue_key = RSAKeyAlgorithm().generate()
        rogue_ca = deserialize_certificate(issuer_config.ca_cert.read_bytes())
        rogue_signer = SoftwareSigner(rogue_ca, rogue_key)
        issuer = _issuer(issuer_config, rogue_signer, secret_sink)

        with pytest.raises(SigningFailure, match="does not verify"):
            issuer.issue(IdentityRequest("alice", ClientProfile(), RSAKeyAlgorithm()))

        assert list((work_dir / "alice").iterdir()) == []
        assert secret_sink.shown == []

    def test_password_display_failure_leaves_no_output(
        self,
        work_dir: Path,
        issuer_config: IssuerConfig,
        software_signer: SoftwareSigner,
    ) -> None:
        """Should not keep a bundle whose password was never shown."""
        broken_sink = MagicMock()
        broken_sink.show.side_effect = OSError("terminal went away")
        issuer = CertificateIssuer(
            issuer_config, software_signer, FileSerialStore(issuer_config.serial_path), broken_sink
        )

        with pytest.raises(OSError, match="terminal went away"):
            issuer.issue(IdentityRequest("alice", ClientProfile(), RSAKeyAlgorithm()))

        assert list((work_dir / "alice").iterdir()) == []
