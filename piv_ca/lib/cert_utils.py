"""Certificate utility functions for key/CSR generation, serialization, and metadata extraction."""

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization

from .extensions import ExtensionSet
from .keys import KeyAlgorithm, PrivateKey
from .models import CertificateMetadata, IdentityRequest
from .secrets_lifecycle import Passphrase


def serialize_encrypted_private_key(key: PrivateKey, passphrase: Passphrase) -> bytes:
    """Serialize private key to PEM (PKCS8) encrypted under the passphrase."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(bytes(passphrase)),
    )


def serialize_private_key(key: PrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption).

    Only for display through a SecretSink; never written to disk.
    """
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_encrypted_private_key(pem_data: bytes, passphrase: Passphrase) -> PrivateKey:
    """Load a passphrase-protected PEM private key."""
    key = serialization.load_pem_private_key(pem_data, password=bytes(passphrase))
    if not isinstance(key, PrivateKey):
        raise ValueError(f"unsupported private key type: {type(key).__name__}")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def build_csr(
    request: IdentityRequest,
    extensions: ExtensionSet,
    key: PrivateKey,
    algorithm: KeyAlgorithm,
) -> x509.CertificateSigningRequest:
    """Build the PKCS#10 request: profile subject DN + CSR-time extensions.

    Args:
        request: Identity being issued
        extensions: Extension set derived from the request
        key: Freshly generated leaf private key
        algorithm: Key algorithm, selects the signature digest

    Returns:
        CSR self-signed by the leaf key
    """
    subject = request.profile.subject(request.common_name).to_x509_name()
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    return extensions.apply_to_csr(builder).sign(key, algorithm.digest)


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def get_common_name(cert: x509.Certificate) -> str:
    cn = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value
    if not isinstance(cn, str):
        raise ValueError("CN must be string")
    return cn


def public_keys_match(key: PrivateKey, cert: x509.Certificate) -> bool:
    """True if the certificate carries the public half of ``key``."""
    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    return key.public_key().public_bytes(
        serialization.Encoding.DER, spki
    ) == cert.public_key().public_bytes(serialization.Encoding.DER, spki)


def validate_issued_certificate(cert: x509.Certificate, ca_cert: x509.Certificate) -> bool:
    """Verify the leaf signature against the CA certificate.

    Returns True if the leaf is directly issued by the CA, False otherwise.
    """
    try:
        cert.verify_directly_issued_by(ca_cert)
        return True
    except (ValueError, TypeError, InvalidSignature):
        return False


def extract_certificate_metadata(
    cert: x509.Certificate, request: IdentityRequest, extensions: ExtensionSet
) -> CertificateMetadata:
    """Extract certificate metadata for the issuance summary.

    Args:
        cert: Issued leaf certificate
        request: Identity request it was issued for
        extensions: Extension set used at signing time

    Returns:
        CertificateMetadata with serial, CN, profile, EKU, SAN and validity.
        email/ip included only when the profile carries them.
    """
    metadata = CertificateMetadata(
        serialNumber=get_certificate_serial_hex(cert),
        commonName=get_common_name(cert),
        profile=request.profile.name,
        extendedKeyUsage=extensions.usage_names(),
        subjectAltName=extensions.san_strings(),
        notBefore=cert.not_valid_before_utc.isoformat(),
        expiry=cert.not_valid_after_utc.isoformat(),
    )
    for field, value in request.profile.summary().items():
        metadata[field] = value  # type: ignore[literal-required]
    return metadata

