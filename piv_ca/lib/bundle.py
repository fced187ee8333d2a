"""Output packaging: full chain PEM, PKCS#12 bundle and ZIP archive."""

import zipfile
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from .keys import PrivateKey
from .secrets_lifecycle import Passphrase

# Same iteration count as `openssl pkcs12 -export`
PKCS12_KDF_ROUNDS = 2048


def create_fullchain(cert_pem: bytes, ca_cert_pem: bytes) -> bytes:
    """Concatenate leaf + CA certificate, leaf first, bytes unchanged."""
    return cert_pem + ca_cert_pem


def export_pkcs12(
    name: str,
    key: PrivateKey,
    cert: x509.Certificate,
    ca_cert: x509.Certificate,
    password: Passphrase,
) -> bytes:
    """Serialize key + leaf + CA into a password-protected PKCS#12 bundle.

    Both key and certificate bags use PBES2 with AES-256-CBC; the MAC uses
    HMAC-SHA256.

    Args:
        name: Friendly name of the key/cert entry (the CN)
        key: Leaf private key
        cert: Leaf certificate
        ca_cert: CA certificate, added as an additional certificate
        password: Bundle password

    Returns:
        DER-encoded PKCS#12 bytes
    """
    encryption = (
        serialization.PrivateFormat.PKCS12.encryption_builder()
        .kdf_rounds(PKCS12_KDF_ROUNDS)
        .key_cert_algorithm(pkcs12.PBES.PBESv2SHA256AndAES256CBC)
        .hmac_hash(hashes.SHA256())
        .build(bytes(password))
    )
    return pkcs12.serialize_key_and_certificates(
        name=name.encode("utf-8"),
        key=key,
        cert=cert,
        cas=[ca_cert],
        encryption_algorithm=encryption,
    )


def archive_directory(directory: Path, archive_name: str) -> Path:
    """Zip the contents of ``directory`` into ``directory/archive_name``.

    An existing archive is replaced and never included in its own contents.
    Entries are stored relative to ``directory``.
    """
    archive_path = directory / archive_name
    archive_path.unlink(missing_ok=True)

    files = sorted(path for path in directory.rglob("*") if path.is_file())
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in files:
            archive.write(path, arcname=path.relative_to(directory).as_posix())

    return archive_path
