"""Request and result models for certificate issuance."""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, NotRequired, TypedDict

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .keys import KeyAlgorithm
from .profiles import Profile

if TYPE_CHECKING:
    from .extensions import ExtensionSet


@dataclass(frozen=True)
class IdentityRequest:
    """What to issue: identity, profile variant and leaf key algorithm."""

    common_name: str
    profile: Profile
    key_algorithm: KeyAlgorithm


@dataclass
class SigningRequest:
    """Transient material handed to a Signer.

    csr_path and extfile_path are scratch files owned by the issuer and
    released after signing.
    """

    csr: x509.CertificateSigningRequest
    csr_path: Path
    extfile_path: Path
    extensions: "ExtensionSet"
    serial_number: int
    validity_days: int
    digest: hashes.HashAlgorithm


class CertificateMetadata(TypedDict):
    """Certificate summary for the final log output."""

    serialNumber: str
    commonName: str
    profile: str
    extendedKeyUsage: list[str]
    subjectAltName: list[str]
    notBefore: str
    expiry: str
    email: NotRequired[str]
    ip: NotRequired[str]


@dataclass
class IssuanceResult:
    """Result from a completed issuance.

    Contains file paths of the kept artifacts and the certificate metadata.
    """

    output_dir: Path
    cert_path: Path
    fullchain_path: Path
    bundle_path: Path
    archive_path: Path
    serial_number: int
    metadata: CertificateMetadata
