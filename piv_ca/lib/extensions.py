"""X.509v3 extension set for leaf certificates.

The same ExtensionSet feeds three consumers:

- the CSR (basicConstraints, keyUsage, EKU, SAN; nothing critical),
- the software signer (a cryptography CertificateBuilder), and
- the HSM signer, as an OpenSSL extension config section ``v3_cert``.

At signing time subjectKeyIdentifier=hash and authorityKeyIdentifier=keyid,issuer
are added; both depend on the actual issuer certificate, so they are never part
of the CSR.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID

from .models import IdentityRequest

OPENSSL_EXTENSIONS_SECTION = "v3_cert"

# Characters with special meaning in OpenSSL config values
_OPENSSL_SPECIAL = re.compile(r'([\\$#"\'])')

EKU_NAMES = {
    ExtendedKeyUsageOID.SERVER_AUTH: "serverAuth",
    ExtendedKeyUsageOID.CLIENT_AUTH: "clientAuth",
}


@dataclass(frozen=True)
class ExtensionSet:
    """Extensions derived deterministically from an IdentityRequest."""

    basic_constraints: ClassVar[x509.BasicConstraints] = x509.BasicConstraints(
        ca=False, path_length=None
    )

    key_usage: x509.KeyUsage
    extended_key_usage: x509.ExtendedKeyUsage
    subject_alt_name: x509.SubjectAlternativeName

    def apply_to_csr(
        self, builder: x509.CertificateSigningRequestBuilder
    ) -> x509.CertificateSigningRequestBuilder:
        """Add CSR-time extensions to a CSR builder."""
        return (
            builder.add_extension(self.basic_constraints, critical=False)
            .add_extension(self.key_usage, critical=False)
            .add_extension(self.extended_key_usage, critical=False)
            .add_extension(self.subject_alt_name, critical=False)
        )

    def apply_to_certificate(
        self,
        builder: x509.CertificateBuilder,
        public_key: CertificatePublicKeyTypes,
        issuer_cert: x509.Certificate,
    ) -> x509.CertificateBuilder:
        """Add signing-time extensions, including SKI and AKID, to a certificate builder.

        Args:
            builder: Certificate builder with subject/issuer/validity already set
            public_key: Leaf public key (for subjectKeyIdentifier=hash)
            issuer_cert: CA certificate (for authorityKeyIdentifier=keyid,issuer)

        Returns:
            Builder with all leaf extensions added
        """
        return (
            builder.add_extension(self.basic_constraints, critical=True)
            .add_extension(self.key_usage, critical=True)
            .add_extension(self.extended_key_usage, critical=False)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False
            )
            .add_extension(authority_key_identifier(issuer_cert), critical=False)
            .add_extension(self.subject_alt_name, critical=False)
        )

    def to_openssl_config(self) -> str:
        """Render the signing-time extensions as an OpenSSL -extfile config."""
        key_usage = ["digitalSignature"]
        if self.key_usage.key_encipherment:
            key_usage.append("keyEncipherment")
        eku = ", ".join(self.usage_names())

        lines = [
            f"[{OPENSSL_EXTENSIONS_SECTION}]",
            "basicConstraints = critical, CA:FALSE",
            f"keyUsage = critical, {', '.join(key_usage)}",
            f"extendedKeyUsage = {eku}",
            "subjectKeyIdentifier = hash",
            "authorityKeyIdentifier = keyid,issuer",
            "subjectAltName = @alt",
            "",
            "[alt]",
        ]
        lines.extend(_openssl_san_lines(self.subject_alt_name))
        return "\n".join(lines) + "\n"

    def usage_names(self) -> list[str]:
        """EKU purposes by OpenSSL short name, e.g. ``serverAuth``."""
        return [EKU_NAMES[usage] for usage in self.extended_key_usage]

    def san_strings(self) -> list[str]:
        """SAN entries in OpenSSL display form, e.g. ``DNS:host``."""
        result = []
        for name in self.subject_alt_name:
            prefix, value = _san_prefix_and_value(name)
            result.append(f"{prefix}:{value}")
        return result


def build_extension_set(request: IdentityRequest) -> ExtensionSet:
    """Derive the extension set for an identity request."""
    key_usage = x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=request.key_algorithm.key_encipherment,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    return ExtensionSet(
        key_usage=key_usage,
        extended_key_usage=x509.ExtendedKeyUsage([request.profile.extended_key_usage]),
        subject_alt_name=x509.SubjectAlternativeName(
            request.profile.san_entries(request.common_name)
        ),
    )


def authority_key_identifier(issuer_cert: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    """AKID from the issuer's SKI when present, else hashed from its public key."""
    try:
        ski = issuer_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_cert.public_key())
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)


def _san_prefix_and_value(name: x509.GeneralName) -> tuple[str, str]:
    if isinstance(name, x509.DNSName):
        return "DNS", name.value
    if isinstance(name, x509.IPAddress):
        return "IP", str(name.value)
    if isinstance(name, x509.RFC822Name):
        return "email", name.value
    raise ValueError(f"unsupported SAN type: {type(name).__name__}")


def _openssl_san_lines(san: x509.SubjectAlternativeName) -> list[str]:
    counters: dict[str, int] = {}
    lines = []
    for name in san:
        prefix, value = _san_prefix_and_value(name)
        counters[prefix] = counters.get(prefix, 0) + 1
        lines.append(f"{prefix}.{counters[prefix]} = {_escape(value)}")
    return lines


def _escape(value: str) -> str:
    if "\n" in value or "\r" in value:
        raise ValueError(f"line break in extension value: {value!r}")
    return _OPENSSL_SPECIAL.sub(r"\\\1", value)
