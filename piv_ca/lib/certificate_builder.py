"""Certificate builder for X.509 leaf certificate construction."""

from datetime import datetime, timedelta, timezone

from cryptography import x509

from .keys import PrivateKey
from .models import SigningRequest


class CertificateBuilder:
    """Builds leaf certificates from a SigningRequest with an in-process CA key."""

    @staticmethod
    def build_leaf_certificate(
        request: SigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: PrivateKey,
    ) -> x509.Certificate:
        """Build leaf certificate from CSR, signed by the CA.

        Traditional PKI flow: the CSR carries subject DN and public key; the
        signing-time extension set (including SKI/AKID) comes from the request,
        not from the CSR.

        Args:
            request: Signing request (CSR, extensions, serial, validity, digest)
            issuer_cert: CA certificate (issuer)
            issuer_key: CA private key for signing

        Returns:
            X.509 end-entity certificate signed by the CA

        Raises:
            ValueError: If CSR signature is invalid
        """
        csr = request.csr
        if not csr.is_signature_valid:
            raise ValueError("CSR signature validation failed")

        public_key = csr.public_key()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=request.validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(request.serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        builder = request.extensions.apply_to_certificate(builder, public_key, issuer_cert)

        return builder.sign(issuer_key, request.digest)
