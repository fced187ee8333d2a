"""Certificate issuer: key/CSR generation, signing, packaging and cleanup."""

import os
from pathlib import Path

from .bundle import archive_directory, create_fullchain, export_pkcs12
from .cert_utils import (
    build_csr,
    deserialize_certificate,
    deserialize_encrypted_private_key,
    extract_certificate_metadata,
    public_keys_match,
    serialize_csr,
    serialize_encrypted_private_key,
    serialize_private_key,
    validate_issued_certificate,
)
from .config import IssuerConfig
from .errors import SigningFailure
from .extensions import build_extension_set
from .logging_config import issuance_logger
from .models import IdentityRequest, IssuanceResult, SigningRequest
from .secrets_lifecycle import (
    BUNDLE_PASSWORD_BYTES,
    KEY_PASSPHRASE_BYTES,
    ScratchFiles,
    SecretSink,
)
from .serial_store import SerialStore
from .signer import Signer


def write_private_file(path: Path, data: bytes) -> None:
    """Write a file readable by the owner only, whatever the umask."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


class CertificateIssuer:
    """Runs one issuance: every step is fatal on error, nothing is retried."""

    def __init__(
        self,
        config: IssuerConfig,
        signer: Signer,
        serial_store: SerialStore,
        secret_sink: SecretSink,
    ) -> None:
        """Initialize issuer with its collaborators.

        Args:
            config: Issuance configuration (CA cert path, validity, print-key toggle)
            signer: Signs the CSR with the CA key
            serial_store: Provides the serial for the new certificate
            secret_sink: Receives the bundle password (and optionally the key)
        """
        self.config = config
        self.signer = signer
        self.serial_store = serial_store
        self.secret_sink = secret_sink

    def issue(self, request: IdentityRequest) -> IssuanceResult:
        """Issue a certificate for the request and package it.

        Generates under ``<output_dir>/``:
            - <CN>.crt, the leaf certificate
            - <CN>.fullchain.pem, leaf + CA certificate
            - <CN>.p12 / <CN>.pfx, PKCS#12 bundle
            - <CN>.zip, archive of the directory

        The encrypted key, CSR and extension file are scratch files: they are
        wiped or deleted on every exit path, including failures. The .crt,
        fullchain and bundle are removed too unless the run completes.

        Args:
            request: Identity, profile and key algorithm to issue

        Returns:
            IssuanceResult with file paths, serial number and metadata

        Raises:
            SigningFailure: If the signer fails or returns a certificate that
                does not chain to the CA or carry the generated key
        """
        ca_cert_pem = self.config.ca_cert.read_bytes()
        ca_cert = deserialize_certificate(ca_cert_pem)
        extensions = build_extension_set(request)
        algorithm = request.key_algorithm

        base = request.common_name
        log = issuance_logger(base, request.profile.name)
        output_dir = self.config.output_dir or Path(base)
        output_dir.mkdir(parents=True, exist_ok=True)

        cert_path = output_dir / f"{base}.crt"
        fullchain_path = output_dir / f"{base}.fullchain.pem"
        bundle_path = output_dir / f"{base}{request.profile.bundle_suffix}"

        with ScratchFiles() as scratch, ScratchFiles() as pending_outputs:
            # Issued files only survive a run that completes
            for path in (cert_path, fullchain_path, bundle_path):
                pending_outputs.temporary_file(path)

            key_path = scratch.secret_file(output_dir / f"{base}.key")
            csr_path = scratch.temporary_file(output_dir / f"{base}.csr")
            extfile_path = scratch.temporary_file(output_dir / f"{base}.ext")

            log.info("Generating %s key", algorithm.describe())
            key_passphrase = scratch.passphrase(KEY_PASSPHRASE_BYTES)
            key = algorithm.generate()
            write_private_file(key_path, serialize_encrypted_private_key(key, key_passphrase))

            csr = build_csr(request, extensions, key, algorithm)
            csr_path.write_bytes(serialize_csr(csr))
            extfile_path.write_text(extensions.to_openssl_config())
            del key

            signing_request = SigningRequest(
                csr=csr,
                csr_path=csr_path,
                extfile_path=extfile_path,
                extensions=extensions,
                serial_number=self.serial_store.next(),
                validity_days=self.config.validity_days,
                digest=algorithm.digest,
            )
            cert = self.signer.sign(signing_request, cert_path)

            leaf_key = deserialize_encrypted_private_key(key_path.read_bytes(), key_passphrase)
            key_passphrase.clear()

            if not validate_issued_certificate(cert, ca_cert):
                raise SigningFailure(f"issued certificate does not verify against {self.config.ca_cert}")
            if not public_keys_match(leaf_key, cert):
                raise SigningFailure("issued certificate does not carry the generated public key")
            log.info("Certificate issued, serial %d", cert.serial_number)

            fullchain_path.write_bytes(create_fullchain(cert_path.read_bytes(), ca_cert_pem))

            bundle_password = scratch.passphrase(BUNDLE_PASSWORD_BYTES)
            write_private_file(
                bundle_path, export_pkcs12(base, leaf_key, cert, ca_cert, bundle_password)
            )

            if self.config.print_key:
                key_pem = bytearray(serialize_private_key(leaf_key))
                try:
                    self.secret_sink.show("Private key (printed once)", key_pem)
                finally:
                    key_pem[:] = bytes(len(key_pem))

            self.secret_sink.show("PKCS#12 password (printed once)", bundle_password.buffer)
            bundle_password.clear()
            pending_outputs.pop_all()

        archive_path = archive_directory(output_dir, f"{base}.zip")

        return IssuanceResult(
            output_dir=output_dir,
            cert_path=cert_path,
            fullchain_path=fullchain_path,
            bundle_path=bundle_path,
            archive_path=archive_path,
            serial_number=cert.serial_number,
            metadata=extract_certificate_metadata(cert, request, extensions),
        )
