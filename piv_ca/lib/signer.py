"""Signers: turn a SigningRequest into a certificate issued by the CA.

OpenSSLEngineSigner keeps the CA key on the PKCS#11 token: only the sign
operation crosses the hardware boundary, through ``openssl x509 -req`` and the
``pkcs11`` engine. SoftwareSigner loads a CA key from a PEM file and signs
in-process, for development CAs.
"""

import os
import subprocess
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .cert_utils import deserialize_certificate, serialize_certificate
from .certificate_builder import CertificateBuilder
from .config import IssuerConfig
from .dependencies import locate_pkcs11_module, require_executable
from .errors import InvalidInput, MissingCA, SigningFailure
from .extensions import OPENSSL_EXTENSIONS_SECTION
from .keys import PrivateKey
from .logging_config import LOGGER
from .models import SigningRequest

FILE_KEY_PREFIX = "file:"


class Signer(Protocol):
    def sign(self, request: SigningRequest, cert_path: Path) -> x509.Certificate: ...


class OpenSSLEngineSigner:
    """Signs with a PKCS#11-resident CA key via the openssl pkcs11 engine."""

    def __init__(
        self,
        openssl: str,
        ca_cert_path: Path,
        ca_key_uri: str,
        pkcs11_module_path: Path,
    ) -> None:
        self.openssl = openssl
        self.ca_cert_path = ca_cert_path
        self.ca_key_uri = ca_key_uri
        self.pkcs11_module_path = pkcs11_module_path

    def command(self, request: SigningRequest, cert_path: Path) -> list[str]:
        """Build the ``openssl x509 -req`` command line for a request."""
        return [
            self.openssl,
            "x509",
            "-req",
            "-in",
            str(request.csr_path),
            "-CA",
            str(self.ca_cert_path),
            "-CAkeyform",
            "engine",
            "-engine",
            "pkcs11",
            "-CAkey",
            self.ca_key_uri,
            "-set_serial",
            str(request.serial_number),
            "-days",
            str(request.validity_days),
            f"-{request.digest.name}",
            "-extfile",
            str(request.extfile_path),
            "-extensions",
            OPENSSL_EXTENSIONS_SECTION,
            "-out",
            str(cert_path),
        ]

    def sign(self, request: SigningRequest, cert_path: Path) -> x509.Certificate:
        """Run openssl and load the certificate it wrote.

        stdin stays attached to the terminal so the engine can prompt for the
        token PIN. There is no timeout and no retry.

        Raises:
            SigningFailure: If openssl cannot run, exits non-zero, or writes
                no parseable certificate
        """
        env = dict(os.environ, PKCS11_MODULE_PATH=str(self.pkcs11_module_path))
        LOGGER.info("Signing CSR with PKCS#11 key %s (touch/PIN may be required)", self.ca_key_uri)

        try:
            result = subprocess.run(
                self.command(request, cert_path),
                env=env,
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise SigningFailure(f"could not run openssl: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise SigningFailure(f"openssl x509 failed with exit {result.returncode}: {stderr}")

        try:
            return deserialize_certificate(cert_path.read_bytes())
        except (OSError, ValueError) as e:
            raise SigningFailure(f"openssl produced no usable certificate at {cert_path}") from e


class SoftwareSigner:
    """Signs in-process with a CA key held in memory."""

    def __init__(self, ca_cert: x509.Certificate, ca_key: PrivateKey) -> None:
        self.ca_cert = ca_cert
        self.ca_key = ca_key

    @classmethod
    def from_files(cls, ca_cert_path: Path, ca_key_path: Path) -> "SoftwareSigner":
        """Load an unencrypted PEM CA key and its certificate.

        Raises:
            SigningFailure: If the key cannot be loaded
        """
        try:
            key = serialization.load_pem_private_key(ca_key_path.read_bytes(), password=None)
        except (OSError, ValueError, TypeError) as e:
            raise SigningFailure(f"cannot load CA key {ca_key_path}: {e}") from e
        if not isinstance(key, PrivateKey):
            raise SigningFailure(f"unsupported CA key type: {type(key).__name__}")
        return cls(deserialize_certificate(ca_cert_path.read_bytes()), key)

    def sign(self, request: SigningRequest, cert_path: Path) -> x509.Certificate:
        try:
            cert = CertificateBuilder.build_leaf_certificate(request, self.ca_cert, self.ca_key)
        except ValueError as e:
            raise SigningFailure(str(e)) from e
        cert_path.write_bytes(serialize_certificate(cert))
        return cert


def build_signer(config: IssuerConfig) -> Signer:
    """Pick and construct the signer for the configured CA key reference.

    ``pkcs11:`` URIs use the openssl engine, ``file:<path>`` a software CA key.
    Dependencies are checked before the CA certificate, and both before any
    output file exists.

    Raises:
        InvalidInput: If the key reference scheme is not supported
        MissingDependency: If openssl or the PKCS#11 provider is missing
        MissingCA: If the CA certificate file does not exist
    """
    if config.uses_hsm:
        module_path = locate_pkcs11_module(config.pkcs11_module_path)
        openssl = require_executable("openssl")
        check_ca_certificate(config.ca_cert)
        return OpenSSLEngineSigner(openssl, config.ca_cert, config.ca_key_uri, module_path)

    if config.ca_key_uri.startswith(FILE_KEY_PREFIX):
        check_ca_certificate(config.ca_cert)
        return SoftwareSigner.from_files(
            config.ca_cert, Path(config.ca_key_uri[len(FILE_KEY_PREFIX) :])
        )

    raise InvalidInput(f"Unsupported CA key reference: {config.ca_key_uri!r}")


def check_ca_certificate(path: Path) -> None:
    if not path.is_file():
        raise MissingCA(f"CA cert '{path}' not found")
