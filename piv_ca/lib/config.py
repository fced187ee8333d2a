"""Issuer configuration dataclasses."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid

from .errors import InvalidInput

DEFAULT_CA_CERT = "LopatarCA.crt"
DEFAULT_CA_KEY_URI = "pkcs11:object=Private%20key%20for%20Digital%20Signature;type=private"
DEFAULT_VALIDITY_DAYS = 1825
DEFAULT_AWS_REGION = "eu-west-2"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class IssuerConfig:
    """Issuance configuration, normally built from environment overrides."""

    ca_cert: Path = Path(DEFAULT_CA_CERT)
    validity_days: int = DEFAULT_VALIDITY_DAYS
    ca_key_uri: str = DEFAULT_CA_KEY_URI
    output_dir: Path | None = None
    pkcs11_module_path: Path | None = None
    key_type: str = "rsa"
    rsa_bits: str | None = None
    ec_curve: str | None = None
    print_key: bool = False
    serial_ssm_parameter: str | None = None
    aws_region: str = DEFAULT_AWS_REGION

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IssuerConfig":
        """Build configuration from environment variables.

        Recognised: CA_CERT, DAYS, CA_KEY_URI, OUTDIR, PKCS11_MODULE_PATH,
        KEY_TYPE, RSA_BITS, EC_CURVE, PRINT_KEY, SERIAL_SSM_PARAMETER, AWS_REGION.

        Raises:
            InvalidInput: If DAYS is not a positive integer
        """
        env = os.environ if environ is None else environ

        # Empty counts as unset, like ${VAR:-default}
        days_value = env.get("DAYS") or str(DEFAULT_VALIDITY_DAYS)
        if not days_value.isdigit() or int(days_value) == 0:
            raise InvalidInput(f"Invalid validity days: {days_value!r}")

        outdir = env.get("OUTDIR")
        module_path = env.get("PKCS11_MODULE_PATH")

        return cls(
            ca_cert=Path(env.get("CA_CERT") or DEFAULT_CA_CERT),
            validity_days=int(days_value),
            ca_key_uri=env.get("CA_KEY_URI") or DEFAULT_CA_KEY_URI,
            output_dir=Path(outdir) if outdir else None,
            pkcs11_module_path=Path(module_path) if module_path else None,
            key_type=(env.get("KEY_TYPE") or "rsa").lower(),
            rsa_bits=env.get("RSA_BITS") or None,
            ec_curve=env.get("EC_CURVE") or None,
            print_key=env.get("PRINT_KEY", "").lower() in _TRUE_VALUES,
            serial_ssm_parameter=env.get("SERIAL_SSM_PARAMETER") or None,
            aws_region=env.get("AWS_REGION") or DEFAULT_AWS_REGION,
        )

    def algorithm_override(self) -> str | None:
        """Env-provided algorithm parameter, which wins over the positional one."""
        if self.key_type == "ec":
            return self.ec_curve
        return self.rsa_bits

    @property
    def serial_path(self) -> Path:
        """OpenSSL-style serial file next to the CA certificate."""
        return self.ca_cert.with_suffix(".srl")

    @property
    def uses_hsm(self) -> bool:
        return self.ca_key_uri.startswith("pkcs11:")


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name for a leaf certificate."""

    common_name: str
    email: str | None = None

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for CSR generation."""
        attributes = [x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name)]
        if self.email:
            attributes.append(x509.NameAttribute(oid.NameOID.EMAIL_ADDRESS, self.email))
        return x509.Name(attributes)
