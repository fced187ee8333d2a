"""Key algorithm variants for leaf key generation."""

from dataclasses import dataclass
from typing import ClassVar

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .errors import InvalidInput

DEFAULT_RSA_BITS = 2048
MIN_RSA_BITS = 2048
DEFAULT_EC_CURVE = "secp384r1"

# OpenSSL short names -> curve class
EC_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "prime256v1": ec.SECP256R1,
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
}

# Curve key size => digest. RSA always signs with sha256.
EC_DIGESTS: dict[int, type[hashes.HashAlgorithm]] = {
    256: hashes.SHA256,
    384: hashes.SHA384,
    521: hashes.SHA512,
}


@dataclass(frozen=True)
class RSAKeyAlgorithm:
    """RSA leaf key of a given modulus size."""

    key_type: ClassVar[str] = "rsa"
    key_encipherment: ClassVar[bool] = True

    bits: int = DEFAULT_RSA_BITS

    def generate(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=65537, key_size=self.bits)

    @property
    def digest(self) -> hashes.HashAlgorithm:
        return hashes.SHA256()

    def describe(self) -> str:
        return f"RSA {self.bits}"


@dataclass(frozen=True)
class ECKeyAlgorithm:
    """Elliptic curve leaf key on a named curve."""

    key_type: ClassVar[str] = "ec"
    key_encipherment: ClassVar[bool] = False

    curve: str = DEFAULT_EC_CURVE

    def generate(self) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(EC_CURVES[self.curve]())

    @property
    def digest(self) -> hashes.HashAlgorithm:
        return EC_DIGESTS[EC_CURVES[self.curve].key_size]()

    def describe(self) -> str:
        return f"EC {self.curve}"


KeyAlgorithm = RSAKeyAlgorithm | ECKeyAlgorithm
PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey


def parse_key_algorithm(key_type: str, value: str | None) -> KeyAlgorithm:
    """Resolve the positional/env algorithm parameter into a KeyAlgorithm.

    Args:
        key_type: "rsa" or "ec"
        value: RSA bit size (decimal digits) or curve name; None for default

    Returns:
        RSAKeyAlgorithm or ECKeyAlgorithm

    Raises:
        InvalidInput: If the key type, bit size or curve is not acceptable
    """
    key_type = key_type.lower()

    if key_type == RSAKeyAlgorithm.key_type:
        if value is None or value == "":
            return RSAKeyAlgorithm()
        if not value.isascii() or not value.isdigit():
            raise InvalidInput(f"Invalid RSA key size: {value!r}")
        bits = int(value)
        if bits < MIN_RSA_BITS:
            raise InvalidInput(f"RSA key size must be at least {MIN_RSA_BITS}, got {bits}")
        return RSAKeyAlgorithm(bits=bits)

    if key_type == ECKeyAlgorithm.key_type:
        if value is None or value == "":
            return ECKeyAlgorithm()
        if value not in EC_CURVES:
            raise InvalidInput(
                f"Unsupported curve {value!r}, expected one of: {', '.join(sorted(EC_CURVES))}"
            )
        return ECKeyAlgorithm(curve=value)

    raise InvalidInput(f"Unknown key type {key_type!r}, expected 'rsa' or 'ec'")
