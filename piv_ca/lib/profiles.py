"""Certificate profiles: server (serverAuth) and client (clientAuth).

Each profile owns the parts of issuance that differ between a web server and a
client certificate: the extended key usage, the subjectAltName entries, the
subject DN and the PKCS#12 file suffix.
"""

import ipaddress
from dataclasses import dataclass
from typing import ClassVar

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID, ObjectIdentifier

from .config import DistinguishedName
from .errors import InvalidInput


@dataclass(frozen=True)
class ServerProfile:
    """TLS server certificate, SAN = DNS(CN) [+ IP]."""

    name: ClassVar[str] = "server"
    extended_key_usage: ClassVar[ObjectIdentifier] = ExtendedKeyUsageOID.SERVER_AUTH
    bundle_suffix: ClassVar[str] = ".pfx"

    ip: ipaddress.IPv4Address | ipaddress.IPv6Address | None = None

    @classmethod
    def from_argument(cls, value: str | None) -> "ServerProfile":
        if not value:
            return cls()
        try:
            return cls(ip=ipaddress.ip_address(value))
        except ValueError as e:
            raise InvalidInput(f"Invalid IP address: {value!r}") from e

    def san_entries(self, common_name: str) -> list[x509.GeneralName]:
        entries: list[x509.GeneralName] = [x509.DNSName(common_name)]
        if self.ip is not None:
            entries.append(x509.IPAddress(self.ip))
        return entries

    def subject(self, common_name: str) -> DistinguishedName:
        return DistinguishedName(common_name=common_name)

    def summary(self) -> dict[str, str]:
        return {"ip": str(self.ip)} if self.ip is not None else {}


@dataclass(frozen=True)
class ClientProfile:
    """TLS client certificate, SAN = rfc822Name(email) or DNS(CN) fallback."""

    name: ClassVar[str] = "client"
    extended_key_usage: ClassVar[ObjectIdentifier] = ExtendedKeyUsageOID.CLIENT_AUTH
    bundle_suffix: ClassVar[str] = ".p12"

    email: str | None = None

    @classmethod
    def from_argument(cls, value: str | None) -> "ClientProfile":
        if not value:
            return cls()
        local, sep, domain = value.partition("@")
        malformed = not sep or not local or not domain or "@" in domain
        # Ends up verbatim in the openssl extfile, one entry per line
        unsafe = not value.isascii() or any(ch.isspace() or not ch.isprintable() for ch in value)
        if malformed or unsafe:
            raise InvalidInput(f"Invalid email address: {value!r}")
        return cls(email=value)

    def san_entries(self, common_name: str) -> list[x509.GeneralName]:
        # Never emit an empty SAN, some validators reject it
        if self.email:
            return [x509.RFC822Name(self.email)]
        return [x509.DNSName(common_name)]

    def subject(self, common_name: str) -> DistinguishedName:
        return DistinguishedName(common_name=common_name, email=self.email)

    def summary(self) -> dict[str, str]:
        return {"email": self.email} if self.email else {}


Profile = ServerProfile | ClientProfile
