#!/usr/bin/env python3
"""Generate and sign a TLS client (clientAuth) certificate with the PIV CA key.

Generates an encrypted key + CSR, signs the CSR with YubiKey PIV slot 9c via
PKCS#11, and writes CN.crt, CN.fullchain.pem, CN.p12 and CN.zip to <CN>/.
The P12 password is shown once on the terminal and never saved; the private
key and temp files are wiped.
"""

import sys
from collections.abc import Mapping, Sequence

from piv_ca.lib.profiles import ClientProfile
from piv_ca.scripts.issue import build_parser, run_issuance


def main(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    """Issue a client certificate.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser(
        prog="mk-client-cert",
        description="Generate & sign a TLS client (clientAuth) certificate using YubiKey PIV",
        san_name="EMAIL",
        san_help="Email to include in SAN (rfc822Name) and DN emailAddress",
        examples="  mk-client-cert alice\n  mk-client-cert alice alice@example.com 4096\n",
    )
    return run_issuance(ClientProfile, parser, argv=argv, environ=environ)


if __name__ == "__main__":
    sys.exit(main())
