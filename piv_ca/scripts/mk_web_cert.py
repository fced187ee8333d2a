#!/usr/bin/env python3
"""Generate and sign a web server (serverAuth) certificate with the PIV CA key.

Writes CN.crt, CN.fullchain.pem, CN.pfx and CN.zip to <CN>/. The PFX password
(and with PRINT_KEY=1 the private key) is shown once on the terminal and never
saved.
"""

import sys
from collections.abc import Mapping, Sequence

from piv_ca.lib.profiles import ServerProfile
from piv_ca.scripts.issue import build_parser, run_issuance


def main(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    """Issue a web server certificate.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser(
        prog="mk-web-cert",
        description="Generate & sign a web server certificate using YubiKey PIV",
        san_name="IP",
        san_help="IP address to include in SAN",
        examples=(
            "  mk-web-cert ap.wifi.lopatar.local\n"
            "  mk-web-cert ap.wifi.lopatar.local 10.69.69.2 4096\n"
            "  KEY_TYPE=ec mk-web-cert svc.example.com 10.0.0.5 secp384r1\n"
        ),
    )
    return run_issuance(ServerProfile, parser, argv=argv, environ=environ)


if __name__ == "__main__":
    sys.exit(main())
