"""Shared command-line flow for the client and web-server certificate scripts."""

import argparse
import os
import sys
from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager

from piv_ca.lib.config import IssuerConfig
from piv_ca.lib.errors import IssuanceError
from piv_ca.lib.issuer import CertificateIssuer
from piv_ca.lib.logging_config import LOGGER, issuance_logger
from piv_ca.lib.profiles import ClientProfile, ServerProfile
from piv_ca.lib.resolver import HELP_FLAGS, resolve_request
from piv_ca.lib.secrets_lifecycle import SecretSink, TtySecretSink
from piv_ca.lib.serial_store import build_serial_store
from piv_ca.lib.signer import build_signer

ENVIRONMENT_HELP = """\
Environment overrides:
  KEY_TYPE (rsa|ec), RSA_BITS, EC_CURVE, CA_CERT, DAYS, CA_KEY_URI, OUTDIR,
  PKCS11_MODULE_PATH, PRINT_KEY, SERIAL_SSM_PARAMETER, AWS_REGION, LOG_LEVEL

Exit codes:
  0 success, 1 signing failure, 2 invalid input,
  3 missing dependency, 4 missing CA certificate
"""


def build_parser(
    prog: str, description: str, san_name: str, san_help: str, examples: str
) -> argparse.ArgumentParser:
    """Positional-only parser: <CN> [SAN] [BITS|CURVE]."""
    parser = argparse.ArgumentParser(
        prog=prog,
        description=description,
        epilog=ENVIRONMENT_HELP + "\nExamples:\n" + examples,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("common_name", metavar="CN", help="Common Name (also folder name)")
    parser.add_argument("san", metavar=san_name, nargs="?", default=None, help=san_help)
    parser.add_argument(
        "algorithm",
        metavar="BITS|CURVE",
        nargs="?",
        default=None,
        help="RSA key size (default 2048) or, with KEY_TYPE=ec, curve name (default secp384r1)",
    )
    return parser


def run_issuance(
    profile_type: type[ServerProfile] | type[ClientProfile],
    parser: argparse.ArgumentParser,
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    secret_sink: AbstractContextManager[SecretSink] | None = None,
) -> int:
    """Parse arguments, validate everything, then issue and package one certificate.

    Returns:
        Exit code (0 success, 1 signing failure, 2 invalid input,
        3 missing dependency, 4 missing CA certificate)
    """
    args_list = list(sys.argv[1:] if argv is None else argv)
    if not args_list or args_list[0] in HELP_FLAGS:
        parser.print_help()
        return 2
    args = parser.parse_args(args_list)

    old_umask = os.umask(0o077)
    try:
        config = IssuerConfig.from_env(environ)
        request = resolve_request(profile_type, args.common_name, args.san, args.algorithm, config)
        signer = build_signer(config)
        serial_store = build_serial_store(config)

        with (secret_sink if secret_sink is not None else TtySecretSink()) as sink:
            issuer = CertificateIssuer(config, signer, serial_store, sink)
            result = issuer.issue(request)

        metadata = result.metadata
        log = issuance_logger(request.common_name, profile_type.name)
        log.info("%s certificate generated successfully", profile_type.name.capitalize())
        log.info("  CN: %s", metadata["commonName"])
        if "email" in metadata:
            log.info("  Email (SAN/DN): %s", metadata["email"])
        log.info("  Key: %s", request.key_algorithm.describe())
        log.info("  EKU: %s", ", ".join(metadata["extendedKeyUsage"]))
        log.info("  SAN: %s", ", ".join(metadata["subjectAltName"]))
        log.info("  Serial: %s", metadata["serialNumber"])
        log.info("  Valid: %s to %s", metadata["notBefore"], metadata["expiry"])
        log.info("Files saved in: %s/", result.output_dir)
        for path in (result.cert_path, result.fullchain_path, result.bundle_path, result.archive_path):
            log.info("  %s", path)
        return 0

    except IssuanceError as e:
        LOGGER.error("%s", e)
        return e.exit_code
    except Exception as e:
        LOGGER.error("Certificate issuance failed: %s", e)
        return 1
    finally:
        os.umask(old_umask)
