"""Lookup of external tools: the openssl binary and the PKCS#11 provider library."""

import glob
import shutil
from collections.abc import Sequence
from pathlib import Path

from .errors import MissingDependency

# Searched in order when PKCS11_MODULE_PATH is unset or points nowhere
PKCS11_MODULE_CANDIDATES = (
    "/usr/lib/*/libykcs11.so",
    "/usr/local/lib/libykcs11.so",
    "/lib/*/libykcs11.so",
)


def locate_pkcs11_module(
    configured: Path | None,
    candidates: Sequence[str] = PKCS11_MODULE_CANDIDATES,
) -> Path:
    """Return the PKCS#11 provider library to load into the openssl engine.

    Args:
        configured: Explicit path (PKCS11_MODULE_PATH); used if it exists
        candidates: Ordered glob patterns of well-known install locations

    Raises:
        MissingDependency: If no provider library is found
    """
    if configured is not None and configured.exists():
        return configured

    for pattern in candidates:
        for match in sorted(glob.glob(pattern)):
            return Path(match)

    raise MissingDependency(
        "libykcs11.so not found. Set PKCS11_MODULE_PATH to the path of libykcs11.so"
    )


def require_executable(name: str) -> str:
    """Resolve an executable on PATH.

    Raises:
        MissingDependency: If it is not installed
    """
    path = shutil.which(name)
    if path is None:
        raise MissingDependency(f"{name} not found")
    return path
