"""Resolve command-line values and configuration into an IdentityRequest."""

from .config import IssuerConfig
from .errors import InvalidInput
from .keys import parse_key_algorithm
from .models import IdentityRequest
from .profiles import ClientProfile, ServerProfile

HELP_FLAGS = ("-h", "--help")
# RFC 5280 ub-common-name
MAX_COMMON_NAME_LENGTH = 64


def validate_common_name(common_name: str | None) -> str:
    """Check the identity, which is also used as directory and file name.

    Raises:
        InvalidInput: If it is empty, a help flag, too long, or not usable as a file name
    """
    if not common_name or common_name in HELP_FLAGS:
        raise InvalidInput("Common Name is required")
    if len(common_name) > MAX_COMMON_NAME_LENGTH:
        raise InvalidInput(f"Common Name longer than {MAX_COMMON_NAME_LENGTH} characters")
    if common_name in (".", "..") or "/" in common_name or "\\" in common_name:
        raise InvalidInput(f"Common Name {common_name!r} cannot be used as a file name")
    if any(not ch.isprintable() for ch in common_name):
        raise InvalidInput("Common Name contains control characters")
    return common_name


def resolve_request(
    profile_type: type[ServerProfile] | type[ClientProfile],
    common_name: str | None,
    san_value: str | None,
    algorithm_value: str | None,
    config: IssuerConfig,
) -> IdentityRequest:
    """Validate all inputs before anything touches the filesystem.

    The algorithm parameter from the environment (RSA_BITS / EC_CURVE) wins
    over the positional one.

    Args:
        profile_type: ServerProfile or ClientProfile
        common_name: Identity (CN and output folder name)
        san_value: IP for server profile, email for client profile
        algorithm_value: Positional RSA bit size or curve name
        config: Issuer configuration

    Returns:
        Immutable IdentityRequest

    Raises:
        InvalidInput: On any invalid value
    """
    cn = validate_common_name(common_name)
    profile = profile_type.from_argument(san_value)

    override = config.algorithm_override()
    key_algorithm = parse_key_algorithm(
        config.key_type, override if override is not None else algorithm_value
    )
    return IdentityRequest(common_name=cn, profile=profile, key_algorithm=key_algorithm)
