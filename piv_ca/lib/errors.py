"""Issuance error hierarchy mapped to script exit codes."""


class IssuanceError(Exception):
    """Base class for failures that abort certificate issuance."""

    exit_code = 1


class InvalidInput(IssuanceError):
    """Missing or malformed identity, SAN value or algorithm parameter."""

    exit_code = 2


class MissingDependency(IssuanceError):
    """Required executable, PKCS#11 provider or terminal not available."""

    exit_code = 3


class MissingCA(IssuanceError):
    """CA certificate file not found."""

    exit_code = 4


class SigningFailure(IssuanceError):
    """Token or engine error while signing (bad PIN, missing key object, ...)."""

    exit_code = 1
