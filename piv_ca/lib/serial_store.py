"""Monotonic certificate serial counters, per CA.

Both stores follow OpenSSL's ``-CAserial`` semantics: the stored value is the
last serial issued, a missing counter starts at 1, and next() increments,
persists and returns the new value. Neither store locks against concurrent
issuance against the same CA.
"""

import os
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import ClientError

from .config import IssuerConfig
from .logging_config import LOGGER

INITIAL_SERIAL = 1


class SerialStore(Protocol):
    def next(self) -> int: ...


def format_serial(serial: int) -> str:
    """Render a serial as OpenSSL does in .srl files (upper hex, even length)."""
    serial_hex = f"{serial:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return serial_hex


def parse_serial(value: str) -> int:
    """Parse a hex serial, raising ValueError on garbage."""
    value = value.strip()
    if not value:
        raise ValueError("empty serial value")
    return int(value, 16)


class FileSerialStore:
    """Serial counter in an OpenSSL-compatible .srl file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def current(self) -> int:
        """Return the stored serial, creating the file with 01 if absent."""
        if not self.path.exists():
            LOGGER.info("Creating serial file %s", self.path)
            self._write(INITIAL_SERIAL)
            return INITIAL_SERIAL
        return parse_serial(self.path.read_text())

    def next(self) -> int:
        serial = self.current() + 1
        self._write(serial)
        return serial

    def _write(self, serial: int) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(format_serial(serial) + "\n")
        os.replace(tmp_path, self.path)


class SSMSerialStore:
    """Serial counter kept in an AWS SSM Parameter Store String parameter."""

    def __init__(self, parameter_name: str, region: str = "eu-west-2") -> None:
        """Initialize SSM-backed serial store.

        Args:
            parameter_name: Full parameter name, e.g. /piv-ca/LopatarCA/serial
            region: AWS region for SSM client
        """
        self.parameter_name = parameter_name
        self.client = boto3.client("ssm", region_name=region)

    def current(self) -> int:
        """Return the stored serial, or INITIAL_SERIAL if the parameter is absent.

        Raises:
            ClientError: For any SSM error other than ParameterNotFound
        """
        try:
            response = self.client.get_parameter(Name=self.parameter_name, WithDecryption=False)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ParameterNotFound":
                LOGGER.info("Serial parameter %s not found, starting at %d", self.parameter_name, INITIAL_SERIAL)
                return INITIAL_SERIAL
            raise
        return parse_serial(response["Parameter"]["Value"])

    def next(self) -> int:
        serial = self.current() + 1
        self.client.put_parameter(
            Name=self.parameter_name,
            Value=format_serial(serial),
            Type="String",
            Overwrite=True,
        )
        return serial


def build_serial_store(config: IssuerConfig) -> SerialStore:
    """SSM parameter when SERIAL_SSM_PARAMETER is set, else the .srl file next to the CA cert."""
    if config.serial_ssm_parameter:
        return SSMSerialStore(config.serial_ssm_parameter, region=config.aws_region)
    return FileSerialStore(config.serial_path)
