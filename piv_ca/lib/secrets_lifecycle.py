"""Ephemeral secrets: generation, terminal-only display, zeroization and wiping."""

import os
import secrets
import shutil
import subprocess
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Protocol

from .errors import MissingDependency
from .logging_config import LOGGER

KEY_PASSPHRASE_BYTES = 16  # 32 hex chars
# Shorter on purpose: some PKCS#12 consumers (Windows) reject long passwords
BUNDLE_PASSWORD_BYTES = 8  # 16 hex chars

TTY_DEVICE = "/dev/tty"


class Passphrase:
    """Random hex passphrase held in a mutable buffer that can be zeroed.

    Python cannot guarantee that no copy survives elsewhere in memory (callers
    that need ``bytes`` get a short-lived immutable copy), but the canonical
    buffer is overwritten as soon as clear() is called.
    """

    def __init__(self, value: bytearray) -> None:
        self._value = value

    @classmethod
    def generate(cls, nbytes: int) -> "Passphrase":
        """Generate a passphrase of ``nbytes`` CSPRNG bytes, hex encoded."""
        return cls(bytearray(secrets.token_bytes(nbytes).hex(), "ascii"))

    def __bytes__(self) -> bytes:
        if self.cleared:
            raise ValueError("passphrase already cleared")
        return bytes(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def __repr__(self) -> str:
        return f"Passphrase(<{len(self._value)} chars>)"

    def __enter__(self) -> "Passphrase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clear()

    @property
    def cleared(self) -> bool:
        return len(self._value) == 0

    @property
    def buffer(self) -> bytearray:
        """The live buffer; zeroed and emptied by clear()."""
        return self._value

    def clear(self) -> None:
        for i in range(len(self._value)):
            self._value[i] = 0
        del self._value[:]


class SecretSink(Protocol):
    """Where secrets are shown to the operator, separate from stdout/stderr/logs."""

    def show(self, label: str, secret: bytes | bytearray) -> None: ...


class MemorySecretSink:
    """Keeps shown secrets in memory, for callers that deliver them elsewhere."""

    def __init__(self) -> None:
        self.shown: list[tuple[str, bytes]] = []

    def __enter__(self) -> "MemorySecretSink":
        return self

    def __exit__(self, *exc_info: object) -> None:
        pass

    def show(self, label: str, secret: bytes | bytearray) -> None:
        self.shown.append((label, bytes(secret)))

    def get(self, label_prefix: str) -> bytes:
        """Return the first secret whose label starts with ``label_prefix``.

        Raises:
            KeyError: If no such secret was shown
        """
        for label, secret in self.shown:
            if label.startswith(label_prefix):
                return secret
        raise KeyError(label_prefix)


class TtySecretSink:
    """Writes secrets to the controlling terminal so redirection cannot capture them."""

    def __init__(self, device: str = TTY_DEVICE) -> None:
        self.device = device
        self._stream: BinaryIO | None = None

    def __enter__(self) -> "TtySecretSink":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Open the terminal device.

        Raises:
            MissingDependency: If the process has no controlling terminal
        """
        try:
            self._stream = open(self.device, "wb", buffering=0)
        except OSError as e:
            raise MissingDependency(
                f"cannot open {self.device}; secrets are only shown on an interactive terminal"
            ) from e

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def show(self, label: str, secret: bytes | bytearray) -> None:
        if self._stream is None:
            raise RuntimeError("secret sink is not open")
        self._stream.write(f"> {label}: ".encode())
        self._stream.write(secret)
        if not secret.endswith(b"\n"):
            self._stream.write(b"\n")


def secure_delete(path: Path) -> None:
    """Overwrite then unlink a file.

    Uses ``shred -u`` when available. Otherwise the file is zero-filled and
    fsynced in place before unlinking, which gives no guarantee on
    copy-on-write or journaling filesystems.
    """
    if not path.exists():
        return

    shred = shutil.which("shred")
    if shred:
        result = subprocess.run([shred, "-u", "--", str(path)], check=False)
        if result.returncode == 0:
            LOGGER.debug("Shredded %s", path)
            return
        LOGGER.warning("shred failed on %s (exit %d), overwriting in place", path, result.returncode)
    else:
        LOGGER.warning("shred not found, overwriting %s in place before unlink", path)

    size = path.stat().st_size
    with path.open("r+b") as fh:
        fh.write(b"\0" * size)
        fh.flush()
        os.fsync(fh.fileno())
    path.unlink()


def remove_file(path: Path) -> None:
    """Plain unlink for non-secret scratch files."""
    path.unlink(missing_ok=True)


class ScratchFiles(ExitStack):
    """Registry of transient artifacts, released on every exit path.

    Secret files are securely wiped, temporary files unlinked and passphrases
    zeroed, in reverse registration order, whether the block completes or
    raises.
    """

    def secret_file(self, path: Path) -> Path:
        self.callback(secure_delete, path)
        return path

    def temporary_file(self, path: Path) -> Path:
        self.callback(remove_file, path)
        return path

    def passphrase(self, nbytes: int) -> Passphrase:
        passphrase = Passphrase.generate(nbytes)
        self.callback(passphrase.clear)
        return passphrase
