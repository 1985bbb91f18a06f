"""
userpass - Cipher Backends

The store never encrypts anything itself; it hands bytes to a cipher
backend. Both backends expose the same two calls:

    decrypt(path, secret=None, use_agent=True) -> bytes
    encrypt(path, data, secret=None) -> None

A failed attempt raises CipherError. Retrying and prompting are the
Session's job (session.py), not the backend's.

Backends:
- GpgCipher: shells out to GnuPG. With use_agent=True and no secret, gpg
  is free to ask gpg-agent for a cached passphrase. With use_agent=False
  the passphrase is fed on stdin in loopback mode, bypassing the agent.
- VaultCipher: in-process AES-256-GCM + scrypt (crypto.py). It has no
  agent, so an attempt without a secret fails straight away.
"""

import os
import logging
import subprocess
from typing import Optional, Sequence

from . import crypto
from .errors import CipherError

logger = logging.getLogger(__name__)


class VaultCipher:
    """Passphrase-based file encryption using the cryptography library."""

    extension = "vault"
    requires_secret = True

    def __init__(self, scrypt_n: int = crypto.SCRYPT_N):
        self.scrypt_n = scrypt_n

    def decrypt(self, path: str, secret: Optional[str] = None, use_agent: bool = True) -> bytes:
        if secret is None:
            raise CipherError("No passphrase available")
        try:
            with open(path, 'rb') as f:
                blob = f.read()
        except OSError as e:
            raise CipherError(f"Could not read {path}: {e}") from e
        return crypto.unseal(secret, blob)

    def encrypt(self, path: str, data: bytes, secret: Optional[str] = None) -> None:
        if secret is None:
            raise CipherError("A passphrase is required to encrypt")
        blob = crypto.seal(secret, data, n=self.scrypt_n)
        # owner read/write only
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'wb') as f:
            f.write(blob)


class GpgCipher:
    """
    GnuPG backend.

    Args:
        binary: gpg executable
        recipients: Public-key recipients; empty means symmetric encryption
        homedir: Optional --homedir for gpg
    """

    extension = "gpg"

    def __init__(self, binary: str = "gpg", recipients: Sequence[str] = (),
                 homedir: Optional[str] = None):
        self.binary = binary
        self.recipients = tuple(recipients)
        self.homedir = homedir

    @property
    def requires_secret(self) -> bool:
        # Public-key encryption needs no passphrase; symmetric does.
        return not self.recipients

    def decrypt(self, path: str, secret: Optional[str] = None, use_agent: bool = True) -> bytes:
        args = self._base_args() + ["--decrypt"]
        stdin = None
        if secret is not None or not use_agent:
            args += ["--pinentry-mode", "loopback", "--passphrase-fd", "0"]
            stdin = (secret or "").encode('utf-8') + b"\n"
        args.append(path)
        return self._run(args, stdin)

    def encrypt(self, path: str, data: bytes, secret: Optional[str] = None) -> None:
        args = self._base_args() + ["--yes", "--output", path]
        if self.recipients:
            args.append("--encrypt")
            for recipient in self.recipients:
                args += ["--recipient", recipient]
            stdin = data
        else:
            if secret is None:
                raise CipherError("A passphrase is required for symmetric encryption")
            args += ["--symmetric", "--pinentry-mode", "loopback", "--passphrase-fd", "0"]
            # gpg reads the passphrase up to the first newline, then the plaintext
            stdin = secret.encode('utf-8') + b"\n" + data
        self._run(args, stdin)

    def _base_args(self) -> list:
        args = [self.binary, "--quiet", "--batch"]
        if self.homedir:
            args += ["--homedir", self.homedir]
        return args

    def _run(self, args: list, stdin: Optional[bytes]) -> bytes:
        logger.debug("Running %s", " ".join(args))
        try:
            proc = subprocess.run(
                args,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=None if stdin is not None else subprocess.DEVNULL,
            )
        except OSError as e:
            raise CipherError(f"Could not run {self.binary}: {e}") from e
        if proc.returncode != 0:
            message = proc.stderr.decode('utf-8', 'replace').strip()
            raise CipherError(message or f"{self.binary} exited with status {proc.returncode}")
        return proc.stdout
