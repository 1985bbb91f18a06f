"""
userpass - Session

Wraps a cipher backend with the policy around it:

- Credential cache: the passphrase that last worked is remembered for the
  rest of the session and tried first on the next file. It lives on the
  Session object, never in a module or class global, and is wiped when the
  session closes.
- Retry budget: the first decrypt attempt uses the agent (or the cached
  passphrase); after that the user is prompted up to `attempts` times.
- Atomic write: new contents go to "<path>.new" and only replace the real
  file once the backend has produced non-empty output there.

Two processes writing the same source at once is not supported: both
renames succeed and the last one wins.
"""

import os
import getpass
import logging
from typing import Callable, Optional

from .errors import CipherError, DecryptionFailed, EncryptionFailed

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
NEW_SUFFIX = ".new"


class CredentialCache:
    """Holds at most one passphrase for the lifetime of a session."""

    def __init__(self):
        self._secret: Optional[str] = None

    def get(self) -> Optional[str]:
        return self._secret

    def remember(self, secret: str) -> None:
        self._secret = secret

    def clear(self) -> None:
        self._secret = None


class Session:
    """
    Reads and writes encrypted sources through one cipher backend.

    Usage:
        with Session(GpgCipher()) as session:
            store = Store(session)
            store.load(path)

    Args:
        cipher: Backend with decrypt()/encrypt() (see cipher.py)
        prompt: Called with a message, returns a passphrase
        attempts: How many times to prompt after the first attempt fails
        cache: Credential cache (a fresh one by default)
    """

    def __init__(self, cipher, prompt: Callable[[str], str] = getpass.getpass,
                 attempts: int = DEFAULT_ATTEMPTS, cache: Optional[CredentialCache] = None):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.cipher = cipher
        self.prompt = prompt
        self.attempts = attempts
        self.cache = cache if cache is not None else CredentialCache()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        """Forget any cached passphrase."""
        self.cache.clear()

    def read(self, path: str) -> bytes:
        """
        Decrypt a source.

        Raises:
            DecryptionFailed: Agent/cached attempt and every prompt failed
        """
        cached = self.cache.get()
        try:
            # No passphrase known yet: let the backend's agent try.
            return self.cipher.decrypt(path, cached, use_agent=cached is None)
        except CipherError as e:
            logger.debug("First decrypt attempt for %s failed: %s", path, e)
            last_error = e

        for attempt in range(1, self.attempts + 1):
            secret = self.prompt(f"Passphrase for {os.path.basename(path)}: ")
            try:
                data = self.cipher.decrypt(path, secret, use_agent=False)
            except CipherError as e:
                logger.warning("Decrypt attempt %d/%d for %s failed", attempt, self.attempts, path)
                last_error = e
                continue
            self.cache.remember(secret)
            return data

        raise DecryptionFailed(path, self.attempts) from last_error

    def write(self, path: str, data: bytes) -> None:
        """
        Encrypt data and atomically replace path with it.

        The original file is left untouched unless the new one was fully
        written.

        Raises:
            EncryptionFailed: Backend failed or wrote nothing
        """
        secret = self.cache.get()
        if secret is None and self.cipher.requires_secret:
            secret = self._new_secret(path)

        new_path = path + NEW_SUFFIX
        try:
            self.cipher.encrypt(new_path, data, secret)
        except (CipherError, OSError) as e:
            _discard(new_path)
            raise EncryptionFailed(path, str(e)) from e

        if not os.path.exists(new_path) or os.path.getsize(new_path) == 0:
            _discard(new_path)
            raise EncryptionFailed(path, "no output produced")

        os.replace(new_path, path)
        logger.info("Wrote %s (%d bytes plaintext)", path, len(data))

    def _new_secret(self, path: str) -> str:
        name = os.path.basename(path)
        secret = self.prompt(f"New passphrase for {name}: ")
        if self.prompt(f"Confirm passphrase for {name}: ") != secret:
            raise EncryptionFailed(path, "passphrases don't match")
        if not secret:
            raise EncryptionFailed(path, "empty passphrase")
        self.cache.remember(secret)
        return secret


def _discard(path: str) -> None:
    if os.path.exists(path):
        os.unlink(path)
