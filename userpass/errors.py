"""
userpass - Errors

Every failure the store can report derives from UserpassError, so callers
(the CLI in particular) can catch one type and print a message.

None of these is raised after persisted state has been touched: a source
file is only ever replaced once its new contents are known to be good.
"""

from typing import Iterable


class UserpassError(Exception):
    """Base class for all userpass errors."""


class CipherError(UserpassError):
    """A single encrypt/decrypt attempt by a cipher backend failed."""


class SourceNotFound(UserpassError):
    """A named source file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Source not found: {path}")


class DecryptionFailed(UserpassError):
    """The decrypt collaborator gave up after its retry budget."""

    def __init__(self, path: str, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Could not decrypt {path} after {attempts} attempt(s)")


class EncryptionFailed(UserpassError):
    """The encrypt collaborator failed or produced no output."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not encrypt {path}: {reason}")


class AmbiguousTarget(UserpassError):
    """save() was called without a target on a store without exactly one source."""


class NoMatch(UserpassError):
    """A query matched no key."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"No key matches '{pattern}'")


class AmbiguousMatch(UserpassError):
    """A query matched several keys where exactly one was required."""

    def __init__(self, pattern: str, keys: Iterable[str]):
        self.pattern = pattern
        self.keys = sorted(keys)
        super().__init__(
            f"'{pattern}' matches {len(self.keys)} keys: {', '.join(self.keys)}"
        )
