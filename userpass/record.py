"""
userpass - Record

One timestamped (username, secret) fact about an account key.

A host never edits a record in place: changing a password means writing a
new Record with a newer timestamp. Which records are shown is decided at
read time (see resolve.py).
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True, order=True)
class Record:
    """
    A single credential record.

    Field order doubles as the sort order: timestamp first, so sorting a
    list of records for one key puts the most recent last.

    Args:
        timestamp: Seconds since epoch when the record was written (> 0)
        key: Account/site identifier records are grouped by
        username: Account username
        secret: Password or other secret

    Raises:
        ValueError: If timestamp is not a positive integer
    """

    timestamp: int
    key: str
    username: str
    secret: str

    def __post_init__(self):
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int):
            raise ValueError(f"timestamp must be an int, got {self.timestamp!r}")
        if self.timestamp <= 0:
            raise ValueError(f"timestamp must be positive, got {self.timestamp}")

    def pair(self) -> Tuple[str, str]:
        """(username, secret) projection used by Store.find()."""
        return (self.username, self.secret)
