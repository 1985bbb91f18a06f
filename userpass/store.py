"""
userpass - Store

In-memory view over one or more encrypted sources.

Each host writes only its own source file (userpass.<host>.gpg). Reading
merges every source into one mapping of key -> records, so hosts never
have to coordinate writes: conflicts are settled at read time by
timestamp (see resolve.py).

Rules:
- load() is additive. Loading [A, B] or [B, A] gives the same view.
- add() only appends. Duplicates are allowed.
- save() without a target needs exactly one loaded source. A store merged
  from several sources is a read-only view.
"""

import os
import re
import logging
from typing import Dict, List, Optional, Set, Tuple

from . import codec
from .record import Record
from .resolve import resolve
from .errors import AmbiguousMatch, AmbiguousTarget, NoMatch, SourceNotFound

logger = logging.getLogger(__name__)


class Store:
    """
    Multi-source credential store.

    Usage:
        store = Store(session)
        store.load("userpass.laptop.gpg", "userpass.desktop.gpg")
        for username, secret in store.find("github"):
            ...

    Args:
        session: Session used to decrypt/encrypt sources (only needed for
            load() and save())
    """

    def __init__(self, session=None):
        self.session = session
        self.entries: Dict[str, List[Record]] = {}
        self.sources: List[str] = []

    def __len__(self) -> int:
        return sum(len(records) for records in self.entries.values())

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    # =========================================================================
    # LOADING / SAVING
    # =========================================================================

    def load(self, *sources: str) -> None:
        """
        Merge records from each source into this store.

        Nothing is added unless every source could be read.

        Raises:
            SourceNotFound: A source does not exist
            DecryptionFailed: A source could not be decrypted
        """
        for source in sources:
            if not os.path.exists(source):
                raise SourceNotFound(source)

        loaded = []
        for source in sources:
            records = codec.decode(self._session().read(source))
            logger.debug("Loaded %d records from %s", len(records), source)
            loaded.append(records)

        for records in loaded:
            for record in records:
                self._append(record)
        self.sources.extend(sources)

    def save(self, source: Optional[str] = None) -> None:
        """
        Write every record back to one source.

        Args:
            source: Target path; defaults to the single loaded source

        Raises:
            AmbiguousTarget: No target given and not exactly one source loaded
            EncryptionFailed: The write failed (target left untouched)
        """
        if source is None:
            if len(self.sources) != 1:
                if self.sources:
                    raise AmbiguousTarget("Can't save back to multiple sources")
                raise AmbiguousTarget("No source loaded and no target given")
            source = self.sources[0]

        data = codec.encode(self._sorted_records())
        self._session().write(source, data)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add(self, key: str, timestamp: int, username: str, secret: str) -> Record:
        """
        Append a new record. Existing records are never checked or replaced.

        Returns:
            The new Record

        Raises:
            ValueError: timestamp is not positive
        """
        record = Record(timestamp, key, username, secret)
        self._append(record)
        return record

    # =========================================================================
    # QUERIES
    # =========================================================================

    def keys(self) -> List[str]:
        return sorted(self.entries)

    def find_keys(self, pattern: str, exact: bool = False) -> Set[str]:
        """
        Keys matching pattern.

        Args:
            pattern: Exact key, or a regular expression searched
                case-insensitively
            exact: Compare for equality instead of searching

        Raises:
            re.error: pattern is not a valid regular expression
        """
        if exact:
            return {pattern} if pattern in self.entries else set()
        regex = re.compile(pattern, re.IGNORECASE)
        return {key for key in self.entries if regex.search(key)}

    def records(self, key: str) -> List[Record]:
        """All records for key, oldest first (empty if key is unknown)."""
        return sorted(self.entries.get(key, ()))

    def find(self, key: str) -> List[Tuple[str, str]]:
        """All (username, secret) pairs for key, oldest first, duplicates kept."""
        return [record.pair() for record in self.records(key)]

    def latest(self, key: str) -> Optional[Tuple[str, str]]:
        """Most recent (username, secret) for key, or None."""
        pairs = self.find(key)
        return pairs[-1] if pairs else None

    def lookup(self, pattern: str, exact: bool = False, show_all: bool = False) -> List[Record]:
        """
        Records to display for every key matching pattern.

        By default each key's records go through the timestamp-collision
        filter; show_all=True returns every record.

        Returns:
            Records grouped by key (keys sorted), oldest first within a key

        Raises:
            NoMatch: No key matches
        """
        keys = self.find_keys(pattern, exact=exact)
        if not keys:
            raise NoMatch(pattern)

        result = []
        for key in sorted(keys):
            records = self.records(key)
            result.extend(records if show_all else resolve(records))
        return result

    def select_key(self, pattern: str, exact: bool = False) -> str:
        """
        The one key matching pattern.

        An exact match wins over other keys the pattern also finds.

        Raises:
            NoMatch: No key matches
            AmbiguousMatch: Several keys match
        """
        if not exact and pattern in self.entries:
            return pattern
        keys = self.find_keys(pattern, exact=exact)
        if not keys:
            raise NoMatch(pattern)
        if len(keys) > 1:
            raise AmbiguousMatch(pattern, keys)
        return keys.pop()

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _append(self, record: Record) -> None:
        self.entries.setdefault(record.key, []).append(record)

    def _sorted_records(self) -> List[Record]:
        records = []
        for key in self.keys():
            records.extend(self.records(key))
        return records

    def _session(self):
        if self.session is None:
            raise RuntimeError("Store has no session. Pass one to Store().")
        return self.session
