"""
userpass - Multi-host Password Store

Keeps username/password records in one encrypted file per host and merges
them on read.

Key Features:
- Append-only: each host only ever writes its own file
- Merge on read: every host's file is loaded into one view
- Recency: records carry a timestamp, newest last
- Safe writes: new contents replace a file only once fully written

Components:
- record.py: Record (key, timestamp, username, secret)
- codec.py: tab-separated plaintext format
- store.py: load/add/query/save over many sources
- resolve.py: default-mode dedup of records
- session.py: passphrase cache, retries, atomic writes
- cipher.py / crypto.py: GnuPG and AES-256-GCM backends
- config.py / cli.py: settings and command line

Usage:
    python -m userpass add github -u alice --generate
    python -m userpass get github
    python -m userpass update github
"""

__version__ = "0.1.0"

from .errors import (  # noqa: E402
    UserpassError, CipherError, SourceNotFound, DecryptionFailed,
    EncryptionFailed, AmbiguousTarget, NoMatch, AmbiguousMatch,
)
from .record import Record  # noqa: E402
from .session import CredentialCache, Session  # noqa: E402
from .store import Store  # noqa: E402
