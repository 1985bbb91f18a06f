"""
userpass - Resolution (default-mode dedup)

Decides which records of a key are shown when the caller did not ask for
all of them.

The rule is a pairwise timestamp-collision filter:

    1. Work through the records one at a time, removing each from the
       working set as it is taken.
    2. Drop the taken record if any record still left in the working set
       has the same timestamp; otherwise keep it.

A host writes one record per save, so distinct saves (by this host or by
others) all survive, while a record duplicated with its original timestamp
collapses to a single copy. When three or more records share a timestamp,
only the last one taken survives.

NOTE: this is NOT "latest record per username". Two different usernames
written in the same second collapse to one, and an old password for a
username is still shown next to the new one. Callers that want the current
credential use Store.latest() instead.
"""

from typing import Iterable, List

from .record import Record


def resolve(records: Iterable[Record]) -> List[Record]:
    """
    Apply the timestamp-collision filter.

    Args:
        records: Records of one key, in processing order

    Returns:
        Surviving records, in the same relative order
    """
    working = list(records)
    kept = []
    while working:
        record = working.pop(0)
        if any(other.timestamp == record.timestamp for other in working):
            continue
        kept.append(record)
    return kept
