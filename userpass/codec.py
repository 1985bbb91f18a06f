"""
userpass - Codec

Plaintext record format (what sits inside each encrypted source):

    timestamp<TAB>key<TAB>username<TAB>secret<NEWLINE>

One record per line, no header, UTF-8. Nothing is escaped, so keys and
usernames must not contain tabs or newlines. The secret is everything after
the third tab.

Decoding is tolerant: blank lines, lines that are not valid UTF-8, lines
with too few fields and lines whose timestamp is not a plain positive
integer are skipped without an error. That is what makes a truncated or
garbled last line harmless. A CRLF line ending is accepted.
"""

from typing import Iterable, List, Optional

from .record import Record


FIELD_SEP = "\t"
LINE_SEP = "\n"
ENCODING = "utf-8"


def decode_line(line: str) -> Optional[Record]:
    """Parse one line, or return None if it does not hold a valid record."""
    if line.endswith("\r"):
        line = line[:-1]
    fields = line.split(FIELD_SEP, 3)
    if len(fields) < 4:
        return None
    stamp, key, username, secret = fields
    # plain ASCII digits only, so re-encoding writes the same field back
    if not (stamp.isascii() and stamp.isdigit()):
        return None
    timestamp = int(stamp)
    if timestamp <= 0:
        return None
    return Record(timestamp, key, username, secret)


def decode(data: bytes) -> List[Record]:
    """
    Decode a plaintext record stream.

    Args:
        data: Decrypted contents of a source

    Returns:
        Valid records in file order (invalid lines dropped)
    """
    records = []
    for raw in data.split(LINE_SEP.encode(ENCODING)):
        try:
            line = raw.decode(ENCODING)
        except UnicodeDecodeError:
            continue
        record = decode_line(line)
        if record is not None:
            records.append(record)
    return records


def encode_line(record: Record) -> str:
    return FIELD_SEP.join(
        (str(record.timestamp), record.key, record.username, record.secret)
    ) + LINE_SEP


def encode(records: Iterable[Record]) -> bytes:
    """Encode records one per line, in the order given."""
    return "".join(encode_line(r) for r in records).encode(ENCODING)
