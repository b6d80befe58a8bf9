"""Line format of the attribute database.

Each record is one line of seven space-separated fields::

    <path> <mtime> <atime> <user>:<group> <mode> <acl> <xattr>

The path and the two binary blobs are base64-encoded, so a record never
contains embedded whitespace or newlines. A blob that is absent is written as
the placeholder ``-``. Lines starting with ``#`` and blank lines are ignored.
"""

import base64
import binascii
import logging
import os
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from .constants import APP_NAME, DATABASE_HEADER, PLACEHOLDER

logger = logging.getLogger(APP_NAME)

FIELD_COUNT = 7
NS_PER_SECOND = 1_000_000_000
TIMESTAMP_RE = re.compile(r"(-?)(\d+)(?:\.(\d{1,9}))?")


class DecodeError(ValueError):
    """Raised when a database line or encoded token cannot be decoded.

    Attributes:
        token (str): The raw text that failed to decode.
    """

    def __init__(self, token: str, reason: str):
        super().__init__(f"{reason}: '{token}'")
        self.token = token
        self.reason = reason


@dataclass
class Record:
    """Attribute snapshot for a single path.

    Attributes:
        path (str): Repository-relative path (filesystem-decoded).
        mtime_ns (int): Modification time in nanoseconds since the epoch.
        atime_ns (int): Access time in nanoseconds since the epoch.
        owner (str): Owning user name (or numeric uid if it has no name).
        group (str): Owning group name (or numeric gid if it has no name).
        mode (int): Permission bits, including set-ID and sticky bits.
        acl (bytes | None): ACL text dump, or None when absent/unsupported.
        xattr (bytes | None): Extended-attribute dump, or None when absent.
    """

    path: str
    mtime_ns: int
    atime_ns: int
    owner: str
    group: str
    mode: int
    acl: bytes | None = None
    xattr: bytes | None = None

    def __post_init__(self):
        # An empty dump carries nothing to restore and is stored as absent.
        self.acl = self.acl or None
        self.xattr = self.xattr or None


def encode_blob(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_blob(token: str) -> bytes:
    try:
        return base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(token, "Invalid base64") from e


def encode_path(path: str) -> str:
    """Encodes a path as base64 of its filesystem bytes."""
    return encode_blob(os.fsencode(path))


def decode_path(token: str) -> str:
    """Decodes a base64 path token back to a filesystem path string."""
    return os.fsdecode(decode_blob(token))


def format_timestamp(ns: int) -> str:
    """Renders nanoseconds as fixed-point seconds with nine fractional digits."""
    sign = "-" if ns < 0 else ""
    seconds, fraction = divmod(abs(ns), NS_PER_SECOND)
    return f"{sign}{seconds}.{fraction:09d}"


def parse_timestamp(text: str) -> int:
    """Parses fixed-point seconds into nanoseconds.

    Any fractional precision is accepted; shorter fractions are right-padded, so
    databases written with microsecond precision read back unchanged. A leading
    minus applies to the whole value, fraction included.
    """
    match = TIMESTAMP_RE.fullmatch(text)
    if not match:
        raise DecodeError(text, "Invalid timestamp")
    sign, seconds, fraction = match.group(1), match.group(2), match.group(3) or ""
    ns = int(seconds) * NS_PER_SECOND + int(fraction.ljust(9, "0"))
    return -ns if sign else ns


def format_mode(mode: int) -> str:
    return f"{mode:04o}"


def parse_mode(text: str) -> int:
    try:
        mode = int(text, 8)
    except ValueError as e:
        raise DecodeError(text, "Invalid mode") from e
    if not 0 <= mode <= 0o7777:
        raise DecodeError(text, "Mode out of range")
    return mode


def _encode_optional(data: bytes | None) -> str:
    return encode_blob(data) if data else PLACEHOLDER


def _decode_optional(token: str) -> bytes | None:
    return None if token == PLACEHOLDER else decode_blob(token)


def encode_record(record: Record) -> str:
    """Serializes a record into a single database line (without newline)."""
    return " ".join(
        [
            encode_path(record.path),
            format_timestamp(record.mtime_ns),
            format_timestamp(record.atime_ns),
            f"{record.owner}:{record.group}",
            format_mode(record.mode),
            _encode_optional(record.acl),
            _encode_optional(record.xattr),
        ]
    )


def decode_record(line: str) -> Record:
    """Parses a database line into a record.

    Args:
        line (str): A content line (comments and blanks already filtered).

    Returns:
        Record: The decoded record.

    Raises:
        DecodeError: If the line has the wrong shape or any field is malformed.
    """
    fields = line.split()
    if len(fields) != FIELD_COUNT:
        raise DecodeError(line.strip(), f"Expected {FIELD_COUNT} fields")

    path_token, mtime, atime, ownership, mode, acl, xattr = fields
    owner, sep, group = ownership.partition(":")
    if not sep or not owner or not group:
        raise DecodeError(ownership, "Invalid ownership")

    return Record(
        path=decode_path(path_token),
        mtime_ns=parse_timestamp(mtime),
        atime_ns=parse_timestamp(atime),
        owner=owner,
        group=group,
        mode=parse_mode(mode),
        acl=_decode_optional(acl),
        xattr=_decode_optional(xattr),
    )


def is_content_line(line: str) -> bool:
    """Returns False for blank lines and comment lines."""
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def write_header(stream: TextIO) -> None:
    """Writes the identification and notice comments plus a blank separator."""
    for line in DATABASE_HEADER:
        stream.write(f"{line}\n")
    stream.write("\n")


@dataclass
class Database:
    """An ordered collection of records indexed by their encoded path.

    The key is the raw path token as read from disk, so lookups never depend on
    re-encoding a decoded path.
    """

    records: dict[str, Record] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[tuple[str, Record]]:
        return iter(self.records.items())

    def add(self, record: Record, key: str | None = None) -> None:
        """Inserts a record, replacing any previous record with the same key."""
        self.records[key or encode_path(record.path)] = record

    @classmethod
    def load(
        cls, path: Path, warn: Callable[[str], None] = logger.warning
    ) -> "Database":
        """Reads a database file.

        A missing file yields an empty database. Lines that fail to decode are
        reported through `warn` and skipped.

        Args:
            path (Path): The database file.
            warn (Callable[[str], None]): Sink for per-line warnings.

        Returns:
            Database: The decoded records, in file order.
        """
        database = cls()
        if not path.exists():
            logger.debug(f"No database at {path}, nothing to load")
            return database

        with open(path, encoding="utf-8", errors="replace") as f:
            for lineno, line in enumerate(f, start=1):
                if not is_content_line(line):
                    continue
                try:
                    record = decode_record(line)
                except DecodeError as e:
                    warn(f"Corrupt entry on line {lineno} of {path.name}: {e}")
                    continue
                database.add(record, key=line.split()[0])

        return database
