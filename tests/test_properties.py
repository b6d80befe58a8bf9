import os

import pytest
from hypothesis import given
from hypothesis import strategies as st

from git_attributesdb import codec
from git_attributesdb.codec import Database, Record

# Strategy: arbitrary non-empty byte paths (no NUL), decoded the way the
# filesystem layer hands them to us.
paths_strategy = st.binary(min_size=1, max_size=64).filter(
    lambda b: b"\0" not in b
).map(os.fsdecode)

# Strategy: user/group names as they appear in passwd/group (no whitespace, no ':')
names_strategy = st.text(
    alphabet=st.characters(
        whitelist_categories=("Ll", "Lu", "Nd"), whitelist_characters="_-."
    ),
    min_size=1,
    max_size=16,
)

blobs_strategy = st.none() | st.binary(max_size=256)

records_strategy = st.builds(
    Record,
    path=paths_strategy,
    mtime_ns=st.integers(min_value=-(2**40), max_value=2**63),
    atime_ns=st.integers(min_value=-(2**40), max_value=2**63),
    owner=names_strategy,
    group=names_strategy,
    mode=st.integers(min_value=0, max_value=0o7777),
    acl=blobs_strategy,
    xattr=blobs_strategy,
)


@given(record=records_strategy)
def test_decode_inverts_encode(record: Record) -> None:
    """
    Property: Every record survives a trip through its database line unchanged,
    and the line never contains a newline.
    """
    line = codec.encode_record(record)

    assert "\n" not in line
    assert len(line.split(" ")) == 7
    assert codec.decode_record(line) == record


@given(records=st.lists(records_strategy, max_size=20))
def test_database_file_preserves_order_and_content(
    tmp_path_factory: pytest.TempPathFactory, records: list[Record]
) -> None:
    """
    Property: Writing records after the header and loading the file back yields
    the same records in the same order (last write wins for repeated paths).
    """
    db_file = tmp_path_factory.mktemp("db") / ".gitattributesdb"
    with open(db_file, "w", encoding="utf-8") as f:
        codec.write_header(f)
        for record in records:
            f.write(codec.encode_record(record) + "\n")

    database = Database.load(db_file)

    expected = {codec.encode_path(r.path): r for r in records}
    assert database.records == expected
    assert list(database.records) == list(expected)
