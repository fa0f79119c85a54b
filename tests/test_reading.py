import logging
import os.path as op
from io import BytesIO
from pathlib import Path

import pytest
from utils import get_files

from paqtool import PAQFile, extract
from paqtool.api import PAQHeader
from paqtool.exceptions import InvalidMagicException, TruncatedArchiveException

DATA_DIR = op.join(op.dirname(__file__), "data")
SAMPLE = op.join(DATA_DIR, "sample.paq")


def test_read_header():
    with PAQFile(SAMPLE) as paq:
        assert paq.header.file_count == 2
        assert paq.header.table_length == 0x30
        assert paq.header.reserved == 0


def test_read_entries():
    with PAQFile(SAMPLE) as paq:
        entries = paq.entries
        assert [e.signature for e in entries] == ["DEADBEEF", "0000000A"]
        assert [e.offset for e in entries] == [0x30, 0x35]
        assert [e.length for e in entries] == [5, 6]
        assert entries[0].data == b"hello"
        assert entries[1].data == b"world!"


def test_extract():
    assert extract(SAMPLE) == [("DEADBEEF", b"hello"), ("0000000A", b"world!")]
    with PAQFile(SAMPLE) as paq:
        # Extracting twice gives the same result without re-reading the table.
        assert list(paq.extract()) == list(paq.extract())


def test_unpack(tmp_path: Path):
    with PAQFile(SAMPLE) as paq:
        assert paq.unpack(tmp_path) == 2
    files = get_files(tmp_path)
    assert sorted(op.basename(f) for f in files) == ["0000000A", "DEADBEEF"]
    assert (tmp_path / "DEADBEEF").read_bytes() == b"hello"
    assert (tmp_path / "0000000A").read_bytes() == b"world!"


def test_unpack_threaded(tmp_path: Path):
    dest = tmp_path / "out"
    with PAQFile(SAMPLE) as paq:
        assert paq.unpack(dest, max_workers=4) == 2
    assert (dest / "DEADBEEF").read_bytes() == b"hello"
    assert (dest / "0000000A").read_bytes() == b"world!"


def test_dump_index(tmp_path: Path):
    with PAQFile(SAMPLE) as paq:
        paq.dump_index(tmp_path / "index.txt")
    lines = (tmp_path / "index.txt").read_text().splitlines()
    assert lines == [
        "[FileName: DEADBEEF  Offset: 48  Length: 5]",
        "[FileName: 0000000A  Offset: 53  Length: 6]",
    ]


def test_invalid_paq():
    with pytest.raises(InvalidMagicException):
        with PAQFile(op.join(DATA_DIR, "invalid.paq")):
            pass


def test_empty_file(tmp_path: Path):
    fpath = tmp_path / "empty.paq"
    fpath.write_bytes(b"")
    with pytest.raises(InvalidMagicException):
        extract(fpath)


def test_truncated_header(tmp_path: Path):
    fpath = tmp_path / "short.paq"
    fpath.write_bytes(b"\xd1\x07\x00\x00\x02\x00")
    with pytest.raises(TruncatedArchiveException):
        extract(fpath)


@pytest.mark.parametrize("size", (0x18, 0x30, 0x34, 0x3A))
def test_truncated_archive(tmp_path: Path, size: int):
    with open(SAMPLE, "rb") as f:
        data = f.read()
    fpath = tmp_path / "truncated.paq"
    fpath.write_bytes(data[:size])
    with pytest.raises(TruncatedArchiveException):
        extract(fpath)


def test_truncated_archive_partial_output(tmp_path: Path):
    with open(SAMPLE, "rb") as f:
        data = f.read()
    fpath = tmp_path / "truncated.paq"
    # Enough for the first file, but not the second.
    fpath.write_bytes(data[:0x36])
    extracted = []
    with PAQFile(fpath) as paq:
        with pytest.raises(TruncatedArchiveException):
            for item in paq.extract():
                extracted.append(item)
    assert extracted == [("DEADBEEF", b"hello")]


def test_masked_header_counts():
    header = PAQHeader()
    header.read(BytesIO(b"\xd1\x07\x00\x00" + b"\xff\xff\xff\xff" + b"\x30\x00\xf0\xff" + b"\x00" * 4))
    assert header.file_count == 0xFFFFF
    assert header.table_length == 0x30


def test_empty_archive(tmp_path: Path):
    fpath = tmp_path / "empty.paq"
    fpath.write_bytes(b"\xd1\x07\x00\x00\x00\x00\x00\x00\x10\x00\x00\x00\x00\x00\x00\x00")
    assert extract(fpath) == []


def test_offset_inside_table(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    # The only entry points at its own table record.
    data = (
        b"\xd1\x07\x00\x00\x01\x00\x00\x00\x20\x00\x00\x00\x00\x00\x00\x00"
        + b"\xde\xad\xbe\xef\x08\x00\x00\x00\x10\x00\x00\x00\x08\x00\x00\x00"
    )
    fpath = tmp_path / "overlap.paq"
    fpath.write_bytes(data)
    with caplog.at_level(logging.WARNING, logger="paqtool"):
        assert extract(fpath) == [("DEADBEEF", b"\xde\xad\xbe\xef\x08\x00\x00\x00")]
    assert "starts inside the table" in caplog.text
