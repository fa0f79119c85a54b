import os
import os.path as op
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import SEEK_SET, BufferedReader, BufferedWriter, BytesIO
from logging import NullHandler, getLogger
from typing import Iterable, Iterator, Optional, Union

from paqtool.constants import (
    DEFAULT_ARCHIVE_NAME,
    HEADER_FIELD_MASK,
    HEADER_SIZE,
    MAX_U32,
    PAQ_MAGIC,
    RECORD_READ_SIZE,
)
from paqtool.exceptions import (
    InvalidEntryNameException,
    InvalidMagicException,
    PAQException,
    TruncatedArchiveException,
)
from paqtool.utils import (
    decode_signature,
    default_archive_path,
    encode_signature,
    is_valid_signature,
    masked_u32_from_bytes,
    record_offset,
    table_length,
    u32_from_bytes,
    u32_to_bytes,
)

logger = getLogger(__name__)
logger.addHandler(NullHandler())


def read_exact(fobj: BufferedReader, size: int, what: str) -> bytes:
    """Read exactly `size` bytes from the current position or raise if the archive is too short."""
    start = fobj.tell()
    data = fobj.read(size)
    if len(data) != size:
        raise TruncatedArchiveException(
            f"Unable to read {what}: expected 0x{size:X} bytes at 0x{start:X}, got 0x{len(data):X}"
        )
    return data


@dataclass
class FileEntry:
    signature: str
    offset: int
    length: int
    data: Optional[bytes] = None

    @property
    def raw_signature(self) -> bytes:
        return decode_signature(self.signature)

    def values(self):
        return (self.raw_signature, self.length, self.offset, self.length)

    def __str__(self):
        return f"[FileName: {self.signature}  Offset: {self.offset}  Length: {self.length}]"


@dataclass
class ListingEntry:
    """A file which is to be packed. The source is either the path to the file or the raw bytes."""

    name: str
    size: int
    source: Union[str, os.PathLike[str], bytes]

    def read(self) -> bytes:
        """Read the data for the file.
        A bytes source of the wrong size raises PAQException. A file on disk which is shorter than the listed
        size raises OSError."""
        if isinstance(self.source, bytes):
            if len(self.source) != self.size:
                raise PAQException(
                    f"{self.name} is listed as 0x{self.size:X} bytes but 0x{len(self.source):X} were provided"
                )
            return self.source
        with open(self.source, "rb") as f:
            data = f.read(self.size)
        if len(data) != self.size:
            raise OSError(f"Expected 0x{self.size:X} bytes for {self.name}, got 0x{len(data):X}")
        return data


class PAQHeader:
    """The archive header. This also holds the counters which are computed once per read or write and which
    the table and the payload data depend on."""

    def __init__(self):
        self.magic = PAQ_MAGIC
        self.file_count = 0
        self.table_length = table_length(0)
        self.reserved = 0

    @classmethod
    def for_file_count(cls, file_count: int) -> "PAQHeader":
        header = cls()
        header.file_count = file_count
        header.table_length = table_length(file_count)
        return header

    def read(self, fobj: BufferedReader):
        fobj.seek(0, SEEK_SET)
        data = fobj.read(HEADER_SIZE)
        if data[:4] != PAQ_MAGIC:
            raise InvalidMagicException(f"{_name(fobj)} does not appear to be a valid PAQ file.")
        if len(data) != HEADER_SIZE:
            raise TruncatedArchiveException(f"{_name(fobj)} is too short to contain a PAQ header.")
        self.magic = data[:4]
        self.file_count = masked_u32_from_bytes(data[4:8])
        self.table_length = masked_u32_from_bytes(data[8:12])
        self.reserved = u32_from_bytes(data[12:16])

    def write(self, fobj: BufferedWriter):
        if self.file_count > HEADER_FIELD_MASK or self.table_length > HEADER_FIELD_MASK:
            logger.warning(
                f"Archive has {self.file_count} files and a table of 0x{self.table_length:X} bytes. "
                "The game only reads 20 bits of these values so this archive will not read back correctly."
            )
        fobj.write(self.magic)
        fobj.write(u32_to_bytes(self.file_count))
        fobj.write(u32_to_bytes(self.table_length))
        fobj.write(u32_to_bytes(0))

    def __str__(self):
        return (
            f"PAQ Header:\n"
            f" Files: {self.file_count}\n"
            f" Table length: 0x{self.table_length:X}\n"
        )


class PAQFileTable:
    def __init__(self):
        self.entries: list[FileEntry] = []

    def read(self, header: PAQHeader, fobj: BufferedReader) -> Iterator[FileEntry]:
        """Read the table records, loading each entry's data as soon as its record has been read."""
        for i in range(header.file_count):
            fobj.seek(record_offset(i), SEEK_SET)
            record = read_exact(fobj, RECORD_READ_SIZE, f"table record {i}")
            # The fourth field (the length again) is never read.
            entry = FileEntry(
                encode_signature(record[0:4]),
                u32_from_bytes(record[8:12]),
                u32_from_bytes(record[4:8]),
            )
            if entry.offset < header.table_length:
                logger.warning(f"{entry} starts inside the table (table length: 0x{header.table_length:X})")
            logger.debug(f"Reading file: {entry}")
            fobj.seek(entry.offset, SEEK_SET)
            entry.data = read_exact(fobj, entry.length, f"data for {entry.signature}")
            self.entries.append(entry)
            yield entry

    def write(self, fobj: BufferedWriter):
        for entry in self.entries:
            logger.debug(f"Entering file: {entry}")
            for value in entry.values():
                fobj.write(value if isinstance(value, bytes) else u32_to_bytes(value))

    def __str__(self):
        res = "File Table\n----------\n"
        res += "\n".join([str(entry) for entry in self.entries])
        return res


def _name(fobj) -> str:
    return getattr(fobj, "name", "<buffer>")


def build_entries(listing: Iterable[ListingEntry]) -> tuple[PAQHeader, PAQFileTable]:
    """Validate the names of the listed files and lay them out one after the other after the table."""
    listing = list(listing)
    for item in listing:
        if not is_valid_signature(item.name):
            raise InvalidEntryNameException(
                f"Filename is a wrong length ({len(item.name)}, 8 needed) and/or is not a hexadecimal "
                f"number. Filename: {item.name}"
            )

    header = PAQHeader.for_file_count(len(listing))
    table = PAQFileTable()
    offset = header.table_length
    for item in listing:
        if offset > MAX_U32 or item.size > MAX_U32:
            raise PAQException(f"{item.name} does not fit within the 4GB addressable by a PAQ file.")
        table.entries.append(FileEntry(item.name, offset, item.size, item.read()))
        offset += item.size
    return header, table


def repack(listing: Iterable[ListingEntry]) -> bytes:
    """Pack the listed files into the bytes of a PAQ archive.

    Parameters
    ----------
    listing:
        The files to pack, in the order they are to appear in the archive.
        Every name must be an 8 character hexadecimal string.

    Returns
    -------
    The complete archive.
    """
    header, table = build_entries(listing)
    buffer = BytesIO()
    header.write(buffer)
    table.write(buffer)
    for entry in table.entries:
        buffer.write(entry.data)
    return buffer.getvalue()


def list_directory(directory: Union[str, os.PathLike[str]]) -> list[ListingEntry]:
    """List the regular files directly within the directory. Subdirectories are ignored."""
    listing = []
    with os.scandir(directory) as it:
        for dir_entry in it:
            if dir_entry.is_file():
                listing.append(ListingEntry(dir_entry.name, dir_entry.stat().st_size, dir_entry.path))
            else:
                logger.debug(f"Skipping {dir_entry.name}: not a file")
    return listing


def extract(archive_path: Union[str, os.PathLike[str]]) -> list[tuple[str, bytes]]:
    """Read every file out of the archive, in table order."""
    with PAQFile(archive_path) as paq:
        return list(paq.extract())


class PAQFile:
    fobj: Optional[BufferedReader]

    def __init__(self, filepath: Union[str, os.PathLike[str]]):
        self.fpath = filepath
        self.fobj = None
        self.header = PAQHeader()
        self.table = PAQFileTable()

    def __enter__(self):
        self.fobj = open(self.fpath, "rb")
        try:
            self.header.read(self.fobj)
        except PAQException:
            self.fobj.close()
            raise
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.fobj is not None:
            self.fobj.close()

    @property
    def paq_name(self) -> str:
        return op.basename(self.fpath)

    @property
    def entries(self) -> list[FileEntry]:
        """All the entries in the archive along with their data."""
        if len(self.table.entries) != self.header.file_count:
            self.table.entries = []
            for _ in self.table.read(self.header, self.fobj):
                pass
        return self.table.entries

    def extract(self) -> Iterable[tuple[str, bytes]]:
        """Extract the contained files iteratively.
        If the archive is truncated, the files before the truncation will already have been yielded before
        the exception is raised.

        Returns
        -------
        An iterable over (filename, data) pairs in table order.
        """
        if len(self.table.entries) == self.header.file_count:
            for entry in self.table.entries:
                yield (entry.signature, entry.data)
            return
        self.table.entries = []
        for entry in self.table.read(self.header, self.fobj):
            yield (entry.signature, entry.data)

    def unpack(self, dest: Union[str, os.PathLike[str]], max_workers: int = 1) -> int:
        """Unpack the contained files to the specified destination

        Parameters
        ----------
        dest:
            The target folder to extract the files to. It will be created if it doesn't exist.
        max_workers:
            The number of threads used to write the files to disk. The whole archive is read before any
            file is written when this is more than 1.

        Returns
        -------
        Total number of files unpacked.
        """
        os.makedirs(dest, exist_ok=True)
        if max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [executor.submit(_write_file, dest, e.signature, e.data) for e in self.entries]
                for future in futures:
                    future.result()
            return len(futures)

        i = 0
        for fname, data in self.extract():
            _write_file(dest, fname, data)
            i += 1
        return i

    def dump_index(self, dest: Union[str, os.PathLike[str]]):
        """Dump the table of the paq file to disk

        Parameters
        ----------
        dest
            The file to dump the info into
        """
        with open(dest, "w") as f:
            for entry in self.entries:
                f.write(f"{entry}\n")

    @classmethod
    def pack_directory(
        cls,
        directory: Union[str, os.PathLike[str]],
        out_fpath: Optional[Union[str, os.PathLike[str]]] = None,
    ) -> int:
        """Pack all the files in the provided directory into a paq file.

        Parameters
        ----------
        directory:
            The directory containing the files to pack. Every file name must be an 8 character hexadecimal
            string.
        out_fpath:
            The destination paq path. If this is a directory, or isn't provided, the archive will be written
            as out.paq inside it (or the current directory).

        Returns
        -------
        Total number of files packed.
        """
        listing = list_directory(directory)
        out_fpath = default_archive_path(out_fpath or ".", DEFAULT_ARCHIVE_NAME)
        logger.debug(f"Writing archive to {out_fpath}")
        # Build the entire archive first so that nothing is written if any of the names are invalid.
        data = repack(listing)
        with open(out_fpath, "wb") as f:
            f.write(data)
        return len(listing)


def _write_file(dest: Union[str, os.PathLike[str]], fname: str, data: bytes):
    logger.debug(f"Extracting file: {fname}")
    with open(op.join(dest, fname), "wb") as f:
        f.write(data)
