import os
import os.path as op
import re
import struct
from typing import Union

from paqtool.constants import HEADER_SIZE, RECORD_SIZE, SIGNATURE_LENGTH
from paqtool.exceptions import InvalidSignatureException

SIGNATURE_RE = re.compile(r"[0-9a-fA-F]{8}")


def is_valid_signature(text: str) -> bool:
    """Whether the text is exactly 8 hexadecimal characters."""
    return SIGNATURE_RE.fullmatch(text) is not None


def decode_signature(text: str) -> bytes:
    """Convert an 8 character hex string into the 4 raw bytes it represents.
    Each pair of characters becomes one byte, high nibble first."""
    if not is_valid_signature(text):
        raise InvalidSignatureException(
            f"{text!r} is not a valid signature. It must be {SIGNATURE_LENGTH} hexadecimal characters."
        )
    return bytes.fromhex(text)


def encode_signature(data: bytes) -> str:
    """Convert 4 raw bytes into their uppercase hex representation."""
    if len(data) != SIGNATURE_LENGTH // 2:
        raise InvalidSignatureException(f"A signature is 4 bytes, got {len(data)}")
    return data.hex().upper()


def u32_to_bytes(value: int) -> bytes:
    return struct.pack("<I", value)


def u32_from_bytes(data: bytes) -> int:
    return struct.unpack("<I", data)[0]


def masked_u32_from_bytes(data: bytes) -> int:
    """Read one of the header counters the same way the game does.
    Only the low nibble of the third byte is kept and the fourth byte is never read, so the result is at
    most 20 bits."""
    return data[0] | (data[1] << 8) | ((data[2] & 0x0F) << 16)


def table_length(file_count: int) -> int:
    """The size of the header and the table together. The payload data starts right after this."""
    return HEADER_SIZE + RECORD_SIZE * file_count


def record_offset(index: int) -> int:
    """The position of the table record with the given index within the archive."""
    return HEADER_SIZE + RECORD_SIZE * index


def default_archive_path(output: Union[str, os.PathLike[str]], archive_name: str) -> str:
    """If the output is a directory, place an archive with the provided name inside it."""
    if op.isdir(output):
        return op.join(output, archive_name)
    return os.fspath(output)
