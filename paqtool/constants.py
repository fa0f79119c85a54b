from enum import Enum

# Magic bytes at the start of every PAQ archive.
PAQ_MAGIC = b"\xd1\x07\x00\x00"

# Size of the archive header. Each table record occupies one slot of the same size.
HEADER_SIZE = 0x10
RECORD_SIZE = 0x10
# Only the first 12 bytes of a table record are read. The last 4 repeat the length.
RECORD_READ_SIZE = 0xC

# The game only trusts the low 20 bits of the header counters.
HEADER_FIELD_MASK = 0xFFFFF
MAX_U32 = 0xFFFFFFFF

SIGNATURE_LENGTH = 8

DEFAULT_ARCHIVE_NAME = "out.paq"


class Mode(str, Enum):
    EXTRACT = "extract"
    ARCHIVE = "archive"
