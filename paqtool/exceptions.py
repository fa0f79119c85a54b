class PAQException(Exception):
    pass


class InvalidMagicException(PAQException):
    pass


class TruncatedArchiveException(PAQException):
    pass


class InvalidSignatureException(PAQException, ValueError):
    pass


class InvalidEntryNameException(InvalidSignatureException):
    """Raised when a file which is being packed doesn't have a valid signature as its name."""
