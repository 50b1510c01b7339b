"""Exception types raised by totp-toolkit."""


class TOTPToolkitError(Exception):
    """Base class for all totp-toolkit errors."""
    pass


class Base32DecodeError(TOTPToolkitError, ValueError):
    """Secret text is not valid base32."""
    pass


class ProtobufError(TOTPToolkitError):
    """A protobuf-lite buffer cannot be walked."""
    pass


class VarintOverflowError(ProtobufError):
    """Varint longer than 10 bytes, or with an invalid terminal byte."""
    pass


class UnsupportedWireTypeError(ProtobufError):
    """Wire type code outside 0-5."""

    def __init__(self, wire_type: int, position: int):
        self.wire_type = wire_type
        self.position = position
        super().__init__(f"Unsupported wire type {wire_type} at byte {position}")


class TruncatedMessageError(ProtobufError):
    """Buffer ends in the middle of a field."""
    pass


class EncodeError(TOTPToolkitError):
    """Value cannot be encoded."""
    pass


class ChunkTooLargeError(EncodeError):
    """A single secret does not fit the configured export size limit."""

    def __init__(self, position: int, chunk_index: int, size: int, limit: int):
        self.position = position
        self.chunk_index = chunk_index
        self.size = size
        self.limit = limit
        super().__init__(
            f"Secret #{position} needs {size} bytes in chunk {chunk_index}, "
            f"limit is {limit}"
        )


class InvalidURLError(TOTPToolkitError, ValueError):
    """Text is not a usable otpauth or otpauth-migration URL."""
    pass


class UnsupportedExportTypeError(TOTPToolkitError):
    """Export type is neither 'otpauth' nor 'otpauth-migration'."""
    pass


class BackendNotFoundError(TOTPToolkitError):
    """No suitable backend exists to save a secret."""
    pass


class NoSaverAvailableError(TOTPToolkitError):
    """The resolved generic backend has no write capability."""
    pass
