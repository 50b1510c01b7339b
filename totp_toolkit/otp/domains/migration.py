"""otpauth-migration bulk export/import codec.

Payload layout (field numbers):

    1  otp_parameters, repeated submessage, one per secret
         1 secret bytes, 2 "service:user" or bare name, 3 service,
         4 algorithm (ignored), 5 digits code, 6 type
    2  version
    3  batch size
    4  chunk index
    5  batch id

The digits code maps as ``digits = code * 2 + 4``; only 6 and 8 survive, any
other result becomes 6. Encoding uses the inverse ``(digits - 4) // 2`` for
6 and 8 and writes the code for 6 otherwise.

Field 2 is split on the first ":" when decoding, so a service-only name
that itself contains ":" (say "Acme: Prod") comes back as service "Acme" and
user " Prod". The format has no way to escape it.
"""
import base64
import binascii
import logging
import random
import re
import time
from typing import Iterable, List, Optional
from urllib.parse import unquote

from .errors import ChunkTooLargeError, InvalidURLError, ProtobufError
from .models import DEFAULT_CHUNK_SIZE, DEFAULT_DIGITS, MigrationPayload, SecretRecord, WireType
from .protobuf import iter_fields, write_bytes_field, write_varint_field
from .totp import base32_decode, base32_encode

logger = logging.getLogger(__name__)

URL_STUB = "otpauth-migration://offline?data="
PAYLOAD_VERSION = 1
TYPE_TOTP = 2

_DATA_RE = re.compile(r"[?&;]data=([^&;#\s]*)")


def _decode_digits(code: int) -> int:
    digits = code * 2 + 4
    return digits if digits in (6, 8) else DEFAULT_DIGITS


def _encode_digits(digits: Optional[int]) -> int:
    if digits in (6, 8):
        return (digits - 4) // 2
    return (DEFAULT_DIGITS - 4) // 2


def _text(value) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else ""


def decode_otp_parameters(buf: bytes) -> SecretRecord:
    """
    Decode one otp_parameters submessage.

    Unknown fields and fields with an unexpected wire type are skipped.

    Raises:
        ProtobufError: The submessage itself cannot be walked
    """
    values = {"service": "", "user": "", "secret": None, "digits": DEFAULT_DIGITS}
    for item in iter_fields(buf):
        number, wire, value = item.field_number, item.wire_type, item.value
        if number == 1 and wire == WireType.LENGTH_DELIMITED:
            values["secret"] = base32_encode(value)
        elif number == 2 and wire == WireType.LENGTH_DELIMITED:
            name = _text(value)
            if ":" in name:
                values["service"], values["user"] = name.split(":", 1)
            else:
                values["service"] = name
        elif number == 3 and wire == WireType.LENGTH_DELIMITED:
            values["service"] = _text(value)
        elif number == 5 and wire == WireType.VARINT:
            values["digits"] = _decode_digits(value)
    return SecretRecord(**values)


def decode_payload(buf: bytes) -> MigrationPayload:
    """
    Decode a whole migration payload.

    A submessage that is structurally broken is dropped and logged; its
    siblings still decode. A broken top-level message raises.

    Raises:
        ProtobufError: The top-level message cannot be walked
    """
    payload = MigrationPayload()
    for index, item in enumerate(iter_fields(buf)):
        number, wire, value = item.field_number, item.wire_type, item.value
        if number == 1 and wire == WireType.LENGTH_DELIMITED:
            try:
                record = decode_otp_parameters(value)
            except ProtobufError as e:
                logger.warning(f"Skipping unreadable secret in migration payload (field #{index}): {e}")
                continue
            if not record.secret:
                logger.warning(f"Skipping migration entry without a secret (field #{index})")
                continue
            payload.records.append(record)
        elif wire == WireType.VARINT:
            if number == 2:
                payload.version = value
            elif number == 3:
                payload.batch_size = value
            elif number == 4:
                payload.chunk_index = value
            elif number == 5:
                payload.batch_id = value
    return payload


def payload_from_url(url: str) -> bytes:
    """
    Extract and base64-decode the ``data`` parameter of a migration URL.

    ``+`` is kept as-is rather than read as a space.

    Raises:
        InvalidURLError: Not a migration URL or data is not base64
    """
    url = url.strip()
    if not url.lower().startswith("otpauth-migration://"):
        raise InvalidURLError(f"Not an otpauth-migration URL: {url}")
    match = _DATA_RE.search(url)
    if not match or not match.group(1):
        raise InvalidURLError("No migration data in URL")

    data = unquote(match.group(1)).replace("-", "+").replace("_", "/")
    data += "=" * (-len(data) % 4)
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidURLError(f"Migration data is not valid base64: {e}") from e


def decode_migration_url(url: str) -> List[SecretRecord]:
    return decode_payload(payload_from_url(url)).records


def encode_otp_parameters(record: SecretRecord) -> bytes:
    """Encode one record as an otp_parameters submessage body."""
    parts = [write_bytes_field(1, base32_decode(record.secret))]

    service, user = record.service or "", record.user or ""
    if user:
        parts.append(write_bytes_field(2, f"{service}:{user}".encode("utf-8")))
        if service:
            parts.append(write_bytes_field(3, service.encode("utf-8")))
    elif service:
        parts.append(write_bytes_field(2, service.encode("utf-8")))

    parts.append(write_varint_field(5, _encode_digits(record.digits)))
    parts.append(write_varint_field(6, TYPE_TOTP))
    return b"".join(parts)


def encode_batch_suffix(batch_size: int, chunk_index: int, batch_id: int) -> bytes:
    return b"".join([
        write_varint_field(2, PAYLOAD_VERSION),
        write_varint_field(3, batch_size),
        write_varint_field(4, chunk_index),
        write_varint_field(5, batch_id),
    ])


def new_batch_id() -> int:
    """A batch id unique enough to tell exports apart, kept within int32."""
    return (int(time.time() * 1000) ^ random.getrandbits(31)) & 0x7FFFFFFF


def _base64_length(size: int) -> int:
    return 4 * ((size + 2) // 3)


def _url(chunk: bytes, suffix: bytes) -> str:
    return URL_STUB + base64.b64encode(chunk + suffix).decode("ascii")


def encode_migration_urls(records: Iterable[SecretRecord], limit: int = DEFAULT_CHUNK_SIZE,
                          batch_id: Optional[int] = None) -> List[str]:
    """
    Pack records into as few otpauth-migration URLs as fit ``limit``.

    Records are packed greedily in order. Each URL, stub included, is at most
    ``limit`` characters long. All URLs share one batch id.

    Raises:
        ChunkTooLargeError: A single record cannot fit in one URL
        EncodeError: A record cannot be encoded
        Base32DecodeError: A record's secret is not base32
    """
    encoded = [write_bytes_field(1, encode_otp_parameters(r)) for r in records]
    if not encoded:
        return []
    if batch_id is None:
        batch_id = new_batch_id()

    # The record count bounds the chunk count, so sizing with it never
    # underestimates the final suffix.
    def url_length(chunk: bytes, chunk_index: int) -> int:
        suffix = encode_batch_suffix(len(encoded), chunk_index, batch_id)
        return len(URL_STUB) + _base64_length(len(chunk) + len(suffix))

    chunks: List[bytes] = []
    current = b""
    for position, data in enumerate(encoded):
        candidate = current + data
        size = url_length(candidate, len(chunks))
        if size <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
            size = url_length(data, len(chunks))
        if size > limit:
            raise ChunkTooLargeError(position, len(chunks), size, limit)
        current = data
    chunks.append(current)

    logger.debug(f"Packed {len(encoded)} secrets into {len(chunks)} migration URL(s), batch {batch_id}")
    return [
        _url(chunk, encode_batch_suffix(len(chunks), index, batch_id))
        for index, chunk in enumerate(chunks)
    ]
