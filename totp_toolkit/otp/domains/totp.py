"""RFC 6238 time-based one-time passwords.

``generate`` does not clamp ``digits``: out-of-range values are passed
straight through to the modulo step. Clamping belongs to the URL and
migration codecs.
"""
import base64
import binascii
import hmac
import re
import struct
import time
from typing import Optional

from .errors import Base32DecodeError
from .models import DEFAULT_DIGITS, SecretInput, Token, resolve_secret

DEFAULT_PERIOD = 30
DEFAULT_ALGORITHM = "sha1"


class SystemClock:
    """Wall clock, whole epoch seconds."""

    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """Clock pinned to a given epoch second, for tests and replays."""

    def __init__(self, now: int):
        self._now = int(now)

    def now(self) -> int:
        return self._now


_default_clock = SystemClock()


def set_default_clock(clock) -> None:
    """Override the clock used when ``generate`` is called without one."""
    global _default_clock
    _default_clock = clock if clock is not None else SystemClock()


def _normalise_base32(text: str) -> str:
    cleaned = re.sub(r"[\s-]", "", text).upper().rstrip("=")
    return cleaned + "=" * (-len(cleaned) % 8)


def is_valid_base32(text: Optional[str]) -> bool:
    """True when ``text`` decodes to a non-empty key."""
    try:
        base32_decode(text)
    except Base32DecodeError:
        return False
    return True


def base32_decode(text: str) -> bytes:
    """
    Decode a base32 secret, ignoring case, spaces and missing padding.

    Raises:
        Base32DecodeError: If the text is empty or not base32
    """
    if not text:
        raise Base32DecodeError("Secret is empty")
    normalised = _normalise_base32(text)
    try:
        key = base64.b32decode(normalised)
    except (binascii.Error, ValueError) as e:
        raise Base32DecodeError(f"Secret is not valid base32: {e}") from e
    if not key:
        raise Base32DecodeError("Secret is empty")
    return key


def base32_encode(raw: bytes) -> str:
    """Encode raw key bytes as unpadded upper-case base32."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def hotp(key: bytes, counter: int, digits: int = DEFAULT_DIGITS,
         algorithm: str = DEFAULT_ALGORITHM) -> str:
    """RFC 4226 HOTP value for ``counter``, zero padded to ``digits``."""
    digest = hmac.new(key, struct.pack(">Q", counter), algorithm).digest()
    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(code % (10 ** digits)).zfill(digits)


def generate(secret: SecretInput, digits: Optional[int] = None, time_offset: int = 0,
             period: int = DEFAULT_PERIOD, algorithm: str = DEFAULT_ALGORITHM,
             clock=None) -> Token:
    """
    Compute the current TOTP token for a secret.

    Args:
        secret: RawSecret, SecretRecord or bare base32 string
        digits: Token width; defaults to the record's digits, then 6
        time_offset: Seconds subtracted from the clock before counting steps
        period: Step length in seconds
        algorithm: hashlib digest name used for the HMAC
        clock: Object with ``now() -> int``; the module default clock if None

    Returns:
        Token(token, ttl, expiry) where ttl is seconds left in the current
        step and expiry is ``now + period``

    Raises:
        Base32DecodeError: If the secret is not valid base32
    """
    record = resolve_secret(secret)
    if digits is None:
        digits = record.digits or DEFAULT_DIGITS

    now = (clock or _default_clock).now()
    counter = (now - time_offset) // period
    token = hotp(base32_decode(record.secret), counter, digits, algorithm)
    ttl = period - (now % period)
    return Token(token, ttl, now + period)
