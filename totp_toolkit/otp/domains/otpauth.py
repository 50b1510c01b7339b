"""otpauth:// URL encoding and decoding.

``wrap_otpauth_url`` and ``unwrap_otpauth_url`` only preserve service, user,
secret and digits. Other query parameters (issuer, algorithm, period) are
dropped on decode.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import parse_qs, quote, unquote, urlparse

from .errors import InvalidURLError
from .models import ALLOWED_DIGITS, DEFAULT_DIGITS, SecretRecord

logger = logging.getLogger(__name__)

OTPAUTH_SCHEME = "otpauth"
MIGRATION_SCHEME = "otpauth-migration"
MIN_DIGITS = 6
MAX_DIGITS = 10

_URL_RE = re.compile(r"otpauth(?:-migration)?://[^\s\"'<>]+")


def clamp_digits(digits) -> int:
    """Snap digits to one of 6, 8 or 10; anything else becomes 6."""
    try:
        digits = int(digits)
    except (TypeError, ValueError):
        return DEFAULT_DIGITS
    return digits if digits in ALLOWED_DIGITS else DEFAULT_DIGITS


def wrap_otpauth_url(record: SecretRecord) -> str:
    path = quote(record.service or "", safe="@")
    if record.user:
        path += "%3A" + quote(record.user, safe="@")
    secret = quote(record.secret or "", safe="")
    return f"{OTPAUTH_SCHEME}://totp/{path}?secret={secret};digits={clamp_digits(record.digits)}"


def unwrap_otpauth_url(url: str) -> SecretRecord:
    """
    Decode an otpauth:// URL into a SecretRecord.

    Digits are clamped into [6, 10] and default to 6 when absent.

    Raises:
        InvalidURLError: Wrong scheme or no secret parameter
    """
    parsed = urlparse(url.strip())
    if parsed.scheme.lower() != OTPAUTH_SCHEME:
        raise InvalidURLError(f"Not an otpauth URL: {url}")

    path = unquote(parsed.path.lstrip("/"))
    if ":" in path:
        service, user = path.split(":", 1)
    else:
        service, user = path, ""

    params = parse_qs(parsed.query.replace(";", "&"))
    secret = params.get("secret", [""])[0].strip()
    if not secret:
        raise InvalidURLError(f"otpauth URL has no secret: {url}")

    try:
        digits = int(params.get("digits", [DEFAULT_DIGITS])[0])
    except ValueError:
        logger.debug(f"Ignoring non-numeric digits in {parsed.path}")
        digits = DEFAULT_DIGITS
    digits = min(max(digits, MIN_DIGITS), MAX_DIGITS)

    return SecretRecord(service=service, user=user, secret=secret, digits=digits)


def unwrap_secret(blob: str, label: Optional[str] = None) -> SecretRecord:
    """
    Turn a stored blob into a SecretRecord.

    A blob is either an otpauth URL or a bare base32 secret. A bare secret
    takes ``label`` as its service.
    """
    blob = (blob or "").strip()
    if blob.lower().startswith(OTPAUTH_SCHEME + "://"):
        return unwrap_otpauth_url(blob)
    if not blob:
        raise InvalidURLError("Stored secret is empty")
    return SecretRecord(service=label or "", secret=blob)


def extract_urls(text: str) -> List[str]:
    """Find every otpauth and otpauth-migration URL in free text."""
    return _URL_RE.findall(text or "")
