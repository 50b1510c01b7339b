"""Import and export of secrets as otpauth / otpauth-migration URLs."""
import logging
from pathlib import Path
from typing import Iterable, List

from ..domains.errors import TOTPToolkitError, UnsupportedExportTypeError
from ..domains.migration import decode_migration_url, encode_migration_urls
from ..domains.models import DEFAULT_CHUNK_SIZE, SecretRecord
from ..domains.otpauth import MIGRATION_SCHEME, OTPAUTH_SCHEME, extract_urls, unwrap_otpauth_url, wrap_otpauth_url

logger = logging.getLogger(__name__)

EXPORT_TYPES = (OTPAUTH_SCHEME, MIGRATION_SCHEME)


def import_text(text: str) -> List[SecretRecord]:
    """
    Decode every otpauth and otpauth-migration URL found in ``text``.

    A URL that cannot be decoded is logged and skipped.
    """
    records = []
    for url in extract_urls(text):
        try:
            if url.lower().startswith(MIGRATION_SCHEME + "://"):
                records.extend(decode_migration_url(url))
            else:
                records.append(unwrap_otpauth_url(url))
        except TOTPToolkitError as e:
            logger.warning(f"Skipping undecodable URL {url[:40]}...: {e}")
    logger.debug(f"Imported {len(records)} secret(s)")
    return records


def import_file(path) -> List[SecretRecord]:
    return import_text(Path(path).expanduser().read_text(encoding="utf-8"))


def export_urls(records: Iterable[SecretRecord], export_type: str = OTPAUTH_SCHEME,
                chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[str]:
    """
    Render records as URLs.

    Args:
        records: Secrets to export
        export_type: 'otpauth' (one URL per secret) or 'otpauth-migration'
        chunk_size: Maximum length of each migration URL

    Raises:
        UnsupportedExportTypeError: Unknown export type
        ChunkTooLargeError: A secret cannot fit in one migration URL
    """
    if export_type == OTPAUTH_SCHEME:
        return [wrap_otpauth_url(r) for r in records]
    if export_type == MIGRATION_SCHEME:
        return encode_migration_urls(records, chunk_size)
    raise UnsupportedExportTypeError(
        f"Unsupported export type '{export_type}', expected one of: {', '.join(EXPORT_TYPES)}"
    )


def export_file(records: Iterable[SecretRecord], path, export_type: str = OTPAUTH_SCHEME,
                chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Write one URL per line to ``path`` and return the URL count."""
    urls = export_urls(records, export_type, chunk_size)
    path = Path(path).expanduser()
    path.write_text("".join(url + "\n" for url in urls), encoding="utf-8")
    logger.info(f"Wrote {len(urls)} {export_type} URL(s) to {path}")
    return len(urls)
