"""Workflow for finding, reading and saving TOTP secrets across backends."""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ..domains.errors import BackendNotFoundError, NoSaverAvailableError, TOTPToolkitError
from ..domains.models import Backend, Handler, SecretRecord, StoreConfig, label as record_label
from ..domains.otpauth import unwrap_secret, wrap_otpauth_url
from ..domains.sources import AuthinfoEntry, open_backend

logger = logging.getLogger(__name__)

SCHEMA_ATTRIBUTE = "xdg:schema"

LabelledRecord = Tuple[str, SecretRecord]


def same_secret(a: SecretRecord, b: SecretRecord) -> bool:
    """True when both records name the same account; key and digits are ignored."""
    return (a.service or "") == (b.service or "") and (a.user or "") == (b.user or "")


class SecretsServiceHandler:
    """Reads and writes schema-tagged items in a Secret Service collection."""

    def __init__(self, config: StoreConfig):
        self.config = config

    def fetch(self, backend: Backend) -> List[LabelledRecord]:
        found = []
        for schema in self.config.schemas:
            for item in backend.source.search({SCHEMA_ATTRIBUTE: schema}):
                try:
                    record = unwrap_secret(item.blob, item.label)
                except TOTPToolkitError as e:
                    logger.warning(f"Skipping unreadable item '{item.label}' in {backend}: {e}")
                    continue
                found.append((item.label or record_label(record), record))
        return found

    def save(self, backend: Backend, record: SecretRecord, label: str) -> bool:
        attributes = {SCHEMA_ATTRIBUTE: self.config.schema}
        if record.service:
            attributes["service"] = record.service
        if record.user:
            attributes["user"] = record.user

        handle = backend.source.create(label, attributes, wrap_otpauth_url(record))
        logger.info(f"Stored '{label}' in {backend}")
        if self.config.dedup:
            self._remove_duplicates(backend, record, handle)
        return True

    def _remove_duplicates(self, backend: Backend, record: SecretRecord, keep) -> int:
        """
        Delete sibling items holding the same secret as the one just stored.

        Some Secret Service implementations ignore the replace flag on
        create, so identical copies are swept by hand. Not atomic.
        """
        removed = 0
        for item in backend.source.search({SCHEMA_ATTRIBUTE: self.config.schema}):
            if item.handle == keep:
                continue
            try:
                sibling = unwrap_secret(item.blob, item.label)
            except TOTPToolkitError:
                continue
            if sibling.secret == record.secret:
                backend.source.delete(item.handle)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} duplicate item(s) from {backend}")
        return removed


class GenericHandler:
    """Reads and writes credential-file entries tagged with the TOTP port."""

    def __init__(self, config: StoreConfig):
        self.config = config

    def fetch(self, backend: Backend) -> List[LabelledRecord]:
        found = []
        for entry in backend.source.search(self.config.generic_port):
            entry_label = f"{entry.user}@{entry.host}" if entry.user else entry.host
            try:
                record = unwrap_secret(entry.secret, entry.host)
            except TOTPToolkitError as e:
                logger.warning(f"Skipping unreadable entry '{entry_label}' in {backend}: {e}")
                continue
            if not record.user and entry.user:
                record = SecretRecord(record.service, entry.user, record.secret, record.digits)
            found.append((entry_label, record))
        return found

    def save(self, backend: Backend, record: SecretRecord, label: str) -> bool:
        entry = AuthinfoEntry(
            host=record.service or label,
            user=record.user or "",
            port=self.config.generic_port,
            secret=wrap_otpauth_url(record),
        )
        backend.source.save(entry)
        logger.info(f"Stored '{label}' in {backend}")
        return True


class SecretStore:
    """
    Entry point for callers that need secrets.

    Backends are built from ``config.sources`` on first use and cached until
    ``refresh()`` is called.
    """

    def __init__(self, config: StoreConfig, backend_factory: Callable[[dict], Backend] = open_backend):
        self.config = config
        self._backend_factory = backend_factory
        self._backends: Optional[List[Backend]] = None
        self._lock = threading.Lock()
        self._handlers = {
            Handler.SECRETS_SERVICE: SecretsServiceHandler(config),
            Handler.GENERIC: GenericHandler(config),
        }

    def refresh(self) -> None:
        """Drop the cached backend list so the next call rebuilds it."""
        with self._lock:
            self._backends = None

    def list_backends(self, require_encrypted: bool = False) -> List[Backend]:
        with self._lock:
            if self._backends is None:
                self._backends = [self._backend_factory(entry) for entry in self.config.sources]
                logger.debug(f"Configured backends: {[str(b) for b in self._backends]}")
            backends = list(self._backends)
        if require_encrypted:
            return [b for b in backends if b.encrypted]
        return backends

    def fetch(self, backend: Backend) -> List[LabelledRecord]:
        return self._handlers[backend.handler].fetch(backend)

    def fetch_all(self, require_encrypted: bool = False) -> List[LabelledRecord]:
        """
        Fetch from every backend in order.

        A backend that fails is logged and skipped; the others still answer.
        """
        found = []
        for backend in self.list_backends(require_encrypted):
            try:
                found.extend(self.fetch(backend))
            except Exception as e:
                logger.warning(f"Failed to read secrets from {backend}: {e}")
        return found

    def find(self, query: str) -> List[LabelledRecord]:
        """Secrets whose label matches ``query`` exactly, else contains it."""
        found = self.fetch_all()
        exact = [(name, r) for name, r in found if name == query]
        return exact or [(name, r) for name, r in found if query.lower() in name.lower()]

    def find_backend_for(self, record: SecretRecord) -> Backend:
        """
        Pick the backend that should hold ``record``.

        The first backend already holding the same account wins, then the
        first encrypted backend.

        Raises:
            BackendNotFoundError: No match and no encrypted backend
        """
        backends = self.list_backends()
        for backend in backends:
            try:
                held = self.fetch(backend)
            except Exception as e:
                logger.warning(f"Failed to read secrets from {backend}: {e}")
                continue
            if any(same_secret(record, existing) for _, existing in held):
                logger.debug(f"'{record_label(record)}' already lives in {backend}")
                return backend

        for backend in backends:
            if backend.encrypted:
                logger.debug(f"Placing '{record_label(record)}' in default encrypted backend {backend}")
                return backend

        raise BackendNotFoundError(
            f"No backend holds '{record_label(record)}' and no encrypted backend is configured"
        )

    def save(self, record: SecretRecord, backend: Optional[Backend] = None,
             label: Optional[str] = None) -> bool:
        """
        Persist a record.

        Returns:
            True if saved, False if the resolved backend has no way to write

        Raises:
            BackendNotFoundError: No backend given and none could be resolved
        """
        if not record.secret:
            raise ValueError("Cannot save a record without a secret")
        if backend is None:
            backend = self.find_backend_for(record)
        label = label or record_label(record)

        try:
            return self._handlers[backend.handler].save(backend, record, label)
        except NoSaverAvailableError as e:
            logger.warning(f"No saver available for '{label}' in {backend}: {e}")
            return False

    def backend_summary(self) -> Dict[str, int]:
        """Number of secrets per backend name, -1 where a backend fails."""
        summary = {}
        for backend in self.list_backends():
            try:
                summary[str(backend)] = len(self.fetch(backend))
            except Exception as e:
                logger.warning(f"Failed to read secrets from {backend}: {e}")
                summary[str(backend)] = -1
        return summary
