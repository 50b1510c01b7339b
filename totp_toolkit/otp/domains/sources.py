"""Storage transports behind the secret store.

Two transports exist: the desktop Secret Service (over D-Bus, via the
``secretstorage`` library) and authinfo/netrc style credential files, which
are Fernet encrypted when their name ends in ``.enc``.
"""
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import keyring
import secretstorage
from cryptography.fernet import Fernet, InvalidToken

from .config_loader import ConfigError
from .errors import NoSaverAvailableError
from .models import Backend, Handler

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "totp-toolkit"
ENCRYPTED_SUFFIXES = (".enc",)

_FIELD_ALIASES = {
    "machine": "host",
    "host": "host",
    "login": "user",
    "user": "user",
    "account": "user",
    "password": "secret",
    "secret": "secret",
    "port": "port",
    "protocol": "port",
}


@dataclass
class StoredItem:
    """One item as held by the Secret Service."""
    label: str
    blob: str
    attributes: Dict[str, str]
    handle: Any


@dataclass
class AuthinfoEntry:
    host: str = ""
    user: str = ""
    port: str = ""
    secret: str = ""


class SecretsServiceTransport:
    """Wrapper around a Secret Service collection."""

    kind = "secrets-service"

    def __init__(self, collection: str = "default"):
        self.collection_name = collection
        self._connection = None
        self._collection = None

    @property
    def collection(self):
        """Lazy-connect and unlock the collection."""
        if self._collection is None:
            if self._connection is None:
                self._connection = secretstorage.dbus_init()
            if self.collection_name == "default":
                collection = secretstorage.get_default_collection(self._connection)
            else:
                collection = secretstorage.get_collection_by_alias(self._connection, self.collection_name)
            if collection.is_locked():
                logger.info(f"Unlocking secret collection '{self.collection_name}'")
                collection.unlock()
            self._collection = collection
        return self._collection

    def search(self, attributes: Dict[str, str]) -> List[StoredItem]:
        found = []
        for item in self.collection.search_items(attributes):
            if item.is_locked():
                item.unlock()
            found.append(StoredItem(
                label=item.get_label(),
                blob=item.get_secret().decode("utf-8"),
                attributes=dict(item.get_attributes()),
                handle=item,
            ))
        return found

    def create(self, label: str, attributes: Dict[str, str], secret: str):
        return self.collection.create_item(label, attributes, secret.encode("utf-8"), replace=True)

    def delete(self, handle) -> None:
        handle.delete()

    def __str__(self) -> str:
        return f"secrets-service:{self.collection_name}"


def _quote(value: str) -> str:
    if value and not any(c.isspace() or c in "\"'\\#" for c in value):
        return value
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_authinfo_line(line: str) -> Optional[AuthinfoEntry]:
    """Parse one ``machine H login U password P port X`` line, or None."""
    try:
        tokens = shlex.split(line, comments=True)
    except ValueError:
        return None
    if not tokens or len(tokens) % 2:
        return None

    entry = AuthinfoEntry()
    for key, value in zip(tokens[::2], tokens[1::2]):
        name = _FIELD_ALIASES.get(key.lower())
        if name:
            setattr(entry, name, value)
    return entry if entry.host or entry.user else None


def format_authinfo_line(entry: AuthinfoEntry) -> str:
    parts = [f"machine {_quote(entry.host)}"]
    if entry.user:
        parts.append(f"login {_quote(entry.user)}")
    parts.append(f"password {_quote(entry.secret)}")
    if entry.port:
        parts.append(f"port {_quote(entry.port)}")
    return " ".join(parts)


class AuthinfoTransport:
    """authinfo/netrc style credential file."""

    kind = "authinfo"

    def __init__(self, path, key: Optional[bytes] = None):
        self.path = Path(path).expanduser()
        self._key = key

    @property
    def encrypted(self) -> bool:
        return self.path.suffix in ENCRYPTED_SUFFIXES

    @property
    def writable(self) -> bool:
        if self.path.exists():
            return os.access(self.path, os.W_OK)
        return os.access(self.path.parent, os.W_OK)

    def _fernet(self, create: bool = False) -> Fernet:
        """Get the file key from the caller or keyring, creating it on first write."""
        if self._key is None:
            stored = keyring.get_password(KEYRING_SERVICE, str(self.path))
            if stored is None:
                if not create:
                    raise ConfigError(f"No encryption key in keyring for {self.path}")
                stored = Fernet.generate_key().decode("ascii")
                keyring.set_password(KEYRING_SERVICE, str(self.path), stored)
                logger.info(f"Created encryption key for {self.path} in keyring")
            self._key = stored.encode("ascii")
        return Fernet(self._key)

    def _read_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        data = self.path.read_bytes()
        if self.encrypted and data:
            try:
                data = self._fernet().decrypt(data)
            except InvalidToken as e:
                raise ConfigError(f"Cannot decrypt {self.path}: wrong key or corrupt file") from e
        return data.decode("utf-8").splitlines()

    def _write_lines(self, lines: List[str]) -> None:
        data = ("\n".join(lines) + "\n").encode("utf-8")
        if self.encrypted:
            data = self._fernet(create=True).encrypt(data)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(data)

    def entries(self) -> List[AuthinfoEntry]:
        return [e for e in map(parse_authinfo_line, self._read_lines()) if e is not None]

    def search(self, port: str) -> List[AuthinfoEntry]:
        return [e for e in self.entries() if e.port == port]

    def save(self, entry: AuthinfoEntry) -> None:
        """
        Create or update the entry matching host, user and port.

        Raises:
            NoSaverAvailableError: If the file cannot be written
        """
        if not self.writable:
            raise NoSaverAvailableError(f"{self.path} is not writable")

        lines = self._read_lines()
        new_line = format_authinfo_line(entry)
        for index, line in enumerate(lines):
            current = parse_authinfo_line(line)
            if current and (current.host, current.user, current.port) == (entry.host, entry.user, entry.port):
                lines[index] = new_line
                break
        else:
            lines.append(new_line)
        self._write_lines(lines)
        logger.debug(f"Saved {entry.user or '-'}@{entry.host} to {self.path}")

    def __str__(self) -> str:
        return str(self.path)


def open_backend(entry: Dict[str, Any]) -> Backend:
    """
    Build a Backend from one configured source entry.

    Raises:
        ConfigError: Unknown source type
    """
    source_type = entry.get("type")
    if source_type == "secrets-service":
        transport = SecretsServiceTransport(entry.get("collection", "default"))
        return Backend(transport, Handler.SECRETS_SERVICE, True, entry.get("name") or str(transport))
    if source_type == "authinfo":
        transport = AuthinfoTransport(entry["path"])
        return Backend(transport, Handler.GENERIC, transport.encrypted, entry.get("name") or str(transport))
    raise ConfigError(f"Unsupported source type: {source_type}")
