"""Shared fixtures: in-memory transports standing in for real storage."""
import base64
import itertools

import pytest

from totp_toolkit.otp.domains.errors import NoSaverAvailableError
from totp_toolkit.otp.domains.models import Backend, Handler, StoreConfig
from totp_toolkit.otp.domains.sources import StoredItem
from totp_toolkit.otp.workflows.secret_store import SecretStore


def make_secret(seed: int, length: int = 20) -> str:
    """Deterministic unpadded base32 secret."""
    return base64.b32encode(bytes((seed + i) % 256 for i in range(length))).decode("ascii").rstrip("=")


class FakeSecretsService:
    """Secret Service collection that, like some real ones, never replaces on create."""

    def __init__(self):
        self.items = []
        self._ids = itertools.count(1)
        self.fail = False

    def add(self, label, blob, **attributes):
        item = StoredItem(label=label, blob=blob, attributes=attributes, handle=next(self._ids))
        self.items.append(item)
        return item

    def search(self, attributes):
        if self.fail:
            raise RuntimeError("D-Bus connection refused")
        return [i for i in self.items if all(i.attributes.get(k) == v for k, v in attributes.items())]

    def create(self, label, attributes, secret):
        return self.add(label, secret, **attributes).handle

    def delete(self, handle):
        self.items = [i for i in self.items if i.handle != handle]


class FakeAuthinfo:
    """Credential file kept in memory."""

    def __init__(self, writable=True):
        self.entries = []
        self.writable = writable

    def search(self, port):
        return [e for e in self.entries if e.port == port]

    def save(self, entry):
        if not self.writable:
            raise NoSaverAvailableError("read-only")
        key = (entry.host, entry.user, entry.port)
        self.entries = [e for e in self.entries if (e.host, e.user, e.port) != key]
        self.entries.append(entry)


@pytest.fixture
def secrets_service():
    return FakeSecretsService()


@pytest.fixture
def authinfo():
    return FakeAuthinfo()


@pytest.fixture
def service_backend(secrets_service):
    return Backend(secrets_service, Handler.SECRETS_SERVICE, True, "secrets")


@pytest.fixture
def plain_backend(authinfo):
    return Backend(authinfo, Handler.GENERIC, False, "plain")


def build_store(*backends, **overrides) -> SecretStore:
    """SecretStore whose configured sources are the given backends."""
    config = StoreConfig(sources=[{"backend": b} for b in backends], **overrides)
    return SecretStore(config, backend_factory=lambda entry: entry["backend"])


@pytest.fixture
def store(plain_backend, service_backend):
    return build_store(plain_backend, service_backend)
