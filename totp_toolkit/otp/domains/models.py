"""Domain models for TOTP secret management."""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, List, NamedTuple, Optional, Union

UNKNOWN_LABEL = "-unknown-"
DEFAULT_DIGITS = 6
ALLOWED_DIGITS = (6, 8, 10)

DEFAULT_SCHEMA = "org.totp-toolkit.Secret"
DEFAULT_FALLBACK_SCHEMAS = (
    "org.gnome.shell.extensions.totp",
    "com.belmoussaoui.Authenticator",
)
DEFAULT_GENERIC_PORT = "totp"
DEFAULT_CHUNK_SIZE = 1536


@dataclass(frozen=True)
class SecretRecord:
    """A shared TOTP key plus the account it belongs to.

    The secret stays base32 text at rest; it is only decoded when a token is
    generated.
    """
    service: str = ""
    user: str = ""
    secret: Optional[str] = None
    digits: Optional[int] = None

    @property
    def label(self) -> str:
        return label(self)


@dataclass(frozen=True)
class RawSecret:
    """A bare base32 secret with no account information."""
    secret: str


SecretInput = Union[RawSecret, SecretRecord, str]


def resolve_secret(value: SecretInput) -> SecretRecord:
    """Normalise either arm of the secret input type into a SecretRecord."""
    if isinstance(value, SecretRecord):
        return value
    if isinstance(value, RawSecret):
        return SecretRecord(secret=value.secret)
    if isinstance(value, str):
        return SecretRecord(secret=value)
    raise TypeError(f"Expected RawSecret, SecretRecord or str, got {type(value).__name__}")


def label(record: SecretRecord) -> str:
    if record.service and record.user:
        return f"{record.user}@{record.service}"
    return record.service or record.user or UNKNOWN_LABEL


class Handler(Enum):
    SECRETS_SERVICE = "secrets-service"
    GENERIC = "generic"


@dataclass
class Backend:
    """A configured storage location.

    ``source`` is the transport adapter that actually talks to storage.
    """
    source: Any
    handler: Handler
    encrypted: bool
    name: str = ""

    def __str__(self) -> str:
        state = "encrypted" if self.encrypted else "plain"
        return f"{self.name or self.handler.value} ({self.handler.value}, {state})"


class WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    GROUP_START = 3
    GROUP_END = 4
    FIXED32 = 5


@dataclass
class ProtobufField:
    field_number: int
    wire_type: WireType
    value: Any


@dataclass
class MigrationPayload:
    """Secrets carried by one otpauth-migration URL, plus batch metadata."""
    records: List[SecretRecord] = field(default_factory=list)
    version: int = 1
    batch_size: int = 1
    chunk_index: int = 0
    batch_id: int = 0


class Token(NamedTuple):
    token: str
    ttl: int
    expiry: int


@dataclass
class StoreConfig:
    """Settings the secret store needs, resolved from the YAML config."""
    sources: List[dict] = field(default_factory=list)
    schema: str = DEFAULT_SCHEMA
    fallback_schemas: List[str] = field(default_factory=lambda: list(DEFAULT_FALLBACK_SCHEMAS))
    dedup: bool = True
    generic_port: str = DEFAULT_GENERIC_PORT
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @property
    def schemas(self) -> List[str]:
        return [self.schema] + [s for s in self.fallback_schemas if s != self.schema]
