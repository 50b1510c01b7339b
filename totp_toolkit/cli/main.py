"""CLI entrypoint for totp-toolkit."""
import sys
import argparse
import logging
from pathlib import Path

from .validators import validate_digits, validate_secret

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _open_store():
    """Build a SecretStore from the active config file."""
    from totp_toolkit.otp.domains.config_loader import build_store_config, load_config
    from totp_toolkit.otp.workflows.secret_store import SecretStore

    return SecretStore(build_store_config(load_config()))


def cmd_version(args):
    """Show version information."""
    print(f"totp-toolkit {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from totp_toolkit.otp.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and any other preferences."""
    from totp_toolkit.otp.domains.config_loader import default_config_path
    from totp_toolkit.otp.domains.preferences import get_all_preferences, get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found)")

    others = {k: v for k, v in get_all_preferences().items() if k != "config_path"}
    if others:
        print("Preferences:")
        for key, value in sorted(others.items()):
            print(f"  {key} = {value}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from totp_toolkit.otp.domains.config_loader import default_config_path
    from totp_toolkit.otp.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_config_set(args):
    """Set a preference such as digits, export_type or chunk_size."""
    from totp_toolkit.otp.domains.preferences import PreferenceError, set_preference

    try:
        value = set_preference(args.key, args.value)
    except PreferenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    print(f"{args.key} set to: {value}")


def cmd_config_unset(args):
    """Remove a preference."""
    from totp_toolkit.otp.domains.preferences import PreferenceError, clear_preference

    try:
        clear_preference(args.key)
    except PreferenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    print(f"{args.key} cleared")


def cmd_backends_list(args):
    """List configured backends in search order."""
    store = _open_store()
    backends = store.list_backends(require_encrypted=args.encrypted)
    if not backends:
        print("No backends configured", file=sys.stderr)
        sys.exit(1)
    for index, backend in enumerate(backends):
        print(f"[{index}] {backend}")


def cmd_secrets_list(args):
    """List the labels of every stored secret."""
    store = _open_store()
    for label, record in store.fetch_all():
        print(f"{label}\t{record.digits or 6} digits")


def cmd_secrets_code(args):
    """Print the current token for secrets matching a label."""
    from totp_toolkit.otp.domains.totp import FixedClock, generate

    store = _open_store()
    matches = store.find(args.query)
    if not matches:
        print(f"Error: No secret matches '{args.query}'", file=sys.stderr)
        sys.exit(1)

    clock = FixedClock(args.time) if args.time is not None else None
    for label, record in matches:
        token = generate(record, clock=clock)
        if args.quiet:
            print(token.token)
        else:
            print(f"{label}: {token.token} (valid {token.ttl}s)")


def cmd_secrets_add(args):
    """Save a new secret."""
    from totp_toolkit.otp.domains.models import DEFAULT_DIGITS, SecretRecord
    from totp_toolkit.otp.domains.preferences import get_preference

    validate_secret(args.secret)
    digits = args.digits if args.digits is not None else get_preference("digits", DEFAULT_DIGITS)
    validate_digits(digits)

    store = _open_store()
    backend = None
    if args.backend is not None:
        backends = store.list_backends()
        if not 0 <= args.backend < len(backends):
            print(f"Error: No backend #{args.backend}; see 'backends list'", file=sys.stderr)
            sys.exit(2)
        backend = backends[args.backend]

    record = SecretRecord(
        service=args.service or "",
        user=args.user or "",
        secret=args.secret.replace(" ", "").upper(),
        digits=digits,
    )
    if not store.save(record, backend):
        print(f"Error: Could not save '{record.label}'", file=sys.stderr)
        sys.exit(1)
    print(f"Saved '{record.label}'")


def cmd_import(args):
    """Import secrets from a file of otpauth / otpauth-migration URLs."""
    from totp_toolkit.otp.workflows.transfer import import_file

    records = import_file(args.path)
    if not records:
        print(f"Error: No secrets found in {args.path}", file=sys.stderr)
        sys.exit(1)

    if not args.save:
        for record in records:
            print(record.label)
        return

    store = _open_store()
    saved = sum(1 for record in records if store.save(record))
    print(f"Imported {saved} of {len(records)} secret(s)")
    if saved < len(records):
        sys.exit(1)


def cmd_export(args):
    """Export stored secrets as URLs, one per line."""
    from totp_toolkit.otp.domains.otpauth import OTPAUTH_SCHEME
    from totp_toolkit.otp.domains.preferences import get_preference
    from totp_toolkit.otp.workflows.transfer import export_file

    store = _open_store()
    found = store.find(args.query) if args.query else store.fetch_all()
    if not found:
        print("Error: No secrets to export", file=sys.stderr)
        sys.exit(1)

    export_type = args.type or get_preference("export_type", OTPAUTH_SCHEME)
    chunk_size = args.chunk_size or get_preference("chunk_size") or store.config.chunk_size
    count = export_file([record for _, record in found], args.path, export_type, chunk_size)
    print(f"Wrote {count} URL(s) to {args.path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="totp-toolkit",
        description="totp-toolkit CLI - TOTP secret storage, generation and exchange",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (backend unavailable, secret not found, etc.)
  2 - Usage error (invalid arguments, invalid secret format, etc.)

Environment variables:
  TOTP_TOOLKIT_CONFIG - Config file path (overrides preference and default)

Configuration:
  Default location: ~/.config/totp-toolkit/config.yml
  Custom path: Set with 'totp-toolkit config set-path <path>'
  Preferences: 'totp-toolkit config set digits 8', 'config set export_type otpauth-migration'
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    # config
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path")
    config_subparsers.add_parser("clear", help="Clear config path preference")
    config_set_parser = config_subparsers.add_parser(
        "set",
        help="Set a preference",
        description="Known preferences: config_path, digits, export_type, chunk_size"
    )
    config_set_parser.add_argument("key", help="Preference name")
    config_set_parser.add_argument("value", help="Preference value")
    config_unset_parser = config_subparsers.add_parser("unset", help="Remove a preference")
    config_unset_parser.add_argument("key", help="Preference name")

    # backends
    backends_parser = subparsers.add_parser("backends", help="Storage backend operations")
    backends_subparsers = backends_parser.add_subparsers(dest="backends_command")
    backends_list_parser = backends_subparsers.add_parser("list", help="List configured backends")
    backends_list_parser.add_argument("--encrypted", action="store_true", help="Only encrypted backends")

    # secrets
    secrets_parser = subparsers.add_parser("secrets", help="Secret operations")
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")
    secrets_subparsers.add_parser("list", help="List stored secrets")

    code_parser = secrets_subparsers.add_parser(
        "code",
        help="Show the current token",
        description="Print the TOTP token for every secret whose label matches QUERY "
                    "(exact match first, then substring)."
    )
    code_parser.add_argument("query", help="Label, e.g. alice@example.com")
    code_parser.add_argument("--time", type=int, help="Epoch seconds to generate for (default: now)")
    code_parser.add_argument("-q", "--quiet", action="store_true", help="Print only the token")

    add_parser = secrets_subparsers.add_parser("add", help="Save a secret")
    add_parser.add_argument("--service", default="", help="Service / issuer name")
    add_parser.add_argument("--user", default="", help="Account name")
    add_parser.add_argument("--secret", required=True, help="Base32 shared key")
    add_parser.add_argument("--digits", type=int, help="Token width: 6, 8 or 10 (default: digits preference, else 6)")
    add_parser.add_argument("--backend", type=int, help="Backend index from 'backends list'")

    # import / export
    import_parser = subparsers.add_parser("import", help="Import secrets from a URL file")
    import_parser.add_argument("path", help="File containing otpauth / otpauth-migration URLs")
    import_parser.add_argument("--save", action="store_true", help="Save imported secrets (default: list only)")

    export_parser = subparsers.add_parser("export", help="Export secrets to a URL file")
    export_parser.add_argument("path", help="Output file")
    export_parser.add_argument("--type", help="otpauth or otpauth-migration (default: export_type preference, else otpauth)")
    export_parser.add_argument("--chunk-size", type=int, help="Maximum migration URL length (default: chunk_size preference, else config)")
    export_parser.add_argument("--query", help="Only export secrets matching this label")

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (backend failure, secret not found, etc.)
        2 - Usage errors (invalid arguments, invalid secret format, etc.)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    handlers = {
        ("version", None): cmd_version,
        ("config", "set-path"): cmd_config_set_path,
        ("config", "show"): cmd_config_show,
        ("config", "clear"): cmd_config_clear,
        ("config", "set"): cmd_config_set,
        ("config", "unset"): cmd_config_unset,
        ("backends", "list"): cmd_backends_list,
        ("secrets", "list"): cmd_secrets_list,
        ("secrets", "code"): cmd_secrets_code,
        ("secrets", "add"): cmd_secrets_add,
        ("import", None): cmd_import,
        ("export", None): cmd_export,
    }
    subcommand = getattr(args, f"{args.command}_command", None)
    handler = handlers.get((args.command, subcommand))

    if handler is None:
        parser.print_help()
        sys.exit(2)

    try:
        handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
