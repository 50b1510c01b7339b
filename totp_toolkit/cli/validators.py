"""Input validation for CLI arguments."""
import sys

from totp_toolkit.otp.domains.models import ALLOWED_DIGITS
from totp_toolkit.otp.domains.totp import is_valid_base32


def validate_secret(secret: str) -> None:
    """
    Validate a TOTP secret is base32 text.

    Args:
        secret: Secret to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not secret or secret.strip() == "":
        print("Error: Secret cannot be empty", file=sys.stderr)
        sys.exit(2)

    if not is_valid_base32(secret):
        print("Error: Secret is not valid base32", file=sys.stderr)
        print("\nAllowed characters: A-Z and 2-7 (case and spaces are ignored)", file=sys.stderr)
        print("\nExample of a valid secret:", file=sys.stderr)
        print("  ✓ JBSWY3DPEHPK3PXP", file=sys.stderr)
        sys.exit(2)


def validate_digits(digits: int) -> None:
    """Exit with code 2 unless digits is 6, 8 or 10."""
    if digits not in ALLOWED_DIGITS:
        allowed = ", ".join(str(d) for d in ALLOWED_DIGITS)
        print(f"Error: Invalid digit count {digits}; allowed: {allowed}", file=sys.stderr)
        sys.exit(2)
