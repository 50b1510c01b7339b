"""Tests for otpauth:// URL encoding and decoding."""
import pytest

from totp_toolkit.otp.domains.errors import InvalidURLError
from totp_toolkit.otp.domains.models import SecretRecord, label
from totp_toolkit.otp.domains.otpauth import (
    clamp_digits,
    extract_urls,
    unwrap_otpauth_url,
    unwrap_secret,
    wrap_otpauth_url,
)

SECRET = "JBSWY3DPEHPK3PXP"


class TestWrap:
    """Test suite for wrap_otpauth_url."""

    def test_service_and_user(self):
        """Test the full URL shape with '@' left unescaped."""
        record = SecretRecord("Example Co", "alice@example.com", SECRET, 8)
        assert wrap_otpauth_url(record) == (
            "otpauth://totp/Example%20Co%3Aalice@example.com?secret=JBSWY3DPEHPK3PXP;digits=8"
        )

    def test_service_only(self):
        """Test the user segment is left out when empty."""
        record = SecretRecord("github", "", SECRET, 6)
        assert wrap_otpauth_url(record) == "otpauth://totp/github?secret=JBSWY3DPEHPK3PXP;digits=6"

    def test_slash_is_escaped(self):
        """Test '/' in names cannot be mistaken for a path separator."""
        assert "a%2Fb" in wrap_otpauth_url(SecretRecord("a/b", "", SECRET, 6))

    @pytest.mark.parametrize("digits, expected", [(None, 6), (6, 6), (7, 6), (8, 8), (10, 10), (12, 6)])
    def test_digits_clamped(self, digits, expected):
        """Test digits snap to 6, 8 or 10."""
        url = wrap_otpauth_url(SecretRecord("s", "u", SECRET, digits))
        assert url.endswith(f";digits={expected}")

    def test_clamp_digits_non_numeric(self):
        """Test junk digit values default to 6."""
        assert clamp_digits("abc") == 6


class TestUnwrap:
    """Test suite for unwrap_otpauth_url."""

    @pytest.mark.parametrize("record", [
        SecretRecord("Example Co", "alice@example.com", SECRET, 6),
        SecretRecord("bank", "", SECRET, 8),
        SecretRecord("", "bob", SECRET, 10),
        SecretRecord("ünïcode", "user name", SECRET, 8),
    ])
    def test_round_trip(self, record):
        """Test the four documented fields survive wrap then unwrap."""
        assert unwrap_otpauth_url(wrap_otpauth_url(record)) == record

    @pytest.mark.parametrize("query, expected", [
        ("secret=ABC;digits=3", 6),
        ("secret=ABC;digits=15", 10),
        ("secret=ABC", 6),
        ("secret=ABC;digits=7", 7),
        ("secret=ABC&digits=8", 8),
        ("secret=ABC;digits=eight", 6),
    ])
    def test_digits_clamp_on_decode(self, query, expected):
        """Test decode clamps into [6, 10] rather than snapping."""
        assert unwrap_otpauth_url(f"otpauth://totp/svc?{query}").digits == expected

    def test_extra_parameters_ignored(self):
        """Test issuer/algorithm/period are dropped."""
        record = unwrap_otpauth_url(
            "otpauth://totp/ACME%20Co:john@example.com?secret=HXDMVJECJJWSRB3HWIZR4IFUGFTMXBOZ"
            "&issuer=ACME%20Co&algorithm=SHA1&digits=6&period=30"
        )
        assert record == SecretRecord("ACME Co", "john@example.com", "HXDMVJECJJWSRB3HWIZR4IFUGFTMXBOZ", 6)

    def test_colon_splits_once(self):
        """Test only the first ':' separates service from user."""
        record = unwrap_otpauth_url("otpauth://totp/svc%3Auser%3Aextra?secret=ABC")
        assert (record.service, record.user) == ("svc", "user:extra")

    def test_wrong_scheme(self):
        """Test non-otpauth URLs are rejected."""
        with pytest.raises(InvalidURLError):
            unwrap_otpauth_url("https://example.com/?secret=ABC")

    def test_missing_secret(self):
        """Test a URL without a secret is rejected."""
        with pytest.raises(InvalidURLError):
            unwrap_otpauth_url("otpauth://totp/svc?digits=6")


class TestUnwrapSecret:
    """Test suite for stored blob unwrapping."""

    def test_bare_secret_takes_label(self):
        """Test a bare base32 blob uses the label as service."""
        assert unwrap_secret(f" {SECRET}\n", "work vpn") == SecretRecord("work vpn", "", SECRET, None)

    def test_url_blob(self):
        """Test a URL blob is decoded."""
        record = unwrap_secret(f"otpauth://totp/svc%3Ame?secret={SECRET};digits=8", "ignored")
        assert record == SecretRecord("svc", "me", SECRET, 8)

    def test_empty_blob(self):
        """Test an empty blob is rejected."""
        with pytest.raises(InvalidURLError):
            unwrap_secret("   ")


class TestExtractAndLabel:
    """Test suite for URL scanning and labels."""

    def test_extract_urls_from_text(self):
        """Test both URL kinds are found in decoder output."""
        text = (
            "QR-Code:otpauth://totp/a?secret=AAAA\n"
            "junk line\n"
            "QR-Code:otpauth-migration://offline?data=CjEKCkhlbGxvId6tvu8%3D\n"
        )
        assert extract_urls(text) == [
            "otpauth://totp/a?secret=AAAA",
            "otpauth-migration://offline?data=CjEKCkhlbGxvId6tvu8%3D",
        ]

    @pytest.mark.parametrize("record, expected", [
        (SecretRecord("svc", "me"), "me@svc"),
        (SecretRecord("svc", ""), "svc"),
        (SecretRecord("", "me"), "me"),
        (SecretRecord("", ""), "-unknown-"),
    ])
    def test_label(self, record, expected):
        """Test label derivation and the unknown sentinel."""
        assert label(record) == expected
        assert record.label == expected
