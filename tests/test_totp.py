"""Tests for the TOTP engine, including RFC 6238 appendix B vectors."""
import base64

import pytest

from totp_toolkit.otp.domains import totp
from totp_toolkit.otp.domains.errors import Base32DecodeError
from totp_toolkit.otp.domains.models import RawSecret, SecretRecord
from totp_toolkit.otp.domains.totp import FixedClock, generate

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.fixture(autouse=True)
def reset_clock():
    yield
    totp.set_default_clock(None)


class TestGenerate:
    """Test suite for generate()."""

    def test_rfc6238_vector_at_59(self):
        """Test the first RFC 6238 SHA-1 vector, counter 1."""
        result = generate(RFC_SECRET, digits=8, clock=FixedClock(59))
        assert result.token == "94287082"
        assert result.ttl == 1
        assert result.expiry == 89

    @pytest.mark.parametrize("now, expected", [
        (1111111109, "07081804"),
        (1111111111, "14050471"),
        (1234567890, "89005924"),
        (2000000000, "69279037"),
        (20000000000, "65353130"),
    ])
    def test_rfc6238_sha1_vectors(self, now, expected):
        """Test the remaining RFC 6238 SHA-1 vectors."""
        assert generate(RFC_SECRET, digits=8, clock=FixedClock(now)).token == expected

    def test_sha256_vector(self):
        """Test the HMAC algorithm is pluggable."""
        secret = base64.b32encode(b"12345678901234567890123456789012").decode()
        result = generate(secret, digits=8, algorithm="sha256", clock=FixedClock(59))
        assert result.token == "46119246"

    def test_default_six_digits(self):
        """Test six digits are used when nothing says otherwise."""
        assert generate(RFC_SECRET, clock=FixedClock(59)).token == "287082"

    def test_record_digits_used(self):
        """Test a record's digits apply when none are passed."""
        record = SecretRecord(service="rfc", secret=RFC_SECRET, digits=8)
        assert generate(record, clock=FixedClock(59)).token == "94287082"

    def test_raw_secret_input(self):
        """Test the RawSecret arm of the input type."""
        assert generate(RawSecret(RFC_SECRET), clock=FixedClock(59)).token == "287082"

    def test_digits_not_clamped(self):
        """Test out-of-range digits pass straight through to the modulo."""
        assert generate(RFC_SECRET, digits=4, clock=FixedClock(59)).token == "7082"

    def test_time_offset(self):
        """Test the offset shifts the counter but not the ttl."""
        result = generate(RFC_SECRET, digits=8, time_offset=30, clock=FixedClock(89))
        assert result.token == "94287082"
        assert result.ttl == 1

    def test_ttl_at_step_boundary(self):
        """Test a full period remains at the start of a step."""
        result = generate(RFC_SECRET, clock=FixedClock(60))
        assert result.ttl == 30
        assert result.expiry == 90

    def test_custom_period(self):
        """Test ttl follows the period."""
        assert generate(RFC_SECRET, period=60, clock=FixedClock(59)).ttl == 1

    def test_lowercase_and_spaced_secret(self):
        """Test case and spacing in the secret are ignored."""
        messy = " ".join(RFC_SECRET[i:i + 4] for i in range(0, len(RFC_SECRET), 4)).lower()
        assert generate(messy, digits=8, clock=FixedClock(59)).token == "94287082"

    def test_default_clock_override(self):
        """Test the module clock can be replaced."""
        totp.set_default_clock(FixedClock(59))
        assert generate(RFC_SECRET, digits=8).token == "94287082"

    @pytest.mark.parametrize("bad", ["", "not base32!", "1111"])
    def test_invalid_secret(self, bad):
        """Test malformed secrets raise Base32DecodeError."""
        with pytest.raises(Base32DecodeError):
            generate(bad, clock=FixedClock(59))


class TestBase32:
    """Test suite for base32 helpers."""

    def test_decode_without_padding(self):
        """Test missing padding is restored."""
        assert totp.base32_decode("JBSWY3DPEE") == b"Hello!"

    def test_encode_strips_padding(self):
        """Test encoded secrets carry no padding."""
        assert totp.base32_encode(b"Hello!") == "JBSWY3DPEE"

    def test_is_valid_base32(self):
        """Test validation accepts secrets and rejects junk."""
        assert totp.is_valid_base32("jbsw y3dp ehpk 3pxp")
        assert not totp.is_valid_base32("JBSW1")
        assert not totp.is_valid_base32("")

    @pytest.mark.parametrize("text", ["A", "ABC", "ABCDEF", "ABCDEFGHI", "  ", "===="])
    def test_undecodable_lengths_are_invalid(self, text):
        """Test base32 text of an impossible length is rejected, not just checked for alphabet."""
        assert not totp.is_valid_base32(text)
        with pytest.raises(Base32DecodeError):
            totp.base32_decode(text)
