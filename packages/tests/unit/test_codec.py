"""Unit tests for tpheat._codec — TP357 payload decoding.

Test Techniques Used:
    - Specification-based Testing: Byte offsets and scaling
    - Boundary Value Analysis: Minimum payload length
    - Equivalence Partitioning: Positive vs. negative temperatures
"""

from __future__ import annotations

import pytest

from tests.fixtures.builders import tp357_payload
from tpheat._codec import MIN_PAYLOAD_LENGTH, Measurement, decode_payload


class TestDecodePayload:
    """Technique: Specification-based Testing."""

    def test_decodes_temperature_and_humidity(self) -> None:
        """Bytes 3..4 are tenths of a degree, byte 5 is humidity."""
        result = decode_payload(bytes([0x00, 0x00, 0x00, 0xE8, 0x00, 0x2C]))

        assert result == Measurement(temperature=23.2, humidity=44)

    def test_header_bytes_are_ignored(self) -> None:
        result = decode_payload(bytes([0xC2, 0xFF, 0x7A, 0xE8, 0x00, 0x2C]))

        assert result == Measurement(temperature=23.2, humidity=44)

    def test_trailing_bytes_are_ignored(self) -> None:
        result = decode_payload(bytes([0, 0, 0, 0xE8, 0x00, 0x2C, 0x99, 0x01]))

        assert result == Measurement(temperature=23.2, humidity=44)

    def test_negative_temperature_is_signed(self) -> None:
        """0xFF9C is -100 tenths."""
        result = decode_payload(bytes([0, 0, 0, 0x9C, 0xFF, 0x50]))

        assert result is not None
        assert result.temperature == pytest.approx(-10.0)
        assert result.humidity == 80

    def test_accepts_bytearray(self) -> None:
        result = decode_payload(bytearray(tp357_payload(19.5, 51)))

        assert result == Measurement(temperature=19.5, humidity=51)

    def test_values_are_not_range_checked(self) -> None:
        result = decode_payload(bytes([0, 0, 0, 0xFF, 0x7F, 0xFF]))

        assert result == Measurement(temperature=3276.7, humidity=255)


class TestShortPayloads:
    """Technique: Boundary Value Analysis."""

    @pytest.mark.parametrize("length", [0, 1, 3, MIN_PAYLOAD_LENGTH - 1])
    def test_short_payload_is_rejected(self, length: int) -> None:
        assert decode_payload(bytes(length)) is None

    def test_exact_minimum_length_is_accepted(self) -> None:
        assert decode_payload(bytes(MIN_PAYLOAD_LENGTH)) == Measurement(0.0, 0)
