"""Decoder for TP357 notification payloads.

Layout of a notification (little endian)::

    offset  size  meaning
    0..2    3     header, ignored
    3..4    2     temperature, signed, tenths of a degree Celsius
    5       1     relative humidity, percent

Payloads shorter than six bytes are rejected.  Values are passed
through without range checks; consumers decide what is plausible.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

MIN_PAYLOAD_LENGTH = 6

_TEMPERATURE = struct.Struct("<h")


@dataclass(frozen=True, slots=True)
class Measurement:
    """Temperature and humidity decoded from one payload."""

    temperature: float
    humidity: int


def decode_payload(data: bytes | bytearray) -> Measurement | None:
    """Decode a raw notification payload.

    Returns:
        The decoded :class:`Measurement`, or ``None`` when the payload
        is too short to carry one.
    """
    if len(data) < MIN_PAYLOAD_LENGTH:
        return None
    (raw_temperature,) = _TEMPERATURE.unpack_from(data, 3)
    return Measurement(temperature=raw_temperature / 10.0, humidity=data[5])
