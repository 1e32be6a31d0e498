"""MiPOW PLAYBULB command frames and GATT identifiers.

Color and white-brightness frames are 4 bytes and are written to the color
characteristic. Effect frames are 8 bytes and are written to the effect
characteristic::

    offset  0      1  2  3   4       5     6      7
            white  r  g  b   effect  0x00  speed  0x00

The effect byte selects the built-in animation. A plain color pulse leaves it
at zero and is told apart from "just a color" by the non-zero RGB triplet.
"""

from __future__ import annotations

import re

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$")


def normalize_uuid(value: str) -> str:
    """Expand 16/32-bit UUIDs to the 128-bit Bluetooth base form, lowercased."""
    normalized = value.strip().lower()
    if _SHORT_UUID_RE.match(normalized):
        return f"{normalized:0>8}{_BASE_UUID_SUFFIX}"
    return normalized


def uuid_equal(a: str, b: str) -> bool:
    return normalize_uuid(a) == normalize_uuid(b)


SERVICE_UUID = normalize_uuid("ff0d")
EFFECT_UUID = normalize_uuid("fffb")
COLOR_UUID = normalize_uuid("fffc")

EFFECT_PULSE = 0x00
EFFECT_RAINBOW_PULSE = 0x02
EFFECT_RAINBOW_FADE = 0x03


def encode_color(r: int, g: int, b: int) -> bytes:
    # Direct intensity mapping: the closer to (0, 0, 0), the dimmer.
    return bytes((0x00, r, g, b))


def encode_white_brightness(level: int) -> bytes:
    """Natural white mode. 0 turns the bulb off, 255 is full brightness."""
    return bytes((level, 0x00, 0x00, 0x00))


def _encode_effect(r: int, g: int, b: int, effect: int, speed: int) -> bytes:
    return bytes((0x00, r, g, b, effect, 0x00, speed, 0x00))


def encode_rainbow_pulse(speed: int) -> bytes:
    return _encode_effect(0, 0, 0, EFFECT_RAINBOW_PULSE, speed)


def encode_rainbow_fade(speed: int) -> bytes:
    return _encode_effect(0, 0, 0, EFFECT_RAINBOW_FADE, speed)


def encode_pulse(r: int, g: int, b: int, speed: int) -> bytes:
    return _encode_effect(r, g, b, EFFECT_PULSE, speed)
