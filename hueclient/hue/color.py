"""Colour conversions between sRGB and the bridge's CIE xy space."""

import string

WHITE_POINT = (0.3127, 0.3290)  # D65

MIRED_MIN = 153
MIRED_MAX = 500

# sRGB (D65) -> CIE XYZ
_RGB_TO_XYZ = (
    (0.4124564, 0.3575761, 0.1804375),
    (0.2126729, 0.7151522, 0.0721750),
    (0.0193339, 0.1191920, 0.9503041),
)


def _gamma_expand(value: float) -> float:
    if value > 0.04045:
        return ((value + 0.055) / 1.055) ** 2.4
    return value / 12.92


def _check_channel(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= 255:
        raise ValueError(f"{name} must be in 0..255, got {value}")
    return value


def rgb_to_xy(r: int, g: int, b: int) -> tuple[float, float]:
    """
    Convert an 8-bit RGB triple to CIE xy chromaticity.

    Args:
        r: Red channel (0-255)
        g: Green channel (0-255)
        b: Blue channel (0-255)

    Returns:
        (x, y), each in [0, 1]. Black has no chromaticity and maps to
        the D65 white point.
    """
    channels = [
        _gamma_expand(_check_channel(name, value) / 255.0)
        for name, value in (("r", r), ("g", g), ("b", b))
    ]

    X, Y, Z = (
        row[0] * channels[0] + row[1] * channels[1] + row[2] * channels[2]
        for row in _RGB_TO_XYZ
    )

    total = X + Y + Z
    if total == 0:
        return WHITE_POINT

    return X / total, Y / total


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Parse ``#RRGGBB`` or ``#RGB`` (leading ``#`` optional) into a triple."""
    if not isinstance(hex_color, str):
        raise ValueError(f"Hex colour must be a string, got {hex_color!r}")

    digits = hex_color.strip().removeprefix("#")
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    if len(digits) != 6 or any(c not in string.hexdigits for c in digits):
        raise ValueError(f"Invalid hex colour: {hex_color!r}")

    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def hex_to_xy(hex_color: str) -> tuple[float, float]:
    """Convert a hex colour string to CIE xy."""
    return rgb_to_xy(*hex_to_rgb(hex_color))


def kelvin_to_mired(kelvin: int) -> int:
    """Convert a colour temperature to mired, clamped to the bridge range."""
    if kelvin <= 0:
        raise ValueError(f"Colour temperature must be positive, got {kelvin}")
    mired = round(1_000_000 / kelvin)
    return max(MIRED_MIN, min(MIRED_MAX, mired))
