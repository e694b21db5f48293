"""
Color parsing for theme and background values.

Accepts the CSS-style strings the editor produces: hex (#rgb, #rrggbb,
#rrggbbaa), rgb()/rgba() with a 0-1 or percentage alpha, "transparent",
and any named color Pillow knows.
"""

import re
from typing import Tuple

from PIL import ImageColor

RGBA = Tuple[int, int, int, int]

_RGB_FUNC = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([\d.]+)(%?)\s*)?\)$",
    re.IGNORECASE,
)


def parse_color(value: str) -> RGBA:
    """
    Parse a color string to an RGBA tuple.

    Raises:
        ValueError: if the string is not a recognised color
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid color: {value!r}")

    text = value.strip()
    if text.lower() == "transparent":
        return (0, 0, 0, 0)

    match = _RGB_FUNC.match(text)
    if match:
        r, g, b = (int(match.group(i)) for i in (1, 2, 3))
        if max(r, g, b) > 255:
            raise ValueError(f"Invalid color: {value!r}")
        alpha = 255
        if match.group(4) is not None:
            a = float(match.group(4))
            if match.group(5):
                a = a / 100
            if not 0 <= a <= 1:
                raise ValueError(f"Invalid color: {value!r}")
            alpha = round(a * 255)
        return (r, g, b, alpha)

    rgb = ImageColor.getrgb(text)
    if len(rgb) == 3:
        return (*rgb, 255)
    return tuple(rgb)
