"""Coercion of provider line and price values.

The provider sends an absent line as a missing field, ``null``, the string
``"null"`` or ``""`` depending on the endpoint and the day. All of them map to
``None`` here, and nothing downstream ever sees the raw forms.
"""

from __future__ import annotations

import math

# Text stored in ``line_key`` when a line is absent
NO_LINE_KEY = "none"

_NULL_STRINGS = frozenset({"", "null", "none", "nan", "undefined"})


def coerce_line(value: object) -> float | None:
    """Return the numeric line, or None for every flavour of "no line"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.lower() in _NULL_STRINGS:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    # -0.0 and 0.0 must produce the same key
    return number + 0.0


def line_key(line: float | None) -> str:
    """Canonical text for a coerced line: 47.5 -> "47.5", -3.0 -> "-3"."""
    if line is None:
        return NO_LINE_KEY
    if line.is_integer():
        return str(int(line))
    return repr(line)


def parse_american_odds(value: object) -> int | None:
    """Parse "+110", "-110", 110 or -110.0 into a signed integer.

    Returns None when the value is missing, not numeric, or not a valid
    American price (anything strictly between -100 and +100).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in _NULL_STRINGS:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return None
    if not math.isfinite(number):
        return None
    odds = int(round(number))
    if -100 < odds < 100:
        return None
    return odds
