"""
Feature License - Numeric Literal Parsing

Parses decimal and hexadecimal literals into signed fixed-width integers.
A literal written as the unsigned bit pattern of the target width, for
example 0xFF for a byte, is folded back to its signed value (-1).

SPDX-License-Identifier: AGPL-3.0-or-later
"""


def _limits(bits: int) -> tuple[int, int]:
    maximum = (1 << (bits - 1)) - 1
    return -maximum - 1, maximum


_INT64_MIN, _INT64_MAX = _limits(64)


def parse_number(text: str, bits: int) -> int:
    """
    Parse a number that has to fit a signed integer of `bits` width.

    Values above the signed maximum but below 2*max+2 are treated as the
    unsigned representation and converted to the negative value.
    Raises ValueError if the literal is malformed or out of range.
    """
    minimum, maximum = _limits(bits)
    trimmed = text.strip()
    try:
        if trimmed.startswith("0x"):
            parsed = int(trimmed[2:], 16)
        else:
            parsed = int(trimmed, 10)
    except ValueError:
        raise ValueError(f"Malformed numeric literal: {text!r}") from None

    # the intermediate value is a signed 64-bit integer
    if not _INT64_MIN <= parsed <= _INT64_MAX:
        raise ValueError(f"Numeric literal {text!r} does not fit 64 bits")

    if maximum < parsed < 2 * maximum + 2:
        parsed -= 2 * maximum + 2

    if parsed > maximum or parsed < minimum:
        raise ValueError(f"Numeric literal {text!r} does not fit {bits} bits")
    return parsed


def parse_byte(text: str) -> int:
    return parse_number(text, 8)


def parse_short(text: str) -> int:
    return parse_number(text, 16)


def parse_int(text: str) -> int:
    return parse_number(text, 32)


def parse_long(text: str) -> int:
    return parse_number(text, 64)
