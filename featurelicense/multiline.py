"""
Feature License - Multi-line Value Framing

A string value that contains a line break or a carriage return, or that
starts with the "<<" sentinel, cannot be written as a plain `name=value`
line. Such values are framed heredoc style:

    name=<<DELIM
    first line
    second line
    DELIM

The delimiter is generated from the content so that it never equals any
content line.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from typing import Iterable, Iterator

from .errors import ParseError


SENTINEL = "<<"


def needs_framing(value: str) -> bool:
    """Return True if the value cannot be written on a single plain line."""
    return "\n" in value or "\r" in value or value.startswith(SENTINEL)


def delimiter_for(lines: list[str]) -> str:
    """
    Find the shortest delimiter that does not occur as a line.

    Character i of the probe differs from character i of line i, so the
    whole probe can never be equal to any of the lines. The delimiter is
    the shortest prefix of the probe that is not a line. Lines are compared
    trimmed, the same way the decoder looks for the terminator.
    """
    existing = {line.strip() for line in lines}
    probe = "".join(
        "B" if len(line) > i and line[i] == "A" else "A"
        for i, line in enumerate(lines)
    )
    for end in range(1, len(probe) + 1):
        if probe[:end] not in existing:
            return probe[:end]

    # only reachable when trimming made a line equal to the probe
    candidate = probe
    while candidate in existing:
        candidate += "A"
    return candidate


def encode(value: str) -> str:
    """Encode a string value for the right-hand side of a feature line."""
    if not needs_framing(value):
        return value
    delimiter = delimiter_for(value.split("\n"))
    return f"{SENTINEL}{delimiter}\n{value}\n{delimiter}"


def is_framed(value: str) -> bool:
    return value.startswith(SENTINEL)


def decode(first: str, lines: Iterable[str]) -> str:
    """
    Decode a framed value.

    `first` is the value part of the feature line, starting with the
    sentinel. `lines` yields the following raw lines. Content lines are
    kept verbatim, carriage returns included. Lines are consumed up to and
    including the terminator; the remaining lines stay in the iterator for
    the caller.
    """
    if not is_framed(first):
        raise ParseError(f"Multi-line value has to start with '{SENTINEL}'")
    terminator = first[len(SENTINEL):].strip()
    collected = []
    iterator: Iterator[str] = iter(lines)
    for line in iterator:
        if line.strip() == terminator:
            return "\n".join(collected)
        collected.append(line)
    raise ParseError(f"Multi-line value is not terminated by '{terminator}'")
