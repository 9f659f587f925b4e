"""Directive text helpers."""

from __future__ import annotations

PRINTABLE_ASCII_MIN = " "
PRINTABLE_ASCII_MAX = "~"


def is_printable_ascii(text: str) -> bool:
    return all(PRINTABLE_ASCII_MIN <= char <= PRINTABLE_ASCII_MAX for char in text)


def starts_with_marker(text: str, marker: str) -> bool:
    """Case-insensitive prefix test for the directive marker."""
    return text[: len(marker)].lower() == marker.lower()


def parse_directive(text: str, marker: str) -> str | None:
    """Return the trimmed directive body, or None if text lacks the marker.

    Args:
        text: Candidate directive text, already trimmed.
        marker: Command prefix followed by the delimiter, e.g. ``"!:"``.
    """
    if not starts_with_marker(text, marker):
        return None
    return text[len(marker) :].strip()
