"""Human-readable acknowledgements for directives."""

from __future__ import annotations

RESET_REPLY = "Reset successful."


def format_assignment(section: str, prop: str, value: str) -> str:
    if not section:
        return f"{prop} = {value}"
    return f"[{section}] {prop} = {value}"


def format_get_reply(section: str, prop: str, value: str) -> str:
    return f"Value of {format_assignment(section, prop, value)}."


def format_set_reply(section: str, prop: str, value: str) -> str:
    return f"Set {format_assignment(section, prop, value)}."
