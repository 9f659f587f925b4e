"""Rule set: aliases, directive patterns and command tokens."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from .config import ConfigError
from .logging import get_logger
from .settings import ChatSettings

logger = get_logger(__name__)

SECTION_GROUP = "section"
PROPERTY_GROUP = "property"
VALUE_GROUP = "value"


class RuleSetError(ConfigError):
    """A directive pattern could not be compiled."""


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Immutable snapshot of everything that governs command recognition."""

    aliases: Mapping[str, str]
    get_pattern: re.Pattern[str]
    set_pattern: re.Pattern[str]
    prefix: str
    delimiter: str
    reset: str
    max_message_length: int | None = None

    @property
    def directive_marker(self) -> str:
        return self.prefix + self.delimiter

    def expand_alias(self, text: str) -> str | None:
        """Return the expansion for an alias trigger, matching case-insensitively."""
        return self.aliases.get(text.strip().lower())


def normalize_trigger(value: str) -> str:
    return value.strip().lower()


def build_alias_table(entries: Iterable[Sequence[str]]) -> Mapping[str, str]:
    """Build the alias table; entries shorter than two items are skipped."""
    table: dict[str, str] = {}
    for entry in entries:
        if len(entry) < 2:
            logger.debug("rules.alias_skipped", entry=list(entry))
            continue
        table[normalize_trigger(entry[0])] = entry[1].strip()
    return MappingProxyType(table)


def compile_pattern(pattern: str, *, setting: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise RuleSetError(
            f"Invalid regular expression in {setting}: {exc}. Please fix and restart."
        ) from exc


def _describe_aliases(aliases: Mapping[str, str]) -> str:
    return "\n".join(
        f"{trigger.ljust(20)}==>   {expansion}" for trigger, expansion in aliases.items()
    )


def build_rule_set(settings: ChatSettings) -> RuleSet:
    """Stage a complete rule set from settings without touching live state.

    Raises:
        RuleSetError: if either directive pattern fails to compile.
    """
    aliases = build_alias_table(settings.commands)
    logger.info(
        "rules.aliases_loaded",
        count=len(aliases),
        aliases="\n" + _describe_aliases(aliases) if aliases else "",
    )
    get_pattern = compile_pattern(
        settings.command_get_regex, setting="command_get_regex"
    )
    set_pattern = compile_pattern(
        settings.command_set_regex, setting="command_set_regex"
    )
    logger.debug("rules.patterns_loaded")
    return RuleSet(
        aliases=aliases,
        get_pattern=get_pattern,
        set_pattern=set_pattern,
        prefix=settings.command_prefix,
        delimiter=settings.command_delimiter,
        reset=settings.command_reset,
        max_message_length=settings.max_message_length,
    )
