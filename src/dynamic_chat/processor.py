"""Command processor: validate chat lines and run reset/get/set directives."""

from __future__ import annotations

import re
from typing import Protocol

from .logging import get_logger
from .parse import is_printable_ascii, parse_directive, starts_with_marker
from .replies import RESET_REPLY, format_get_reply, format_set_reply
from .rules import (
    PROPERTY_GROUP,
    SECTION_GROUP,
    VALUE_GROUP,
    RuleSet,
    build_rule_set,
)
from .settings import ChatSettings

logger = get_logger(__name__)


class ConfigStore(Protocol):
    """Persisted key/value settings the directives operate on."""

    def get(self, section: str, prop: str) -> str: ...

    def set(self, section: str, prop: str, value: str) -> None: ...

    def restore(self) -> None: ...


def _group(match: re.Match[str], name: str) -> str:
    try:
        return match.group(name) or ""
    except IndexError:
        return ""


class CommandProcessor:
    """Turns chat lines into store mutations.

    The rule set is held as a single immutable snapshot. ``reload`` builds the
    replacement off to the side and swaps one reference, so concurrent
    readers see either the old or the new rule set, never a mix.
    """

    def __init__(self, settings: ChatSettings, store: ConfigStore) -> None:
        self._store = store
        self._rules = build_rule_set(settings)

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def reload(self, settings: ChatSettings) -> None:
        """Replace the rule set from new settings.

        Raises:
            RuleSetError: if a pattern is invalid; the current rules stay live.
        """
        logger.debug("processor.reload")
        self._rules = build_rule_set(settings)

    def is_valid_command(
        self, line: str, allow_privileged: bool, *, rules: RuleSet | None = None
    ) -> bool:
        """Decide whether a line is actionable without acting on it."""
        rules = self._rules if rules is None else rules

        if not line or line.isspace() or (
            rules.max_message_length is not None
            and len(line) > rules.max_message_length
        ):
            logger.debug("command.invalid", reason="empty_or_too_long")
            return False

        line = line.strip()

        if not is_printable_ascii(line):
            logger.debug("command.invalid", reason="non_ascii")
            return False

        lowered = line.lower()
        if lowered in rules.aliases:
            logger.debug("command.valid", alias=lowered)
            return True

        if allow_privileged and starts_with_marker(line, rules.directive_marker):
            logger.debug("command.valid", directive=True)
            return True

        return False

    def process_command(
        self, line: str, allow_privileged: bool, *, rules: RuleSet | None = None
    ) -> str | None:
        """Execute a line and return the reply, or None when there is nothing to say.

        Store failures propagate to the caller.
        """
        rules = self._rules if rules is None else rules
        line = line.strip()

        expansion = rules.expand_alias(line)
        if expansion is not None:
            logger.debug("command.alias", alias=line.lower(), expansion=expansion)
            return self._execute_directive(expansion, rules)
        if not allow_privileged:
            return None
        return self._execute_directive(line, rules)

    def _execute_directive(self, cmd: str, rules: RuleSet) -> str | None:
        body = parse_directive(cmd, rules.directive_marker)
        if body is None:
            logger.debug(
                "directive.unrecognized",
                reason="missing_marker",
                marker=rules.directive_marker,
            )
            return None

        if body.lower() == rules.reset.lower():
            logger.debug("directive.reset")
            self._store.restore()
            return RESET_REPLY

        get_match = rules.get_pattern.search(body)
        if get_match is not None:
            section = _group(get_match, SECTION_GROUP)
            prop = _group(get_match, PROPERTY_GROUP)
            value = self._store.get(section, prop)
            logger.debug("directive.get", section=section, property=prop, value=value)
            return format_get_reply(section, prop, value)

        set_match = rules.set_pattern.search(body)
        if set_match is not None:
            section = _group(set_match, SECTION_GROUP)
            prop = _group(set_match, PROPERTY_GROUP)
            value = _group(set_match, VALUE_GROUP)
            self._store.set(section, prop, value)
            logger.debug("directive.set", section=section, property=prop, value=value)
            return format_set_reply(section, prop, value)

        logger.debug("directive.unrecognized", reason="no_pattern_match", body=body)
        return None
