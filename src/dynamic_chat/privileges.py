"""Who may issue directives directly (without going through an alias)."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .logging import get_logger
from .settings import ChatSettings

logger = get_logger(__name__)


def normalize_username(value: str) -> str | None:
    value = value.strip().lower()
    return value or None


@dataclass(frozen=True, slots=True)
class PrivilegePolicy:
    """Allow-list check for privileged senders.

    When unrestricted, every sender is privileged.
    """

    allowed_users: frozenset[str]
    restricted: bool = True

    @classmethod
    def build(cls, users: Iterable[str], *, restricted: bool) -> PrivilegePolicy:
        normalized = {
            name for name in (normalize_username(user) for user in users) if name
        }
        return cls(allowed_users=frozenset(normalized), restricted=restricted)

    @classmethod
    def from_settings(cls, settings: ChatSettings) -> PrivilegePolicy:
        policy = cls.build(
            settings.debug_commands_allowed_users,
            restricted=settings.restrict_debug_commands_to_allowed_users,
        )
        logger.info(
            "privileges.loaded",
            access=(
                "restricted to allowed users only"
                if policy.restricted
                else "unrestricted (anyone can access)"
            ),
        )
        if policy.restricted:
            logger.info("privileges.allowlist", users=sorted(policy.allowed_users))
        return policy

    def is_privileged(self, sender: str) -> bool:
        if not self.restricted:
            return True
        return sender.strip().lower() in self.allowed_users
