"""Chat-driven configuration editing for a live key/value settings file."""

__version__ = "0.1.0"

from .processor import CommandProcessor, ConfigStore
from .rules import RuleSet, RuleSetError, build_rule_set
from .types import ChatMessage

__all__ = [
    "ChatMessage",
    "CommandProcessor",
    "ConfigStore",
    "RuleSet",
    "RuleSetError",
    "build_rule_set",
]
