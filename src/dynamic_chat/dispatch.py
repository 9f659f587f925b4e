"""Route chat messages from any gateway into the command processor."""

from __future__ import annotations

from .logging import bind_context, clear_context, get_logger
from .privileges import PrivilegePolicy
from .processor import CommandProcessor
from .settings import ChatSettings
from .types import ChatMessage

logger = get_logger(__name__)


def handle_chat_message(
    processor: CommandProcessor,
    policy: PrivilegePolicy,
    message: ChatMessage,
) -> str | None:
    """Validate and execute one chat message, returning the reply (if any).

    Validation and execution share a single rule set snapshot. A failing
    store call is logged and produces no reply.
    """
    bind_context(channel_id=message.channel_id, sender=message.sender)
    try:
        logger.debug("chat.message", text=message.text)
        allow_privileged = policy.is_privileged(message.sender)
        rules = processor.rules
        if not processor.is_valid_command(message.text, allow_privileged, rules=rules):
            return None
        logger.info("chat.command_invoked", command=message.text)
        try:
            reply = processor.process_command(
                message.text, allow_privileged, rules=rules
            )
        except Exception as exc:
            logger.exception(
                "command.failed",
                command=message.text,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None
        if reply is not None:
            logger.info("chat.command_reply", reply=reply)
        return reply
    finally:
        clear_context()


class ChatDispatcher:
    """Processor plus the live privilege policy and reply setting."""

    def __init__(self, processor: CommandProcessor, settings: ChatSettings) -> None:
        self.processor = processor
        self.policy = PrivilegePolicy.from_settings(settings)
        self.post_responses = settings.post_responses_in_chat

    def reload(self, settings: ChatSettings) -> None:
        self.policy = PrivilegePolicy.from_settings(settings)
        self.post_responses = settings.post_responses_in_chat

    def handle(self, message: ChatMessage) -> str | None:
        return handle_chat_message(self.processor, self.policy, message)
