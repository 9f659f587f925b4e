"""Matrix sync loop feeding chat lines to the dispatcher."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import anyio

from ..config import ConfigError
from ..dispatch import ChatDispatcher
from ..logging import get_logger
from ..types import ChatMessage
from .client import MatrixClient, MatrixRetryAfter, parse_room_message
from .config import MatrixGatewayConfig

logger = get_logger(__name__)

TEXT_EVENT_TYPE = "RoomMessageText"


@dataclass(slots=True)
class ExponentialBackoff:
    """Delay before the next sync retry, doubling up to ``maximum`` seconds."""

    initial: float = 1.0
    maximum: float = 60.0
    multiplier: float = 2.0
    failures: int = 0

    def next(self) -> float:
        delay = min(self.initial * self.multiplier**self.failures, self.maximum)
        if delay < self.maximum:
            self.failures += 1
        return delay

    def reset(self) -> None:
        self.failures = 0


def build_client(cfg: MatrixGatewayConfig) -> MatrixClient:
    return MatrixClient(
        cfg.homeserver,
        cfg.user_id,
        access_token=cfg.access_token,
        password=cfg.password,
        device_id=cfg.device_id,
        device_name=cfg.device_name,
    )


class MatrixGateway:
    """Reads room messages, runs them through the dispatcher, posts replies.

    The first successful sync only establishes the sync position; its
    timeline is discarded so commands sent while offline are not replayed.
    """

    def __init__(
        self,
        *,
        client: MatrixClient,
        dispatcher: ChatDispatcher,
        room_ids: tuple[str, ...],
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._allowed_room_ids = set(room_ids)
        self._sleep = sleep
        self._primed = False

    async def start(self) -> None:
        if not await self._client.login():
            raise ConfigError("Matrix login failed. Check matrix credentials.")
        for room_id in sorted(self._allowed_room_ids):
            await self._client.join_room(room_id)
        logger.info("matrix.connected", rooms=sorted(self._allowed_room_ids))

    async def handle_message(self, message: ChatMessage) -> None:
        reply = self._dispatcher.handle(message)
        if reply is None or not self._dispatcher.post_responses:
            return
        try:
            await self._client.send_message(
                message.channel_id, reply, reply_to_event_id=message.message_id
            )
        except MatrixRetryAfter as exc:
            logger.warning(
                "matrix.reply.rate_limited",
                room_id=message.channel_id,
                retry_after=exc.retry_after,
            )

    async def process_sync_response(self, response: Any) -> None:
        if not self._primed:
            self._primed = True
            logger.debug("matrix.sync.backlog_skipped")
            return

        rooms = getattr(response, "rooms", None)
        if rooms is None:
            return
        join = getattr(rooms, "join", {})
        for room_id, room_info in join.items():
            timeline = getattr(room_info, "timeline", None)
            if timeline is None:
                continue
            for event in getattr(timeline, "events", []):
                if type(event).__name__ != TEXT_EVENT_TYPE:
                    continue
                message = parse_room_message(
                    event,
                    room_id,
                    allowed_room_ids=self._allowed_room_ids,
                    own_user_id=self._client.user_id,
                )
                if message is None:
                    continue
                await self.handle_message(message)

    async def sync_loop(self) -> None:
        """Continuous sync loop with reconnection."""
        backoff = ExponentialBackoff()
        while True:
            try:
                response = await self._client.sync(timeout_ms=30000)
            except MatrixRetryAfter as exc:
                logger.warning("matrix.sync.rate_limited", retry_after=exc.retry_after)
                await self._sleep(exc.retry_after)
                continue
            if response is None:
                await self._sleep(backoff.next())
                continue
            backoff.reset()
            await self.process_sync_response(response)

    async def close(self) -> None:
        await self._client.close()
