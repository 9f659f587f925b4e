from __future__ import annotations

from typing import Any, Protocol, cast

import nio

from ..logging import get_logger
from ..types import ChatMessage

logger = get_logger(__name__)


class RetryAfter(Exception):
    """The homeserver asked for a pause of ``retry_after`` seconds."""

    def __init__(self, retry_after: float, description: str | None = None) -> None:
        self.retry_after = float(retry_after)
        self.description = description
        super().__init__(description or f"retry after {self.retry_after}")


class MatrixRetryAfter(RetryAfter):
    """Rate limit reported by a Matrix API response."""


class NioClientProtocol(Protocol):
    """The calls this module makes on ``nio.AsyncClient``."""

    user_id: str
    access_token: str
    device_id: str

    async def login(self, password: str, device_name: str) -> Any: ...

    async def sync(self, timeout: int, since: str | None = None) -> Any: ...

    async def join(self, room_id: str) -> Any: ...

    async def room_send(
        self,
        room_id: str,
        message_type: str,
        content: dict[str, Any],
        ignore_unverified_devices: bool = False,
    ) -> Any: ...

    async def close(self) -> None: ...


def _raise_if_rate_limited(response: Any) -> None:
    retry_ms = getattr(response, "retry_after_ms", None)
    if retry_ms is not None:
        raise MatrixRetryAfter(retry_ms / 1000.0)


def _build_reply_content(body: str, reply_to_event_id: str | None) -> dict[str, Any]:
    content: dict[str, Any] = {"msgtype": "m.text", "body": body}
    if reply_to_event_id:
        content["m.relates_to"] = {
            "m.in_reply_to": {"event_id": reply_to_event_id},
        }
    return content


class MatrixClient:
    """Thin wrapper over nio.AsyncClient with token or password login."""

    def __init__(
        self,
        homeserver: str,
        user_id: str,
        *,
        access_token: str | None = None,
        password: str | None = None,
        device_id: str | None = None,
        device_name: str = "DynamicChat",
        nio_client: NioClientProtocol | None = None,
    ) -> None:
        self.homeserver = homeserver.rstrip("/")
        self.user_id = user_id
        self._access_token = access_token
        self._password = password
        self._device_id = device_id
        self._device_name = device_name
        self._nio_client = nio_client
        self._logged_in = False
        self._sync_token: str | None = None

    @property
    def sync_token(self) -> str | None:
        return self._sync_token

    def _ensure_nio_client(self) -> NioClientProtocol:
        if self._nio_client is None:
            self._nio_client = cast(
                NioClientProtocol,
                nio.AsyncClient(
                    self.homeserver,
                    self.user_id,
                    device_id=self._device_id,
                ),
            )
        return self._nio_client

    def _use_token(self, client: NioClientProtocol, token: str) -> None:
        client.user_id = self.user_id
        client.access_token = token
        if self._device_id:
            client.device_id = self._device_id

    async def _password_login(self, client: NioClientProtocol, password: str) -> bool:
        response = await client.login(password, self._device_name)
        if not isinstance(response, nio.LoginResponse):
            logger.error(
                "matrix.login.failed",
                user_id=self.user_id,
                error=getattr(response, "message", str(response)),
            )
            return False
        self._access_token = response.access_token
        self._device_id = response.device_id
        logger.info(
            "matrix.login.password", user_id=self.user_id, device_id=response.device_id
        )
        return True

    async def login(self) -> bool:
        """Authenticate with the stored access token, else with the password."""
        client = self._ensure_nio_client()
        if self._access_token:
            self._use_token(client, self._access_token)
            logger.info("matrix.login.token", user_id=self.user_id)
            self._logged_in = True
        elif self._password:
            self._logged_in = await self._password_login(client, self._password)
        else:
            logger.error("matrix.login.no_credentials", user_id=self.user_id)
        return self._logged_in

    async def sync(self, timeout_ms: int = 30000) -> Any:
        """Sync with the homeserver; returns None on failure.

        Raises:
            MatrixRetryAfter: when the homeserver rate-limits the request.
        """
        client = self._ensure_nio_client()
        if not self._logged_in and not await self.login():
            return None
        try:
            response = await client.sync(timeout=timeout_ms, since=self._sync_token)
        except Exception as exc:
            logger.error(
                "matrix.sync.error",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None
        if isinstance(response, nio.SyncResponse):
            self._sync_token = response.next_batch
            return response
        _raise_if_rate_limited(response)
        logger.error(
            "matrix.sync.failed",
            error=getattr(response, "message", str(response)),
        )
        return None

    async def join_room(self, room_id: str) -> bool:
        client = self._ensure_nio_client()
        try:
            response = await client.join(room_id)
        except Exception as exc:
            logger.error(
                "matrix.join.error",
                room_id=room_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return False
        if isinstance(response, nio.JoinResponse):
            logger.info("matrix.join.success", room_id=room_id)
            return True
        logger.error(
            "matrix.join.failed",
            room_id=room_id,
            error=getattr(response, "message", str(response)),
        )
        return False

    async def send_message(
        self,
        room_id: str,
        body: str,
        *,
        reply_to_event_id: str | None = None,
    ) -> str | None:
        """Send a text message; returns the new event id, or None on failure.

        Raises:
            MatrixRetryAfter: when the homeserver rate-limits the request.
        """
        client = self._ensure_nio_client()
        if not self._logged_in and not await self.login():
            return None
        content = _build_reply_content(body, reply_to_event_id)
        try:
            response = await client.room_send(
                room_id=room_id,
                message_type="m.room.message",
                content=content,
                ignore_unverified_devices=True,
            )
        except Exception as exc:
            logger.error(
                "matrix.send.error",
                room_id=room_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None
        if isinstance(response, nio.RoomSendResponse):
            return response.event_id
        _raise_if_rate_limited(response)
        logger.error(
            "matrix.send.failed",
            room_id=room_id,
            error=getattr(response, "message", str(response)),
        )
        return None

    async def close(self) -> None:
        if self._nio_client is not None:
            await self._nio_client.close()
            self._nio_client = None


def parse_room_message(
    event: Any,
    room_id: str,
    *,
    allowed_room_ids: set[str],
    own_user_id: str,
) -> ChatMessage | None:
    """Parse a nio RoomMessageText event into a ChatMessage."""
    if room_id not in allowed_room_ids:
        return None

    sender = getattr(event, "sender", None)
    event_id = getattr(event, "event_id", None)
    if sender is None or event_id is None:
        return None
    if sender == own_user_id:
        return None

    body = getattr(event, "body", None)
    if not isinstance(body, str):
        return None

    return ChatMessage(
        channel_id=room_id,
        message_id=event_id,
        sender=sender,
        text=body,
    )
