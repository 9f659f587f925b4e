"""Tests for the Matrix client wrapper and event parsing."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import nio
import pytest

from dynamic_chat.matrix.client import (
    MatrixClient,
    MatrixRetryAfter,
    RetryAfter,
    _build_reply_content,
    parse_room_message,
)
from chat_fixtures import (
    MATRIX_EVENT_ID,
    MATRIX_ROOM_ID,
    MATRIX_SENDER,
    MATRIX_USER_ID,
    RoomMessageText,
)


class FakeNioClient:
    """Records calls and returns canned nio responses."""

    def __init__(self) -> None:
        self.user_id = ""
        self.access_token = ""
        self.device_id = ""
        self.closed = False
        self.login_calls: list[dict[str, Any]] = []
        self.sync_calls: list[dict[str, Any]] = []
        self.send_calls: list[dict[str, Any]] = []
        self.join_calls: list[str] = []
        self.login_response: Any = nio.LoginResponse(
            MATRIX_USER_ID, "DEVICE1", "token-from-login"
        )
        self.sync_response: Any = None
        self.send_response: Any = nio.RoomSendResponse("$reply:example.org", MATRIX_ROOM_ID)
        self.join_response: Any = nio.JoinResponse(MATRIX_ROOM_ID)

    async def close(self) -> None:
        self.closed = True

    async def login(self, password: str, device_name: str) -> Any:
        self.login_calls.append({"password": password, "device_name": device_name})
        return self.login_response

    async def sync(self, timeout: int, since: str | None = None) -> Any:
        self.sync_calls.append({"timeout": timeout, "since": since})
        if isinstance(self.sync_response, Exception):
            raise self.sync_response
        return self.sync_response

    async def room_send(
        self,
        room_id: str,
        message_type: str,
        content: dict[str, Any],
        tx_id: str | None = None,
        ignore_unverified_devices: bool = True,
    ) -> Any:
        self.send_calls.append(
            {"room_id": room_id, "message_type": message_type, "content": content}
        )
        return self.send_response

    async def join(self, room_id: str) -> Any:
        self.join_calls.append(room_id)
        return self.join_response


def _sync_response(next_batch: str) -> Any:
    response = MagicMock(spec=nio.SyncResponse)
    response.next_batch = next_batch
    return response


def _client(fake: FakeNioClient, **kwargs: Any) -> MatrixClient:
    kwargs.setdefault("access_token", "secret")
    return MatrixClient(
        "https://matrix.example.org/",
        MATRIX_USER_ID,
        nio_client=fake,
        **kwargs,
    )


# --- RetryAfter exceptions ---


def test_retry_after_exception() -> None:
    """RetryAfter stores retry_after value."""
    exc = RetryAfter(5, "rate limited")
    assert exc.retry_after == 5.0
    assert exc.description == "rate limited"
    assert str(exc) == "rate limited"


def test_matrix_retry_after_exception() -> None:
    """MatrixRetryAfter is a subclass of RetryAfter."""
    exc = MatrixRetryAfter(3.0)
    assert isinstance(exc, RetryAfter)
    assert str(exc) == "retry after 3.0"


# --- login ---


@pytest.mark.anyio
async def test_login_with_token() -> None:
    """Token login needs no round trip to the homeserver."""
    fake = FakeNioClient()
    client = _client(fake, device_id="DEVICE0")
    assert client.homeserver == "https://matrix.example.org"
    assert await client.login() is True
    assert fake.access_token == "secret"
    assert fake.user_id == MATRIX_USER_ID
    assert fake.device_id == "DEVICE0"
    assert fake.login_calls == []


@pytest.mark.anyio
async def test_login_with_password() -> None:
    fake = FakeNioClient()
    client = _client(fake, access_token=None, password="hunter2", device_name="Bot")
    assert await client.login() is True
    assert fake.login_calls == [{"password": "hunter2", "device_name": "Bot"}]


@pytest.mark.anyio
async def test_login_with_password_rejected() -> None:
    fake = FakeNioClient()
    fake.login_response = nio.LoginError("Invalid password", "M_FORBIDDEN")
    client = _client(fake, access_token=None, password="wrong")
    assert await client.login() is False


@pytest.mark.anyio
async def test_login_without_credentials() -> None:
    fake = FakeNioClient()
    client = _client(fake, access_token=None)
    assert await client.login() is False
    assert fake.login_calls == []


# --- sync ---


@pytest.mark.anyio
async def test_sync_tracks_next_batch() -> None:
    """Each sync continues from the previous batch token."""
    fake = FakeNioClient()
    client = _client(fake)
    fake.sync_response = _sync_response("batch-1")
    assert await client.sync(timeout_ms=10) is fake.sync_response
    assert client.sync_token == "batch-1"

    fake.sync_response = _sync_response("batch-2")
    await client.sync(timeout_ms=10)
    assert [call["since"] for call in fake.sync_calls] == [None, "batch-1"]
    assert client.sync_token == "batch-2"


@pytest.mark.anyio
async def test_sync_logs_in_first() -> None:
    fake = FakeNioClient()
    client = _client(fake, access_token=None, password="hunter2")
    fake.sync_response = _sync_response("batch-1")
    await client.sync()
    assert len(fake.login_calls) == 1


@pytest.mark.anyio
async def test_sync_returns_none_when_login_fails() -> None:
    fake = FakeNioClient()
    client = _client(fake, access_token=None)
    assert await client.sync() is None
    assert fake.sync_calls == []


@pytest.mark.anyio
async def test_sync_exception_returns_none() -> None:
    fake = FakeNioClient()
    fake.sync_response = OSError("connection reset")
    client = _client(fake)
    assert await client.sync() is None


@pytest.mark.anyio
async def test_sync_error_returns_none() -> None:
    fake = FakeNioClient()
    fake.sync_response = nio.SyncError("server exploded", "M_UNKNOWN")
    client = _client(fake)
    assert await client.sync() is None
    assert client.sync_token is None


@pytest.mark.anyio
async def test_sync_rate_limited() -> None:
    """A rate-limit error surfaces as MatrixRetryAfter in seconds."""
    fake = FakeNioClient()
    fake.sync_response = nio.SyncError("slow down", "M_LIMIT_EXCEEDED", 2500)
    client = _client(fake)
    with pytest.raises(MatrixRetryAfter) as exc_info:
        await client.sync()
    assert exc_info.value.retry_after == 2.5


# --- join / send ---


@pytest.mark.anyio
async def test_join_room() -> None:
    fake = FakeNioClient()
    client = _client(fake)
    assert await client.join_room(MATRIX_ROOM_ID) is True
    fake.join_response = nio.JoinError("not invited", "M_FORBIDDEN")
    assert await client.join_room("!other:example.org") is False
    assert fake.join_calls == [MATRIX_ROOM_ID, "!other:example.org"]


def test_build_reply_content() -> None:
    assert _build_reply_content("hi", None) == {"msgtype": "m.text", "body": "hi"}
    assert _build_reply_content("hi", MATRIX_EVENT_ID)["m.relates_to"] == {
        "m.in_reply_to": {"event_id": MATRIX_EVENT_ID}
    }


@pytest.mark.anyio
async def test_send_message_as_reply() -> None:
    fake = FakeNioClient()
    client = _client(fake)
    await client.login()
    event_id = await client.send_message(
        MATRIX_ROOM_ID, "Set Volume = 80.", reply_to_event_id=MATRIX_EVENT_ID
    )
    assert event_id == "$reply:example.org"
    assert fake.send_calls == [
        {
            "room_id": MATRIX_ROOM_ID,
            "message_type": "m.room.message",
            "content": {
                "msgtype": "m.text",
                "body": "Set Volume = 80.",
                "m.relates_to": {"m.in_reply_to": {"event_id": MATRIX_EVENT_ID}},
            },
        }
    ]


@pytest.mark.anyio
async def test_send_message_rate_limited() -> None:
    fake = FakeNioClient()
    fake.send_response = nio.RoomSendError("slow down", "M_LIMIT_EXCEEDED", 1000)
    client = _client(fake)
    with pytest.raises(MatrixRetryAfter):
        await client.send_message(MATRIX_ROOM_ID, "hi")


@pytest.mark.anyio
async def test_send_message_failure_returns_none() -> None:
    fake = FakeNioClient()
    fake.send_response = nio.RoomSendError("nope", "M_FORBIDDEN")
    client = _client(fake)
    assert await client.send_message(MATRIX_ROOM_ID, "hi") is None


@pytest.mark.anyio
async def test_close() -> None:
    fake = FakeNioClient()
    client = _client(fake)
    await client.close()
    assert fake.closed is True
    await client.close()


# --- parse_room_message ---


def test_parse_room_message_basic() -> None:
    """Basic text message parsing."""
    result = parse_room_message(
        RoomMessageText(body="!:[Audio] Volume"),
        MATRIX_ROOM_ID,
        allowed_room_ids={MATRIX_ROOM_ID},
        own_user_id=MATRIX_USER_ID,
    )
    assert result is not None
    assert result.text == "!:[Audio] Volume"
    assert result.channel_id == MATRIX_ROOM_ID
    assert result.message_id == MATRIX_EVENT_ID
    assert result.sender == MATRIX_SENDER


def test_parse_room_message_filters_own() -> None:
    """Own messages are filtered out."""
    result = parse_room_message(
        RoomMessageText(sender=MATRIX_USER_ID),
        MATRIX_ROOM_ID,
        allowed_room_ids={MATRIX_ROOM_ID},
        own_user_id=MATRIX_USER_ID,
    )
    assert result is None


def test_parse_room_message_filters_room() -> None:
    """Messages from non-allowed rooms are filtered."""
    result = parse_room_message(
        RoomMessageText(),
        "!elsewhere:example.org",
        allowed_room_ids={MATRIX_ROOM_ID},
        own_user_id=MATRIX_USER_ID,
    )
    assert result is None


@pytest.mark.parametrize(
    "event",
    [
        RoomMessageText(sender=None),
        RoomMessageText(event_id=None),
        RoomMessageText(body=None),
        RoomMessageText(body=42),
    ],
)
def test_parse_room_message_incomplete(event: RoomMessageText) -> None:
    result = parse_room_message(
        event,
        MATRIX_ROOM_ID,
        allowed_room_ids={MATRIX_ROOM_ID},
        own_user_id=MATRIX_USER_ID,
    )
    assert result is None
