"""Matrix gateway configuration."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import ConfigError
from ..settings import MatrixSettings


@dataclass(frozen=True, slots=True)
class MatrixGatewayConfig:
    """Validated connection details for the Matrix gateway."""

    homeserver: str
    user_id: str
    room_ids: tuple[str, ...]
    access_token: str | None = None
    password: str | None = None
    device_id: str | None = None
    device_name: str = "DynamicChat"

    @classmethod
    def from_settings(cls, settings: MatrixSettings) -> MatrixGatewayConfig:
        homeserver = settings.homeserver.strip()
        user_id = settings.user_id.strip()
        room_ids = tuple(room.strip() for room in settings.room_ids if room.strip())
        if not homeserver:
            raise ConfigError("Please set matrix.homeserver in the config file.")
        if not user_id:
            raise ConfigError("Please set matrix.user_id in the config file.")
        if not settings.access_token and not settings.password:
            raise ConfigError(
                "Please set matrix.access_token or matrix.password in the config file."
            )
        if not room_ids:
            raise ConfigError(
                "Please set at least one room in matrix.room_ids in the config file."
            )
        return cls(
            homeserver=homeserver,
            user_id=user_id,
            room_ids=room_ids,
            access_token=settings.access_token or None,
            password=settings.password or None,
            device_id=settings.device_id or None,
            device_name=settings.device_name,
        )
