"""Settings loading and hot-reload for the TOML config file."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import anyio
from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .config import ConfigError, ensure_config_file, resolve_config_path
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_GET_REGEX = r"^(?:\[(?P<section>[^\]]*)\]\s*)?(?P<property>[^\s=\[\]]+)$"
DEFAULT_SET_REGEX = (
    r"^(?:\[(?P<section>[^\]]*)\]\s*)?(?P<property>[^\s=\[\]]+)"
    r"\s*=\s*(?P<value>[ -~]+)$"
)


class MatrixSettings(BaseModel):
    """Connection settings for the Matrix gateway."""

    homeserver: str = ""
    user_id: str = ""
    access_token: str | None = None
    password: str | None = None
    device_id: str | None = None
    device_name: str = "DynamicChat"
    room_ids: list[str] = []


class ChatSettings(BaseSettings):
    """Everything read from ``dynamic_chat.toml``."""

    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="DYNAMIC_CHAT__",
        env_nested_delimiter="__",
    )

    commands: list[list[str]] = []
    command_get_regex: str = DEFAULT_GET_REGEX
    command_set_regex: str = DEFAULT_SET_REGEX
    command_prefix: str = "!"
    command_delimiter: str = ":"
    command_reset: str = "reset"
    max_message_length: int | None = None

    debug_commands_allowed_users: list[str] = []
    restrict_debug_commands_to_allowed_users: bool = True
    post_responses_in_chat: bool = False

    original_ini_path: Path | None = None
    modified_ini_path: Path | None = None

    matrix: MatrixSettings = MatrixSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(path: str | Path | None = None) -> tuple[ChatSettings, Path]:
    """Load settings from a TOML config file."""
    cfg_path = resolve_config_path(path)
    ensure_config_file(cfg_path)

    cfg = dict(ChatSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "ChatSettingsBound",
        (ChatSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        return Bound(), cfg_path
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except Exception as exc:
        raise ConfigError(f"Failed to load config {cfg_path}: {exc}") from exc


SettingsListener = Callable[[ChatSettings], None]


class SettingsMonitor:
    """Holds the live settings and pushes changes to listeners.

    The config file is re-read whenever its modification time changes.
    Listeners run synchronously, in registration order, with the complete
    new snapshot. A file that fails to load keeps the previous snapshot; an
    exception raised by a listener propagates to whoever triggered the check.
    """

    def __init__(
        self,
        path: Path,
        *,
        initial: ChatSettings | None = None,
        loader: Callable[[Path], tuple[ChatSettings, Path]] = load_settings,
    ) -> None:
        self._path = path
        self._loader = loader
        self._listeners: list[SettingsListener] = []
        self._mtime_ns = self._stat_mtime()
        if initial is None:
            initial, _ = loader(path)
        self._current = initial

    @property
    def path(self) -> Path:
        return self._path

    @property
    def current(self) -> ChatSettings:
        return self._current

    def on_change(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def _stat_mtime(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def check(self) -> bool:
        """Reload if the file changed. Returns True when listeners were notified."""
        mtime_ns = self._stat_mtime()
        if mtime_ns is None or mtime_ns == self._mtime_ns:
            return False
        self._mtime_ns = mtime_ns
        try:
            settings, _ = self._loader(self._path)
        except ConfigError as exc:
            logger.warning(
                "settings.reload_failed",
                path=str(self._path),
                error=str(exc),
            )
            return False
        logger.info("settings.reloaded", path=str(self._path))
        self._current = settings
        for listener in self._listeners:
            listener(settings)
        return True

    async def watch(self, interval: float = 1.0) -> None:
        while True:
            await anyio.sleep(interval)
            self.check()
