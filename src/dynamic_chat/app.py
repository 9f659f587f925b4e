"""Wiring: settings, store, processor and the gateways."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import anyio

from .config import ConfigError
from .dispatch import ChatDispatcher
from .logging import get_logger
from .matrix import MatrixGateway, MatrixGatewayConfig, build_client
from .processor import CommandProcessor
from .settings import SettingsMonitor, load_settings
from .store import FileConfigStore, open_store

logger = get_logger(__name__)

SETTINGS_POLL_INTERVAL = 1.0


@dataclass(frozen=True, slots=True)
class ChatApp:
    config_path: Path
    monitor: SettingsMonitor
    store: FileConfigStore
    processor: CommandProcessor
    dispatcher: ChatDispatcher


def bootstrap(config_path: str | Path | None) -> ChatApp:
    """Load settings and build every component.

    Raises:
        ConfigError: for a missing/invalid config file, unset store paths or
            a directive pattern that does not compile.
    """
    settings, cfg_path = load_settings(config_path)
    logger.info("startup.config_loaded", path=str(cfg_path))
    store = open_store(settings.original_ini_path, settings.modified_ini_path)
    processor = CommandProcessor(settings, store)
    dispatcher = ChatDispatcher(processor, settings)
    monitor = SettingsMonitor(cfg_path, initial=settings)
    monitor.on_change(processor.reload)
    monitor.on_change(dispatcher.reload)
    return ChatApp(
        config_path=cfg_path,
        monitor=monitor,
        store=store,
        processor=processor,
        dispatcher=dispatcher,
    )


async def run_matrix(app: ChatApp, *, poll_interval: float = SETTINGS_POLL_INTERVAL) -> None:
    """Run the Matrix gateway and the settings watcher until a fatal error.

    Raises:
        ConfigError: if Matrix settings are incomplete, login fails, or a
            settings reload carries an invalid directive pattern.
    """
    cfg = MatrixGatewayConfig.from_settings(app.monitor.current.matrix)
    gateway = MatrixGateway(
        client=build_client(cfg),
        dispatcher=app.dispatcher,
        room_ids=cfg.room_ids,
    )
    fatal: list[ConfigError] = []
    try:
        await gateway.start()
        async with anyio.create_task_group() as tg:

            async def watch_settings() -> None:
                try:
                    await app.monitor.watch(poll_interval)
                except ConfigError as exc:
                    fatal.append(exc)
                    tg.cancel_scope.cancel()

            tg.start_soon(watch_settings)
            await gateway.sync_loop()
    finally:
        await gateway.close()
    if fatal:
        raise fatal[0]
