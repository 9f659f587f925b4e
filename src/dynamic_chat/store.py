"""File-backed configuration stores.

Each store edits a working copy of a pristine baseline file. ``restore`` copies
the baseline back over the working copy.

A ``set`` renders the complete new file from the current text, writes it, and
only then adopts it as the live state; a failed write leaves both the file and
the in-memory view untouched.
"""

from __future__ import annotations

import codecs
import re
import shutil
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.items import Item

from .config import ConfigError
from .logging import get_logger

logger = get_logger(__name__)

_SECTION_RE = re.compile(r"^\s*\[(?P<name>[^\]]*)\]\s*$")
_KEY_RE = re.compile(
    r"^(?P<head>\s*(?P<key>[^\s=;#\[][^=]*?)\s*=\s*)(?P<value>.*?)\s*$"
)


def _find_key(keys: Any, wanted: str) -> str | None:
    lowered = wanted.lower()
    for key in keys:
        if key.lower() == lowered:
            return key
    return None


def _read_text(path: Path) -> tuple[str, bool]:
    """Decode a UTF-8 file, reporting whether it carried a byte order mark."""
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8-sig"), raw.startswith(codecs.BOM_UTF8)
    except UnicodeDecodeError as exc:
        raise ConfigError(f"{path} is not UTF-8 text: {exc}") from exc


def _atomic_write(path: Path, text: str, *, bom: bool = False) -> None:
    temp_path = path.with_name(path.name + ".tmp")
    data = text.encode("utf-8")
    if bom:
        data = codecs.BOM_UTF8 + data
    try:
        temp_path.write_bytes(data)
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


class FileConfigStore(ABC):
    """Working copy of a baseline settings file, persisted on every write."""

    def __init__(self, original_path: Path | None, modified_path: Path | None) -> None:
        if not original_path or not modified_path:
            raise ConfigError(
                "Please make sure original_ini_path and modified_ini_path are set "
                "in the config file."
            )
        self.original_path = Path(original_path).expanduser()
        self.modified_path = Path(modified_path).expanduser()
        self._lock = threading.Lock()
        self._text = ""
        self._bom = False

        if not self.original_path.exists():
            logger.info("store.original_created", path=str(self.original_path))
            self.original_path.parent.mkdir(parents=True, exist_ok=True)
            self.original_path.touch()

        if not self.modified_path.exists():
            logger.info(
                "store.modified_created",
                path=str(self.modified_path),
                source=str(self.original_path),
            )
            self.modified_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.original_path, self.modified_path)

        self._reload()

    def _reload(self) -> None:
        text, bom = _read_text(self.modified_path)
        self._adopt(text)
        self._bom = bom

    def _adopt(self, text: str) -> None:
        self._load(text)
        self._text = text

    def get(self, section: str, prop: str) -> str:
        with self._lock:
            return self._get_locked(section, prop)

    def set(self, section: str, prop: str, value: str) -> None:
        with self._lock:
            text = self._render_with(section, prop, value)
            _atomic_write(self.modified_path, text, bom=self._bom)
            self._adopt(text)

    def restore(self) -> None:
        with self._lock:
            logger.info(
                "store.restore",
                modified=str(self.modified_path),
                original=str(self.original_path),
            )
            shutil.copyfile(self.original_path, self.modified_path)
            self._reload()

    @abstractmethod
    def _load(self, text: str) -> None: ...

    @abstractmethod
    def _get_locked(self, section: str, prop: str) -> str: ...

    @abstractmethod
    def _render_with(self, section: str, prop: str, value: str) -> str:
        """Return the file text with ``prop`` in ``section`` set to ``value``."""


def _body(line: str) -> str:
    return line.rstrip("\r\n")


class IniFileStore(FileConfigStore):
    """INI working copy edited line by line.

    Only the line holding the key changes on a write; comments, spacing,
    ordering and line endings elsewhere are kept. Section and key names are
    looked up case-insensitively. Keys before the first header form the empty
    section. Lines that are neither headers nor ``key = value`` pairs are
    carried through untouched.
    """

    _lines: list[str]

    def _load(self, text: str) -> None:
        self._lines = text.splitlines(keepends=True)

    @staticmethod
    def _spans(lines: list[str]) -> list[tuple[str | None, int, int]]:
        """(section name, first body line, end line); ``None`` names the root."""
        spans: list[tuple[str | None, int, int]] = []
        name: str | None = None
        start = 0
        for index, line in enumerate(lines):
            match = _SECTION_RE.match(_body(line))
            if match:
                spans.append((name, start, index))
                name, start = match.group("name").strip(), index + 1
        spans.append((name, start, len(lines)))
        return spans

    @classmethod
    def _find_span(
        cls, lines: list[str], section: str
    ) -> tuple[int, int] | None:
        wanted = section.strip().lower() if section else None
        for name, start, end in cls._spans(lines):
            if wanted is None and name is None:
                return start, end
            if wanted is not None and name is not None and name.lower() == wanted:
                return start, end
        return None

    @staticmethod
    def _find_line(
        lines: list[str], start: int, end: int, prop: str
    ) -> tuple[int, re.Match[str]] | None:
        wanted = prop.strip().lower()
        for index in range(start, end):
            match = _KEY_RE.match(_body(lines[index]))
            if match and match.group("key").strip().lower() == wanted:
                return index, match
        return None

    def _get_locked(self, section: str, prop: str) -> str:
        span = self._find_span(self._lines, section)
        if span is None:
            return ""
        found = self._find_line(self._lines, *span, prop)
        if found is None:
            return ""
        return found[1].group("value")

    def _render_with(self, section: str, prop: str, value: str) -> str:
        lines = list(self._lines)
        newline = "\r\n" if "\r\n" in self._text else "\n"

        def terminate_last() -> None:
            if lines and not lines[-1].endswith("\n"):
                lines[-1] += newline

        span = self._find_span(lines, section)
        if span is None:
            terminate_last()
            if lines and _body(lines[-1]).strip():
                lines.append(newline)
            lines.append(f"[{section}]{newline}")
            lines.append(f"{prop}={value}{newline}")
            return "".join(lines)

        start, end = span
        found = self._find_line(lines, start, end, prop)
        if found is not None:
            index, match = found
            ending = lines[index][len(_body(lines[index])) :]
            lines[index] = f"{match.group('head')}{value}{ending}"
            return "".join(lines)

        insert_at = start
        for index in range(start, end):
            if _body(lines[index]).strip():
                insert_at = index + 1
        if insert_at > 0 and not lines[insert_at - 1].endswith("\n"):
            lines[insert_at - 1] += newline
        lines.insert(insert_at, f"{prop}={value}{newline}")
        return "".join(lines)


def _as_text(value: Any) -> str:
    if isinstance(value, Item):
        value = value.unwrap()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TomlFileStore(FileConfigStore):
    """TOML working copy edited with tomlkit so formatting and comments survive.

    An empty section addresses top-level keys. Values are written as strings.
    """

    _document: tomlkit.TOMLDocument

    def _parse(self, text: str) -> tomlkit.TOMLDocument:
        try:
            return tomlkit.parse(text)
        except Exception as exc:
            raise ConfigError(f"Failed to parse {self.modified_path}: {exc}") from exc

    def _load(self, text: str) -> None:
        self._document = self._parse(text)

    @staticmethod
    def _table(document: Any, section: str, *, create: bool) -> Any:
        if not section:
            return document
        key = _find_key(document.keys(), section)
        if key is not None:
            table = document[key]
            return table if isinstance(table, dict) else None
        if not create:
            return None
        table = tomlkit.table()
        document[section] = table
        return table

    def _get_locked(self, section: str, prop: str) -> str:
        table = self._table(self._document, section, create=False)
        if table is None:
            return ""
        key = _find_key(table.keys(), prop)
        if key is None:
            return ""
        return _as_text(table[key])

    def _render_with(self, section: str, prop: str, value: str) -> str:
        staged = self._parse(self._text)
        table = self._table(staged, section, create=True)
        if table is None:
            raise ConfigError(
                f"Cannot set {prop!r}: {section!r} is a value, not a table, "
                f"in {self.modified_path}."
            )
        key = _find_key(table.keys(), prop) or prop
        table[key] = value
        return tomlkit.dumps(staged)


def open_store(original_path: Path | None, modified_path: Path | None) -> FileConfigStore:
    """Pick the store implementation from the working copy's file suffix."""
    suffix = Path(modified_path).suffix.lower() if modified_path else ""
    if suffix == ".toml":
        return TomlFileStore(original_path, modified_path)
    return IniFileStore(original_path, modified_path)
