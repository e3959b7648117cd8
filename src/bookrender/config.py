"""Runtime configuration for book rendering and conversion."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Any, Mapping


DEFAULT_DB_PATH = ".bookrender-tasks.db"
DEFAULT_STASH_DIR = ".bookrender-stash"
DEFAULT_PAGES_DIR = "pages"
DEFAULT_DOWNLOAD_URL = "/Special:DownloadBook"
DEFAULT_STYLESHEETS = ("Common.css", "Print.css", "Book.css")

_MAP_VARIABLES = {
    "convert_commands": "BOOKRENDER_CONVERT_COMMANDS",
    "file_extensions": "BOOKRENDER_FILE_EXTENSIONS",
    "metadata_regex": "BOOKRENDER_METADATA_REGEX",
    "default_metadata": "BOOKRENDER_DEFAULT_METADATA",
}


def _parse_string_map(*, name: str, raw_value: Any) -> dict[str, str]:
    if isinstance(raw_value, str):
        if not raw_value.strip():
            return {}
        try:
            raw_value = json.loads(raw_value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name} must be a JSON object: {exc}") from exc

    if not isinstance(raw_value, Mapping):
        raise ValueError(f"{name} must be a JSON object")

    parsed: dict[str, str] = {}
    for key, value in raw_value.items():
        if not isinstance(key, str) or not key:
            raise ValueError(f"{name} keys must be non-empty strings")
        if not isinstance(value, str):
            raise ValueError(f"{name}[{key!r}] must be a string")
        parsed[key] = value
    return parsed


def _lower_keys(values: Mapping[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in values.items()}


def _parse_stylesheets(*, name: str, raw_value: Any) -> tuple[str, ...]:
    if isinstance(raw_value, str):
        parts = [part.strip() for part in raw_value.split(",")]
    elif isinstance(raw_value, (list, tuple)):
        parts = [str(part).strip() for part in raw_value]
    else:
        raise ValueError(f"{name} must be a comma-separated string or a list")
    return tuple(part for part in parts if part)


def _normalize_server(*, name: str, raw_value: str) -> str:
    server = raw_value.strip()
    if not server:
        return ""
    if not (server.startswith("http://") or server.startswith("https://")):
        raise ValueError(f"{name} must start with http:// or https://")
    return server.rstrip("/")


@dataclass(frozen=True, slots=True)
class RenderSettings:
    """Validated settings shared by the assembler, invoker and orchestrator."""

    db_path: Path = Path(DEFAULT_DB_PATH)
    stash_dir: Path = Path(DEFAULT_STASH_DIR)
    pages_dir: Path = Path(DEFAULT_PAGES_DIR)
    temp_dir: Path | None = None
    canonical_server: str = ""
    download_url: str = DEFAULT_DOWNLOAD_URL
    convert_commands: Mapping[str, str] = field(default_factory=dict)
    file_extensions: Mapping[str, str] = field(default_factory=dict)
    metadata_regex: Mapping[str, str] = field(default_factory=dict)
    default_metadata: Mapping[str, str] = field(default_factory=dict)
    stylesheets: tuple[str, ...] = DEFAULT_STYLESHEETS

    def command_for(self, format_name: str) -> str | None:
        template = self.convert_commands.get(format_name.lower(), "")
        return template if template.strip() else None

    def extension_for(self, format_name: str) -> str:
        normalized = format_name.lower()
        return self.file_extensions.get(normalized) or normalized

    @classmethod
    def from_mapping(cls, source: Mapping[str, Any]) -> "RenderSettings":
        """Build settings from a mapping keyed by lower-case field names."""

        maps = {
            key: _parse_string_map(name=key, raw_value=source.get(key, {}))
            for key in _MAP_VARIABLES
        }

        temp_dir_raw = str(source.get("temp_dir") or "").strip()
        download_url = str(source.get("download_url", DEFAULT_DOWNLOAD_URL)).strip()
        if not download_url:
            raise ValueError("download_url cannot be empty")

        db_path_raw = str(source.get("db_path", DEFAULT_DB_PATH)).strip()
        if not db_path_raw:
            raise ValueError("db_path cannot be empty")

        stash_dir_raw = str(source.get("stash_dir", DEFAULT_STASH_DIR)).strip()
        if not stash_dir_raw:
            raise ValueError("stash_dir cannot be empty")

        pages_dir_raw = str(source.get("pages_dir", DEFAULT_PAGES_DIR)).strip()
        if not pages_dir_raw:
            raise ValueError("pages_dir cannot be empty")

        return cls(
            db_path=Path(db_path_raw),
            stash_dir=Path(stash_dir_raw),
            pages_dir=Path(pages_dir_raw),
            temp_dir=Path(temp_dir_raw) if temp_dir_raw else None,
            canonical_server=_normalize_server(
                name="canonical_server",
                raw_value=str(source.get("canonical_server", "")),
            ),
            download_url=download_url,
            convert_commands=_lower_keys(maps["convert_commands"]),
            file_extensions=_lower_keys(maps["file_extensions"]),
            metadata_regex=maps["metadata_regex"],
            default_metadata=maps["default_metadata"],
            stylesheets=_parse_stylesheets(
                name="stylesheets",
                raw_value=source.get("stylesheets", DEFAULT_STYLESHEETS),
            ),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "RenderSettings":
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Config file must contain a JSON object: {path}")
        return cls.from_mapping(payload)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RenderSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        values: dict[str, Any] = {
            "db_path": source.get("BOOKRENDER_DB_PATH", DEFAULT_DB_PATH),
            "stash_dir": source.get("BOOKRENDER_STASH_DIR", DEFAULT_STASH_DIR),
            "pages_dir": source.get("BOOKRENDER_PAGES_DIR", DEFAULT_PAGES_DIR),
            "temp_dir": source.get("BOOKRENDER_TEMP_DIR", ""),
            "canonical_server": source.get("BOOKRENDER_CANONICAL_SERVER", ""),
            "download_url": source.get("BOOKRENDER_DOWNLOAD_URL", DEFAULT_DOWNLOAD_URL),
            "stylesheets": source.get("BOOKRENDER_STYLESHEETS", ",".join(DEFAULT_STYLESHEETS)),
        }

        for key, variable in _MAP_VARIABLES.items():
            values[key] = _parse_string_map(name=variable, raw_value=source.get(variable, ""))

        if not str(values["db_path"]).strip():
            raise ValueError("BOOKRENDER_DB_PATH cannot be empty")
        if not str(values["stash_dir"]).strip():
            raise ValueError("BOOKRENDER_STASH_DIR cannot be empty")
        if not str(values["pages_dir"]).strip():
            raise ValueError("BOOKRENDER_PAGES_DIR cannot be empty")
        if not str(values["download_url"]).strip():
            raise ValueError("BOOKRENDER_DOWNLOAD_URL cannot be empty")

        values["canonical_server"] = _normalize_server(
            name="BOOKRENDER_CANONICAL_SERVER",
            raw_value=values["canonical_server"],
        )
        return cls.from_mapping(values)
