"""CLI command rendering one metabook and reporting the final task status."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from bookrender.assembly.stylesheets import MappingStylesheetResolver
from bookrender.config import RenderSettings
from bookrender.models import MetaBook, TaskState, parse_metabook
from bookrender.orchestrator import RenderingOrchestrator
from bookrender.rendering.directory import DirectoryRenderer


logger = logging.getLogger(__name__)


def load_settings(args: argparse.Namespace) -> RenderSettings:
    """Settings from ``--config`` (or the environment) with path flags applied on top."""

    settings = RenderSettings.from_file(args.config) if args.config else RenderSettings.from_env()
    overrides: dict[str, Path] = {}
    for name in ("db_path", "stash_dir", "pages_dir"):
        value = getattr(args, name, None)
        if value:
            overrides[name] = Path(value)
    return replace(settings, **overrides) if overrides else settings


def _stylesheet_resolver(styles_dir: str | None, settings: RenderSettings) -> MappingStylesheetResolver | None:
    if not styles_dir:
        return None
    directory = Path(styles_dir).resolve()
    return MappingStylesheetResolver(
        {
            name: (directory / name).as_uri()
            for name in settings.stylesheets
            if (directory / name).is_file()
        }
    )


async def _render(
    settings: RenderSettings,
    metabook: MetaBook,
    format_name: str,
    *,
    author: str | None,
    styles_dir: str | None,
) -> dict[str, object]:
    orchestrator = RenderingOrchestrator.from_settings(
        settings,
        DirectoryRenderer(settings.pages_dir, author=author),
        stylesheet_resolver=_stylesheet_resolver(styles_dir, settings),
    )
    try:
        task_id = await orchestrator.submit(metabook, format_name)
        await orchestrator.wait(task_id)
        status = orchestrator.status(task_id)
    finally:
        orchestrator.close()

    return {"task_id": task_id, **status.to_dict()}


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    parser = argparse.ArgumentParser(description="Render a metabook into a downloadable document")
    parser.add_argument("--metabook", required=True, help="Path to the metabook JSON file")
    parser.add_argument("--format", required=True, help="Target format, e.g. epub or pdf")
    parser.add_argument("--config", default=None, help="JSON settings file (defaults to environment)")
    parser.add_argument("--pages-dir", dest="pages_dir", default=None, help="Directory of pre-rendered pages")
    parser.add_argument("--styles-dir", default=None, help="Directory holding the configured stylesheets")
    parser.add_argument("--db-path", dest="db_path", default=None, help="SQLite task database path")
    parser.add_argument("--stash-dir", dest="stash_dir", default=None, help="Directory for finished artifacts")
    parser.add_argument("--author", default=None, help="Author attribution for rendered pages")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
        raw = json.loads(Path(args.metabook).read_text(encoding="utf-8"))
        metabook = parse_metabook(raw)
    except (OSError, ValueError) as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    payload = asyncio.run(
        _render(settings, metabook, args.format, author=args.author, styles_dir=args.styles_dir)
    )
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0 if payload["state"] == TaskState.FINISHED.value else 1


if __name__ == "__main__":
    raise SystemExit(main())
