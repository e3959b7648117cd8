"""CLI command reporting a rendering task and optionally saving its artifact."""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from bookrender.config import RenderSettings
from bookrender.models import TaskState
from bookrender.orchestrator import RenderingOrchestrator, UnavailableError
from bookrender.storage.base import ContentStoreError
from bookrender.tasks.repository import StorageError


logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    parser = argparse.ArgumentParser(description="Show the state of a book rendering task")
    parser.add_argument("--task-id", type=int, required=True, help="Task id returned by render_book")
    parser.add_argument("--config", default=None, help="JSON settings file (defaults to environment)")
    parser.add_argument("--db-path", dest="db_path", default=None, help="SQLite task database path")
    parser.add_argument("--stash-dir", dest="stash_dir", default=None, help="Directory for finished artifacts")
    parser.add_argument("--output", default=None, help="Write the finished artifact to this file")
    args = parser.parse_args(argv)

    try:
        settings = RenderSettings.from_file(args.config) if args.config else RenderSettings.from_env()
    except (OSError, ValueError) as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    if args.db_path:
        settings = replace(settings, db_path=Path(args.db_path))
    if args.stash_dir:
        settings = replace(settings, stash_dir=Path(args.stash_dir))

    try:
        orchestrator = RenderingOrchestrator.from_settings(settings)
    except StorageError as exc:
        logger.error("Task database unavailable: %s", exc)
        return 2

    try:
        status = orchestrator.status(args.task_id)
        print(json.dumps({"task_id": args.task_id, **status.to_dict()}, ensure_ascii=True, indent=2))

        if args.output:
            try:
                artifact = orchestrator.stream(args.task_id)
            except (UnavailableError, ContentStoreError, StorageError) as exc:
                logger.error("Cannot save task #%s: %s", args.task_id, exc)
                return 1
            Path(args.output).write_bytes(artifact.data)
            logger.info("Saved %s bytes to %s", len(artifact.data), args.output)
    finally:
        orchestrator.close()

    return 0 if status.state != TaskState.FAILED.value else 1


if __name__ == "__main__":
    raise SystemExit(main())
