"""Background rendering of metabooks into downloadable documents."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import re
from typing import Any, Mapping
from urllib.parse import quote, urlencode

from bookrender.assembly.assembler import DocumentAssembler
from bookrender.assembly.stylesheets import StylesheetResolver
from bookrender.config import RenderSettings
from bookrender.conversion.invoker import ConversionFailure, ConversionInvoker
from bookrender.models import MetaBook, TaskState, parse_metabook
from bookrender.rendering.base import ContentRenderer
from bookrender.rendering.directory import DirectoryRenderer
from bookrender.storage.base import ContentStore, ContentStoreError
from bookrender.storage.directory_store import DirectoryContentStore
from bookrender.tasks.repository import StorageError, TaskRepository
from bookrender.tasks.schema import MAX_DISPOSITION_LENGTH


logger = logging.getLogger(__name__)

_PATH_SEPARATOR_RE = re.compile(r"[\\/]")


@dataclass(slots=True)
class UnavailableError(Exception):
    """No rendered artifact is on record for the task."""

    task_id: int
    message: str = "Rendered file is not available."

    def __str__(self) -> str:
        return f"{self.message} (task={self.task_id})"


@dataclass(frozen=True, slots=True)
class RenderStatus:
    state: str
    url: str | None = None
    content_type: str | None = None
    content_length: int | None = None
    content_disposition: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"state": self.state}
        for key in ("url", "content_type", "content_length", "content_disposition"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass(frozen=True, slots=True)
class StreamedArtifact:
    data: bytes
    headers: dict[str, str] = field(default_factory=dict)


def make_content_disposition(kind: str, filename: str) -> str:
    name = _PATH_SEPARATOR_RE.sub("_", filename)
    return f"{kind};filename*=UTF-8''{quote(name, safe='')}"


def derive_disposition(title: str | None, extension: str | None) -> str | None:
    """Human-readable download name such as ``Name_of_the_article.pdf``."""

    if not title or not extension:
        return None
    max_stem = MAX_DISPOSITION_LENGTH - len(extension) - 1
    if max_stem <= 0:
        return None
    return f"{_PATH_SEPARATOR_RE.sub('_', title.replace(' ', '_'))[:max_stem]}.{extension}"


class RenderingOrchestrator:
    """Create task rows, run the render pipeline in the background and report results.

    Each submitted task moves from ``pending`` to exactly one of ``finished``
    or ``failed``. There is no retry and no cancellation: callers wanting a
    second attempt submit again and receive a new task id.
    """

    def __init__(
        self,
        repository: TaskRepository,
        assembler: DocumentAssembler,
        invoker: ConversionInvoker,
        content_store: ContentStore,
        settings: RenderSettings,
    ) -> None:
        self._repository = repository
        self._assembler = assembler
        self._invoker = invoker
        self._content_store = content_store
        self._settings = settings
        self._jobs: dict[int, asyncio.Task[None]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: RenderSettings,
        renderer: ContentRenderer | None = None,
        *,
        stylesheet_resolver: StylesheetResolver | None = None,
        content_store: ContentStore | None = None,
    ) -> "RenderingOrchestrator":
        return cls(
            repository=TaskRepository(settings.db_path),
            assembler=DocumentAssembler(
                renderer if renderer is not None else DirectoryRenderer(settings.pages_dir),
                settings,
                stylesheet_resolver,
            ),
            invoker=ConversionInvoker(settings),
            content_store=(
                content_store if content_store is not None else DirectoryContentStore(settings.stash_dir)
            ),
            settings=settings,
        )

    @property
    def repository(self) -> TaskRepository:
        return self._repository

    @property
    def running_task_ids(self) -> tuple[int, ...]:
        return tuple(self._jobs)

    def close(self) -> None:
        self._repository.close()

    async def submit(self, metabook: MetaBook, format_name: str) -> int:
        """Create a pending task and schedule its rendering; returns without waiting."""

        task_id = self._repository.create()
        logger.debug("Starting on request #%s", task_id)

        job = asyncio.create_task(
            self._render(task_id, metabook, format_name),
            name=f"bookrender-task-{task_id}",
        )
        self._jobs[task_id] = job
        job.add_done_callback(lambda _job: self._jobs.pop(task_id, None))
        return task_id

    async def submit_mapping(self, raw: Mapping[str, Any], format_name: str) -> int:
        return await self.submit(parse_metabook(raw), format_name)

    async def wait(self, task_id: int) -> None:
        job = self._jobs.get(task_id)
        if job is not None:
            await job

    async def drain(self) -> None:
        jobs = list(self._jobs.values())
        if jobs:
            await asyncio.gather(*jobs)

    async def _render(self, task_id: int, metabook: MetaBook, format_name: str) -> None:
        logger.debug("Going to render #%s, format=%s", task_id, format_name)

        try:
            document = await asyncio.to_thread(self._assembler.assemble, metabook)
            artifact = await self._invoker.convert(document.html, format_name, document.metadata)
        except ConversionFailure as exc:
            logger.error("Failed to convert #%s into %s: %s", task_id, format_name, exc)
            self._mark_failed(task_id)
            return
        except Exception:
            logger.exception("Rendering #%s failed unexpectedly", task_id)
            self._mark_failed(task_id)
            return

        try:
            content_key = await asyncio.to_thread(
                self._content_store.put,
                artifact.read_bytes(),
                artifact.path.name,
            )
        except (ContentStoreError, OSError) as exc:
            logger.error("Failed to save #%s into the content store: %s", task_id, exc)
            self._mark_failed(task_id)
            return
        except Exception:
            logger.exception("Content store failed unexpectedly for #%s", task_id)
            self._mark_failed(task_id)
            return
        finally:
            artifact.discard()

        disposition = derive_disposition(document.metadata.get("title"), artifact.extension)
        try:
            self._repository.mark_finished(task_id, content_key, disposition)
        except StorageError as exc:
            logger.error("Converted #%s but could not record it: %s", task_id, exc)
            self._discard_stashed(task_id, content_key)
            self._mark_failed(task_id)
            return
        logger.debug("Successfully converted #%s: content_key=%s", task_id, content_key)

    def _discard_stashed(self, task_id: int, content_key: str) -> None:
        try:
            self._content_store.delete(content_key)
        except ContentStoreError as exc:
            logger.error("Could not remove orphaned artifact of #%s: %s", task_id, exc)

    def _mark_failed(self, task_id: int) -> None:
        try:
            self._repository.mark_failed(task_id)
        except StorageError as exc:
            logger.error("Could not mark #%s as failed: %s", task_id, exc)

    def download_url(self, task_id: int) -> str:
        base = self._settings.download_url
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode({'stream': 1, 'collection_id': task_id})}"

    def status(self, task_id: int) -> RenderStatus:
        """Report the task in the status shape expected by the collection frontend.

        Never raises: every lookup problem is reported as ``failed``.
        """

        try:
            task = self._repository.get(task_id)
        except StorageError as exc:
            logger.error("status(): could not read task #%s: %s", task_id, exc)
            return RenderStatus(state=TaskState.FAILED.value)

        if task is None:
            logger.warning("status(): task #%s not found.", task_id)
            return RenderStatus(state=TaskState.FAILED.value)

        if task.state == TaskState.FAILED.value:
            logger.warning("status(): found task #%s, its state is FAILED.", task_id)
            return RenderStatus(state=TaskState.FAILED.value)

        if task.state == TaskState.PENDING.value:
            logger.info("status(): task #%s is PENDING: conversion not completed (yet?).", task_id)
            return RenderStatus(state=TaskState.PENDING.value)

        if task.state == TaskState.FINISHED.value:
            if not task.content_key:
                logger.error("status(): task #%s is FINISHED but has no content key.", task_id)
                return RenderStatus(state=TaskState.FAILED.value)
            try:
                stored = self._content_store.get(task.content_key)
            except ContentStoreError as exc:
                logger.error("Failed to load #%s from the content store: %s", task_id, exc)
                return RenderStatus(state=TaskState.FAILED.value)

            return RenderStatus(
                state=TaskState.FINISHED.value,
                url=self.download_url(task_id),
                content_type=stored.mime_type,
                content_length=stored.size,
                content_disposition=make_content_disposition("inline", task.disposition or stored.name),
            )

        logger.error("status(): found task #%s with unknown state=[%s]", task_id, task.state)
        return RenderStatus(state=TaskState.FAILED.value)

    def stream(self, task_id: int) -> StreamedArtifact:
        """Load the finished artifact with its download headers."""

        logger.debug("Going to stream #%s", task_id)
        content_key = self._repository.get_content_key(task_id)
        if not content_key:
            logger.error("stream(#%s): content key not found in the database.", task_id)
            raise UnavailableError(task_id)

        stored = self._content_store.get(content_key)
        return StreamedArtifact(
            data=stored.data,
            headers={
                "Content-Disposition": make_content_disposition("inline", stored.name),
                "Content-Type": stored.mime_type,
                "Content-Length": str(stored.size),
            },
        )
