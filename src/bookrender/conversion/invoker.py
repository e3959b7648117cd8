"""External conversion command runner (pandoc, ebook-convert, ...)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import re
import shlex
import sys
import tempfile
from typing import Mapping

if sys.platform != "win32":
    import resource

from bookrender.config import RenderSettings


logger = logging.getLogger(__name__)

INPUT_PLACEHOLDER = "{INPUT}"
OUTPUT_PLACEHOLDER = "{OUTPUT}"
_METADATA_PLACEHOLDER_RE = re.compile(r"\{METADATA:([^}]+)\}")


@dataclass(slots=True)
class ConversionFailure(Exception):
    """Terminal failure to convert a document into the requested format."""

    format_name: str

    def __str__(self) -> str:
        return f"Conversion into {self.format_name!r} failed"


@dataclass(slots=True)
class UnsupportedFormatError(ConversionFailure):
    def __str__(self) -> str:
        return f"No conversion command configured for {self.format_name!r}"


@dataclass(slots=True)
class ConversionToolError(ConversionFailure):
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    command: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        if self.returncode is None:
            return f"Conversion command for {self.format_name!r} could not run: {self.stderr}"
        return f"Conversion command for {self.format_name!r} exited with {self.returncode}"


@dataclass(slots=True)
class ConvertedArtifact:
    """Temporary output file of a successful conversion; the caller discards it."""

    path: Path
    extension: str

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def discard(self) -> None:
        self.path.unlink(missing_ok=True)


def _new_temp_path(directory: Path, prefix: str, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=str(directory))
    os.close(fd)
    return Path(name)


def build_command(
    template: str,
    *,
    input_path: Path,
    output_path: Path,
    metadata: Mapping[str, str],
) -> list[str]:
    """Expand a command template into an argv list.

    Paths and ``{METADATA:key}`` values (empty when the key is unknown) are
    shell-quoted, so every substitution stays one argument after splitting.
    """

    command = template.replace(INPUT_PLACEHOLDER, shlex.quote(str(input_path)))
    command = command.replace(OUTPUT_PLACEHOLDER, shlex.quote(str(output_path)))
    command = _METADATA_PLACEHOLDER_RE.sub(
        lambda match: shlex.quote(metadata.get(match.group(1), "")),
        command,
    )
    return shlex.split(command)


def _lift_resource_limits() -> None:
    """Raise the CPU, file size and address space soft limits to the hard ones."""

    for limit in (resource.RLIMIT_CPU, resource.RLIMIT_FSIZE, resource.RLIMIT_AS):
        _soft, hard = resource.getrlimit(limit)
        resource.setrlimit(limit, (hard, hard))


async def _run_command(argv: list[str], *, cwd: Path) -> tuple[int | None, str, str]:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            preexec_fn=_lift_resource_limits if sys.platform != "win32" else None,
        )
    except (OSError, ValueError) as exc:
        return None, "", str(exc)

    # Runs without a timeout.
    stdout_bytes, stderr_bytes = await proc.communicate()
    stdout_text = stdout_bytes.decode("utf-8", errors="replace")
    stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
    return proc.returncode, stdout_text, stderr_text


class ConversionInvoker:
    """Convert assembled HTML into a target format by running a configured command."""

    def __init__(self, settings: RenderSettings) -> None:
        self._settings = settings

    def scratch_dir(self) -> Path:
        directory = self._settings.temp_dir or Path(tempfile.gettempdir())
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    async def convert(
        self,
        html: str,
        format_name: str,
        metadata: Mapping[str, str],
    ) -> ConvertedArtifact:
        normalized = format_name.lower()
        template = self._settings.command_for(normalized)
        if template is None:
            logger.error("No conversion command for %s", normalized)
            raise UnsupportedFormatError(normalized)

        extension = self._settings.extension_for(normalized)
        scratch = self.scratch_dir()
        input_path = _new_temp_path(scratch, "toconvert", ".html")
        output_path = _new_temp_path(scratch, "converted", f".{extension}")

        succeeded = False
        try:
            input_path.write_text(html, encoding="utf-8")
            try:
                argv = build_command(
                    template,
                    input_path=input_path,
                    output_path=output_path,
                    metadata=metadata,
                )
            except ValueError as exc:
                raise ConversionToolError(normalized, stderr=f"Malformed command template: {exc}") from exc
            if not argv:
                raise ConversionToolError(normalized, stderr="Conversion command is empty")

            logger.debug(
                "Attempting to convert HTML (%s bytes omitted) into %s",
                len(html),
                normalized,
            )
            returncode, stdout_text, stderr_text = await _run_command(argv, cwd=scratch)
            if returncode != 0:
                logger.error(
                    "Conversion command has failed: command=%s, exit=%s, output=[%s], stderr=[%s]",
                    argv,
                    returncode,
                    stdout_text,
                    stderr_text,
                )
                raise ConversionToolError(
                    normalized,
                    returncode=returncode,
                    stdout=stdout_text,
                    stderr=stderr_text,
                    command=tuple(argv),
                )
            succeeded = True
        finally:
            input_path.unlink(missing_ok=True)
            if not succeeded:
                output_path.unlink(missing_ok=True)

        logger.debug("Generated successfully: %s contains %s bytes", output_path, output_path.stat().st_size)
        return ConvertedArtifact(path=output_path, extension=extension)
