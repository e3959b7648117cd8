from __future__ import annotations

from pathlib import Path
import shlex
import sys

import pytest

from bookrender.config import RenderSettings
from bookrender.conversion import invoker as invoker_module
from bookrender.conversion.invoker import (
    ConversionInvoker,
    ConversionToolError,
    UnsupportedFormatError,
    build_command,
)


_PYTHON = shlex.quote(sys.executable)


def _write_output_command(payload: str = "EPUB") -> str:
    script = f"import sys; open(sys.argv[2], 'wb').write(b'{payload}')"
    return f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}}"


def _settings(tmp_path: Path, commands: dict[str, str], **kwargs) -> RenderSettings:
    return RenderSettings(temp_dir=tmp_path / "scratch", convert_commands=commands, **kwargs)


def _scratch_files(tmp_path: Path) -> list[str]:
    scratch = tmp_path / "scratch"
    if not scratch.exists():
        return []
    return sorted(path.name for path in scratch.iterdir())


@pytest.mark.asyncio
async def test_unknown_format_never_spawns_a_process(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fail_exec(*args, **kwargs):
        raise AssertionError("subprocess must not be started")

    monkeypatch.setattr(invoker_module.asyncio, "create_subprocess_exec", _fail_exec)
    invoker = ConversionInvoker(_settings(tmp_path, {"epub": _write_output_command()}))

    with pytest.raises(UnsupportedFormatError) as exc_info:
        await invoker.convert("<p>x</p>", "UnknownFormat", {})

    assert exc_info.value.format_name == "unknownformat"
    assert _scratch_files(tmp_path) == []


@pytest.mark.asyncio
async def test_successful_conversion_returns_output_and_removes_input(tmp_path: Path) -> None:
    invoker = ConversionInvoker(_settings(tmp_path, {"epub": _write_output_command("EPUB")}))

    artifact = await invoker.convert("<p>Hello</p>", "EPUB", {})

    assert artifact.extension == "epub"
    assert artifact.path.suffix == ".epub"
    assert artifact.path.name.startswith("converted")
    assert artifact.read_bytes() == b"EPUB"
    assert _scratch_files(tmp_path) == [artifact.path.name]

    artifact.discard()
    assert not artifact.path.exists()
    artifact.discard()


@pytest.mark.asyncio
async def test_configured_extension_overrides_format_name(tmp_path: Path) -> None:
    settings = _settings(
        tmp_path,
        {"ebook": _write_output_command("MOBI")},
        file_extensions={"ebook": "mobi"},
    )

    artifact = await ConversionInvoker(settings).convert("<p>x</p>", "ebook", {})

    assert artifact.extension == "mobi"
    assert artifact.path.suffix == ".mobi"
    artifact.discard()


@pytest.mark.asyncio
async def test_input_file_contains_the_html(tmp_path: Path) -> None:
    script = "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])"
    command = f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"html": command}))

    artifact = await invoker.convert("<p>Привет</p>", "html", {})

    assert artifact.read_bytes().decode("utf-8") == "<p>Привет</p>"
    artifact.discard()


@pytest.mark.asyncio
async def test_non_zero_exit_raises_and_cleans_up(tmp_path: Path) -> None:
    script = "import sys; sys.stdout.write('partial'); sys.stderr.write('boom'); sys.exit(1)"
    command = f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"pdf": command}))

    with pytest.raises(ConversionToolError) as exc_info:
        await invoker.convert("<p>x</p>", "pdf", {})

    error = exc_info.value
    assert error.returncode == 1
    assert error.stdout == "partial"
    assert error.stderr == "boom"
    assert error.command[0] == sys.executable
    assert _scratch_files(tmp_path) == []


@pytest.mark.asyncio
async def test_missing_binary_is_a_tool_error(tmp_path: Path) -> None:
    command = str(tmp_path / "no-such-converter") + " {INPUT} {OUTPUT}"
    invoker = ConversionInvoker(_settings(tmp_path, {"pdf": command}))

    with pytest.raises(ConversionToolError) as exc_info:
        await invoker.convert("<p>x</p>", "pdf", {})

    assert exc_info.value.returncode is None
    assert _scratch_files(tmp_path) == []


@pytest.mark.asyncio
async def test_command_runs_in_scratch_directory(tmp_path: Path) -> None:
    script = "import os, sys; open(sys.argv[2], 'w').write(os.getcwd())"
    command = f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"txt": command}))
    cwd_before = Path.cwd()

    artifact = await invoker.convert("<p>x</p>", "txt", {})

    assert Path(artifact.read_bytes().decode("utf-8")).resolve() == (tmp_path / "scratch").resolve()
    assert Path.cwd() == cwd_before
    artifact.discard()


@pytest.mark.asyncio
async def test_metadata_values_reach_the_command_as_single_arguments(tmp_path: Path) -> None:
    script = "import sys; open(sys.argv[2], 'w').write(repr(sys.argv[3:]))"
    command = f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}} --title {{METADATA:title}} --lang {{METADATA:language}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"txt": command}))

    artifact = await invoker.convert("<p>x</p>", "txt", {"title": "Tom's $HOME; rm -rf"})

    assert artifact.read_bytes().decode("utf-8") == repr(["--title", "Tom's $HOME; rm -rf", "--lang", ""])
    artifact.discard()


def test_build_command_substitutes_all_placeholders() -> None:
    argv = build_command(
        "ebook-convert {INPUT} {OUTPUT} --authors {METADATA:creator} --title {METADATA:title} {METADATA:missing}",
        input_path=Path("/tmp/in.html"),
        output_path=Path("/tmp/out.epub"),
        metadata={"creator": "Jane Doe", "title": "A \"quoted\" title"},
    )

    assert argv == [
        "ebook-convert",
        "/tmp/in.html",
        "/tmp/out.epub",
        "--authors",
        "Jane Doe",
        "--title",
        'A "quoted" title',
        "",
    ]


def test_build_command_reports_malformed_templates() -> None:
    with pytest.raises(ValueError):
        build_command(
            "convert 'unterminated {INPUT}",
            input_path=Path("/tmp/in.html"),
            output_path=Path("/tmp/out.pdf"),
            metadata={},
        )


@pytest.mark.asyncio
async def test_scratch_directory_with_spaces(tmp_path: Path) -> None:
    settings = RenderSettings(
        temp_dir=tmp_path / "my scratch",
        convert_commands={"epub": _write_output_command("EPUB")},
    )

    artifact = await ConversionInvoker(settings).convert("<p>x</p>", "epub", {})

    assert artifact.path.parent == tmp_path / "my scratch"
    assert artifact.read_bytes() == b"EPUB"
    artifact.discard()


def test_build_command_keeps_paths_with_spaces_whole() -> None:
    argv = build_command(
        "pandoc {INPUT} -o {OUTPUT}",
        input_path=Path("/tmp/my scratch/in.html"),
        output_path=Path("/tmp/my scratch/out's.epub"),
        metadata={},
    )

    assert argv == ["pandoc", "/tmp/my scratch/in.html", "-o", "/tmp/my scratch/out's.epub"]


@pytest.mark.asyncio
async def test_soft_resource_limits_are_lifted_for_the_converter(tmp_path: Path) -> None:
    resource = pytest.importorskip("resource")
    soft, hard = resource.getrlimit(resource.RLIMIT_CPU)
    if hard != resource.RLIM_INFINITY:
        pytest.skip("CPU hard limit is already finite")

    script = "import resource, sys; open(sys.argv[2], 'w').write(repr(resource.getrlimit(resource.RLIMIT_CPU)))"
    command = f"{_PYTHON} -c \"{script}\" {{INPUT}} {{OUTPUT}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"txt": command}))

    resource.setrlimit(resource.RLIMIT_CPU, (3600, hard))
    try:
        artifact = await invoker.convert("<p>x</p>", "txt", {})
    finally:
        resource.setrlimit(resource.RLIMIT_CPU, (soft, hard))

    assert artifact.read_bytes().decode("utf-8") == repr((hard, hard))
    artifact.discard()


@pytest.mark.asyncio
async def test_unusable_argument_is_a_tool_error(tmp_path: Path) -> None:
    command = f"{_PYTHON} -c pass {{INPUT}} {{OUTPUT}} {{METADATA:title}}"
    invoker = ConversionInvoker(_settings(tmp_path, {"txt": command}))

    with pytest.raises(ConversionToolError) as exc_info:
        await invoker.convert("<p>x</p>", "txt", {"title": "Book\x00One"})

    assert exc_info.value.returncode is None
    assert _scratch_files(tmp_path) == []
