from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .config import Settings
from .errors import ConversionError
from .storage import write_json


logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_formatted"
DEFAULT_OUTPUT_EXTENSION = "docx"


@dataclass(frozen=True)
class ConvertOptions:
    input_file: str
    output_file: str | None = None
    source_dir: str | None = None
    source_name: str | None = None
    reference_doc: str | None = None
    metadata_file: str | None = None
    use_crossref: bool = True


def write_metadata_file(path: Path, metadata: Mapping[str, Any]) -> Path:
    # pandoc reads JSON metadata files through its YAML parser.
    write_json(path, dict(metadata))
    return path


def _resolve_executable(raw: str) -> str | None:
    candidate = Path(raw)
    if candidate.is_absolute() or len(candidate.parts) > 1:
        return str(candidate) if candidate.exists() else None
    return shutil.which(raw)


def _make_unique_path(directory: Path, stem: str, extension: str) -> Path:
    counter = 0
    while True:
        suffix = OUTPUT_SUFFIX if counter == 0 else f"{OUTPUT_SUFFIX}_{counter}"
        candidate = directory / f"{stem}{suffix}.{extension}"
        if not candidate.exists():
            return candidate
        counter += 1


def resolve_output_path(options: ConvertOptions) -> Path:
    input_path = Path(options.input_file)
    default_dir = input_path.parent

    target_dir = default_dir
    if options.source_dir and Path(options.source_dir).exists():
        target_dir = Path(options.source_dir)

    base_stem = Path(options.source_name).stem if options.source_name else input_path.stem
    base_stem = base_stem or "document"

    if options.output_file:
        provided = Path(options.output_file)
        stem = provided.stem or base_stem
        extension = provided.suffix.lstrip(".") or DEFAULT_OUTPUT_EXTENSION
        directory = provided.parent if str(provided.parent) not in ("", ".") else target_dir
        return _make_unique_path(directory, stem, extension)

    return _make_unique_path(target_dir, base_stem, DEFAULT_OUTPUT_EXTENSION)


def build_pandoc_command(settings: Settings, options: ConvertOptions, output_path: Path) -> list[str]:
    pandoc = _resolve_executable(settings.pandoc_path)
    if pandoc is None:
        raise ConversionError(f"Pandoc executable not found: {settings.pandoc_path}")

    command = [pandoc, str(Path(options.input_file).resolve()), "-o", str(output_path.resolve())]
    if options.reference_doc:
        command.extend(["--reference-doc", str(Path(options.reference_doc).resolve())])
    if options.metadata_file:
        command.extend(["--metadata-file", str(Path(options.metadata_file).resolve())])
    if options.use_crossref:
        crossref = _resolve_executable(settings.pandoc_crossref_path)
        if crossref is not None:
            command.extend(["-F", crossref])
        else:
            logger.warning("pandoc-crossref not found at %s; converting without it.", settings.pandoc_crossref_path)
    return command


def convert_markdown(settings: Settings, options: ConvertOptions) -> str:
    input_path = Path(options.input_file)
    if not input_path.exists():
        raise ConversionError(f"Input file not found: {options.input_file}")

    output_path = resolve_output_path(options)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    command = build_pandoc_command(settings, options, output_path)

    logger.info("Running pandoc for %s -> %s", input_path.name, output_path)
    try:
        result = subprocess.run(
            command,
            cwd=str(input_path.resolve().parent),
            capture_output=True,
            text=True,
            timeout=settings.pandoc_timeout_seconds,
        )
    except subprocess.TimeoutExpired as exc:
        raise ConversionError(f"Pandoc timed out after {settings.pandoc_timeout_seconds}s.") from exc
    except OSError as exc:
        raise ConversionError(f"Failed to execute pandoc: {exc}") from exc

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise ConversionError(f"Pandoc conversion failed: {stderr}", stderr=stderr)
    return str(output_path)


def crossref_available(settings: Settings) -> bool:
    return _resolve_executable(settings.pandoc_crossref_path) is not None


def pandoc_version(settings: Settings) -> str:
    pandoc = _resolve_executable(settings.pandoc_path)
    if pandoc is None:
        raise ConversionError("Pandoc not installed.")
    try:
        result = subprocess.run(
            [pandoc, "--version"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ConversionError(f"Failed to get pandoc version: {exc}") from exc
    if result.returncode != 0:
        raise ConversionError("Failed to get pandoc version.")
    lines = result.stdout.splitlines()
    return lines[0] if lines else "Unknown"
