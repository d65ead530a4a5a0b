from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import Settings
from .converter import ConvertOptions, convert_markdown, write_metadata_file
from .errors import ConversionError, PersistenceError
from .metadata_compiler import build_metadata_for, resolve_preset_config, validate_config
from .preset_store import (
    clear_conversions,
    clear_history,
    export_presets,
    export_presets_to_file,
    import_presets,
    list_all_presets,
    list_conversions,
    list_history,
    list_presets,
    record_conversion,
    record_history,
)
from .template_schema import ADVANCED_FIELDS, BASIC_METADATA_FIELDS, DEFAULT_CONFIG


logger = logging.getLogger(__name__)


def _parse_assignment(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    key = key.strip()
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got '{raw}'.")
    if key == "author" and "," in value:
        return key, [part.strip() for part in value.split(",") if part.strip()]
    return key, value.strip()


def _user_config(args: argparse.Namespace) -> dict[str, Any]:
    config: dict[str, Any] = {}
    if args.config_file:
        loaded = json.loads(Path(args.config_file).read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError("Config file must contain a JSON object.")
        config.update(loaded)
    for key, value in args.set or []:
        config[key] = value
    return config


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    fields = ", ".join(BASIC_METADATA_FIELDS + tuple(ADVANCED_FIELDS))
    parser.add_argument("--config-file", help="JSON file holding a partial configuration.")
    parser.add_argument(
        "-s",
        "--set",
        action="append",
        type=_parse_assignment,
        metavar="KEY=VALUE",
        help=f"Set one configuration field ({fields}).",
    )
    parser.add_argument("-p", "--preset", default=None, help="Preset id to merge under the user configuration.")


def _merged_metadata(settings: Settings, args: argparse.Namespace) -> dict[str, Any] | None:
    config = _user_config(args)
    validation = validate_config(config)
    if not validation["valid"]:
        for error in validation["errors"]:
            print(error, file=sys.stderr)
        return None
    preset_config = resolve_preset_config(args.preset, list_presets(settings))
    if args.preset and preset_config is None:
        print(f"Unknown preset: {args.preset}", file=sys.stderr)
        return None
    if getattr(args, "remember", False):
        record_history(settings, config)
    return build_metadata_for(config, preset_config, DEFAULT_CONFIG)


def _cmd_compile(settings: Settings, args: argparse.Namespace) -> int:
    metadata = _merged_metadata(settings, args)
    if metadata is None:
        return 1
    if args.output:
        write_metadata_file(Path(args.output), metadata)
        print(args.output)
    else:
        _print_json(metadata)
    return 0


def _cmd_validate(settings: Settings, args: argparse.Namespace) -> int:
    validation = validate_config(_user_config(args))
    _print_json(validation)
    return 0 if validation["valid"] else 1


def _cmd_convert(settings: Settings, args: argparse.Namespace) -> int:
    metadata = _merged_metadata(settings, args)
    if metadata is None:
        return 1
    metadata_path = write_metadata_file(settings.state_dir / "last_metadata.json", metadata)
    options = ConvertOptions(
        input_file=args.input,
        output_file=args.output,
        reference_doc=args.reference_doc,
        metadata_file=str(metadata_path),
        use_crossref=settings.use_crossref and not args.no_crossref,
    )
    file_name = Path(args.input).name
    try:
        output_path = convert_markdown(settings, options)
    except ConversionError as exc:
        logger.error("%s", exc)
        record_conversion(settings, file_name=file_name, status="failed", preset_id=args.preset, error_message=str(exc))
        return 1
    record_conversion(settings, file_name=file_name, status="success", preset_id=args.preset, output_path=output_path)
    print(output_path)
    return 0


def _cmd_presets(settings: Settings, args: argparse.Namespace) -> int:
    if args.presets_command == "list":
        for preset in list_all_presets(settings):
            marker = "*" if preset.get("isBuiltin") else " "
            print(f"{marker} {preset['id']}\t{preset.get('name', '')}")
        return 0
    if args.presets_command == "export":
        if args.output == "-":
            print(export_presets(settings))
        else:
            print(export_presets_to_file(settings, Path(args.output) if args.output else None))
        return 0
    if args.presets_command == "import":
        text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
        result = import_presets(settings, text)
        _print_json(result)
        return 0 if result["failed"] == 0 and not result["errors"] else 1
    return 2


def _cmd_history(settings: Settings, args: argparse.Namespace) -> int:
    if args.history_command == "clear":
        clear_history(settings)
    elif args.history_command == "conversions":
        _print_json(list_conversions(settings))
    elif args.history_command == "clear-conversions":
        clear_conversions(settings)
    else:
        _print_json(list_history(settings))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="formatkit", description="Compile document formatting presets for pandoc.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Print or write the compiled pandoc metadata.")
    _add_config_arguments(compile_parser)
    compile_parser.add_argument("-o", "--output", help="Write the metadata to this file instead of stdout.")
    compile_parser.add_argument("--remember", action="store_true", help="Record the configuration in history.")

    validate_parser = subparsers.add_parser("validate", help="Validate a configuration.")
    _add_config_arguments(validate_parser)

    convert_parser = subparsers.add_parser("convert", help="Convert a Markdown file with pandoc.")
    convert_parser.add_argument("input", help="Markdown input file.")
    _add_config_arguments(convert_parser)
    convert_parser.add_argument("-o", "--output", default=None, help="Output file (made unique if it exists).")
    convert_parser.add_argument("--reference-doc", default=None, help="DOCX reference document.")
    convert_parser.add_argument("--no-crossref", action="store_true", help="Skip the pandoc-crossref filter.")
    convert_parser.add_argument("--remember", action="store_true", help="Record the configuration in history.")

    presets_parser = subparsers.add_parser("presets", help="Manage presets.")
    presets_sub = presets_parser.add_subparsers(dest="presets_command", required=True)
    presets_sub.add_parser("list", help="List built-in and custom presets.")
    export_parser = presets_sub.add_parser("export", help="Export custom presets.")
    export_parser.add_argument("-o", "--output", default=None, help="Target file, or '-' for stdout.")
    import_parser = presets_sub.add_parser("import", help="Import presets from a JSON file.")
    import_parser.add_argument("file", help="JSON file, or '-' for stdin.")

    history_parser = subparsers.add_parser("history", help="Show or clear configuration history and the conversion log.")
    history_parser.add_argument(
        "history_command",
        nargs="?",
        choices=["list", "clear", "conversions", "clear-conversions"],
        default="list",
    )

    return parser


_COMMANDS = {
    "compile": _cmd_compile,
    "validate": _cmd_validate,
    "convert": _cmd_convert,
    "presets": _cmd_presets,
    "history": _cmd_history,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    settings.ensure_state_paths()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        return _COMMANDS[args.command](settings, args)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except PersistenceError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
