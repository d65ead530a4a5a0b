from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Any

from flask import Flask, Response, request

from .config import Settings
from .converter import ConvertOptions, convert_markdown, crossref_available, pandoc_version, write_metadata_file
from .errors import ConversionError, PersistenceError
from .metadata_compiler import build_metadata_for, resolve_preset_config, validate_config
from .preset_store import (
    clear_conversions,
    clear_history,
    create_preset,
    delete_preset,
    export_presets,
    get_app_settings,
    get_preset,
    import_presets,
    list_all_presets,
    list_conversions,
    list_history,
    list_presets,
    record_conversion,
    record_history,
    update_app_settings,
    update_preset,
)
from .template_schema import DEFAULT_CONFIG, option_catalog


logger = logging.getLogger(__name__)

app = Flask(__name__)
settings = Settings.from_env()
settings.ensure_state_paths()


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _resolve_merge_inputs(body: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any] | None, str | None]:
    config = body.get("config")
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ValueError("config must be a JSON object.")

    preset_id = body.get("preset_id")
    if preset_id is None or preset_id == "":
        return config, None, None
    if not isinstance(preset_id, str):
        raise ValueError("preset_id must be a string.")
    preset_config = resolve_preset_config(preset_id, list_presets(settings))
    if preset_config is None:
        raise LookupError(f"Unknown preset_id: {preset_id}")
    return config, preset_config, preset_id


@app.get("/health")
def health() -> tuple[dict, int]:
    try:
        version = pandoc_version(settings)
    except ConversionError as exc:
        logger.warning("Pandoc unavailable: %s", exc)
        version = None
    return {
        "status": "ok",
        "pandoc": {
            "installed": version is not None,
            "version": version,
            "crossref_installed": crossref_available(settings),
        },
    }, 200


@app.get("/options")
def options_get() -> tuple[dict, int]:
    payload = option_catalog()
    payload["status"] = "ok"
    return payload, 200


@app.get("/presets")
def presets_get() -> tuple[dict, int]:
    return {"status": "ok", "presets": list_all_presets(settings)}, 200


@app.post("/presets")
def presets_post() -> tuple[dict, int]:
    body = _json_body()
    config = body.get("config")
    if isinstance(config, dict):
        validation = validate_config(config)
        if not validation["valid"]:
            return {"status": "error", "validation": validation}, 400
    try:
        preset = create_preset(settings, body)
    except ValueError as exc:
        return {"status": "error", "error": str(exc)}, 400
    except PersistenceError as exc:
        logger.exception("Preset creation failed.")
        return {"status": "error", "error": str(exc)}, 500
    return {"status": "ok", "preset": preset}, 201


@app.get("/presets/export")
def presets_export_get() -> Response:
    return Response(
        export_presets(settings),
        mimetype="application/json",
        headers={"Content-Disposition": "attachment; filename=formatkit-presets.json"},
    )


@app.post("/presets/import")
def presets_import_post() -> tuple[dict, int]:
    body = request.get_data(as_text=True)
    result = import_presets(settings, body)
    status = "ok" if result["success"] or not result["errors"] else "error"
    return {"status": status, "result": result}, 200 if status == "ok" else 400


@app.get("/presets/<string:preset_id>")
def preset_get(preset_id: str) -> tuple[dict, int]:
    preset = get_preset(settings, preset_id)
    if preset is None:
        return {"status": "error", "error": "Unknown preset_id."}, 404
    return {"status": "ok", "preset": preset}, 200


@app.put("/presets/<string:preset_id>")
def preset_put(preset_id: str) -> tuple[dict, int]:
    body = _json_body()
    if not body:
        return {"status": "error", "error": "Provide at least one field to update."}, 400
    config = body.get("config")
    if isinstance(config, dict):
        validation = validate_config(config)
        if not validation["valid"]:
            return {"status": "error", "validation": validation}, 400
    try:
        updated = update_preset(settings, preset_id, body)
    except ValueError as exc:
        return {"status": "error", "error": str(exc)}, 400
    except PersistenceError as exc:
        logger.exception("Preset update failed.")
        return {"status": "error", "error": str(exc)}, 500
    if not updated:
        return {"status": "error", "error": "Preset not found or built-in."}, 404
    return {"status": "ok", "preset": get_preset(settings, preset_id)}, 200


@app.delete("/presets/<string:preset_id>")
def preset_delete(preset_id: str) -> tuple[dict, int]:
    try:
        deleted = delete_preset(settings, preset_id)
    except PersistenceError as exc:
        logger.exception("Preset deletion failed.")
        return {"status": "error", "error": str(exc)}, 500
    if not deleted:
        return {"status": "error", "error": "Preset not found or built-in."}, 404
    return {"status": "ok"}, 200


@app.get("/history")
def history_get() -> tuple[dict, int]:
    return {"status": "ok", "history": list_history(settings)}, 200


@app.delete("/history")
def history_delete() -> tuple[dict, int]:
    clear_history(settings)
    return {"status": "ok"}, 200


@app.get("/settings")
def settings_get() -> tuple[dict, int]:
    return {"status": "ok", "settings": get_app_settings(settings)}, 200


@app.put("/settings")
def settings_put() -> tuple[dict, int]:
    body = _json_body()
    try:
        values = update_app_settings(settings, body)
    except PersistenceError as exc:
        logger.exception("Settings update failed.")
        return {"status": "error", "error": str(exc)}, 500
    return {"status": "ok", "settings": values}, 200


@app.post("/config/validate")
def config_validate_post() -> tuple[dict, int]:
    body = _json_body()
    config = body.get("config", body)
    if not isinstance(config, dict):
        return {"status": "error", "error": "config must be a JSON object."}, 400
    return {"status": "ok", "validation": validate_config(config)}, 200


@app.post("/config/compile")
def config_compile_post() -> tuple[dict, int]:
    body = _json_body()
    try:
        config, preset_config, preset_id = _resolve_merge_inputs(body)
    except ValueError as exc:
        return {"status": "error", "error": str(exc)}, 400
    except LookupError as exc:
        return {"status": "error", "error": str(exc)}, 404

    validation = validate_config(config)
    if not validation["valid"]:
        return {"status": "error", "validation": validation}, 400

    if body.get("record_history"):
        record_history(settings, config)

    return {
        "status": "ok",
        "preset_id": preset_id,
        "metadata": build_metadata_for(config, preset_config, DEFAULT_CONFIG),
    }, 200


@app.post("/convert")
def convert_post() -> tuple[dict, int]:
    body = _json_body()
    input_file = body.get("input_file")
    if not isinstance(input_file, str) or not input_file.strip():
        return {"status": "error", "error": "input_file is required."}, 400
    try:
        config, preset_config, preset_id = _resolve_merge_inputs(body)
    except ValueError as exc:
        return {"status": "error", "error": str(exc)}, 400
    except LookupError as exc:
        return {"status": "error", "error": str(exc)}, 404

    validation = validate_config(config)
    if not validation["valid"]:
        return {"status": "error", "validation": validation}, 400

    metadata = build_metadata_for(config, preset_config, DEFAULT_CONFIG)
    use_crossref = body.get("use_crossref")
    source_name = body.get("source_name") or None
    if source_name is not None and not isinstance(source_name, str):
        return {"status": "error", "error": "source_name must be a string."}, 400
    file_name = Path(source_name or input_file).name
    with tempfile.TemporaryDirectory() as td:
        metadata_path = write_metadata_file(Path(td) / "metadata.json", metadata)
        options = ConvertOptions(
            input_file=input_file,
            output_file=body.get("output_file") or None,
            source_dir=body.get("source_dir") or None,
            source_name=source_name,
            reference_doc=body.get("reference_doc") or None,
            metadata_file=str(metadata_path),
            use_crossref=settings.use_crossref if use_crossref is None else bool(use_crossref),
        )
        try:
            output_path = convert_markdown(settings, options)
        except ConversionError as exc:
            logger.exception("Conversion failed for %s.", input_file)
            record_conversion(
                settings,
                file_name=file_name,
                status="failed",
                preset_id=preset_id,
                error_message=str(exc),
            )
            return {"status": "error", "error": str(exc)}, 500

    record_history(settings, config)
    conversion = record_conversion(
        settings,
        file_name=file_name,
        status="success",
        preset_id=preset_id,
        output_path=output_path,
    )
    return {"status": "ok", "preset_id": preset_id, "output_path": output_path, "conversion": conversion}, 200


@app.get("/conversions")
def conversions_get() -> tuple[dict, int]:
    return {"status": "ok", "conversions": list_conversions(settings)}, 200


@app.delete("/conversions")
def conversions_delete() -> tuple[dict, int]:
    clear_conversions(settings)
    return {"status": "ok"}, 200


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    app.run(host="127.0.0.1", port=settings.api_port)


if __name__ == "__main__":
    main()
