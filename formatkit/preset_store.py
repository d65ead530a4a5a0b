from __future__ import annotations

import json
import logging
import secrets
import string
import time
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .config import MAX_HISTORY_LIMIT, Settings
from .errors import PersistenceError
from .storage import delete_runtime_value, read_runtime_value, set_runtime_value, write_json
from .template_schema import builtin_presets, get_builtin_preset, is_builtin_preset_id


logger = logging.getLogger(__name__)

RECENT_CONFIGS_KEY = "template.recent_configs"
CUSTOM_PRESETS_KEY = "template.custom_presets"
APP_SETTINGS_KEY = "app.settings"
CONVERSIONS_KEY = "template.conversions"

CONVERSION_STATUSES = ("success", "failed")
DEFAULT_TEMPLATE_NAME = "Default"

EXPORT_FILE_NAME = "formatkit-presets.json"

_ID_ALPHABET = string.ascii_lowercase + string.digits
_IMMUTABLE_PRESET_FIELDS = {"id", "isBuiltin"}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _db_path(settings: Settings) -> Path:
    return Path(settings.runtime_db_file)


def _new_preset_id() -> str:
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"custom-{millis}-{suffix}"


def _unique_preset_id(taken: set[str]) -> str:
    preset_id = _new_preset_id()
    while preset_id in taken or is_builtin_preset_id(preset_id):
        preset_id = _new_preset_id()
    taken.add(preset_id)
    return preset_id


def _read_collection(settings: Settings, key: str, label: str) -> list[dict[str, Any]]:
    result = read_runtime_value(_db_path(settings), key)
    if not result.ok:
        logger.warning("Failed to read %s; treating as empty: %s", label, result.error)
        return []
    if result.value is None:
        return []
    if not isinstance(result.value, list):
        logger.warning("Stored %s is not a list; treating as empty.", label)
        return []
    return [item for item in result.value if isinstance(item, dict)]


def _coerce_history_limit(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, min(MAX_HISTORY_LIMIT, parsed))


# History


def list_history(settings: Settings) -> list[dict[str, Any]]:
    return _read_collection(settings, RECENT_CONFIGS_KEY, "configuration history")


def _write_log(settings: Settings, key: str, entries: list[dict[str, Any]], label: str) -> bool:
    try:
        set_runtime_value(_db_path(settings), key, entries)
    except PersistenceError as exc:
        logger.warning("Failed to save %s: %s", label, exc)
        return False
    return True


def _clear_log(settings: Settings, key: str, label: str) -> None:
    try:
        delete_runtime_value(_db_path(settings), key)
    except PersistenceError as exc:
        logger.warning("Failed to clear %s: %s", label, exc)


def record_history(settings: Settings, config: Mapping[str, Any], *, limit: int | None = None) -> None:
    cap = _coerce_history_limit(settings.history_limit if limit is None else limit, settings.history_limit)
    entries = list_history(settings)
    entries.insert(0, {"config": deepcopy(dict(config)), "timestamp": _utc_now_iso()})
    _write_log(settings, RECENT_CONFIGS_KEY, entries[:cap], "configuration history")


def prune_history(settings: Settings, limit: int) -> int:
    cap = _coerce_history_limit(limit, settings.history_limit)
    entries = list_history(settings)
    if len(entries) <= cap:
        return 0
    if not _write_log(settings, RECENT_CONFIGS_KEY, entries[:cap], "configuration history"):
        return 0
    return len(entries) - cap


def clear_history(settings: Settings) -> None:
    _clear_log(settings, RECENT_CONFIGS_KEY, "configuration history")


# Conversion log


def list_conversions(settings: Settings) -> list[dict[str, Any]]:
    return _read_collection(settings, CONVERSIONS_KEY, "conversion log")


def _template_name(settings: Settings, preset_id: str | None) -> str:
    if not preset_id:
        return DEFAULT_TEMPLATE_NAME
    preset = get_preset(settings, preset_id)
    if preset is None:
        return preset_id
    return str(preset.get("name") or preset_id)


def record_conversion(
    settings: Settings,
    *,
    file_name: str,
    status: str,
    preset_id: str | None = None,
    output_path: str | None = None,
    error_message: str | None = None,
) -> dict[str, Any]:
    """Prepend one conversion outcome and trim the log to the app history limit."""
    if status not in CONVERSION_STATUSES:
        raise ValueError(f"Conversion status must be one of: {', '.join(CONVERSION_STATUSES)}.")

    record: dict[str, Any] = {
        "id": uuid.uuid4().hex,
        "date": _utc_now_iso(),
        "fileName": file_name,
        "templateName": _template_name(settings, preset_id),
        "status": status,
    }
    if output_path:
        record["outputPath"] = output_path
    if error_message:
        record["errorMessage"] = error_message

    cap = get_app_settings(settings)["historyLimit"]
    entries = list_conversions(settings)
    entries.insert(0, record)
    _write_log(settings, CONVERSIONS_KEY, entries[:cap], "conversion log")
    return deepcopy(record)


def prune_conversions(settings: Settings, limit: int) -> int:
    cap = _coerce_history_limit(limit, settings.history_limit)
    entries = list_conversions(settings)
    if len(entries) <= cap:
        return 0
    if not _write_log(settings, CONVERSIONS_KEY, entries[:cap], "conversion log"):
        return 0
    return len(entries) - cap


def clear_conversions(settings: Settings) -> None:
    _clear_log(settings, CONVERSIONS_KEY, "conversion log")


# Custom presets


def list_presets(settings: Settings) -> list[dict[str, Any]]:
    return _read_collection(settings, CUSTOM_PRESETS_KEY, "custom presets")


def list_all_presets(settings: Settings) -> list[dict[str, Any]]:
    return builtin_presets() + list_presets(settings)


def get_preset(settings: Settings, preset_id: str) -> dict[str, Any] | None:
    builtin = get_builtin_preset(preset_id)
    if builtin is not None:
        return builtin
    for preset in list_presets(settings):
        if preset.get("id") == preset_id:
            return preset
    return None


def _write_presets(settings: Settings, presets: list[dict[str, Any]]) -> None:
    set_runtime_value(_db_path(settings), CUSTOM_PRESETS_KEY, presets)


def _new_preset_record(raw: Mapping[str, Any], taken: set[str]) -> dict[str, Any]:
    description = raw.get("description")
    return {
        "id": _unique_preset_id(taken),
        "name": str(raw["name"]),
        "description": str(description) if description is not None else "",
        "config": deepcopy(dict(raw["config"])),
        "isBuiltin": False,
        "createdAt": _utc_now_iso(),
    }


def create_preset(settings: Settings, preset: Mapping[str, Any]) -> dict[str, Any]:
    name = preset.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Preset name must be a non-empty string.")
    if not isinstance(preset.get("config"), Mapping):
        raise ValueError("Preset config must be an object.")

    presets = list_presets(settings)
    taken = {str(item.get("id")) for item in presets}
    record = _new_preset_record(preset, taken)
    presets.append(record)
    _write_presets(settings, presets)
    logger.info("Created preset %s (%s).", record["id"], record["name"])
    return deepcopy(record)


def _find_mutable_preset(presets: list[dict[str, Any]], preset_id: str, action: str) -> int | None:
    if is_builtin_preset_id(preset_id):
        logger.warning("Refusing to %s built-in preset: %s", action, preset_id)
        return None
    for index, preset in enumerate(presets):
        if preset.get("id") != preset_id:
            continue
        if preset.get("isBuiltin"):
            logger.warning("Refusing to %s built-in preset: %s", action, preset_id)
            return None
        return index
    logger.warning("Preset not found: %s", preset_id)
    return None


def update_preset(settings: Settings, preset_id: str, fields: Mapping[str, Any]) -> bool:
    if "config" in fields and not isinstance(fields["config"], Mapping):
        raise ValueError("Preset config must be an object.")

    presets = list_presets(settings)
    index = _find_mutable_preset(presets, preset_id, "update")
    if index is None:
        return False

    updated = dict(presets[index])
    for key, value in fields.items():
        if key in _IMMUTABLE_PRESET_FIELDS:
            continue
        updated[key] = deepcopy(value)
    updated["id"] = preset_id
    updated["isBuiltin"] = False
    presets[index] = updated
    _write_presets(settings, presets)
    return True


def delete_preset(settings: Settings, preset_id: str) -> bool:
    presets = list_presets(settings)
    index = _find_mutable_preset(presets, preset_id, "delete")
    if index is None:
        return False
    del presets[index]
    _write_presets(settings, presets)
    return True


def clear_presets(settings: Settings) -> None:
    delete_runtime_value(_db_path(settings), CUSTOM_PRESETS_KEY)


# Import / export


def export_presets(settings: Settings) -> str:
    return json.dumps(list_presets(settings), indent=2, ensure_ascii=False)


def export_presets_to_file(settings: Settings, path: Path | None = None) -> Path:
    if path is None:
        configured = get_app_settings(settings).get("exportPath")
        path = Path(configured) if configured else Path(settings.export_dir) / EXPORT_FILE_NAME
    write_json(path, list_presets(settings))
    return path


def import_presets(settings: Settings, text: str) -> dict[str, Any]:
    result: dict[str, Any] = {"success": 0, "failed": 0, "errors": []}

    try:
        imported = json.loads(text)
    except (ValueError, TypeError, RecursionError) as exc:
        result["errors"].append(f"Failed to parse import payload: {exc}")
        return result

    if not isinstance(imported, list):
        result["errors"].append("Import payload must be a JSON array of presets.")
        return result

    existing = list_presets(settings)
    taken = {str(item.get("id")) for item in existing}
    added: list[dict[str, Any]] = []
    for position, entry in enumerate(imported, start=1):
        if not isinstance(entry, dict):
            result["failed"] += 1
            result["errors"].append(f"Entry {position} is not an object.")
            continue
        name = entry.get("name")
        has_name = isinstance(name, str) and bool(name.strip())
        if not has_name or not isinstance(entry.get("config"), dict):
            result["failed"] += 1
            label = name if has_name else "unnamed"
            result["errors"].append(f"Entry {position} ({label}) is missing a name or config.")
            continue
        added.append(_new_preset_record(entry, taken))
        result["success"] += 1

    if not added:
        return result

    try:
        _write_presets(settings, existing + added)
    except PersistenceError as exc:
        logger.warning("Failed to save imported presets: %s", exc)
        result["failed"] += result["success"]
        result["success"] = 0
        result["errors"].append(f"Failed to save imported presets: {exc}")
        return result

    logger.info("Imported %s preset(s); %s failed.", result["success"], result["failed"])
    return result


# Application settings


def get_app_settings(settings: Settings) -> dict[str, Any]:
    values: dict[str, Any] = {
        "historyLimit": settings.history_limit,
        "exportPath": None,
    }
    result = read_runtime_value(_db_path(settings), APP_SETTINGS_KEY)
    if not result.ok:
        logger.warning("Failed to read application settings; using defaults: %s", result.error)
        return values
    stored = result.value
    if not isinstance(stored, dict):
        return values
    if "historyLimit" in stored:
        values["historyLimit"] = _coerce_history_limit(stored["historyLimit"], settings.history_limit)
    export_path = stored.get("exportPath")
    if isinstance(export_path, str) and export_path.strip():
        values["exportPath"] = export_path.strip()
    return values


def update_app_settings(settings: Settings, updates: Mapping[str, Any]) -> dict[str, Any]:
    values = get_app_settings(settings)
    previous_limit = values["historyLimit"]
    if "historyLimit" in updates:
        values["historyLimit"] = _coerce_history_limit(updates["historyLimit"], previous_limit)
    if "exportPath" in updates:
        export_path = updates["exportPath"]
        values["exportPath"] = export_path.strip() if isinstance(export_path, str) and export_path.strip() else None

    set_runtime_value(_db_path(settings), APP_SETTINGS_KEY, values)
    if values["historyLimit"] < previous_limit:
        prune_conversions(settings, values["historyLimit"])
    return values
