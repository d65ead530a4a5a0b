from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import PersistenceError


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    value: Any = None
    error: str | None = None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect_runtime_db(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS runtime_kv (
            key TEXT PRIMARY KEY,
            value_json TEXT NOT NULL,
            updated_at_utc TEXT NOT NULL
        )
        """
    )
    return conn


def _to_json_string(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _from_json_string(value_json: str) -> Any:
    return json.loads(value_json)


def set_runtime_value(path: Path, key: str, value: Any) -> None:
    try:
        value_json = _to_json_string(value)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Value for '{key}' is not JSON serializable: {exc}", key=key) from exc

    try:
        with _connect_runtime_db(path) as conn:
            conn.execute(
                """
                INSERT INTO runtime_kv (key, value_json, updated_at_utc)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (key, value_json, _utc_now_iso()),
            )
    except (sqlite3.Error, OSError) as exc:
        raise PersistenceError(f"Failed to write '{key}': {exc}", key=key) from exc


def read_runtime_value(path: Path, key: str) -> ReadResult:
    try:
        with _connect_runtime_db(path) as conn:
            row = conn.execute(
                "SELECT value_json FROM runtime_kv WHERE key = ? LIMIT 1",
                (key,),
            ).fetchone()
    except (sqlite3.Error, OSError) as exc:
        return ReadResult(ok=False, error=f"Failed to read '{key}': {exc}")

    if row is None:
        return ReadResult(ok=True, value=None)
    try:
        return ReadResult(ok=True, value=_from_json_string(str(row[0])))
    except (json.JSONDecodeError, TypeError, ValueError) as exc:
        return ReadResult(ok=False, error=f"Stored value for '{key}' is not valid JSON: {exc}")


def get_runtime_value(path: Path, key: str, default: Any = None) -> Any:
    result = read_runtime_value(path, key)
    if not result.ok or result.value is None:
        return default
    return result.value


def delete_runtime_value(path: Path, key: str) -> None:
    try:
        with _connect_runtime_db(path) as conn:
            conn.execute("DELETE FROM runtime_kv WHERE key = ?", (key,))
    except (sqlite3.Error, OSError) as exc:
        raise PersistenceError(f"Failed to delete '{key}': {exc}", key=key) from exc


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)


def read_json(path: Path) -> Any | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
