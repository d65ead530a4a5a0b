from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv


load_dotenv()


EnvGetter = Callable[[str], str | None]

DEFAULT_HISTORY_LIMIT = 3
MAX_HISTORY_LIMIT = 100


def _bool_env(name: str, default: bool, *, getenv: EnvGetter = os.getenv) -> bool:
    value = getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _str_env(name: str, default: str = "", *, getenv: EnvGetter = os.getenv) -> str:
    value = getenv(name)
    return value.strip() if value is not None else default


def _optional_path_env(name: str, *, getenv: EnvGetter = os.getenv) -> Path | None:
    value = _str_env(name, default="", getenv=getenv)
    return Path(value).resolve() if value else None


def _int_env(
    name: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
    *,
    getenv: EnvGetter = os.getenv,
) -> int:
    value = getenv(name)
    if value is None:
        parsed = default
    else:
        try:
            parsed = int(value.strip())
        except ValueError:
            parsed = default

    if minimum is not None and parsed < minimum:
        parsed = minimum
    if maximum is not None and parsed > maximum:
        parsed = maximum
    return parsed


@dataclass(frozen=True)
class Settings:
    state_dir: Path
    runtime_db_file: Path
    export_dir: Path

    history_limit: int
    pandoc_path: str
    pandoc_crossref_path: str
    use_crossref: bool
    pandoc_timeout_seconds: int

    log_level: str
    api_port: int

    @classmethod
    def from_env(cls, getenv: EnvGetter = os.getenv) -> "Settings":
        state_dir = Path(_str_env("STATE_DIR", default="state", getenv=getenv) or "state").resolve()
        runtime_db_file = state_dir / (
            _str_env("RUNTIME_DB_FILE", default="formatkit_state.db", getenv=getenv) or "formatkit_state.db"
        )
        export_dir = _optional_path_env("EXPORT_DIR", getenv=getenv) or state_dir / "exports"

        return cls(
            state_dir=state_dir,
            runtime_db_file=runtime_db_file,
            export_dir=export_dir,
            history_limit=_int_env(
                "HISTORY_LIMIT",
                DEFAULT_HISTORY_LIMIT,
                minimum=1,
                maximum=MAX_HISTORY_LIMIT,
                getenv=getenv,
            ),
            pandoc_path=_str_env("PANDOC_PATH", default="pandoc", getenv=getenv) or "pandoc",
            pandoc_crossref_path=_str_env(
                "PANDOC_CROSSREF_PATH",
                default="pandoc-crossref",
                getenv=getenv,
            )
            or "pandoc-crossref",
            use_crossref=_bool_env("USE_CROSSREF", True, getenv=getenv),
            pandoc_timeout_seconds=_int_env("PANDOC_TIMEOUT_SECONDS", 120, minimum=5, maximum=3600, getenv=getenv),
            log_level=_str_env("LOG_LEVEL", default="INFO", getenv=getenv).upper() or "INFO",
            api_port=_int_env("API_PORT", 1610, minimum=1, maximum=65535, getenv=getenv),
        )

    def ensure_state_paths(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
