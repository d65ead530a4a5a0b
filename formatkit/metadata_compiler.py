from __future__ import annotations

import re
from copy import deepcopy
from typing import Any, Iterable, Mapping

from .template_schema import (
    ADVANCED_FIELDS,
    CROSSREF_DELIMITERS,
    DATE_PATTERN,
    DEFAULT_CONFIG,
    OPTION_HELP,
    get_builtin_preset,
)


_DATE_RE = re.compile(DATE_PATTERN)

_SECTION_HEADER_DELIM = [".", ""]

LANGUAGE_STYLE_FIELDS: dict[str, dict[str, Any]] = {
    "zh-academic": {
        "figureTitle": "图",
        "tableTitle": "表",
        "listingTitle": "代码",
        "figPrefix": "图",
        "tblPrefix": "表",
        "lstPrefix": "代码",
        "eqnPrefix": "公式",
        "secPrefix": "§",
        "titleDelim": ":",
    },
    "en-academic": {
        "figureTitle": "Figure",
        "tableTitle": "Table",
        "listingTitle": "Listing",
        "figPrefix": ["fig.", "figs."],
        "tblPrefix": ["tbl.", "tbls."],
        "lstPrefix": ["lst.", "lsts."],
        "eqnPrefix": ["eq.", "eqns."],
        "secPrefix": ["sec.", "secs."],
        "titleDelim": ":",
    },
    "business": {
        "figureTitle": "图",
        "tableTitle": "表",
        "listingTitle": "代码",
        "figPrefix": "图",
        "tblPrefix": "表",
        "lstPrefix": "代码",
        "eqnPrefix": "公式",
        "secPrefix": "章节",
        "titleDelim": " -",
        "linkReferences": True,
        "nameInLink": True,
    },
}

SECTION_NUMBERING_FIELDS: dict[str, dict[str, Any]] = {
    "none": {
        "chapters": False,
        "numberSections": False,
    },
    "basic": {
        "chapters": True,
        "numberSections": True,
        "chaptersDepth": 1,
        "autoSectionLabels": True,
        "secHeaderDelim": _SECTION_HEADER_DELIM,
    },
    "from-h2": {
        "chapters": True,
        "numberSections": True,
        "chaptersDepth": 0,
        "sectionsDepth": 3,
        "autoSectionLabels": True,
        "secHeaderDelim": _SECTION_HEADER_DELIM,
    },
    "multilevel": {
        "chapters": True,
        "numberSections": True,
        "sectionsDepth": 4,
        "autoSectionLabels": True,
        "secHeaderDelim": _SECTION_HEADER_DELIM,
    },
}

CROSS_REFERENCE_FIELDS: dict[str, dict[str, Any]] = {
    "basic": {
        "linkReferences": False,
        "cref": False,
    },
    "smart": {
        "linkReferences": True,
        "cref": True,
        "nameInLink": False,
    },
    "full-link": {
        "linkReferences": True,
        "nameInLink": True,
        "cref": False,
    },
}

EQUATION_NUMBERING_FIELDS: dict[str, dict[str, Any]] = {
    "manual": {
        "autoEqnLabels": False,
        "tableEqns": False,
    },
    "auto": {
        "autoEqnLabels": True,
        "tableEqns": False,
    },
    "table": {
        "autoEqnLabels": True,
        "tableEqns": True,
    },
}

CODE_BLOCK_FIELDS: dict[str, dict[str, Any]] = {
    "normal": {
        "listings": False,
        "codeBlockCaptions": True,
    },
    "listings": {
        "listings": True,
        "codeBlockCaptions": True,
    },
}

FIELD_TABLES: dict[str, dict[str, dict[str, Any]]] = {
    "languageStyle": LANGUAGE_STYLE_FIELDS,
    "sectionNumbering": SECTION_NUMBERING_FIELDS,
    "crossReference": CROSS_REFERENCE_FIELDS,
    "equationNumbering": EQUATION_NUMBERING_FIELDS,
    "codeBlock": CODE_BLOCK_FIELDS,
}


def _basic_metadata(config: Mapping[str, Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {}

    title = config.get("title")
    if isinstance(title, str) and title:
        metadata["title"] = title
        metadata["title-meta"] = title

    author = config.get("author")
    if isinstance(author, (list, tuple)) and author:
        metadata["author"] = list(author)
        metadata["author-meta"] = ", ".join(str(item) for item in author)
    elif isinstance(author, str) and author:
        metadata["author"] = author
        metadata["author-meta"] = author

    date = config.get("date")
    if isinstance(date, str) and date:
        metadata["date"] = date
        metadata["date-meta"] = date

    for key in ("subtitle", "abstract"):
        value = config.get(key)
        if isinstance(value, str) and value:
            metadata[key] = value

    return metadata


def _field_fragment(field: str, value: Any) -> dict[str, Any]:
    if not isinstance(value, str):
        return {}
    fragment = FIELD_TABLES[field].get(value)
    if fragment is None:
        return {}
    return deepcopy(fragment)


def compile_metadata(config: Mapping[str, Any] | None) -> dict[str, Any]:
    source = config or {}
    metadata = _basic_metadata(source)
    for field in ADVANCED_FIELDS:
        metadata.update(_field_fragment(field, source.get(field)))
    metadata.update(CROSSREF_DELIMITERS)
    return {key: value for key, value in metadata.items() if value is not None}


def merge_configs(
    user: Mapping[str, Any] | None,
    preset: Mapping[str, Any] | None,
    base: Mapping[str, Any],
) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for layer in (base, preset or {}, user or {}):
        for key, value in layer.items():
            if value is None:
                continue
            merged[key] = deepcopy(value)
    return merged


def validate_config(config: Mapping[str, Any] | None) -> dict[str, Any]:
    source = config or {}
    errors: list[str] = []

    date = source.get("date")
    if date is not None and date != "":
        if not isinstance(date, str) or not _DATE_RE.fullmatch(date):
            errors.append(f"Invalid date: {date!r} (expected YYYY-MM-DD).")

    for field, allowed in ADVANCED_FIELDS.items():
        if field not in source or source[field] is None:
            continue
        value = source[field]
        if not isinstance(value, str) or value not in allowed:
            errors.append(
                f"Invalid {field}: {value!r} (expected one of: {', '.join(allowed)})."
            )

    return {
        "valid": len(errors) == 0,
        "errors": errors,
    }


def resolve_preset_config(
    preset_id: str | None,
    custom_presets: Iterable[Mapping[str, Any]] = (),
) -> dict[str, Any] | None:
    if not preset_id:
        return None
    builtin = get_builtin_preset(preset_id)
    if builtin is not None:
        return builtin["config"]
    for preset in custom_presets:
        if preset.get("id") == preset_id:
            config = preset.get("config")
            return deepcopy(dict(config)) if isinstance(config, Mapping) else {}
    return None


def build_metadata_for(
    user: Mapping[str, Any] | None,
    preset_config: Mapping[str, Any] | None = None,
    base: Mapping[str, Any] = DEFAULT_CONFIG,
) -> dict[str, Any]:
    return compile_metadata(merge_configs(user, preset_config, base))


def describe_option(field: str, value: str) -> dict[str, Any] | None:
    help_entry = OPTION_HELP.get(field, {}).get(value)
    if help_entry is None:
        return None
    return deepcopy(help_entry)
