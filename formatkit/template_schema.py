from __future__ import annotations

from copy import deepcopy
from typing import Any


LANGUAGE_STYLES: tuple[str, ...] = ("zh-academic", "en-academic", "business")
SECTION_NUMBERING: tuple[str, ...] = ("none", "basic", "from-h2", "multilevel")
CROSS_REFERENCE: tuple[str, ...] = ("basic", "smart", "full-link")
EQUATION_NUMBERING: tuple[str, ...] = ("manual", "auto", "table")
CODE_BLOCK: tuple[str, ...] = ("normal", "listings")

# Order matters: the compiler applies fields in this order.
ADVANCED_FIELDS: dict[str, tuple[str, ...]] = {
    "languageStyle": LANGUAGE_STYLES,
    "sectionNumbering": SECTION_NUMBERING,
    "crossReference": CROSS_REFERENCE,
    "equationNumbering": EQUATION_NUMBERING,
    "codeBlock": CODE_BLOCK,
}

ADVANCED_FIELD_LABELS: dict[str, str] = {
    "languageStyle": "language style",
    "sectionNumbering": "section numbering",
    "crossReference": "cross reference",
    "equationNumbering": "equation numbering",
    "codeBlock": "code block",
}

BASIC_METADATA_FIELDS: tuple[str, ...] = ("title", "author", "date", "subtitle", "abstract")

# Older schema revisions stored a nested section config; it is carried through merges untouched.
PASSTHROUGH_FIELDS: tuple[str, ...] = ("customSectionConfig",)

TEMPLATE_CONFIG_FIELDS: tuple[str, ...] = BASIC_METADATA_FIELDS + tuple(ADVANCED_FIELDS) + PASSTHROUGH_FIELDS

DATE_PATTERN = r"[0-9]{4}-[0-9]{2}-[0-9]{2}"

# pandoc-crossref delimiters owned by the compiler, never user-configurable.
CROSSREF_DELIMITERS: dict[str, str] = {
    "rangeDelim": "-",
    "pairDelim": ", ",
    "lastDelim": " 和 ",
    "refDelim": ", ",
    "chapDelim": ".",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "",
    "author": "",
    "date": "",
    "subtitle": "",
    "abstract": "",
    "languageStyle": "zh-academic",
    "sectionNumbering": "none",
    "crossReference": "basic",
    "equationNumbering": "manual",
    "codeBlock": "normal",
}

BUILTIN_PRESETS: list[dict[str, Any]] = [
    {
        "id": "empty",
        "name": "Empty",
        "description": "Every option uses its default value.",
        "config": {},
        "isBuiltin": True,
        "createdAt": None,
    },
    {
        "id": "zh-paper",
        "name": "Chinese Academic Paper",
        "description": "Chinese journal submissions and theses.",
        "config": {
            "languageStyle": "zh-academic",
            "sectionNumbering": "from-h2",
            "crossReference": "basic",
            "equationNumbering": "auto",
        },
        "isBuiltin": True,
        "createdAt": None,
    },
    {
        "id": "en-paper",
        "name": "English Academic Paper",
        "description": "International journal submissions.",
        "config": {
            "languageStyle": "en-academic",
            "sectionNumbering": "basic",
            "crossReference": "basic",
            "equationNumbering": "auto",
        },
        "isBuiltin": True,
        "createdAt": None,
    },
    {
        "id": "business",
        "name": "Business Report",
        "description": "Company reports and project documents.",
        "config": {
            "languageStyle": "business",
            "sectionNumbering": "basic",
            "crossReference": "full-link",
            "equationNumbering": "manual",
        },
        "isBuiltin": True,
        "createdAt": None,
    },
    {
        "id": "technical",
        "name": "Technical Documentation",
        "description": "Technical manuals and API references.",
        "config": {
            "languageStyle": "zh-academic",
            "sectionNumbering": "basic",
            "crossReference": "full-link",
            "equationNumbering": "manual",
        },
        "isBuiltin": True,
        "createdAt": None,
    },
]

BUILTIN_PRESET_IDS: frozenset[str] = frozenset(preset["id"] for preset in BUILTIN_PRESETS)

OPTION_HELP: dict[str, dict[str, dict[str, Any]]] = {
    "languageStyle": {
        "zh-academic": {
            "title": "Chinese academic",
            "description": "Chinese papers, reports and books. Captions and references use Chinese prefixes.",
            "affectedFields": ["figureTitle", "tableTitle", "figPrefix", "tblPrefix", "titleDelim"],
            "preview": "图 1: 系统架构图",
        },
        "en-academic": {
            "title": "English academic",
            "description": "English papers and international journals. References use abbreviated English prefixes.",
            "affectedFields": ["figureTitle", "tableTitle", "figPrefix", "tblPrefix"],
            "preview": "Figure 1: System Architecture",
        },
        "business": {
            "title": "Business report",
            "description": "Company reports and project documents. References are hyperlinked by default.",
            "affectedFields": ["titleDelim", "linkReferences", "nameInLink"],
            "preview": "图 1 - 销售趋势图",
        },
    },
    "sectionNumbering": {
        "none": {
            "title": "No numbering",
            "description": "Headings carry no numbers. Suited to short documents and posts.",
            "affectedFields": ["chapters", "numberSections"],
            "preview": "Preface\n  Background\n  Goals",
        },
        "basic": {
            "title": "From level 1",
            "description": "Numbering starts at level-1 headings (#).",
            "affectedFields": ["chapters", "numberSections", "chaptersDepth", "autoSectionLabels"],
            "preview": "1 Preface\n  1.1 Background\n    1.1.1 Status",
        },
        "from-h2": {
            "title": "From level 2",
            "description": "Level-1 headings stay unnumbered; numbering starts at level-2 headings (##), three levels deep.",
            "affectedFields": ["chapters", "numberSections", "chaptersDepth", "sectionsDepth"],
            "preview": "Introduction\n  1.1 Background\n    1.1.1 Status",
        },
        "multilevel": {
            "title": "Multilevel",
            "description": "Numbering covers four heading levels.",
            "affectedFields": ["chapters", "numberSections", "sectionsDepth", "autoSectionLabels"],
            "preview": "1 Preface\n  1.1 Background\n    1.1.1 Status\n      1.1.1.1 Detail",
        },
    },
    "crossReference": {
        "basic": {
            "title": "Plain references",
            "description": "Standard cross references without hyperlinks.",
            "affectedFields": ["linkReferences", "cref"],
            "preview": "see fig. 1 (plain text)",
        },
        "smart": {
            "title": "Smart references",
            "description": "Hyperlinked references with cleveref-style names; only the number is a link.",
            "affectedFields": ["linkReferences", "cref", "nameInLink"],
            "preview": "see fig. [1]",
        },
        "full-link": {
            "title": "Full-link references",
            "description": "Hyperlinked references where the whole reference text is clickable.",
            "affectedFields": ["linkReferences", "nameInLink"],
            "preview": "see [fig. 1]",
        },
    },
    "equationNumbering": {
        "manual": {
            "title": "Manual",
            "description": "Only labelled equations ({#eq:label}) are numbered.",
            "example": "$$ E = mc^2 $$ {#eq:einstein}",
            "affectedFields": ["autoEqnLabels"],
            "preview": "Only labelled equations are numbered",
        },
        "auto": {
            "title": "Automatic",
            "description": "Every display equation ($$...$$) is numbered.",
            "example": "$$ a^2 + b^2 = c^2 $$",
            "affectedFields": ["autoEqnLabels", "tableEqns"],
            "preview": "All equations are numbered",
        },
        "table": {
            "title": "Table layout",
            "description": "Every display equation is numbered and laid out in a table with the number aligned right.",
            "affectedFields": ["autoEqnLabels", "tableEqns"],
            "preview": "a^2 + b^2 = c^2        (1)",
        },
    },
    "codeBlock": {
        "normal": {
            "title": "Normal",
            "description": "Code blocks use the default highlighter and may carry captions.",
            "affectedFields": ["listings", "codeBlockCaptions"],
            "preview": "Listing 1: Example",
        },
        "listings": {
            "title": "Listings",
            "description": "Code blocks are rendered with the listings engine and may carry captions.",
            "affectedFields": ["listings", "codeBlockCaptions"],
            "preview": "Listing 1: Example (listings)",
        },
    },
}


def default_config() -> dict[str, Any]:
    return deepcopy(DEFAULT_CONFIG)


def builtin_presets() -> list[dict[str, Any]]:
    return deepcopy(BUILTIN_PRESETS)


def get_builtin_preset(preset_id: str) -> dict[str, Any] | None:
    for preset in BUILTIN_PRESETS:
        if preset["id"] == preset_id:
            return deepcopy(preset)
    return None


def is_builtin_preset_id(preset_id: str) -> bool:
    return preset_id in BUILTIN_PRESET_IDS


def option_catalog() -> dict[str, Any]:
    return {
        "fields": {name: list(values) for name, values in ADVANCED_FIELDS.items()},
        "labels": dict(ADVANCED_FIELD_LABELS),
        "help": deepcopy(OPTION_HELP),
        "defaults": default_config(),
    }
