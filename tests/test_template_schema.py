import unittest

from formatkit.metadata_compiler import validate_config
from formatkit.template_schema import (
    ADVANCED_FIELDS,
    BUILTIN_PRESETS,
    DEFAULT_CONFIG,
    OPTION_HELP,
    builtin_presets,
    get_builtin_preset,
    is_builtin_preset_id,
    option_catalog,
)


class TestTemplateSchema(unittest.TestCase):
    def test_default_config_is_complete_and_valid(self) -> None:
        for field in ADVANCED_FIELDS:
            self.assertIn(field, DEFAULT_CONFIG)
        self.assertTrue(validate_config(DEFAULT_CONFIG)["valid"])

    def test_builtin_presets_are_unique_and_valid(self) -> None:
        ids = [preset["id"] for preset in BUILTIN_PRESETS]
        self.assertEqual(len(ids), len(set(ids)))
        for preset in BUILTIN_PRESETS:
            with self.subTest(preset=preset["id"]):
                self.assertTrue(preset["isBuiltin"])
                self.assertTrue(validate_config(preset["config"])["valid"])

    def test_help_covers_every_option(self) -> None:
        for field, values in ADVANCED_FIELDS.items():
            self.assertEqual(set(OPTION_HELP[field]), set(values))

    def test_builtin_accessors_return_copies(self) -> None:
        presets = builtin_presets()
        presets[0]["name"] = "changed"
        self.assertNotEqual(BUILTIN_PRESETS[0]["name"], "changed")

        preset = get_builtin_preset("en-paper")
        self.assertIsNotNone(preset)
        preset["config"]["languageStyle"] = "business"
        self.assertEqual(get_builtin_preset("en-paper")["config"]["languageStyle"], "en-academic")
        self.assertIsNone(get_builtin_preset("nope"))

    def test_builtin_id_check(self) -> None:
        self.assertTrue(is_builtin_preset_id("technical"))
        self.assertFalse(is_builtin_preset_id("custom-1-abc"))

    def test_option_catalog_shape(self) -> None:
        catalog = option_catalog()
        self.assertEqual(catalog["fields"]["codeBlock"], ["normal", "listings"])
        self.assertIn("help", catalog)
        self.assertEqual(catalog["defaults"], DEFAULT_CONFIG)
