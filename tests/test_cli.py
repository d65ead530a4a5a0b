import argparse
import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from formatkit import cli
from formatkit.errors import ConversionError
from formatkit.storage import read_json


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.state_dir = Path(self._tmpdir.name)
        self._env = patch.dict(os.environ, {"STATE_DIR": self._tmpdir.name}, clear=True)
        self._env.start()

    def tearDown(self) -> None:
        self._env.stop()
        self._tmpdir.cleanup()

    def _run(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = cli.main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_parse_assignment(self) -> None:
        self.assertEqual(cli._parse_assignment("title=My Doc"), ("title", "My Doc"))
        self.assertEqual(cli._parse_assignment("author=Ada, Grace"), ("author", ["Ada", "Grace"]))
        with self.assertRaises(argparse.ArgumentTypeError):
            cli._parse_assignment("no-equals-sign")

    def test_compile_prints_metadata(self) -> None:
        code, out, _ = self._run("compile", "-p", "en-paper", "-s", "title=Doc", "-s", "author=Ada, Grace")
        self.assertEqual(code, 0)
        metadata = json.loads(out)
        self.assertEqual(metadata["title"], "Doc")
        self.assertEqual(metadata["author-meta"], "Ada, Grace")
        self.assertEqual(metadata["figPrefix"], ["fig.", "figs."])
        self.assertTrue(metadata["chapters"])

    def test_compile_writes_file_and_remembers(self) -> None:
        config_file = self.state_dir / "config.json"
        config_file.write_text(json.dumps({"codeBlock": "listings"}), encoding="utf-8")
        target = self.state_dir / "meta.json"
        code, out, _ = self._run("compile", "--config-file", str(config_file), "-o", str(target), "--remember")
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), str(target))
        self.assertTrue(read_json(target)["listings"])

        code, out, _ = self._run("history")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)[0]["config"], {"codeBlock": "listings"})

        self.assertEqual(self._run("history", "clear")[0], 0)
        self.assertEqual(json.loads(self._run("history")[1]), [])

    def test_compile_rejects_invalid_config_and_unknown_preset(self) -> None:
        code, _, err = self._run("compile", "-s", "sectionNumbering=bogus")
        self.assertEqual(code, 1)
        self.assertIn("sectionNumbering", err)

        code, _, err = self._run("compile", "-p", "missing")
        self.assertEqual(code, 1)
        self.assertIn("missing", err)

    def test_validate(self) -> None:
        code, out, _ = self._run("validate", "-s", "date=2024-02-30")
        self.assertEqual(code, 0)
        self.assertTrue(json.loads(out)["valid"])

        code, out, _ = self._run("validate", "-s", "date=2024/02/30")
        self.assertEqual(code, 1)
        self.assertEqual(len(json.loads(out)["errors"]), 1)

    def test_presets_import_list_export(self) -> None:
        bundle = self.state_dir / "bundle.json"
        bundle.write_text(json.dumps([{"name": "Lab Notes", "config": {"equationNumbering": "table"}}]), encoding="utf-8")

        code, out, _ = self._run("presets", "import", str(bundle))
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["success"], 1)

        code, out, _ = self._run("presets", "list")
        self.assertEqual(code, 0)
        self.assertIn("zh-paper", out)
        self.assertIn("Lab Notes", out)

        code, out, _ = self._run("presets", "export", "-o", "-")
        self.assertEqual(code, 0)
        self.assertEqual([item["name"] for item in json.loads(out)], ["Lab Notes"])

        target = self.state_dir / "exported.json"
        code, out, _ = self._run("presets", "export", "-o", str(target))
        self.assertEqual(code, 0)
        self.assertEqual(len(read_json(target)), 1)

    def test_presets_import_partial_failure_exit_code(self) -> None:
        bundle = self.state_dir / "bundle.json"
        bundle.write_text(json.dumps([{"name": "A", "config": {}}, {"config": {}}]), encoding="utf-8")
        code, out, _ = self._run("presets", "import", str(bundle))
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["failed"], 1)

    def test_missing_config_file_is_an_error(self) -> None:
        code, _, err = self._run("compile", "--config-file", str(self.state_dir / "absent.json"))
        self.assertEqual(code, 1)
        self.assertIn("error", err)

    def test_convert_writes_metadata_and_reports_output(self) -> None:
        source = self.state_dir / "paper.md"
        source.write_text("# Title\n", encoding="utf-8")
        with patch.object(cli, "convert_markdown", return_value=str(self.state_dir / "paper_formatted.docx")) as convert:
            code, out, _ = self._run("convert", str(source), "-p", "technical", "--no-crossref")
        self.assertEqual(code, 0)
        self.assertTrue(out.strip().endswith("paper_formatted.docx"))
        options = convert.call_args.args[1]
        self.assertFalse(options.use_crossref)
        metadata = read_json(Path(options.metadata_file))
        self.assertTrue(metadata["linkReferences"])
        self.assertTrue(metadata["nameInLink"])

        code, out, _ = self._run("history", "conversions")
        self.assertEqual(code, 0)
        conversions = json.loads(out)
        self.assertEqual(len(conversions), 1)
        self.assertEqual(conversions[0]["status"], "success")
        self.assertEqual(conversions[0]["fileName"], "paper.md")
        self.assertEqual(conversions[0]["templateName"], "Technical Documentation")

    def test_convert_failure_returns_nonzero(self) -> None:
        source = self.state_dir / "paper.md"
        source.write_text("# Title\n", encoding="utf-8")
        with patch.object(cli, "convert_markdown", side_effect=ConversionError("pandoc missing")):
            code, _, _ = self._run("convert", str(source))
        self.assertEqual(code, 1)

        conversions = json.loads(self._run("history", "conversions")[1])
        self.assertEqual(conversions[0]["status"], "failed")
        self.assertEqual(conversions[0]["errorMessage"], "pandoc missing")

        self.assertEqual(self._run("history", "clear-conversions")[0], 0)
        self.assertEqual(json.loads(self._run("history", "conversions")[1]), [])


if __name__ == "__main__":
    unittest.main()
