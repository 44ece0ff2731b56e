"""Tests for the command line entry point."""

import json

from typer.testing import CliRunner

from docverify.cli.__main__ import app

runner = CliRunner()


class TestClassifyCommand:
    """Tests for `docverify classify`."""

    def test_keyword_match(self, tmp_path):
        path = tmp_path / "w2.json"
        path.write_text(json.dumps({"raw_text": "Form W-2 Wage and Tax Statement 2023"}))

        result = runner.invoke(app, ["classify", str(path)])

        assert result.exit_code == 0
        assert "W2" in result.output
        assert "keyword" in result.output

    def test_no_match(self, tmp_path):
        path = tmp_path / "unknown.json"
        path.write_text(json.dumps({"raw_text": "Lorem ipsum"}))

        result = runner.invoke(app, ["classify", str(path)])

        assert result.exit_code == 2

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["classify", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "File not found" in result.output


class TestRunCommand:
    """Tests for `docverify run` input handling."""

    def test_invalid_deal_file(self, tmp_path):
        path = tmp_path / "deal.json"
        path.write_text(json.dumps({"dealId": "deal_1", "documents": [{"ocr": {}}]}))

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 1
        assert "Invalid deal file" in result.output
