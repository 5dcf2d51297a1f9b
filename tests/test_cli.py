"""Tests for the command-line interface."""

import json
import pytest
from typer.testing import CliRunner

from auth_sentry import __version__
from auth_sentry.cli import app


runner = CliRunner()


class TestAnalyze:
    """Tests for the analyze command."""

    def test_analyze_prints_alert_and_summary(self, tmp_log):
        result = runner.invoke(app, ["analyze", "--input", str(tmp_log)])

        assert result.exit_code == 0
        assert "[LOW] 192.168.1.10 count=3" in result.output
        assert "ANALYSIS COMPLETE" in result.output
        assert "Alerts raised:    1" in result.output

    def test_analyze_writes_outputs(self, tmp_log, tmp_path):
        jsonl = tmp_path / "alerts.jsonl"
        report = tmp_path / "report.json"

        result = runner.invoke(app, [
            "analyze", "-i", str(tmp_log), "-o", str(jsonl), "--report", str(report), "--quiet",
        ])

        assert result.exit_code == 0
        assert "[LOW]" not in result.output
        assert json.loads(jsonl.read_text(encoding="utf-8").splitlines()[0])["count"] == 3
        assert len(json.loads(report.read_text(encoding="utf-8"))) == 1

    def test_threshold_option(self, tmp_log):
        result = runner.invoke(app, ["analyze", "-i", str(tmp_log), "--threshold", "4"])

        assert result.exit_code == 0
        assert "Alerts raised:    0" in result.output

    def test_config_file(self, tmp_log, tmp_path):
        config = tmp_path / "detector.yaml"
        config.write_text("threshold: 1\n", encoding="utf-8")

        result = runner.invoke(app, ["analyze", "-i", str(tmp_log), "--config", str(config)])

        assert result.exit_code == 0
        assert "Alerts raised:    3" in result.output

    def test_invalid_config_exits_2(self, tmp_log):
        result = runner.invoke(app, ["analyze", "-i", str(tmp_log), "--threshold", "0"])
        assert result.exit_code == 2

    def test_missing_input_exits_1(self, tmp_path):
        result = runner.invoke(app, ["analyze", "-i", str(tmp_path / "missing.log")])
        assert result.exit_code == 1

    def test_stdin_input(self, reference_lines):
        result = runner.invoke(app, ["analyze", "-i", "-"], input="\n".join(reference_lines) + "\n")

        assert result.exit_code == 0
        assert "Alerts raised:    1" in result.output


class TestDemoAndVersion:
    """Tests for the demo and version commands."""

    def test_demo(self, sample_log):
        result = runner.invoke(app, ["demo"])

        assert result.exit_code == 0
        assert "DEMO MODE" in result.output
        assert "Alerts raised:    3" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output
