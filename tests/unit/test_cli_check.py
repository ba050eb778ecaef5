"""Tests for 'ogdat check' CLI command."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from ogdat_cli.cli import cli
from ogdat_cli.probe import UrlProbe


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


class TestCheckExitCodes:
    """Exit code mirrors whether an ERROR-level message was emitted."""

    @pytest.mark.unit
    def test_complete_document_passes(self, runner: CliRunner, fullandok_22: Path) -> None:
        result = runner.invoke(cli, ["check", str(fullandok_22)])

        assert result.exit_code == 0, result.output
        assert "passed OGD Austria Metadata 2.2" in result.output
        assert "0 error(s), 0 warning(s), 3 info(s)" in result.output

    @pytest.mark.unit
    def test_empty_document_fails(self, runner: CliRunner, allempty_22: Path) -> None:
        result = runner.invoke(cli, ["check", str(allempty_22)])

        assert result.exit_code == 1
        assert "[8 Titel] required field missing" in result.output
        assert "8 error(s), 2 warning(s)" in result.output

    @pytest.mark.unit
    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["check", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "nope.json" in result.output

    @pytest.mark.unit
    def test_reads_stdin(self, runner: CliRunner, fullandok_22: Path) -> None:
        result = runner.invoke(cli, ["check", "-"], input=fullandok_22.read_bytes())

        assert result.exit_code == 0, result.output


class TestCheckOptions:
    @pytest.mark.unit
    def test_spec_version_overrides_schema_name(
        self, runner: CliRunner, fullandok_22: Path
    ) -> None:
        """Checking the 2.2 document against 2.3 makes field 20 required."""
        result = runner.invoke(cli, ["check", "--spec-version", "2.3", str(fullandok_22), "--json"])

        envelope = json.loads(result.output)
        assert envelope["data"]["version"] == "OGD Austria Metadata 2.3"

    @pytest.mark.unit
    def test_unknown_spec_version(self, runner: CliRunner, fullandok_22: Path) -> None:
        result = runner.invoke(cli, ["check", "--spec-version", "1.9", str(fullandok_22), "--json"])

        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["success"] is False
        assert envelope["errors"][0]["code"] == "OGDAT-SPC003"

    @pytest.mark.unit
    def test_follow_probes_links(self, runner: CliRunner, fullandok_22: Path) -> None:
        with patch.object(UrlProbe, "fetch_head", return_value=(True, "")) as fetch_head:
            result = runner.invoke(cli, ["check", "--follow", "--json", str(fullandok_22)])

        assert result.exit_code == 0, result.output
        assert fetch_head.call_count == 3
        messages = json.loads(result.output)["data"]["messages"]
        assert all("fetch_success" in m["flags"] for m in messages if "url" in m)

    @pytest.mark.unit
    def test_unreachable_links_fail(self, runner: CliRunner, fullandok_22: Path) -> None:
        with patch.object(UrlProbe, "fetch_head", return_value=(False, "status 404")):
            result = runner.invoke(cli, ["check", "--follow", str(fullandok_22)])

        assert result.exit_code == 1
        assert "no data at" in result.output

    @pytest.mark.unit
    def test_output_file(self, runner: CliRunner, fullandok_22: Path, tmp_path: Path) -> None:
        report_path = tmp_path / "report.json"

        result = runner.invoke(cli, ["check", str(fullandok_22), "--output", str(report_path)])

        assert result.exit_code == 0
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["source"] == str(fullandok_22)
        assert report["passed"] is True
        assert "Report written to" in result.output


class TestCheckJson:
    """JSON envelopes of the check command."""

    @pytest.mark.unit
    def test_success_envelope(self, runner: CliRunner, fullandok_22: Path) -> None:
        result = runner.invoke(cli, ["check", "--json", str(fullandok_22)])

        envelope = json.loads(result.output)
        assert envelope["success"] is True
        assert envelope["command"] == "check"
        assert envelope["data"]["info_count"] == 3
        assert "errors" not in envelope

    @pytest.mark.unit
    def test_failure_envelope_keeps_report(self, runner: CliRunner, allempty_22: Path) -> None:
        result = runner.invoke(cli, ["--format", "json", "check", str(allempty_22)])

        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["success"] is False
        assert envelope["errors"][0]["type"] == "CheckFailed"
        assert envelope["data"]["passed"] is False
        assert envelope["data"]["error_count"] == 8


class TestCheckUndecodableBytes:
    """Bytes that are not UTF-8 are reported as escapes, never re-emitted raw."""

    @pytest.fixture
    def broken(self, fullandok_22: Path, tmp_path: Path) -> Path:
        raw = fullandok_22.read_bytes()
        title = json.loads(raw)["title"].encode("utf-8")
        path = tmp_path / "broken.json"
        path.write_bytes(raw.replace(title, title + b"\xff", 1))
        return path

    @pytest.mark.unit
    def test_text_output(self, runner: CliRunner, broken: Path) -> None:
        result = runner.invoke(cli, ["check", str(broken)])

        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert result.exit_code == 1
        assert "invalid UTF-8 sequence 0xff" in result.output
        assert "\\xff" in result.output

    @pytest.mark.unit
    def test_report_file(self, runner: CliRunner, broken: Path, tmp_path: Path) -> None:
        report_path = tmp_path / "report.json"

        result = runner.invoke(cli, ["check", str(broken), "--output", str(report_path)])

        assert result.exit_code == 1
        report = json.loads(report_path.read_text(encoding="utf-8"))
        texts = [m["text"] for m in report["messages"]]
        assert any("\\xff" in text for text in texts)

    @pytest.mark.unit
    def test_json_envelope(self, runner: CliRunner, broken: Path) -> None:
        result = runner.invoke(cli, ["check", "--json", str(broken)])

        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["data"]["error_count"] >= 1
