"""Integration tests for `ogdat check` on whole documents.

Tests cover:
- Each bundled version against its complete fixture
- Documents with broken encodings and broken JSON
- Reading documents over HTTP
- The report file written with --output
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest import mock

import pytest
from click.testing import CliRunner

from ogdat_cli.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


class TestCheckWorkflow:
    @pytest.mark.integration
    @pytest.mark.parametrize(
        ("fixture", "version"),
        [
            ("fullandok-2.1.json", "OGD Austria Metadata 2.1"),
            ("fullandok-2.2.json", "OGD Austria Metadata 2.2"),
            ("fullandok-2.3.json", "OGD Austria Metadata 2.3"),
        ],
    )
    def test_complete_fixtures_pass(
        self, runner: CliRunner, metadata_dir: Path, fixture: str, version: str
    ) -> None:
        result = runner.invoke(cli, ["check", "--json", str(metadata_dir / fixture)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["version"] == version
        assert data["warning_count"] == 0

    @pytest.mark.integration
    def test_invalid_utf8_in_title(
        self, runner: CliRunner, fullandok_22: Path, tmp_path: Path
    ) -> None:
        """A Latin-1 byte in the title is reported, not a crash."""
        raw = fullandok_22.read_bytes()
        title = json.loads(raw)["title"].encode("utf-8")
        broken = tmp_path / "latin1.json"
        broken.write_bytes(raw.replace(title, b"Stra\xdfen " + title, 1))

        result = runner.invoke(cli, ["check", str(broken)])

        assert result.exit_code == 1
        assert "invalid UTF-8 sequence 0xdf" in result.output

    @pytest.mark.integration
    def test_not_json(self, runner: CliRunner, tmp_path: Path) -> None:
        broken = tmp_path / "broken.json"
        broken.write_text("<html>not found</html>")

        result = runner.invoke(cli, ["--format", "json", "check", str(broken)])

        assert result.exit_code == 1
        envelope = json.loads(result.output)
        assert envelope["errors"][0]["code"] == "OGDAT-DOC001"

    @pytest.mark.integration
    def test_document_over_http(self, runner: CliRunner, fullandok_22: Path) -> None:
        response = mock.Mock()
        response.content = fullandok_22.read_bytes()

        with mock.patch("ogdat_cli.cli.requests.get", return_value=response) as get:
            result = runner.invoke(cli, ["check", "http://portal.example/dataset/wien.json"])

        assert result.exit_code == 0, result.output
        assert get.call_args.args == ("http://portal.example/dataset/wien.json",)
        response.raise_for_status.assert_called_once_with()

    @pytest.mark.integration
    def test_report_file_matches_json_output(
        self, runner: CliRunner, allempty_22: Path, tmp_path: Path
    ) -> None:
        report_path = tmp_path / "out" / "report.json"
        report_path.parent.mkdir()

        result = runner.invoke(
            cli, ["check", "--json", "--output", str(report_path), str(allempty_22)]
        )

        assert result.exit_code == 1
        written = json.loads(report_path.read_text(encoding="utf-8"))
        assert written == json.loads(result.output)["data"]
        assert [m["field_id"] for m in written["messages"]][:3] == [-1, 1, 5]
