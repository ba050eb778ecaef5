"""Integration tests for `ogdat config` together with the commands it feeds."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest import mock

import pytest
from click.testing import CliRunner

from ogdat_cli.cli import cli


@pytest.fixture(autouse=True)
def clean_env():
    env = {k: v for k, v in os.environ.items() if not k.startswith("OGDAT_")}
    with mock.patch.dict(os.environ, env, clear=True):
        yield


class TestConfigWorkflow:
    """Integration tests for complete config workflow."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create a Click test runner."""
        return CliRunner()

    @pytest.mark.integration
    def test_full_config_workflow(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test set -> get -> list -> unset workflow."""
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["config", "set", "portal_url", "http://portal.example/"])
            assert result.exit_code == 0

            result = runner.invoke(cli, ["config", "get", "portal_url"])
            assert "http://portal.example/" in result.output

            result = runner.invoke(cli, ["config", "list"])
            assert "portal_url = http://portal.example/  (file)" in result.output

            result = runner.invoke(cli, ["config", "unset", "portal_url"])
            assert result.exit_code == 0

            result = runner.invoke(cli, ["--format", "json", "config", "get", "portal_url"])
            assert json.loads(result.output)["data"]["value"] != "http://portal.example/"

    @pytest.mark.integration
    def test_store_path_setting_moves_the_store(self, runner: CliRunner, tmp_path: Path) -> None:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            runner.invoke(cli, ["config", "set", "store_path", "state/watch.json"])

            result = runner.invoke(cli, ["watch", "reset", "--yes", "--format", "json"])
            # --format belongs to the root command
            assert result.exit_code == 2

            result = runner.invoke(cli, ["--format", "json", "watch", "reset", "--yes"])

            assert result.exit_code == 0
            assert json.loads(result.output)["data"] == {"store_path": "state/watch.json"}
            assert Path("state/watch.json").exists()

    @pytest.mark.integration
    def test_env_overrides_file_for_commands(self, runner: CliRunner, tmp_path: Path) -> None:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            runner.invoke(cli, ["config", "set", "workers", "8"])

            with mock.patch("ogdat_cli.batch.check_data", return_value=0) as check_data:
                runner.invoke(cli, ["watch", "run"], env={"OGDAT_WORKERS": "3"})

        assert check_data.call_args.args[0].workers == 3
