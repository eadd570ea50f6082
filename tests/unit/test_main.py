"""Tests for the command line entry point."""

import json
from unittest.mock import AsyncMock, patch

import pytest
import structlog

from accounfix.__main__ import (
    build_shell,
    main,
    masked_config,
    parse_args,
    run_session,
    setup_logging,
)
from accounfix.config.schema import AccountFixConfig, AnthropicConfig, ERPSyncConfig


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Run from an empty directory with a known API key."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("API_KEY", "sk-ant-test-key-123")
    setup_logging()
    yield
    structlog.reset_defaults()


class TestParseArgs:
    """Test command line parsing."""

    def test_defaults(self):
        """Test the defaults with no arguments."""
        args = parse_args([])
        assert args.config is None
        assert args.debug is False
        assert args.format is None
        assert args.dry_run is False
        assert args.health_check is False
        assert args.no_demo_data is False

    def test_all_flags(self, tmp_path):
        """Test every option."""
        args = parse_args(
            ["-c", "cfg.yaml", "-d", "--format", "json", "--dry-run", "--no-demo-data"]
        )
        assert str(args.config) == "cfg.yaml"
        assert args.debug is True
        assert args.format == "json"
        assert args.dry_run is True
        assert args.no_demo_data is True

    def test_invalid_format(self):
        """Test that unknown formats are refused."""
        with pytest.raises(SystemExit):
            parse_args(["--format", "xml"])


class TestMaskedConfig:
    """Test the configuration dump."""

    def test_api_key_masked(self):
        """Test that the key is never printed in full."""
        data = masked_config(AccountFixConfig(ai=AnthropicConfig(api_key="sk-ant-secret-value")))
        assert data["ai"]["api_key"] == "sk-a...alue"
        assert data["erp"]["id_prefix"] == "MS-DYN-"
        json.dumps(data)


class TestBuildShell:
    """Test wiring."""

    def test_with_demo_records(self):
        """Test that the sample records are loaded."""
        shell = build_shell(AccountFixConfig(), seed_demo_records=True)
        assert [r.id for r in shell._workbench.store] == ["2", "1"]

    def test_without_demo_records(self):
        """Test an empty start."""
        config = AccountFixConfig(erp=ERPSyncConfig(delay_seconds=0))
        shell = build_shell(config, seed_demo_records=False)
        assert len(shell._workbench.store) == 0


class TestRunSession:
    """Test run_session."""

    async def test_dry_run_prints_masked_config(self, capsys):
        """Test --dry-run."""
        assert await run_session(None, dry_run=True) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["ai"]["api_key"] == "sk-a...-123"

    async def test_missing_config_file(self, tmp_path, capsys):
        """Test a config path that does not exist."""
        assert await run_session(tmp_path / "nope.yaml") == 1
        assert "Configuration file not found" in capsys.readouterr().err

    async def test_invalid_config_file(self, tmp_path, capsys):
        """Test a config file that fails validation."""
        path = tmp_path / "bad.yaml"
        path.write_text("erp:\n  failure_rate: 5\n")
        assert await run_session(path) == 1
        assert "Invalid configuration" in capsys.readouterr().err

    async def test_health_check(self, capsys):
        """Test --health-check with a writable working directory."""
        assert await run_session(None, health_check=True) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["healthy"] is True
        assert {c["name"] for c in report["checks"]} == {"config", "ai_credentials", "export_dir"}

    async def test_health_check_unhealthy(self, tmp_path, capsys):
        """Test --health-check with a missing export directory."""
        path = tmp_path / "cfg.yaml"
        path.write_text(f"workbench:\n  export_dir: {tmp_path / 'missing'}\n")
        assert await run_session(path, health_check=True) == 1

    async def test_session_runs_shell(self):
        """Test that a normal start runs the shell."""
        with patch("accounfix.shell.Shell.run", new_callable=AsyncMock) as run:
            assert await run_session(None, no_demo_data=True) == 0
        run.assert_awaited_once()


class TestMain:
    """Test the synchronous entry point."""

    def test_main_dry_run(self, capsys):
        """Test main() end to end."""
        assert main(["--dry-run"]) == 0
        assert '"model"' in capsys.readouterr().out

