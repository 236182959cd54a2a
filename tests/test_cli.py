"""Tests for the command line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeCatalog, make_product, make_variation
from inventory_sync import cli
from inventory_sync.core.state import JsonFileStateRepository, SyncState, SyncStatus


runner = CliRunner()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        [make_product(1), make_product(10, type="variable")],
        {10: [make_variation(101), make_variation(102)]},
    )


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, catalog: FakeCatalog) -> Path:
    """Credentials and file locations in the environment, fake catalog wired in."""
    monkeypatch.setenv("INVENTORY_SYNC_STORE_URL", "https://shop.test")
    monkeypatch.setenv("INVENTORY_SYNC_CONSUMER_KEY", "ck_test")
    monkeypatch.setenv("INVENTORY_SYNC_CONSUMER_SECRET", "cs_test")
    monkeypatch.setenv("INVENTORY_SYNC_DATABASE__PATH", str(tmp_path / "inventory.db"))
    monkeypatch.setenv("INVENTORY_SYNC_SYNC__STATE_FILE", str(tmp_path / "state.json"))
    monkeypatch.setattr(cli, "create_catalog_client", lambda settings: catalog)
    return tmp_path


class TestSyncCommand:
    """Tests for the sync command."""

    def test_sync_runs_to_completion(self, env: Path) -> None:
        """Test sync imports everything and records a log entry."""
        result = runner.invoke(cli.app, ["sync", "--quiet"])
        assert result.exit_code == 0, result.output
        assert "Sync completed" in result.output

        logs = runner.invoke(cli.app, ["logs"])
        assert logs.exit_code == 0
        assert "success" in logs.output

    def test_sync_resumes_checkpoint(self, env: Path, catalog: FakeCatalog) -> None:
        """Test sync continues a run left in the state file."""
        states = JsonFileStateRepository(env / "state.json")
        states.save(
            "default",
            SyncState(status=SyncStatus.IN_PROGRESS, page=2, page_size=1, estimated_total=2),
        )

        result = runner.invoke(cli.app, ["sync", "--quiet"])
        assert result.exit_code == 0, result.output
        assert catalog.product_calls[0] == (1, 2)
        assert states.load("default") is None

    def test_sync_connectivity_failure(self, env: Path, catalog: FakeCatalog) -> None:
        """Test a failed pre-flight exits non-zero."""
        catalog.connected = False
        result = runner.invoke(cli.app, ["sync", "--quiet"])
        assert result.exit_code == 1

    def test_sync_requires_credentials(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test missing credentials are reported."""
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli.app, ["sync", "--quiet"])
        assert result.exit_code == 1
        assert "store_url is required" in result.output


class TestOtherCommands:
    """Tests for progress, reset, logs, import and config."""

    def test_progress_idle(self, env: Path) -> None:
        """Test progress with no run."""
        result = runner.invoke(cli.app, ["progress"])
        assert result.exit_code == 0
        assert "No sync in progress" in result.output

    def test_progress_and_reset(self, env: Path) -> None:
        """Test progress shows a stored run and reset clears it."""
        states = JsonFileStateRepository(env / "state.json")
        states.save("default", SyncState(status=SyncStatus.IN_PROGRESS, page=3))

        result = runner.invoke(cli.app, ["progress"])
        assert result.exit_code == 0
        assert "Sync Progress" in result.output

        result = runner.invoke(cli.app, ["reset"])
        assert result.exit_code == 0
        assert states.load("default") is None

    def test_logs_empty(self, env: Path) -> None:
        """Test logs before any sync."""
        result = runner.invoke(cli.app, ["logs"])
        assert result.exit_code == 0
        assert "No syncs recorded" in result.output

    def test_import_variations_dry_run(self, env: Path) -> None:
        """Test a dry run import writes nothing."""
        result = runner.invoke(
            cli.app, ["import-variations", "--mode", "strict", "--dry-run", "--quiet"]
        )
        assert result.exit_code == 0, result.output

        logs = runner.invoke(cli.app, ["logs"])
        assert "No syncs recorded" in logs.output

    def test_import_variations(self, env: Path) -> None:
        """Test an import adds the parent and its variations."""
        result = runner.invoke(cli.app, ["import-variations", "--quiet"])
        assert result.exit_code == 0, result.output
        assert "Imported 3 items" in result.output

    def test_test_connection(self, env: Path, catalog: FakeCatalog) -> None:
        """Test the connection check reports both outcomes."""
        ok = runner.invoke(cli.app, ["test-connection"])
        assert ok.exit_code == 0
        assert "Connection successful" in ok.output

        catalog.connected = False
        failed = runner.invoke(cli.app, ["test-connection"])
        assert failed.exit_code == 1

    def test_config_show(self, env: Path) -> None:
        """Test config --show hides the secret."""
        result = runner.invoke(cli.app, ["config", "--show"])
        assert result.exit_code == 0
        assert "https://shop.test" in result.output
        assert "cs_test" not in result.output

    def test_config_init(self, env: Path) -> None:
        """Test config --init writes a redacted file."""
        output = env / "config.toml"
        result = runner.invoke(cli.app, ["config", "--init", "--output", str(output)])
        assert result.exit_code == 0
        assert "REDACTED" in output.read_text()

    def test_version(self) -> None:
        """Test --version."""
        result = runner.invoke(cli.app, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output
