"""Unit tests for main CLI entry point."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from rowmover.exceptions import PersistenceError
from rowmover.main import main, read_ids_file, render_plan
from rowmover.registry import ArchiveTarget


@pytest.fixture
def mock_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        """
version: "1.0"
database:
  name: "app_db"
  host: "localhost"
  port: 5432
  user: "rowmover"
  password_env: "TEST_DB_PASSWORD"
defaults:
  chunk_size: 2
"""
    )
    return config_file


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def mock_mover():
    """Patch RowMover.from_config with a mover whose moves are AsyncMocks."""
    with patch("rowmover.main.RowMover") as mock_mover_class:
        mover = MagicMock()
        mover.archive_one = AsyncMock(return_value=1)
        mover.archive_many = AsyncMock(return_value=3)
        mover.__aenter__ = AsyncMock(return_value=mover)
        mover.__aexit__ = AsyncMock(return_value=None)
        mock_mover_class.from_config.return_value = mover
        yield mover


def test_main_archives_single_id(
    runner: CliRunner, mock_config_file: Path, mock_mover: MagicMock
) -> None:
    result = runner.invoke(
        main,
        ["--config", str(mock_config_file), "--target", "users", "--id", "42", "--audited-by", "svc-cron"],
    )

    assert result.exit_code == 0, result.output
    mock_mover.archive_one.assert_awaited_once_with(ArchiveTarget.USERS, 42, "svc-cron")
    assert "Archived 1 of 1 row(s) from users" in result.output


def test_main_archives_many_ids(
    runner: CliRunner, mock_config_file: Path, mock_mover: MagicMock, tmp_path: Path
) -> None:
    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("# stale accounts\n10\n\n11  # duplicate signup\n")

    result = runner.invoke(
        main,
        [
            "--config", str(mock_config_file),
            "--target", "USERS",
            "--id", "9",
            "--ids-file", str(ids_file),
            "--chunk-size", "500",
        ],
    )

    assert result.exit_code == 0, result.output
    mock_mover.archive_many.assert_awaited_once_with(ArchiveTarget.USERS, [9, 10, 11], None, 500)
    assert "Archived 3 of 3 row(s)" in result.output


def test_main_requires_ids(runner: CliRunner, mock_config_file: Path) -> None:
    result = runner.invoke(main, ["--config", str(mock_config_file), "--target", "users"])

    assert result.exit_code == 2
    assert "at least one --id" in result.output


def test_main_rejects_unknown_target(runner: CliRunner, mock_config_file: Path) -> None:
    result = runner.invoke(
        main, ["--config", str(mock_config_file), "--target", "app.users", "--id", "1"]
    )

    assert result.exit_code == 2


def test_main_config_not_found(runner: CliRunner) -> None:
    result = runner.invoke(
        main, ["--config", "/nonexistent/config.yaml", "--target", "users", "--id", "1"]
    )

    assert result.exit_code != 0
    assert "does not exist" in result.output


def test_main_invalid_config(runner: CliRunner, tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text('version: "9.9"\n')

    result = runner.invoke(
        main, ["--config", str(config_file), "--target", "users", "--id", "1"]
    )

    assert result.exit_code == 1


def test_main_dry_run_prints_statements(runner: CliRunner, mock_config_file: Path) -> None:
    """Dry run renders one statement per chunk and never builds a mover."""
    with patch("rowmover.main.RowMover") as mock_mover_class:
        result = runner.invoke(
            main,
            [
                "--config", str(mock_config_file),
                "--target", "users",
                "--id", "1", "--id", "2", "--id", "3",
                "--dry-run",
            ],
        )

    assert result.exit_code == 0, result.output
    mock_mover_class.from_config.assert_not_called()
    assert result.output.count("WITH moved AS (DELETE FROM") == 2
    assert '"id" IN ($1, $2)' in result.output


def test_main_persistence_failure_exits_nonzero(
    runner: CliRunner, mock_config_file: Path, mock_mover: MagicMock
) -> None:
    mock_mover.archive_one.side_effect = PersistenceError("Transaction failed: duplicate key")

    result = runner.invoke(
        main, ["--config", str(mock_config_file), "--target", "users", "--id", "1"]
    )

    assert result.exit_code == 1
    assert "Archived" not in result.output


def test_read_ids_file_rejects_garbage(tmp_path: Path) -> None:
    import click

    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("1\ntwo\n")

    with pytest.raises(click.BadParameter, match="line 2"):
        read_ids_file(ids_file)


def test_render_plan_single_id() -> None:
    plan = render_plan(ArchiveTarget.USERS, [42], chunk_size=512)

    assert len(plan) == 1
    assert '"id" = $1' in plan[0]


def test_main_binds_run_correlation_id(
    runner: CliRunner, mock_config_file: Path, mock_mover: MagicMock
) -> None:
    with patch("rowmover.main.configure_logging") as mock_configure:
        result = runner.invoke(
            main, ["--config", str(mock_config_file), "--target", "users", "--id", "1"]
        )

    assert result.exit_code == 0
    correlation_id = mock_configure.call_args.kwargs["correlation_id"]
    assert correlation_id
    mock_configure.return_value.bind.assert_called_once_with(component="main")
