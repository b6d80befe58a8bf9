"""Tests for the Command Line Interface (CLI) module."""

import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_attributesdb import cli, ops
from git_attributesdb.codec import Record, encode_record
from git_attributesdb.config import Config
from git_attributesdb.constants import DATABASE_FILE, EXTRA_FILE


@pytest.fixture
def mock_repo(tmp_path: Path, mocker: MagicMock) -> MagicMock:
    """Mocks repository discovery, config loading and logging setup."""
    repo = MagicMock()
    repo.path = tmp_path
    repo.git_dir.return_value = tmp_path / ".git"
    mocker.patch("git_attributesdb.cli.GitRepo.discover", return_value=repo)
    mocker.patch("git_attributesdb.cli.Config.load", return_value=Config())
    mocker.patch("git_attributesdb.cli.setup_logging")
    return repo


@pytest.mark.parametrize(
    ("argv", "mode"),
    [
        (["pre-commit"], "pre-commit"),
        (["post-checkout", "0" * 40, "f" * 40, "1"], "post-checkout"),
        (["post-merge", "0"], "post-merge"),
    ],
)
def test_main_dispatches_hooks(
    mock_repo: MagicMock, mocker: MagicMock, argv: list[str], mode: str
) -> None:
    """Verifies that each hook name runs its phase, ignoring git's hook arguments."""
    run_phase = mocker.patch("git_attributesdb.cli.ops.run_phase")

    cli.main(argv)

    run_phase.assert_called_once_with(mode, mock_repo, mocker.ANY)


def test_main_fatal_error_exits_1(
    mock_repo: MagicMock, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    mocker.patch(
        "git_attributesdb.cli.ops.run_phase",
        side_effect=ops.AttributesDBError("Failed to stage .gitattributesdb"),
    )

    with pytest.raises(SystemExit) as exc:
        cli.main(["pre-commit"])

    assert exc.value.code == 1
    assert "Failed to stage" in capsys.readouterr().err


@pytest.mark.parametrize(
    "error",
    [
        RuntimeError("Git error: index.lock exists"),
        PermissionError(13, "Permission denied", ".gitattributesdb"),
    ],
)
def test_main_unexpected_failures_exit_1(
    mock_repo: MagicMock,
    mocker: MagicMock,
    capsys: pytest.CaptureFixture,
    error: Exception,
) -> None:
    """Verifies that git and filesystem errors are reported without a traceback."""
    mocker.patch("git_attributesdb.cli.ops.run_phase", side_effect=error)

    with pytest.raises(SystemExit) as exc:
        cli.main(["post-checkout"])

    assert exc.value.code == 1
    err = capsys.readouterr().err
    assert "ERROR" in err
    assert "Traceback" not in err


def test_show_unreadable_database_exits_1(
    mock_repo: MagicMock, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    mocker.patch(
        "git_attributesdb.cli.Database.load",
        side_effect=PermissionError(13, "Permission denied"),
    )

    with pytest.raises(SystemExit) as exc:
        cli.main(["show"])

    assert exc.value.code == 1
    assert "Permission denied" in capsys.readouterr().err


def test_main_unknown_command_exits_1(capsys: pytest.CaptureFixture) -> None:
    """Verifies that an invalid mode is an invocation error with exit code 1."""
    with pytest.raises(SystemExit) as exc:
        cli.main(["post-rewrite"])

    assert exc.value.code == 1
    assert "ERROR" in capsys.readouterr().err


def test_main_missing_command_exits_1() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 1


def test_main_outside_repository_exits_1(
    mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    mocker.patch(
        "git_attributesdb.cli.GitRepo.discover",
        side_effect=RuntimeError("Cannot resolve repository root: fatal"),
    )

    with pytest.raises(SystemExit) as exc:
        cli.main(["post-checkout"])

    assert exc.value.code == 1
    assert "Cannot resolve repository root" in capsys.readouterr().err


def test_show_lists_database_entries(
    mock_repo: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    (tmp_path / DATABASE_FILE).write_text(
        encode_record(Record("docs/guide.md", 0, 0, "alice", "staff", 0o640)) + "\n"
    )

    cli.main(["show"])

    out = capsys.readouterr().out
    assert "docs/guide.md" in out
    assert "alice:staff" in out
    assert "0640" in out


def test_show_empty_database(
    mock_repo: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    cli.main(["show"])
    assert "No entries" in capsys.readouterr().out


def test_extra_lists_expressions_and_matches(
    mock_repo: MagicMock,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "site.conf").write_text("x")
    (tmp_path / EXTRA_FILE).write_text(
        base64.b64encode(b"*.conf").decode()
        + "\n"
        + base64.b64encode(b"gone/*").decode()
        + "\n"
    )

    cli.main(["extra"])

    out = capsys.readouterr().out
    assert "*.conf" in out
    assert "site.conf" in out
    assert "none" in out


def test_setup_logging_adds_rotating_file(tmp_path: Path) -> None:
    """Verifies that a configured log file gets a rotating handler."""
    from logging.handlers import RotatingFileHandler

    config = Config()
    config.logging.file = str(tmp_path / "hooks.log")
    config.logging.level = "DEBUG"

    try:
        cli.setup_logging(config)
        handlers = cli.logger.handlers
        assert cli.logger.level == 10
        assert any(isinstance(h, RotatingFileHandler) for h in handlers)
    finally:
        for handler in list(cli.logger.handlers):
            handler.close()
            cli.logger.removeHandler(handler)
        cli.logger.setLevel("NOTSET")
