"""Tests for logging setup and the diagnostics handle."""

import logging
from pathlib import Path

import pytest

from soar.config import LogOptions
from soar.errors import CommandError
from soar.logging_config import Diagnostics, setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_disabled_without_file(self) -> None:
        """Test that no file means a null handler and no propagation."""
        logger = setup_logging(log_file=None, name="soar.test.disabled")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.NullHandler)
        assert logger.propagate is False

    def test_writes_to_file(self, tmp_path: Path) -> None:
        """Test that messages go to the log file at the requested level."""
        log_file = tmp_path / "nested" / "soar.log"
        logger = setup_logging(log_file=str(log_file), log_level="debug", name="soar.test.file")
        logger.debug("request started")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert "request started" in log_file.read_text(encoding="utf-8")
        setup_logging(log_file=None, name="soar.test.file")

    def test_replaces_existing_handlers(self, tmp_path: Path) -> None:
        """Test that repeated setup does not stack handlers."""
        name = "soar.test.replace"
        setup_logging(log_file=tmp_path / "a.log", name=name)
        logger = setup_logging(log_file=tmp_path / "b.log", name=name)
        assert len(logger.handlers) == 1
        setup_logging(log_file=None, name=name)

    def test_unknown_level_falls_back_to_warning(self, tmp_path: Path) -> None:
        """Test that an unrecognized level name is treated as WARNING."""
        name = "soar.test.level"
        logger = setup_logging(log_file=tmp_path / "soar.log", log_level="chatty", name=name)
        assert logger.level == logging.WARNING
        setup_logging(log_file=None, name=name)

    def test_unopenable_log_file(self, tmp_path: Path) -> None:
        """Test that a log file that cannot be created raises OSError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(OSError):
            setup_logging(log_file=blocker / "soar.log", name="soar.test.oserror")


class TestDiagnostics:
    """Tests for leveled messages and result output."""

    def test_debug_hidden_by_default(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that debug messages need use_debug."""
        Diagnostics().debug("sending request")
        assert capsys.readouterr().err == ""

    def test_debug_enabled(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that use_debug prints debug messages to stderr."""
        Diagnostics(LogOptions(use_debug=True)).debug("sending request")
        captured = capsys.readouterr()
        assert "debug: sending request" in captured.err
        assert captured.out == ""

    def test_quiet_hides_info_and_warn(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that quiet suppresses info and warn but not errors."""
        diagnostics = Diagnostics(LogOptions(quiet=True))
        diagnostics.info("deleted")
        diagnostics.warn("careful")
        diagnostics.error("failed", ValueError("boom"))
        err = capsys.readouterr().err
        assert "deleted" not in err
        assert "careful" not in err
        assert "error: failed" in err
        assert "error: boom" in err

    def test_messages_are_not_markup(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that brackets in messages are printed literally."""
        Diagnostics().info("filter[email] applied")
        assert "filter[email] applied" in capsys.readouterr().err

    def test_configure_applies_new_options(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test reconfiguring once the effective config is known."""
        diagnostics = Diagnostics()
        diagnostics.configure(LogOptions(quiet=True))
        diagnostics.info("hidden")
        assert capsys.readouterr().err == ""

    def test_line_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that results go to stdout unchanged."""
        Diagnostics(LogOptions(use_color=False)).line('{\n  "a": "[b]"\n}')
        assert capsys.readouterr().out == '{\n  "a": "[b]"\n}\n'

    def test_output_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that results and raw bytes can be redirected to a file."""
        target = tmp_path / "out" / "result.json"
        diagnostics = Diagnostics(output_file=target)

        diagnostics.line('{"id":1}')
        assert target.read_text(encoding="utf-8") == '{"id":1}\n'

        diagnostics.raw(b"motd=hello\n")
        assert target.read_bytes() == b"motd=hello\n"
        assert capsys.readouterr().out == ""

    def test_unwritable_output_file(self, tmp_path: Path) -> None:
        """Test that an output path under a regular file raises CommandError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        diagnostics = Diagnostics(output_file=blocker / "result.json")
        with pytest.raises(CommandError, match="failed to write output"):
            diagnostics.line('{"id":1}')

    def test_messages_mirrored_to_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that every message also reaches the file logger."""
        logger = logging.getLogger("diagnostics.mirror")
        diagnostics = Diagnostics(LogOptions(quiet=True), logger=logger)
        with caplog.at_level(logging.DEBUG, logger="diagnostics.mirror"):
            diagnostics.debug("hidden debug")
            diagnostics.info("hidden info")
        assert "hidden debug" in caplog.text
        assert "hidden info" in caplog.text
