"""
Tests for logging setup and the pass utility helpers.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from kontent_migrator.utils import InvalidPassPathError, PassError, get_pass_value, setup_logging


@pytest.mark.unit
class TestSetupLogging:
    """Test setup_logging levels and handlers."""

    def _run(self, **kwargs: object) -> logging.Logger:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        setup_logging(**kwargs)  # type: ignore[arg-type]
        return root_logger

    def test_default_level_is_info(self) -> None:
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        original_level = root_logger.level

        try:
            assert self._run(log_file=None).level == logging.INFO
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers
            root_logger.setLevel(original_level)

    def test_verbose_is_debug_and_quiets_urllib3(self) -> None:
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        original_level = root_logger.level

        try:
            assert self._run(verbose=True, log_file=None).level == logging.DEBUG
            assert logging.getLogger("urllib3").level == logging.WARNING
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers
            root_logger.setLevel(original_level)

    def test_log_file_handler(self, tmp_path: Path) -> None:
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        original_level = root_logger.level

        try:
            handlers = self._run(log_file=str(tmp_path / "migration.log")).handlers
            assert any(isinstance(h, logging.FileHandler) for h in handlers)
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers
            root_logger.setLevel(original_level)


@pytest.mark.unit
class TestGetPassValue:
    def test_returns_first_line(self) -> None:
        completed = MagicMock(stdout="secret\nenvironment: production\n")
        with patch("kontent_migrator.utils.subprocess.run", return_value=completed) as mock_run:
            assert get_pass_value("kontent/management") == "secret"
        assert mock_run.call_args.args[0] == ["pass", "show", "kontent/management"]
        assert mock_run.call_args.kwargs["stdin"] == subprocess.DEVNULL

    @pytest.mark.parametrize("pass_path", ["../etc/passwd", "a b", "/absolute", "trailing/"])
    def test_invalid_path_rejected(self, pass_path: str) -> None:
        with (
            patch("kontent_migrator.utils.subprocess.run") as mock_run,
            pytest.raises(InvalidPassPathError, match="Invalid pass path"),
        ):
            _ = get_pass_value(pass_path)
        mock_run.assert_not_called()

    def test_missing_entry(self) -> None:
        error = subprocess.CalledProcessError(1, ["pass"], stderr="Error: kontent/x is not in the password store.")
        with (
            patch("kontent_migrator.utils.subprocess.run", side_effect=error),
            pytest.raises(InvalidPassPathError, match="No API key stored"),
        ):
            _ = get_pass_value("kontent/x")

    def test_locked_key_is_not_prompted_for(self) -> None:
        error = subprocess.CalledProcessError(2, ["pass"], stderr="gpg: public key decryption failed: No pinentry")
        with (
            patch("kontent_migrator.utils.subprocess.run", side_effect=error) as mock_run,
            pytest.raises(PassError, match="locked"),
        ):
            _ = get_pass_value("kontent/x")
        assert mock_run.call_count == 1

    def test_empty_entry(self) -> None:
        with (
            patch("kontent_migrator.utils.subprocess.run", return_value=MagicMock(stdout="\n")),
            pytest.raises(PassError, match="empty"),
        ):
            _ = get_pass_value("kontent/x")

    def test_pass_not_installed(self) -> None:
        with (
            patch("kontent_migrator.utils.subprocess.run", side_effect=FileNotFoundError("pass")),
            pytest.raises(PassError, match="not installed"),
        ):
            _ = get_pass_value("kontent/x")
