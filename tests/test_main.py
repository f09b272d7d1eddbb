"""
Tests for the main orchestration module.

Tests cover:
- Exit codes for every check outcome
- Fatal fetch and configuration errors
- Mailing and saving the run log
- Opening the update page
"""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest

from patch_watcher.fetch import FetchError
from patch_watcher.main import (
    EXIT_ANOMALY,
    EXIT_ENV_ERROR,
    EXIT_FAILURE,
    EXIT_NOT_FOUND,
    EXIT_SUCCESS,
    main,
    run_check,
)
from patch_watcher.utils import Settings


UPDATE_PAGE = "http://www.example.com/primavera.html"


def make_page(version: str) -> str:
    """Build a page whose second marker is preceded by the given version."""
    return (
        "<html><body>See the Product Documentation library "
        f"for details. Patch ABCD{version} Documentation</body></html>"
    )


@pytest.fixture
def settings():
    return Settings(
        max_version=Decimal("13.0"),
        update_page=UPDATE_PAGE,
        current_version=Decimal("13.0"),
        mail_server="smtp.example.com",
        email_from="patcher@example.com",
        email_to="admin@example.com",
    )


@pytest.fixture
def env(tmp_path):
    return {
        "PATCH_MAX_VERSION": "13.0",
        "PATCH_UPDATE_PAGE": UPDATE_PAGE,
        "SMTP_HOST": "smtp.example.com",
        "EMAIL_FROM": "patcher@example.com",
        "EMAIL_TO": "admin@example.com",
        "LOG_DIR": str(tmp_path / "logs"),
    }


class TestRunCheck:
    """Tests for a single patch check."""

    @patch("patch_watcher.main.fetch_update_page")
    def test_up_to_date(self, mock_fetch, settings, capsys):
        mock_fetch.return_value = make_page("13.0")

        assert run_check(settings) == EXIT_SUCCESS
        assert "Currently using patch #13.0" in capsys.readouterr().out
        mock_fetch.assert_called_once_with(UPDATE_PAGE, timeout=settings.fetch_timeout)

    @patch("patch_watcher.main.open_update_page")
    @patch("patch_watcher.main.fetch_update_page")
    def test_update_available(self, mock_fetch, mock_open, settings, capsys):
        """Test a newer patch is reported without opening the browser."""
        mock_fetch.return_value = make_page("13.5")

        assert run_check(settings) == EXIT_SUCCESS
        assert "Newer version #13.5 available" in capsys.readouterr().out
        mock_open.assert_not_called()

    @patch("patch_watcher.main.open_update_page")
    @patch("patch_watcher.main.fetch_update_page")
    def test_update_available_opens_browser(self, mock_fetch, mock_open, settings):
        mock_fetch.return_value = make_page("13.5")
        settings.open_browser = True

        assert run_check(settings) == EXIT_SUCCESS
        mock_open.assert_called_once_with(UPDATE_PAGE)

    @patch("patch_watcher.main.fetch_update_page")
    def test_anomaly(self, mock_fetch, settings, capsys):
        mock_fetch.return_value = make_page("12.4")

        assert run_check(settings) == EXIT_ANOMALY
        assert "newer than latest" in capsys.readouterr().out

    @patch("patch_watcher.main.fetch_update_page")
    def test_not_found(self, mock_fetch, settings, capsys):
        """Test that a missing version is never reported as up to date."""
        mock_fetch.return_value = "<html><body>Documentation only once</body></html>"

        assert run_check(settings) == EXIT_NOT_FOUND
        out = capsys.readouterr().out
        assert "could not determine" in out
        assert "Currently using" not in out

    @patch("patch_watcher.main.fetch_update_page")
    def test_fetch_error(self, mock_fetch, settings, capsys):
        mock_fetch.side_effect = FetchError("Could not fetch page: Request timeout", url=UPDATE_PAGE)

        assert run_check(settings) == EXIT_FAILURE
        out = capsys.readouterr().out
        assert "Request timeout" in out
        assert "Currently using" not in out


class TestMain:
    """Tests for the entry point."""

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_clean_run_does_not_mail(self, mock_fetch, mock_send, env, tmp_path):
        mock_fetch.return_value = make_page("13.0")

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_SUCCESS

        mock_send.assert_not_called()
        assert not (tmp_path / "logs").exists()

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_debug_mails_and_saves(self, mock_fetch, mock_send, env, tmp_path):
        """Test that debugging always mails and saves the run log."""
        mock_fetch.return_value = make_page("13.0")
        env["DEBUG"] = "true"

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_SUCCESS

        mock_send.assert_called_once()
        log_text = mock_send.call_args[0][0]
        assert "Starting Patch Watcher..." in log_text
        assert len(list((tmp_path / "logs").glob("patch_watcher_*.log"))) == 1

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_error_mails_log(self, mock_fetch, mock_send, env):
        mock_fetch.side_effect = FetchError("Could not fetch page: HTTP 503", url=UPDATE_PAGE)

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_FAILURE

        mock_send.assert_called_once()
        assert "HTTP 503" in mock_send.call_args[0][0]

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_skipped_occurrence_mails_log(self, mock_fetch, mock_send, env, tmp_path):
        """Test that a bad marker occurrence gets the log mailed on an otherwise clean run."""
        mock_fetch.return_value = "x Documentation abc Documentation y ABCD13.0 Documentation"

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_SUCCESS

        mock_send.assert_called_once()
        assert "too short" in mock_send.call_args[0][0]
        assert len(list((tmp_path / "logs").glob("patch_watcher_*.log"))) == 1

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_dry_run_passed_through(self, mock_fetch, mock_send, env):
        mock_fetch.return_value = make_page("12.0")
        env["DRY_RUN"] = "1"

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_ANOMALY

        assert mock_send.call_args[1]["dry_run"] is True

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_missing_config_aborts_before_fetch(self, mock_fetch, mock_send, tmp_path, capsys):
        """Test that a configuration error stops the run and saves the log."""
        with patch.dict(os.environ, {"LOG_DIR": str(tmp_path / "logs")}, clear=True):
            assert main() == EXIT_ENV_ERROR

        mock_fetch.assert_not_called()
        mock_send.assert_not_called()
        assert "Error in getting config" in capsys.readouterr().out

        saved = list((tmp_path / "logs").glob("patch_watcher_*.log"))
        assert len(saved) == 1
        assert "PATCH_MAX_VERSION" in saved[0].read_text(encoding="utf-8")

    @patch("patch_watcher.main.send_log_email")
    @patch("patch_watcher.main.fetch_update_page")
    def test_unexpected_error(self, mock_fetch, mock_send, env):
        mock_fetch.side_effect = RuntimeError("renderer crashed")

        with patch.dict(os.environ, env, clear=True):
            assert main() == EXIT_FAILURE

        mock_send.assert_called_once()
