"""Unit tests for Autopilot logging configuration."""

import logging
import tempfile
from pathlib import Path

import pytest

from autopilot.logging import sanitize_for_log, setup_logging, truncate_output


@pytest.fixture(autouse=True)
def reset_autopilot_logger():
    """Leave the autopilot logger as other tests expect to find it."""
    yield
    logger = logging.getLogger("autopilot")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_creates_log_directory(self) -> None:
        """Log directory is created if it doesn't exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_dir = Path(tmpdir) / "nested" / "logs"
            setup_logging(log_dir=log_dir, console=False)

            assert log_dir.exists()

    def test_writes_to_log_file(self) -> None:
        """Log messages are written to the file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False)
            logger.info("test message 123")

            content = (Path(tmpdir) / "autopilot.log").read_text()
            assert "test message 123" in content
            assert "| INFO     | autopilot |" in content

    def test_respects_level(self) -> None:
        """Messages below the configured level are dropped."""
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False, level="WARNING")
            logger.info("hidden")
            logger.warning("shown")

            content = (Path(tmpdir) / "autopilot.log").read_text()
            assert "hidden" not in content
            assert "shown" in content

    def test_repeated_setup_does_not_duplicate_handlers(self) -> None:
        """Calling setup twice leaves one file handler."""
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, console=False)
            logger = setup_logging(log_dir=tmpdir, console=False)

            assert len(logger.handlers) == 1

    def test_env_overrides_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """AUTOPILOT_LOG_LEVEL sets the level when none is passed."""
        monkeypatch.setenv("AUTOPILOT_LOG_LEVEL", "DEBUG")
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False)

            assert logger.level == logging.DEBUG

    def test_redacts_credentials_in_file(self) -> None:
        """Tokens passed as log arguments never reach the file."""
        token = "ghp_" + "z" * 36
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False)
            logger.getChild("git_manager").error("push failed: %s", f"https://{token}@github.com")

            content = (Path(tmpdir) / "autopilot.log").read_text()
            assert token not in content
            assert "push failed: https://[GITHUB_TOKEN]@github.com" in content

    def test_quiets_http_client_loggers(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, console=False, level="DEBUG")

            assert logging.getLogger("httpx").level == logging.WARNING


@pytest.mark.unit
class TestTruncateOutput:
    """Tests for truncate_output."""

    def test_short_output_unchanged(self) -> None:
        assert truncate_output("short", max_length=10) == "short"

    def test_long_output_truncated(self) -> None:
        result = truncate_output("x" * 15, max_length=10)

        assert result.startswith("x" * 10)
        assert result.endswith("[truncated, 5 more chars]")


@pytest.mark.unit
class TestSanitizeForLog:
    """Tests for sanitize_for_log."""

    def test_redacts_github_token(self) -> None:
        token = "ghp_" + "a" * 36
        assert sanitize_for_log(f"token is {token}") == "token is [GITHUB_TOKEN]"

    def test_redacts_linear_key(self) -> None:
        key = "lin_api_" + "b" * 40
        assert "[LINEAR_API_KEY]" in sanitize_for_log(key)

    def test_redacts_bearer_header(self) -> None:
        assert sanitize_for_log("Authorization: Bearer abc.def") == (
            "Authorization: Bearer [REDACTED]"
        )

    def test_plain_text_unchanged(self) -> None:
        assert sanitize_for_log("nothing secret here") == "nothing secret here"
