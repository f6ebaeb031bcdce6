"""Tests for log.config verification."""

from hsuploader.log_config import LogConfigState, check_log_config, verify_log_config

GOOD_CONFIG = """[Power]
LogLevel=1
FilePrinting=True
ConsolePrinting=False
ScreenPrinting=False
Verbose=True
"""


class TestCheckLogConfig:
    """Tests for creating and fixing log.config."""

    def test_creates_missing_file(self, tmp_path):
        path = tmp_path / "Hearthstone" / "log.config"

        assert check_log_config(path)

        assert path.read_text(encoding="utf-8") == GOOD_CONFIG

    def test_correct_file_untouched(self, tmp_path):
        path = tmp_path / "log.config"
        path.write_text(GOOD_CONFIG.replace("True", "true"), encoding="utf-8")

        assert not check_log_config(path)
        assert "FilePrinting=true" in path.read_text(encoding="utf-8")

    def test_fixes_wrong_values_and_keeps_other_sections(self, tmp_path):
        path = tmp_path / "log.config"
        path.write_text(
            "[Zone]\nLogLevel=1\nFilePrinting=True\n\n[Power]\nLogLevel=1\nFilePrinting=False\n",
            encoding="utf-8",
        )

        assert check_log_config(path)

        text = path.read_text(encoding="utf-8")
        assert text.startswith("[Zone]\nLogLevel=1\nFilePrinting=True\n[Power]\n")
        assert "FilePrinting=False" not in text.split("[Power]")[1]
        assert "Verbose=True" in text


class TestVerifyLogConfig:
    """Tests for the non-raising wrapper."""

    def test_states(self, tmp_path):
        path = tmp_path / "log.config"
        assert verify_log_config(path).state == LogConfigState.UPDATED
        assert verify_log_config(path).state == LogConfigState.OK

    def test_error_is_reported_not_raised(self, tmp_path):
        # A directory in place of the file cannot be read
        path = tmp_path / "log.config"
        path.mkdir()

        result = verify_log_config(path)

        assert result.state == LogConfigState.ERROR
        assert isinstance(result.exception, OSError)
