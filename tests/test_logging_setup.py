import gzip
import logging
import os
from unittest.mock import patch

import pytest

from nodekeeper.logging_setup import (
    CompressedRotatingFileHandler,
    SafeStreamHandler,
    setup_logging,
)


def _close_handlers(handlers):
    for h in handlers:
        h.close()


class TestCompressedRotatingFileHandler:
    """Test suite for CompressedRotatingFileHandler."""

    def test_rotation_filename(self, tmp_path):
        """rotation_filename appends .gz."""
        handler = CompressedRotatingFileHandler(str(tmp_path / "test.log"), maxBytes=1024, backupCount=3)
        try:
            assert handler.rotation_filename("test.log.1") == "test.log.1.gz"
            assert handler.rotation_filename("/path/to/file.log.2") == "/path/to/file.log.2.gz"
        finally:
            handler.close()

    def test_rotate_compresses_file(self, tmp_path):
        """rotate() compresses the source file and removes it."""
        source_file = tmp_path / "source.log"
        dest_file = tmp_path / "dest.log.gz"
        content = b"Test log content\nLine 2\nLine 3\n"
        source_file.write_bytes(content)

        handler = CompressedRotatingFileHandler(str(tmp_path / "test.log"), maxBytes=1024, backupCount=3)
        try:
            handler.rotate(str(source_file), str(dest_file))
            assert not source_file.exists()
            with gzip.open(dest_file, 'rb') as f:
                assert f.read() == content
        finally:
            handler.close()


class TestSafeStreamHandler:

    def test_falls_back_on_unicode_error(self):
        """Unencodable characters are replaced instead of raising."""
        written = []

        class NarrowStream:
            def write(self, text):
                if "✅" in text:
                    raise UnicodeEncodeError("cp1252", text, 0, 1, "cannot encode")
                written.append(text)

            def flush(self):
                pass

        handler = SafeStreamHandler(NarrowStream())
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "done ✅", None, None)
        handler.emit(record)

        assert written == ["done ?\n"]


class TestSetupLogging:
    """Test suite for setup_logging function."""

    def test_setup_logging_default_level(self, tmp_path):
        with patch('logging.basicConfig') as mock_basic_config:
            setup_logging(log_file=str(tmp_path / "logs" / "bot.log"))
            mock_basic_config.assert_called_once()
            call_kwargs = mock_basic_config.call_args[1]
            _close_handlers(call_kwargs['handlers'])
            assert call_kwargs['level'] == logging.INFO

    @pytest.mark.parametrize("name,level", [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("INVALID_LEVEL", logging.INFO)])
    def test_setup_logging_levels(self, tmp_path, name, level):
        with patch('logging.basicConfig') as mock_basic_config:
            setup_logging(name, log_file=str(tmp_path / "bot.log"))
            call_kwargs = mock_basic_config.call_args[1]
            _close_handlers(call_kwargs['handlers'])
            assert call_kwargs['level'] == level

    def test_setup_logging_creates_log_dir_and_two_handlers(self, tmp_path):
        log_file = tmp_path / "nested" / "logs" / "bot.log"
        with patch('logging.basicConfig') as mock_basic_config:
            setup_logging(log_file=str(log_file))
            handlers = mock_basic_config.call_args[1]['handlers']
            _close_handlers(handlers)

        assert os.path.isdir(log_file.parent)
        assert len(handlers) == 2
        assert isinstance(handlers[0], CompressedRotatingFileHandler)
        assert isinstance(handlers[1], SafeStreamHandler)

    def test_setup_logging_format(self, tmp_path):
        with patch('logging.basicConfig') as mock_basic_config:
            setup_logging(log_file=str(tmp_path / "bot.log"))
            call_kwargs = mock_basic_config.call_args[1]
            _close_handlers(call_kwargs['handlers'])
            format_str = call_kwargs['format']
            for part in ('%(asctime)s', '%(levelname)s', '%(name)s', '%(message)s'):
                assert part in format_str
