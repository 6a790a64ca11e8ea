"""
Unit tests for settings, logging setup, exceptions and the command line.
"""

import logging
import threading
from logging.handlers import QueueHandler, RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest
import serial

from jcm_acceptor.exceptions import (
    AcceptorError,
    DeviceError,
    DeviceFault,
    TransportError,
    TransportTimeoutError,
)
from jcm_acceptor.loggers import (
    PACKAGE_LOGGER,
    LokiHandler,
    send_to_loki,
    setup_logging,
    shutdown_logging,
)
from jcm_acceptor.main import build_settings, parse_args
from jcm_acceptor.settings import Settings, get_settings


# =============================================================================
# Settings Tests
# =============================================================================


class TestSettings:
    """Tests for Settings."""

    def test_get_settings_singleton(self):
        """Test that get_settings returns singleton."""
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2

    def test_serial_defaults(self):
        """Test ID003 line settings."""
        settings = Settings()
        assert settings.serial.baudrate == 9600
        assert settings.serial.bytesize == serial.EIGHTBITS
        assert settings.serial.parity == serial.PARITY_EVEN
        assert settings.serial.stopbits == serial.STOPBITS_ONE

    def test_timing_defaults(self):
        settings = Settings()
        assert settings.timing.polling_cycle == 0.2
        assert settings.timing.error_recovery == 5.0
        assert settings.timing.status_retry_window == 3.0

    def test_sections_are_frozen(self):
        with pytest.raises(AttributeError):
            Settings().serial.port = "/dev/ttyS0"


# =============================================================================
# Logging Tests
# =============================================================================


class TestLogging:
    """Tests for setup_logging and the Loki handler."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        level = package_logger.level
        handlers = list(package_logger.handlers)
        yield
        shutdown_logging()
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            package_logger.addHandler(handler)
        package_logger.setLevel(level)

    def test_console_only(self):
        logger = setup_logging(level=logging.DEBUG)

        assert logger.name == PACKAGE_LOGGER
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "acceptor.log"
        logger = setup_logging(log_file=str(log_file))

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1

        logging.getLogger("jcm_acceptor.driver").info("Bill stacked: 100")
        file_handlers[0].flush()
        assert "Bill stacked: 100" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_replaces_handlers(self, tmp_path):
        setup_logging(log_file=str(tmp_path / "a.log"))
        logger = setup_logging()

        assert len(logger.handlers) == 1

    def test_loki_entries_are_queued(self):
        logger = setup_logging(level=logging.DEBUG, loki_url="http://loki:3100/loki/api/v1/push")

        queue_handlers = [h for h in logger.handlers if isinstance(h, QueueHandler)]
        assert len(queue_handlers) == 1
        assert queue_handlers[0].level == logging.WARNING
        assert not any(isinstance(h, LokiHandler) for h in logger.handlers)

    def test_loki_push_happens_off_the_caller_thread(self):
        threads = []

        def record_thread(*args):
            threads.append(threading.get_ident())

        with patch("jcm_acceptor.loggers.send_to_loki", side_effect=record_thread) as push:
            setup_logging(loki_url="http://loki/push", app="kiosk")
            package_logger = logging.getLogger("jcm_acceptor.driver")
            package_logger.info("Bill stacked: 100")
            package_logger.warning("COMMUNICATION ERROR: TIMEOUT")
            shutdown_logging()

        push.assert_called_once()
        args = push.call_args[0]
        assert args[0] == "http://loki/push"
        assert args[1] == "WARNING"
        assert "COMMUNICATION ERROR: TIMEOUT" in args[2]
        assert args[3] == "kiosk"
        assert threads and threads[0] != threading.get_ident()

    def test_send_to_loki_payload(self):
        with patch("jcm_acceptor.loggers.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            send_to_loki("http://loki/push", "ERROR", "STACKER FULL", "kiosk")

        client.post.assert_called_once()
        args, kwargs = client.post.call_args
        assert args[0] == "http://loki/push"
        stream = kwargs["json"]["streams"][0]
        assert stream["stream"] == {"level": "ERROR", "app": "kiosk"}
        assert stream["values"][0][1] == "STACKER FULL"

    def test_loki_handler_failure_is_handled(self):
        handler = LokiHandler("http://loki/push", "kiosk")
        handler.handleError = MagicMock()
        record = logging.LogRecord(
            "jcm_acceptor", logging.ERROR, __file__, 1, "fault", None, None,
        )

        with patch("jcm_acceptor.loggers.send_to_loki", side_effect=OSError("down")):
            handler.emit(record)

        handler.handleError.assert_called_once_with(record)


# =============================================================================
# Exceptions Tests
# =============================================================================


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        assert issubclass(DeviceFault, DeviceError)
        assert issubclass(TransportTimeoutError, TransportError)
        assert issubclass(TransportError, AcceptorError)

    def test_device_fault_to_dict(self):
        error = DeviceFault(
            "STACKER FULL",
            status_code=0x43,
            device_name="/dev/ttyUSB0",
        )

        assert error.to_dict() == {
            "error": "DeviceFault",
            "message": "STACKER FULL",
            "details": {"device": "/dev/ttyUSB0", "status": "0x43"},
        }


# =============================================================================
# Command Line Tests
# =============================================================================


class TestCommandLine:
    """Tests for argument parsing."""

    def test_defaults(self):
        settings = build_settings(parse_args([]))

        assert settings.serial.port == "/dev/ttyUSB0"
        assert settings.serial.parity == serial.PARITY_EVEN
        assert settings.logging.level == logging.INFO
        assert settings.verbose is False

    def test_overrides(self):
        args = parse_args([
            "--port", "/dev/ttyS1",
            "--baudrate", "19200",
            "--polling-cycle", "0.5",
            "--log-file", "/tmp/acceptor.log",
            "--debug",
        ])
        settings = build_settings(args)

        assert settings.serial.port == "/dev/ttyS1"
        assert settings.serial.baudrate == 19200
        assert settings.timing.polling_cycle == 0.5
        assert settings.timing.error_recovery == 5.0
        assert settings.logging.log_file == "/tmp/acceptor.log"
        assert settings.logging.level == logging.DEBUG
        assert settings.verbose is True
