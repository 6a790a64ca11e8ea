"""
Application settings.

Provides type-safe configuration grouped into frozen dataclasses.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import serial

from .constants import (
    DEFAULT_BAUDRATE,
    ERROR_RECOVERY_S,
    POLLING_CYCLE_S,
    READ_TIMEOUT_S,
    STATUS_RETRY_WINDOW_S,
    WRITE_TIMEOUT_S,
)


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class SerialPortSettings:
    """Serial port configuration."""

    port: str = "/dev/ttyUSB0"
    baudrate: int = DEFAULT_BAUDRATE
    bytesize: int = serial.EIGHTBITS
    parity: str = serial.PARITY_EVEN
    stopbits: float = serial.STOPBITS_ONE
    read_timeout: float = READ_TIMEOUT_S
    write_timeout: float = WRITE_TIMEOUT_S


@dataclass(frozen=True)
class TimingSettings:
    """Polling and recovery delays, in seconds."""

    polling_cycle: float = POLLING_CYCLE_S
    error_recovery: float = ERROR_RECOVERY_S
    status_retry_window: float = STATUS_RETRY_WINDOW_S


@dataclass(frozen=True)
class LoggingSettings:
    """Logging destinations."""

    level: int = logging.INFO
    log_file: Optional[str] = None
    loki_url: Optional[str] = None
    app: str = "jcm_acceptor"


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    serial: SerialPortSettings = field(default_factory=SerialPortSettings)
    timing: TimingSettings = field(default_factory=TimingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    verbose: bool = False


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
