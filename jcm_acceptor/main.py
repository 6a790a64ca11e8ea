#!/usr/bin/env python3
"""
JCM Bill Acceptor Controller - Production Entry Point.

Runs the JCMController against an ID003 bill acceptor.

Usage:
    python -m jcm_acceptor.main [--port /dev/ttyUSB0] [--baudrate 9600] [--debug]

Features:
    - Reset on power-up, then enable bill acceptance
    - Automatic stacking of recognised notes
    - Jam and power-loss recovery
    - Graceful shutdown on Ctrl+C
    - Debug mode with HEX frame logging
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys

from .constants import EventType
from .driver import AcceptorEvent, JCMController
from .exceptions import DeviceFault
from .loggers import setup_logging, shutdown_logging
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply command line overrides to the default settings."""
    defaults = get_settings()
    return Settings(
        serial=dataclasses.replace(
            defaults.serial,
            port=args.port,
            baudrate=args.baudrate,
        ),
        timing=dataclasses.replace(
            defaults.timing,
            polling_cycle=args.polling_cycle,
        ),
        logging=dataclasses.replace(
            defaults.logging,
            level=logging.DEBUG if args.debug else logging.INFO,
            log_file=args.log_file,
            loki_url=args.loki_url,
        ),
        verbose=args.debug,
    )


async def main(settings: Settings) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    controller = JCMController.from_settings(settings)

    async def on_bill_stacked(event_type: str, event: AcceptorEvent) -> None:
        _, total = controller.get_accepted_cash()
        print(f"Accepted note: {event.amount} (total {total})")

    async def on_bill_rejected(event_type: str, event: AcceptorEvent) -> None:
        print("Note rejected")

    async def on_device_fault(event_type: str, event: AcceptorEvent) -> None:
        print(f"Device fault: {event.description}")

    controller.add_callback(EventType.BILL_STACKED, on_bill_stacked)
    controller.add_callback(EventType.BILL_REJECTED, on_bill_rejected)
    controller.add_callback(EventType.DEVICE_FAULT, on_device_fault)

    print(f"Connecting to bill acceptor ({settings.serial.port})...")

    if not await controller.enable(reset_if_just_powered=True):
        print("Could not enable the bill acceptor!")
        return 1

    print("Bill acceptance enabled. Waiting for notes...")
    print("Press Ctrl+C to exit.\n")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.stop)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    exit_code = 0
    try:
        await controller.run_polling_loop()
    except DeviceFault as e:
        logger.critical(f"Polling stopped: {e.message} {e.details}")
        exit_code = 1
    finally:
        print("\nStopping...")
        await controller.disable()
        counts, total = controller.get_accepted_cash()
        accepted = {value: count for value, count in counts.items() if count}
        print(f"Accepted notes: {accepted}, total {total}")

    return exit_code


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    defaults = get_settings()
    parser = argparse.ArgumentParser(
        description='JCM ID003 Bill Acceptor Controller',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        '--port', '-p',
        type=str,
        default=defaults.serial.port,
        help='Serial port path',
    )
    parser.add_argument(
        '--baudrate', '-b',
        type=int,
        default=defaults.serial.baudrate,
        help='Serial baudrate',
    )
    parser.add_argument(
        '--polling-cycle',
        type=float,
        default=defaults.timing.polling_cycle,
        help='Delay between status polls in seconds',
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=defaults.logging.log_file,
        help='Rotating log file path',
    )
    parser.add_argument(
        '--loki-url',
        type=str,
        default=defaults.logging.loki_url,
        help='Loki push endpoint for warnings and errors',
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug logging (shows HEX dump of all TX/RX frames)',
    )
    return parser.parse_args(argv)


def run() -> None:
    """Console script entry point."""
    settings = build_settings(parse_args())
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.log_file,
        loki_url=settings.logging.loki_url,
        app=settings.logging.app,
    )

    try:
        sys.exit(asyncio.run(main(settings)))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(0)
    finally:
        shutdown_logging()


if __name__ == "__main__":
    run()
