"""Command-line entry point: ``python -m modbus_gateway``."""

import argparse
import signal
import sys
import threading
from typing import List, Optional

from .logger import get_logger
from .modbus_gateway_plugin import GatewayRuntime
from .plugin_config_decode.modbus_gateway_config_model import GatewayConfigError, SCHEDULING_MODES
from .settings import LOG_LEVELS, GatewaySettings

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modbus-gateway",
        description="Poll Modbus TCP devices and publish their points through an outstation.",
    )
    parser.add_argument("--config", help="Gateway configuration file (default: $GATEWAY_CONFIG)")
    parser.add_argument("--scheduling", choices=SCHEDULING_MODES,
                        help="Override the configured scheduling model")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper,
                        help="Log level (default: $GATEWAY_LOG_LEVEL or INFO)")
    return parser


def main(argv: Optional[List[str]] = None, runtime: Optional[GatewayRuntime] = None,
         shutdown: Optional[threading.Event] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = GatewaySettings.load()
    except GatewayConfigError as e:
        print(f"(FAIL) {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger, _ = get_logger(
        "modbus_gateway",
        level=args.log_level or settings.log_level,
        use_buffer=True,
        log_format=settings.log_format,
    )

    config_path = args.config or settings.config_path
    if not config_path:
        logger.error("(FAIL) No configuration file given (use --config or GATEWAY_CONFIG)")
        return EXIT_CONFIG_ERROR

    runtime = runtime or GatewayRuntime()
    shutdown = shutdown or threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Received signal %s, shutting down...", signal.Signals(signum).name)
        shutdown.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

    if not runtime.init(config_path, scheduling=args.scheduling or settings.scheduling):
        runtime.cleanup()
        return EXIT_CONFIG_ERROR

    if not runtime.start_loop():
        runtime.cleanup()
        return EXIT_CONFIG_ERROR

    while not shutdown.wait(0.5):
        pass

    runtime.cleanup()
    logger.info("Modbus Gateway stopped")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
