"""Entry point for the syslog shipper."""

import logging
import signal
import sys
import threading

from syslog_shipper.app import ShipperApp
from syslog_shipper.config import ConfigError, load_config


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(2)

    logging.getLogger().setLevel(config.log_level.upper())
    logging.getLogger("azure").setLevel(logging.WARNING)

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app = None
    try:
        app = ShipperApp(config, shutdown_event)
        app.start()
    except Exception:
        logger.exception("Startup failed")
        if app is not None:
            app.stop()
        sys.exit(1)

    try:
        app.wait()
    finally:
        app.stop()


if __name__ == "__main__":
    main()
