# serve.py

import argparse
import logging
import os
import signal
import sys

from filmneg.core.image_processor import FilmProcessor
from filmneg.server.config import ServerConfig
from filmneg.server.listener import RequestListener


logger = logging.getLogger("filmneg.serve")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Film Negative Processor API")
    parser.add_argument("--port", type=int, default=None, help="Listening port (overrides $PORT)")
    parser.add_argument("--host", default=None, help="Bind address (default 0.0.0.0)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("FILMNEG_LOG_LEVEL", "INFO").upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    try:
        config = ServerConfig.from_env().with_overrides(port=args.port, host=args.host)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    logger.info("=== Film Negative Processor API v2.0 ===")
    logger.info("Starting server on port %d", config.port)

    listener = RequestListener(config, FilmProcessor())
    try:
        listener.bind()
    except OSError as e:
        logger.error("Failed to bind to port %d: %s", config.port, e)
        return 1

    def on_signal(signum, _frame):
        logger.info("Shutdown signal received (%s)", signal.Signals(signum).name)
        listener.shutdown()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    logger.info("Endpoints: POST /api/to-negative, POST /api/to-positive, GET /health")
    listener.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
