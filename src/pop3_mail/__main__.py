"""Command line entry point: ``python -m pop3_mail``."""

from logging import getLogger
from typing import List, Optional
import argparse
import logging

from pop3_mail.config import load

_LOGGER = getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pop3-mail", description="Run the POP3 mail retrieval server.")
    parser.add_argument("--config", help="YAML configuration file (defaults to the packaged configuration)")
    parser.add_argument("--host", help="Address to listen on, overrides the configuration")
    parser.add_argument("--port", type=int, help="Port to listen on, overrides the configuration")
    parser.add_argument(
        "--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = load(args.config)
    overrides = {key: value for key, value in (("host", args.host), ("port", args.port)) if value is not None}
    if overrides:
        config.server = config.server.model_validate({**config.server.model_dump(), **overrides})

    server = config.build_server()
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted, shutting down")
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
