"""Entry point: ``python -m kagami --config env.yaml``."""

from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from kagami.config import ConfigError, load_config
from kagami.gateway import Gateway
from kagami.logging_setup import setup_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="kagami", description="Group-chat agent gateway")
    parser.add_argument("--config", "-c", default=None, help="Path to the YAML config (default: env.yaml)")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    setup_logging(config.logging.level)

    try:
        asyncio.run(Gateway(config).run())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
