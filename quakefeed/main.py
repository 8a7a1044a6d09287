"""Command-line entry point.

Loads configuration, then either runs a single poll of every provider
(--once) or serves the API with uvicorn while the scheduler polls in the
background.
"""

import argparse
import json
import logging
import os
import sys

import uvicorn

from quakefeed.api import create_app
from quakefeed.core.config import validate_config
from quakefeed.engine import Engine
from quakefeed.shell.config_loader import load_config


# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


UVICORN_LOG_LEVELS = {
    logging.CRITICAL: "critical",
    logging.ERROR: "error",
    logging.WARNING: "warning",
    logging.INFO: "info",
    logging.DEBUG: "debug",
}


def _uvicorn_log_level(name: str) -> str:
    """Map a LOG_LEVEL value (aliases like WARN included) to a uvicorn level."""
    return UVICORN_LOG_LEVELS.get(getattr(logging, name.upper(), None), "info")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quakefeed",
        description="Aggregate earthquake reports from multiple providers",
    )
    parser.add_argument(
        "--config",
        help="Path to YAML config (default: $CONFIG_PATH or config/config.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Poll every provider once, print a JSON summary and exit",
    )
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))
    return parser.parse_args(argv)


def run_once(engine: Engine) -> dict:
    """Poll every provider once and summarize the resulting snapshot."""
    results = engine.poll_once()
    snapshot = engine.store.snapshot()
    health = engine.health()

    return {
        "providers": {
            pid: {
                "success": result is not None and result.success,
                "candidates": len(result.candidates) if result is not None else 0,
                "error": str(result.error) if result is not None and result.error else None,
            }
            for pid, result in results.items()
        },
        "rejections": dict(health.rejections),
        "snapshot_version": snapshot.version,
        "record_count": len(snapshot.records),
        "statistics": engine.get_statistics().to_dict(),
        "earthquakes": [r.to_dict() for r in snapshot.records],
    }


def main(argv: list[str] | None = None) -> int:
    """Run the quakefeed CLI.

    Returns:
        Process exit code
    """
    args = _parse_args(argv)
    config = load_config(args.config)

    validation = validate_config(config)
    for warning in validation.warnings:
        logger.warning("Config warning: %s", warning.message)
    if not validation.valid:
        for error in validation.critical_errors:
            logger.error("Config error in %s: %s", error.field, error.message)
        return 2

    engine = Engine(config)

    if args.once:
        try:
            summary = run_once(engine)
        finally:
            engine.stop()
        json.dump(summary, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    app = create_app(engine)
    engine.start()
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=_uvicorn_log_level(log_level))
    finally:
        engine.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
