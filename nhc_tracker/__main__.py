"""
Command line entry point for the NHC Cyclone Tracker.

    python -m nhc_tracker run      # one poll-diff-notify cycle (for cron)
    python -m nhc_tracker serve    # run every POLL_INTERVAL_MINUTES
    python -m nhc_tracker api      # read-only status API
"""

import argparse
import logging
import os
import sys

from .config import ConfigError, load_env_file, load_settings, setup_logging

logger = logging.getLogger("nhc_tracker")


def _run(args) -> int:
    from .scheduler import TrackerRun

    settings = load_settings(args.env_file)
    setup_logging(settings.log_level, settings.log_file)

    tracker = TrackerRun(settings)
    try:
        tracker.run_once()
    except Exception:
        logger.exception("Tracker run failed; previous state kept")
        return 1
    finally:
        tracker.close()
    return 0


def _serve(args) -> int:
    from .scheduler import TrackerRun, TrackerScheduler

    settings = load_settings(args.env_file)
    setup_logging(settings.log_level, settings.log_file)

    tracker = TrackerRun(settings)
    try:
        TrackerScheduler(tracker, args.interval or settings.poll_interval_minutes).start()
    finally:
        tracker.close()
    return 0


def _api(args) -> int:
    import uvicorn

    load_env_file(args.env_file)
    setup_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE") or None)
    uvicorn.run(
        "nhc_tracker.api:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nhc_tracker",
        description="Relay NHC tropical cyclone updates to Discord"
    )
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Poll once, report, save state").set_defaults(handler=_run)

    serve = sub.add_parser("serve", help="Poll on a fixed interval")
    serve.add_argument("--interval", type=int, default=None, help="Minutes between runs")
    serve.set_defaults(handler=_serve)

    sub.add_parser("api", help="Serve the read-only status API").set_defaults(handler=_api)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
