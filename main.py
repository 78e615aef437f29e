from __future__ import annotations

import argparse
from pathlib import Path
import signal
import threading

from loguru import logger

from app.photo_store import PhotoStore
from core.services.sweep_service import SweepScheduler
from infrastructure.logging import find_latest_log_file, init_logging
from infrastructure.settings import JsonSettings, load_store_config


BASE_DIR = Path(__file__).parent


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Self-hosted photo store background service")
    parser.add_argument(
        "--settings",
        default=str(BASE_DIR / "settings.json"),
        help="Path to settings.json",
    )
    parser.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run a single consistency sweep and exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = JsonSettings(args.settings)
    config = load_store_config(settings)
    init_logging(config.log_dir, config.log_level)
    logger.info("Storage root: {}", config.storage_root)
    logger.info("Logging to {}", find_latest_log_file(str(config.log_dir)) or config.log_dir)

    config.storage_root.mkdir(parents=True, exist_ok=True)
    photo_store = PhotoStore.from_config(config)
    sweep = photo_store.build_sweep(config)

    if args.sweep_once:
        report = sweep.run()
        photo_store.shutdown()
        return 0 if report is not None and not report.failures else 1

    stop = threading.Event()

    def _on_signal(signum, _frame) -> None:
        logger.info("Received {}, shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    scheduler = SweepScheduler(sweep, config.sweep_interval_seconds)
    scheduler.start()
    stop.wait()
    scheduler.stop(timeout=30)
    photo_store.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
