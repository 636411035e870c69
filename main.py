#!/usr/bin/env python3
"""
Device Event Emitter - Command Line Entry Point

Starts the device worker, registers the initial devices and emits events
until interrupted.

Usage:
    python main.py --device CAM-1 --device CAM-2
    python main.py --config my_settings.yaml --min-interval 1000 --max-interval 2000
"""

import argparse
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from config import ConfigurationLoadError, ConfigurationValidationError, EmitterConfig
from core import ApplicationException, __version__, get_logger, get_request_id, setup_logging
from services.device_service import DeviceService


def print_startup_banner(version: str, request_id: str, config: EmitterConfig) -> None:
    """Print the startup banner with version, request ID and broker target."""
    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║                 Device Event Emitter v{version:<10}             ║
╚══════════════════════════════════════════════════════════════╝
  Request ID:  {request_id}
  Brokers:     {config.kafka.bootstrap_servers}
  Topic:       {config.kafka.topic} ({config.kafka.retention_hours}h retention)
  Interval:    {config.device.min_interval_ms}-{config.device.max_interval_ms}ms
  Save images: {config.storage.save_images} ({config.storage.tmp_folder})
"""
    print(banner)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Emit synthetic camera events to Kafka")
    parser.add_argument("--config", help="Path to YAML settings file")
    parser.add_argument("--env-file", help="Path to .env file")
    parser.add_argument(
        "--device", action="append", default=[], dest="devices",
        help="Device id to start at boot (repeatable)"
    )
    parser.add_argument("--min-interval", type=int, help="Minimum delay between events (ms)")
    parser.add_argument("--max-interval", type=int, help="Maximum delay between events (ms)")
    parser.add_argument("--save-images", action="store_true", default=None, help="Save every frame to disk")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate command line flags into configuration overrides."""
    overrides: Dict[str, Any] = {}
    if args.min_interval is not None:
        overrides.setdefault("device", {})["min_interval_ms"] = args.min_interval
    if args.max_interval is not None:
        overrides.setdefault("device", {})["max_interval_ms"] = args.max_interval
    if args.save_images:
        overrides.setdefault("storage", {})["save_images"] = True
    if args.log_level:
        overrides.setdefault("logging", {})["level"] = args.log_level
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the emitter."""
    args = parse_args(argv)

    try:
        config = EmitterConfig(
            config_file=args.config,
            env_file=args.env_file,
            overrides=build_overrides(args)
        )
    except (ConfigurationLoadError, ConfigurationValidationError) as e:
        print(e.get_user_message(), file=sys.stderr)
        return 2

    log_settings = config.logging
    setup_logging(
        level=log_settings.level,
        log_dir=log_settings.file_path if log_settings.file_enabled else None,
        log_file=log_settings.file_name,
        max_size_mb=log_settings.file_max_size_mb,
        backup_count=log_settings.file_backup_count,
        colored_console=log_settings.colored_console,
    )
    logger = get_logger(__name__)

    request_id = get_request_id()
    print_startup_banner(__version__, request_id, config)
    logger.info(f"Emitter starting, version {__version__}")

    stop_requested = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        stop_requested.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    service = DeviceService(config)
    try:
        for device_id in list(dict.fromkeys(config.device.initial_devices + args.devices)):
            try:
                service.add_device(device_id)
            except (ApplicationException, ValueError) as e:
                logger.error(f"Could not add device {device_id!r}: {e}")

        logger.info(f"Emitting events for {service.get_device_count()} devices, press Ctrl+C to stop")
        while not stop_requested.wait(1.0):
            pass
    finally:
        stopped = service.shutdown()

    exit_code = 0 if stopped else 1
    logger.info(f"Emitter exiting with code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
