"""alert-relay entry point.

Builds the pipeline from settings and runs it until SIGINT/SIGTERM.

Usage:
    alert-relay
    alert-relay --dry-run --classifier gemini
    python -m alert_relay --env-file prod.env --log-level DEBUG
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import Any

from alert_relay.classifiers import create_classifier
from alert_relay.config import Settings, load_settings
from alert_relay.exceptions import ConfigurationError
from alert_relay.gating import SirenGate
from alert_relay.logging_config import setup_logging
from alert_relay.pipeline import Pipeline
from alert_relay.preamble import Preamble, load_preamble, watch_preamble_file
from alert_relay.sinks import LogRelay, TelegramRelay
from alert_relay.sources import TelegramWebSource

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """A built pipeline plus the resources it owns."""

    pipeline: Pipeline
    preamble: Preamble
    closables: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        """Close every owned client, logging failures."""
        for resource in self.closables:
            try:
                await resource.aclose()
            except Exception as e:
                logger.warning(f"Error closing {type(resource).__name__}: {e}")


def build_pipeline(settings: Settings) -> Runtime:
    """Wire collaborators from settings.

    Args:
        settings: Validated application settings

    Returns:
        Runtime holding the pipeline and its closable clients

    Raises:
        ConfigurationError: If a collaborator cannot be configured
        OSError: If the preamble file cannot be read
    """
    channels = settings.channel_list
    if not channels:
        raise ConfigurationError("No channels configured", source="config")

    preamble = load_preamble(settings.preamble_file)
    classifier = create_classifier(settings, preamble)
    closables: list[Any] = [classifier]

    if settings.dry_run:
        relay = LogRelay()
    else:
        if not settings.telegram_bot_token:
            raise ConfigurationError(
                "TELEGRAM_BOT_TOKEN is required unless dry_run is set", source="config"
            )
        relay = TelegramRelay(settings.telegram_bot_token)
        closables.append(relay)

    source = TelegramWebSource(fetch_attachments=settings.fetch_attachments)
    closables.append(source)

    gate = None
    if settings.gate_url:
        gate = SirenGate(settings.gate_url, alert_type=settings.gate_alert_type)
        closables.append(gate)

    pipeline = Pipeline(
        source_ids=channels,
        source=source,
        classifier=classifier,
        relay=relay,
        relay_channel=settings.relay_channel,
        poll_interval=settings.poll_interval_seconds,
        message_limit=settings.message_limit,
        base_window=settings.batch_window_seconds,
        extend_by=settings.batch_extend_seconds,
        max_window=settings.batch_max_window_seconds,
        gate=gate,
    )
    return Runtime(pipeline=pipeline, preamble=preamble, closables=closables)


async def run(settings: Settings) -> None:
    """Run the pipeline and the preamble watcher until a stop signal."""
    runtime = build_pipeline(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    watcher = asyncio.create_task(
        watch_preamble_file(settings.preamble_file, runtime.preamble, stop_event),
        name="preamble-watcher",
    )
    try:
        await runtime.pipeline.run(stop_event)
    finally:
        stop_event.set()
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        await runtime.aclose()
        logger.info("Shutdown complete")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="alert-relay",
        description="Relay classified channel activity to a notification channel",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log relay messages instead of posting them",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--classifier",
        help="Override CLASSIFIER (claude, chatgpt, deepseek, gemini, glm, glm-coding, openrouter)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Settings file read in addition to the environment (default: .env)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code: 0 on clean shutdown, 1 on startup failure
    """
    args = parse_args(argv)

    overrides: dict[str, Any] = {"_env_file": args.env_file}
    if args.dry_run:
        overrides["dry_run"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.classifier:
        overrides["classifier"] = args.classifier

    try:
        settings = load_settings(**overrides)
    except ConfigurationError as e:
        setup_logging()
        logger.error(str(e))
        return 1

    setup_logging(level=settings.log_level, fmt=settings.log_format)

    try:
        asyncio.run(run(settings))
    except (ConfigurationError, OSError) as e:
        logger.error(f"Startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
