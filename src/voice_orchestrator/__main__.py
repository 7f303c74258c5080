"""Command-line session runner.

Connects to the remote agent, prints state changes and transcript lines,
and disconnects on SIGINT/SIGTERM or when the session ends.

Usage:
    python -m voice_orchestrator --config configs/orchestrator.yaml
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from dotenv import load_dotenv

from voice_orchestrator.config import BackendConfig, OrchestratorConfig
from voice_orchestrator.orchestrator import build_orchestrator
from voice_orchestrator.session import SessionState, StateChange
from voice_orchestrator.transcript_buffer import Role, TranscriptEntry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs") / "orchestrator.yaml"


def format_entry(entry: TranscriptEntry) -> str:
    speaker = "Bot" if entry.role is Role.AGENT else "User"
    return f"{speaker} said: {entry.text}"


async def run_session(config: OrchestratorConfig) -> int:
    """Run one session until interrupted or ended remotely.

    Returns:
        Process exit code
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    async with build_orchestrator(config) as orchestrator:

        def on_state(change: StateChange) -> None:
            suffix = f" ({change.reason})" if change.reason else ""
            print(f"Transport state: {change.current.value}{suffix}")
            if change.current is SessionState.DISCONNECTED and change.previous in (
                SessionState.DISCONNECTING,
                SessionState.ERROR,
            ):
                stop.set()

        orchestrator.subscribe(on_state)
        orchestrator.on_transcript(lambda entry: print(format_entry(entry)))

        if not await orchestrator.connect():
            print(f"Error: {orchestrator.last_error or 'connection failed'}")
            return 1

        await stop.wait()

    return 0


def main() -> None:
    """Entry point for the session runner."""
    parser = argparse.ArgumentParser(description="Voice assistant session orchestrator")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to orchestrator config YAML file",
    )
    parser.add_argument("--base-url", help="Override backend base URL")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    load_dotenv()
    config = OrchestratorConfig.from_yaml_with_defaults(args.config)
    if args.base_url:
        config.backend = BackendConfig.model_validate(
            {**config.backend.model_dump(), "base_url": args.base_url}
        )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        raise SystemExit(asyncio.run(run_session(config)))
    except KeyboardInterrupt:
        logger.info("Session runner interrupted")


if __name__ == "__main__":
    main()
