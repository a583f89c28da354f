"""Entrypoint: run the interpretation server or stream one interpretation."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from culture_interpreter.client.consumer import LaneSnapshot, LaneState
from culture_interpreter.client.controller import InterpretationController
from culture_interpreter.client.typing_effect import TypingEffect
from culture_interpreter.config import load_settings
from culture_interpreter.cultures import CULTURES
from culture_interpreter.llm.types import INBOUND, MODES
from culture_interpreter.models import apply_migrations, get_connection


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Streaming cultural interpretation")
    parser.add_argument("--settings", default="config/settings.yaml", help="Path to settings.yaml")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the HTTP API (default)")
    subparsers.add_parser("init-db", help="Apply SQLite migrations only")

    interpret = subparsers.add_parser("interpret", help="Stream one interpretation from a running server")
    interpret.add_argument("message")
    interpret.add_argument("--sender", required=True, choices=CULTURES)
    interpret.add_argument("--receiver", required=True, choices=CULTURES)
    interpret.add_argument("--mode", default=INBOUND, choices=MODES)
    return parser


class _ConsoleRenderer:
    """Types each narrative field in turn and announces the other sections once complete."""

    def __init__(self, chars_per_tick: int = 12) -> None:
        self.chars_per_tick = chars_per_tick
        self.shown: set[str] = set()
        self.effects: dict[str, TypingEffect] = {}
        self.typed: dict[str, str] = {}

    def _type_live_fields(self, snapshot: LaneSnapshot) -> None:
        for field, live in snapshot.live_text.items():
            effect = self.effects.setdefault(field, TypingEffect(self.chars_per_tick))
            if field not in self.typed:
                sys.stdout.write(f"\n{field}: ")
                self.typed[field] = ""
            revealed = effect.tick(live)
            if revealed.startswith(self.typed[field]):
                sys.stdout.write(revealed[len(self.typed[field]):])
            self.typed[field] = revealed
            # Later fields wait until this one is closed and fully typed.
            if field not in snapshot.partial or effect.is_typing(live):
                break
        sys.stdout.flush()

    def __call__(self, snapshot: LaneSnapshot) -> None:
        if snapshot.state == LaneState.STREAMING:
            self._type_live_fields(snapshot)
            for key in snapshot.partial:
                if key not in self.shown and key not in snapshot.live_text:
                    self.shown.add(key)
                    print(f"\n[{key} ready]")
        elif snapshot.state == LaneState.ERRORED and snapshot.error is None:
            self.effects.clear()
            self.typed.clear()
            print("\n[stream failed, retrying without streaming]")


def _print_result(snapshot: LaneSnapshot) -> None:
    print()
    if snapshot.state == LaneState.COMPLETE and snapshot.result is not None:
        for key, value in snapshot.result.to_dict().items():
            if key == "emotions":
                print("emotions:")
                for emotion in value:
                    scores = f"sender={emotion['senderScore']}"
                    if "receiverScore" in emotion:
                        scores += f" receiver={emotion['receiverScore']}"
                    print(f"  - {emotion['name']} ({scores})")
            elif isinstance(value, list):
                print(f"{key}:")
                for item in value:
                    print(f"  - {item}")
            else:
                print(f"{key}: {value}")
        print(f"interpretation_id = {snapshot.interpretation_id}")
        return
    if snapshot.upgrade_required:
        print("Usage limit reached. Upgrade to continue.")
    if snapshot.error:
        print(f"Error [{snapshot.error['code']}]: {snapshot.error['message']}")


async def _interpret(config: dict, args: argparse.Namespace) -> int:
    async with InterpretationController(config, on_change=_ConsoleRenderer()) as controller:
        snapshot = await controller.submit(args.mode, args.message, args.sender, args.receiver)
    _print_result(snapshot)
    return 0 if snapshot.state == LaneState.COMPLETE else 1


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_parser()
    args = parser.parse_args()
    command = args.command or "serve"

    config = load_settings(args.settings)

    if command == "init-db":
        db_path = config["database"]["path"]
        with get_connection(db_path) as conn:
            apply_migrations(conn)
        print(f"Database initialized at {db_path}")
        return

    if command == "interpret":
        raise SystemExit(asyncio.run(_interpret(config, args)))

    import uvicorn

    from culture_interpreter.server import create_app

    server_cfg = config.get("server", {})
    uvicorn.run(create_app(config), host=server_cfg.get("host", "127.0.0.1"), port=int(server_cfg.get("port", 8000)))


if __name__ == "__main__":
    main()
