from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from rich.console import Console
from rich.live import Live

from buzzline.config.loader import load_board, load_game_config
from buzzline.config.settings import GameConfig
from buzzline.game.answer_flow import AnswerFlowEngine
from buzzline.game.clock import Scheduler
from buzzline.game.driver import FrameDriver
from buzzline.game.judging import LLMAnswerJudge
from buzzline.game.models import Board
from buzzline.game.roster import Roster
from buzzline.game.selection import SelectionResolver
from buzzline.game.session import GameSession
from buzzline.llm.bedrock_client import BedrockConverseClient
from buzzline.llm.completion import BedrockCompletion
from buzzline.logging.game_logger import GameLogger
from buzzline.messaging.event_bus import EventBus
from buzzline.ui.console_input import ConsoleInput, TextTranscription
from buzzline.ui.event_console import ConsolePlayback, EventConsole


def _first_existing(*candidates: str) -> str:
    for candidate in candidates:
        if Path(candidate).exists():
            return candidate
    return candidates[0]


async def _main(config: GameConfig, board: Board, max_clues: int | None) -> None:
    console = Console()
    logger = GameLogger.from_config(config)
    scheduler = Scheduler()
    bus = EventBus()
    roster = Roster(config.player_names)

    client = BedrockConverseClient(config)
    console.print("Running AWS preflight check...")
    identity = await client.preflight_check()
    console.print(f"Using {identity['model_id']} in {identity['region']} as {identity['arn']}")

    keyboard = ConsoleInput(console)
    transcriber = TextTranscription()
    playback = ConsolePlayback(scheduler, console)
    judge = LLMAnswerJudge(BedrockCompletion(client, logger=logger, role="judge"), logger=logger)
    selection_llm = BedrockCompletion(client, logger=logger, role="selection")

    flow = AnswerFlowEngine(config, scheduler, roster, board, keyboard, transcriber, judge, playback, bus=bus, logger=logger)
    resolver = SelectionResolver(config, scheduler, keyboard, transcriber, selection_llm, playback, bus=bus, logger=logger)
    keyboard.on_buzz(flow.try_buzz)

    display = EventConsole(roster)
    display.attach(bus)
    session = GameSession(
        roster, board, flow, resolver, playback, FrameDriver.from_config(scheduler, config), bus, logger=logger
    )

    names = ", ".join(f"{player.index + 1}={player.name}" for player in roster.players)
    console.print(f"Type a player number to buzz in ({names}). Type your response when listening.")
    keyboard.start(asyncio.get_running_loop())
    with Live(get_renderable=display.render, console=console, refresh_per_second=8, vertical_overflow="crop"):
        summary = await session.run(max_clues=max_clues)

    console.print("\nGame complete")
    console.print(summary)
    console.print(f"Logs: {logger.run_path()}")


def run() -> None:
    parser = argparse.ArgumentParser(description="Play a board of buzz-in trivia from the keyboard.")
    parser.add_argument("--config", default=_first_existing("config.yml", "config.example.yml"))
    parser.add_argument("--board", default=_first_existing("board.yml", "board.example.yml"))
    parser.add_argument("--max-clues", type=int, default=None)
    args = parser.parse_args()

    config = load_game_config(args.config)
    board = load_board(args.board)
    asyncio.run(_main(config, board, args.max_clues))


if __name__ == "__main__":
    run()
