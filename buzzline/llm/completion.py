from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from buzzline.llm.bedrock_client import LLMResult
from buzzline.logging.game_logger import GameLogger


@dataclass
class BedrockCompletion:
    """Callback-style completion service over an async converse client.

    Requests run as tasks on the current event loop and report back through
    ``on_success``/``on_error`` from the loop thread, so engine state is
    only touched where the frame driver ticks. Timeouts belong to the
    caller; ``cancel_all`` drops whatever is still in flight.
    """

    client: Any
    logger: GameLogger | None = None
    role: str = "completion"
    _tasks: set[asyncio.Task[LLMResult]] = field(default_factory=set, init=False, repr=False)

    def complete(
        self,
        system_prompt: str,
        user_text: str,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self.client.converse(system_prompt, user_text))
        self._tasks.add(task)

        def _deliver(done: asyncio.Task[LLMResult]) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                on_error("request cancelled")
                return
            exc = done.exception()
            if exc is not None:
                self._log(system_prompt, user_text, "", None, {"error": str(exc)})
                on_error(str(exc))
                return
            result = done.result()
            self._log(
                system_prompt,
                user_text,
                result.text,
                result.raw_response,
                {"attempts": result.attempts, "stop_reason": result.stop_reason},
            )
            on_success(result.text)

        task.add_done_callback(_deliver)

    def in_flight(self) -> int:
        return len(self._tasks)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _log(
        self,
        system_prompt: str,
        user_text: str,
        response_text: str,
        raw_response: dict[str, Any] | None,
        metadata: dict[str, Any],
    ) -> None:
        if self.logger is None:
            return
        self.logger.log_llm(
            role=self.role,
            prompt={"system": system_prompt, "user": user_text},
            response_text=response_text,
            raw_response=raw_response,
            metadata=metadata,
        )
