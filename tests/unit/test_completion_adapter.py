from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from buzzline.config.settings import GameConfig
from buzzline.llm.bedrock_client import BedrockConverseClient, LLMResult
from buzzline.llm.completion import BedrockCompletion
from buzzline.logging.game_logger import GameLogger


@dataclass
class FakeConverseClient:
    text: str = '{"category_index": 1, "value": 200}'
    error: Exception | None = None
    delay: float = 0.0
    prompts: list[tuple[str, str]] = field(default_factory=list)

    async def converse(self, system_prompt: str, user_prompt: str, **kwargs) -> LLMResult:  # noqa: ANN003
        self.prompts.append((system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResult(text=self.text, raw_response={"ok": True}, attempts=1, stop_reason="end_turn")


class _Outcome:
    def __init__(self) -> None:
        self.done = asyncio.Event()
        self.successes: list[str] = []
        self.errors: list[str] = []

    def on_success(self, text: str) -> None:
        self.successes.append(text)
        self.done.set()

    def on_error(self, reason: str) -> None:
        self.errors.append(reason)
        self.done.set()


@pytest.mark.asyncio
async def test_completion_delivers_text_and_logs(tmp_path: Path) -> None:
    logger = GameLogger(root=str(tmp_path), game_id="adapter")
    client = FakeConverseClient()
    completion = BedrockCompletion(client, logger=logger, role="selection")
    outcome = _Outcome()

    completion.complete("system", "history for 200", outcome.on_success, outcome.on_error)
    assert completion.in_flight() == 1
    await asyncio.wait_for(outcome.done.wait(), timeout=1.0)

    assert outcome.successes == ['{"category_index": 1, "value": 200}']
    assert outcome.errors == []
    assert completion.in_flight() == 0
    assert client.prompts == [("system", "history for 200")]
    record = json.loads((Path(logger.run_path()) / "raw_llm.jsonl").read_text(encoding="utf-8").splitlines()[0])
    assert record["role"] == "selection"
    assert record["metadata"] == {"attempts": 1, "stop_reason": "end_turn"}


@pytest.mark.asyncio
async def test_completion_reports_client_failure() -> None:
    completion = BedrockCompletion(FakeConverseClient(error=RuntimeError("Bedrock converse failed")))
    outcome = _Outcome()

    completion.complete("system", "judge this", outcome.on_success, outcome.on_error)
    await asyncio.wait_for(outcome.done.wait(), timeout=1.0)

    assert outcome.successes == []
    assert outcome.errors == ["Bedrock converse failed"]


@pytest.mark.asyncio
async def test_cancel_all_reports_cancellation() -> None:
    completion = BedrockCompletion(FakeConverseClient(delay=5.0))
    outcome = _Outcome()

    completion.complete("system", "slow", outcome.on_success, outcome.on_error)
    await asyncio.sleep(0)
    completion.cancel_all()
    await asyncio.wait_for(outcome.done.wait(), timeout=1.0)

    assert outcome.errors == ["request cancelled"]
    assert completion.in_flight() == 0


class _ScriptedBedrock:
    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict] = []

    def converse(self, **payload):  # noqa: ANN003
        self.calls.append(payload)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(outcomes: list[object], retries: int = 1) -> BedrockConverseClient:
    client = BedrockConverseClient.__new__(BedrockConverseClient)
    client.config = GameConfig(request_retries=retries, request_retry_backoff_seconds=(0.0, 0.0))
    client.client = _ScriptedBedrock(outcomes)
    return client


def _throttled() -> ClientError:
    return ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse")


@pytest.mark.asyncio
async def test_converse_retries_then_joins_text_chunks() -> None:
    response = {
        "output": {"message": {"content": [{"text": "{\"correct\": true,"}, {"text": "\"rationale\": \"ok\"}"}]}},
        "stopReason": "end_turn",
    }
    client = _client([_throttled(), response])

    result = await client.converse("system", "user", temperature=0.0, max_tokens=50)

    assert result.attempts == 2
    assert result.text == '{"correct": true,\n"rationale": "ok"}'
    assert result.stop_reason == "end_turn"
    payload = client.client.calls[0]
    assert payload["inferenceConfig"] == {"temperature": 0.0, "maxTokens": 50}
    assert payload["system"] == [{"text": "system"}]


@pytest.mark.asyncio
async def test_converse_raises_readable_error_after_last_attempt() -> None:
    client = _client([_throttled(), _throttled()])

    with pytest.raises(RuntimeError, match="ThrottlingException: request rate exceeded"):
        await client.converse("system", "user")
