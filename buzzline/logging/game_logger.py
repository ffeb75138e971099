from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from buzzline.config.settings import GameConfig


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class GameLogger:
    """Per-game run directory with engine events, raw LLM traffic and a transcript.

    ``events.jsonl`` and ``raw_llm.jsonl`` get one JSON object per line;
    ``transcript.md`` is a readable log of every clue and what was heard.
    Events carry both wall-clock time and the scheduler's game time.
    """

    root: str
    game_id: str
    run_dir: Path = field(init=False)

    @classmethod
    def from_config(cls, config: GameConfig, game_id: str | None = None) -> GameLogger:
        return cls(root=config.log_root, game_id=game_id or str(uuid.uuid4())[:8])

    def __post_init__(self) -> None:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        self.run_dir = Path(self.root) / f"{ts}_{self.game_id}"
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.events_path = self.run_dir / "events.jsonl"
        self.llm_path = self.run_dir / "raw_llm.jsonl"
        self.transcript_path = self.run_dir / "transcript.md"
        self._lock = threading.Lock()
        self._append(self.transcript_path, f"# Game {self.game_id}\n")

    def log_event(
        self,
        event_type: str,
        source: str,
        state: str,
        payload: dict[str, Any],
        game_time: float | None = None,
    ) -> None:
        record: dict[str, Any] = {"ts": _utc_now(), "type": event_type, "source": source, "state": state}
        if game_time is not None:
            record["game_time"] = round(game_time, 3)
        record["payload"] = payload
        self._write_jsonl(self.events_path, record)

    def log_llm(
        self,
        role: str,
        prompt: dict[str, Any],
        response_text: str,
        raw_response: dict[str, Any] | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._write_jsonl(
            self.llm_path,
            {
                "ts": _utc_now(),
                "role": role,
                "prompt": prompt,
                "response_text": response_text,
                "raw_response": raw_response,
                "metadata": metadata or {},
            },
        )

    def log_section(self, title: str) -> None:
        self._append(self.transcript_path, f"\n## {title}\n\n")

    def log_transcript_line(self, speaker: str, text: str) -> None:
        self._append(self.transcript_path, f"- **{speaker}**: {text or '(nothing)'}\n")

    def read_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        if not self.events_path.exists():
            return []
        with self._lock:
            lines = self.events_path.read_text(encoding="utf-8").splitlines()
        events = [json.loads(line) for line in lines if line.strip()]
        if event_type is None:
            return events
        return [event for event in events if event["type"] == event_type]

    def run_path(self) -> str:
        return str(self.run_dir)

    def _write_jsonl(self, path: Path, obj: dict[str, Any]) -> None:
        self._append(path, json.dumps(obj, ensure_ascii=False, default=str) + "\n")

    def _append(self, path: Path, text: str) -> None:
        with self._lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(text)
