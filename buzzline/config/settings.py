from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GameConfig:
    player_names: list[str] = field(default_factory=lambda: ["Player 1", "Player 2", "Player 3"])
    question_time_seconds: float = 5.0
    response_time_seconds: float = 10.0
    early_buzz_lockout_ms: float = 750.0
    result_display_seconds: float = 2.0
    playback_timeout_seconds: float = 6.0
    transcription_timeout_seconds: float = 10.0
    judge_timeout_seconds: float = 10.0
    listen_timeout_seconds: float = 8.0
    llm_timeout_seconds: float = 8.0
    max_selection_retries: int = 2
    tick_hz: int = 30
    aws_profile: str | None = None
    region: str = "us-west-2"
    model_id: str = "global.anthropic.claude-haiku-4-5-20251001-v1:0"
    temperature: float = 0.0
    max_tokens: int = 200
    request_retries: int = 1
    request_retry_backoff_seconds: tuple[float, float] = (0.5, 1.0)
    log_root: str = "logs"

    @property
    def early_buzz_lockout_seconds(self) -> float:
        return self.early_buzz_lockout_ms / 1000.0
