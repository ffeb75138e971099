from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from buzzline.game.models import Cue


Done = Callable[[], None]


class AudioCapture(Protocol):
    @property
    def has_device(self) -> bool: ...

    @property
    def is_recording(self) -> bool: ...

    def start_recording(self) -> None: ...

    def start_auto_recording(self, on_complete: Callable[[bytes | None], None]) -> None: ...

    def stop_recording(self) -> None: ...

    def cancel_recording(self) -> None: ...


class Transcription(Protocol):
    def transcribe(
        self,
        audio: bytes,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None: ...


class Judge(Protocol):
    def judge(
        self,
        transcript: str,
        correct_answer: str,
        on_result: Callable[[bool, str], None],
    ) -> None: ...


class Playback(Protocol):
    def play_announcement(self, name: str, on_complete: Done | None) -> None: ...

    def play_cue(self, cue: Cue, on_complete: Done | None) -> None: ...

    def speak(self, text: str, on_complete: Done | None) -> None: ...


class LLMParser(Protocol):
    def complete(
        self,
        system_prompt: str,
        user_text: str,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None: ...
