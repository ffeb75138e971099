from __future__ import annotations

import asyncio
import sys
import threading
from collections.abc import Callable
from typing import TextIO

from rich.console import Console
from rich.text import Text


class ConsoleInput:
    """Keyboard stand-in for the microphone.

    While a recording is open, the next typed line is delivered as the
    "audio". Otherwise a line holding a player number (1-based) buzzes that
    player. Lines are read on a daemon thread and handed to the event loop,
    so engine callbacks still run on the loop thread.
    """

    has_device = True

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self.is_recording = False
        self._on_complete: Callable[[bytes | None], None] | None = None
        self._on_buzz: Callable[[int], bool] | None = None
        self._thread: threading.Thread | None = None

    def on_buzz(self, handler: Callable[[int], bool]) -> None:
        self._on_buzz = handler

    def start(self, loop: asyncio.AbstractEventLoop, stream: TextIO | None = None) -> None:
        source = stream or sys.stdin

        def _read() -> None:
            for line in source:
                try:
                    loop.call_soon_threadsafe(self.feed, line)
                except RuntimeError:
                    return

        self._thread = threading.Thread(target=_read, name="console-input", daemon=True)
        self._thread.start()

    def feed(self, line: str) -> None:
        text = line.strip()
        if self.is_recording:
            self._finish(text.encode("utf-8"))
            return
        if text.isdigit() and self._on_buzz is not None:
            self._on_buzz(int(text) - 1)

    def start_recording(self) -> None:
        self.is_recording = True

    def start_auto_recording(self, on_complete: Callable[[bytes | None], None]) -> None:
        self.is_recording = True
        self._on_complete = on_complete
        self.console.print(Text("Listening... type your response", style="dim"))

    def stop_recording(self) -> None:
        self._finish(b"")

    def cancel_recording(self) -> None:
        self.is_recording = False
        self._on_complete = None

    def _finish(self, audio: bytes) -> None:
        callback = self._on_complete
        self.is_recording = False
        self._on_complete = None
        if callback is not None:
            callback(audio)


class TextTranscription:
    """Transcription for typed input: the "audio" already is the text."""

    def transcribe(self, audio: bytes, on_success: Callable[[str], None], on_error: Callable[[str], None]) -> None:
        try:
            text = audio.decode("utf-8")
        except UnicodeDecodeError as exc:
            on_error(str(exc))
            return
        on_success(text)
